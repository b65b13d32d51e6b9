"""Initial solve tables

Revision ID: 5c1e7a90b2d4
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "5c1e7a90b2d4"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("verified_email", sa.String(320), nullable=True),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cached_rank", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_points_desc", "users", ["points"])

    op.create_table(
        "competitions",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "challenges",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "competition_id",
            sa.BigInteger(),
            sa.ForeignKey("competitions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("category", sa.Integer(), nullable=False),
        sa.Column("discussion_ref", sa.BigInteger(), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_challenges_competition", "challenges", ["competition_id"])

    op.create_table(
        "solves",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "challenge_id",
            sa.Integer(),
            sa.ForeignKey("challenges.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("decision_message_ref", sa.BigInteger(), nullable=True, unique=True),
        sa.Column("flag", sa.Text(), nullable=False),
        sa.Column("approval_status", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("submitted_by", sa.BigInteger(), nullable=False),
        sa.Column("decided_by", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_solves_challenge", "solves", ["challenge_id"])
    op.create_index("ix_solves_status", "solves", ["approval_status"])

    op.create_table(
        "user_solves",
        sa.Column(
            "user_id",
            sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "solve_id",
            sa.Integer(),
            sa.ForeignKey("solves.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )
    op.create_index("ix_user_solves_solve", "user_solves", ["solve_id"])


def downgrade() -> None:
    op.drop_index("ix_user_solves_solve", table_name="user_solves")
    op.drop_table("user_solves")
    op.drop_index("ix_solves_status", table_name="solves")
    op.drop_index("ix_solves_challenge", table_name="solves")
    op.drop_table("solves")
    op.drop_index("ix_challenges_competition", table_name="challenges")
    op.drop_table("challenges")
    op.drop_table("competitions")
    op.drop_index("ix_users_points_desc", table_name="users")
    op.drop_table("users")
