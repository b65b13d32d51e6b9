"""
solvebot.database.models — SQLAlchemy 2.0 Data Models
======================================================

Tables:
- competitions  — CTF events that own challenges (keyed by channel snowflake)
- challenges    — Named, categorised problems within a competition
- solves        — Flag submissions awaiting / past moderation
- user_solves   — Many-to-many solve participation
- users         — Point balance, cached rank, verification marker

Enum-valued columns are stored as integers.  :class:`IntEnumColumn` maps
them both ways and raises :class:`~solvebot.errors.CorruptRecord` when the
database holds a value no variant claims.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from solvebot.errors import CorruptRecord


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all solvebot ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ChallengeCategory(enum.IntEnum):
    """Closed set of challenge categories.  Values are the stored integers."""
    REV = 0
    PWN = 1
    WEB = 2
    CRYPTO = 3
    MISC = 4
    OSINT = 5
    FORENSICS = 6
    BLOCKCHAIN = 7
    PROGRAMMING = 8
    JAIL = 9

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_label(cls, label: str) -> ChallengeCategory:
        try:
            return cls[label.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown challenge category: {label!r}") from None


class ApprovalStatus(enum.IntEnum):
    """Tri-state moderation status.  APPROVED and DECLINED are terminal."""
    PENDING = 0
    APPROVED = 1
    DECLINED = 2

    @property
    def label(self) -> str:
        return self.name.lower()

    @property
    def is_terminal(self) -> bool:
        return self is not ApprovalStatus.PENDING


class IntEnumColumn(TypeDecorator):
    """Store an :class:`enum.IntEnum` as a plain INTEGER."""

    impl = Integer
    cache_ok = True

    def __init__(self, enum_cls: type[enum.IntEnum], *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.enum_cls = enum_cls

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return int(self.enum_cls(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        try:
            return self.enum_cls(value)
        except ValueError:
            raise CorruptRecord(
                f"Stored value {value!r} is not a valid {self.enum_cls.__name__}"
            ) from None


# ---------------------------------------------------------------------------
# Users — one row per Discord member that ever earned or could earn points
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    verified_email: Mapped[str | None] = mapped_column(String(320), default=None)
    points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Index into the configured rank names; None means unranked.
    cached_rank: Mapped[int | None] = mapped_column(Integer, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    solves: Mapped[list[Solve]] = relationship(
        secondary="user_solves", back_populates="participants", viewonly=True
    )

    __table_args__ = (
        Index("ix_users_points_desc", "points"),
    )

    @property
    def is_verified(self) -> bool:
        return self.verified_email is not None

    def __repr__(self) -> str:
        return f"<User id={self.id} points={self.points} rank={self.cached_rank}>"


# ---------------------------------------------------------------------------
# Competitions — the CTF event a challenge belongs to
# ---------------------------------------------------------------------------
class Competition(Base):
    __tablename__ = "competitions"

    # Discord channel snowflake of the competition's channel.
    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    challenges: Mapped[list[Challenge]] = relationship(back_populates="competition")

    def __repr__(self) -> str:
        return f"<Competition id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# Challenges — immutable apart from the discussion thread reference
# ---------------------------------------------------------------------------
class Challenge(Base):
    __tablename__ = "challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    competition_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("competitions.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[ChallengeCategory] = mapped_column(
        IntEnumColumn(ChallengeCategory), nullable=False
    )
    discussion_ref: Mapped[int | None] = mapped_column(
        BigInteger, nullable=True, unique=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    competition: Mapped[Competition] = relationship(back_populates="challenges")
    solves: Mapped[list[Solve]] = relationship(back_populates="challenge")

    __table_args__ = (
        Index("ix_challenges_competition", "competition_id"),
    )

    @property
    def display_name(self) -> str:
        return f"{self.category.label}/{self.name}"

    def __repr__(self) -> str:
        return f"<Challenge id={self.id} name={self.display_name!r}>"


# ---------------------------------------------------------------------------
# Solves — a claim that a challenge was solved, pending moderation
# ---------------------------------------------------------------------------
class Solve(Base):
    __tablename__ = "solves"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    challenge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False
    )
    # Message carrying the approve/decline buttons; set once it is posted.
    decision_message_ref: Mapped[int | None] = mapped_column(
        BigInteger, nullable=True, unique=True
    )
    flag: Mapped[str] = mapped_column(Text, nullable=False)
    approval_status: Mapped[ApprovalStatus] = mapped_column(
        IntEnumColumn(ApprovalStatus), nullable=False, default=ApprovalStatus.PENDING
    )
    submitted_by: Mapped[int] = mapped_column(BigInteger, nullable=False)
    decided_by: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    decided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    challenge: Mapped[Challenge] = relationship(back_populates="solves")
    participants: Mapped[list[User]] = relationship(
        secondary="user_solves", back_populates="solves", viewonly=True
    )

    __table_args__ = (
        Index("ix_solves_challenge", "challenge_id"),
        Index("ix_solves_status", "approval_status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Solve id={self.id} challenge={self.challenge_id} "
            f"status={self.approval_status.label}>"
        )


# ---------------------------------------------------------------------------
# UserSolve — participation rows, written together with the solve
# ---------------------------------------------------------------------------
class UserSolve(Base):
    __tablename__ = "user_solves"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    solve_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("solves.id", ondelete="CASCADE"), primary_key=True
    )

    __table_args__ = (
        Index("ix_user_solves_solve", "solve_id"),
    )

    def __repr__(self) -> str:
        return f"<UserSolve user={self.user_id} solve={self.solve_id}>"
