"""
solvebot.services.solve_store — Challenge & Solve Persistence
==============================================================

Owns solve identity and approval status storage.  Like the ledger, every
function takes the caller's :class:`Session`; wrap calls in
``get_session(engine)`` to get commit-or-rollback semantics.

The state machine itself (who may move a solve out of Pending, and when)
lives in :mod:`solvebot.services.approval_service`.  The store only offers a
compare-and-set status update so a losing concurrent decision is visible to
the caller instead of silently overwriting.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from solvebot.database.models import (
    ApprovalStatus,
    Challenge,
    ChallengeCategory,
    Competition,
    Solve,
    UserSolve,
)
from solvebot.errors import ConstraintViolation, NotFound
from solvebot.services.points_ledger import dedupe_ids, ensure_user

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Competitions
# ---------------------------------------------------------------------------
def create_competition(session: Session, competition_id: int, name: str) -> Competition:
    if session.get(Competition, competition_id) is not None:
        raise ConstraintViolation(f"Competition {competition_id} already exists.")
    competition = Competition(id=competition_id, name=name)
    session.add(competition)
    session.flush()
    return competition


def get_competition(session: Session, competition_id: int) -> Competition:
    competition = session.get(Competition, competition_id)
    if competition is None:
        raise NotFound("This channel is not a registered competition.")
    return competition


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------
def create_challenge(
    session: Session,
    *,
    competition_id: int,
    name: str,
    category: ChallengeCategory,
    discussion_ref: int | None = None,
) -> int:
    """Insert a challenge and return its new id.

    Raises :class:`ConstraintViolation` if the owning competition is missing.
    """
    if session.get(Competition, competition_id) is None:
        raise ConstraintViolation(
            f"Competition {competition_id} does not exist."
        )
    challenge = Challenge(
        competition_id=competition_id,
        name=name.strip(),
        category=ChallengeCategory(category),
        discussion_ref=discussion_ref,
    )
    session.add(challenge)
    session.flush()
    logger.info("Challenge %d created: %s", challenge.id, challenge.display_name)
    return challenge.id


def get_challenge(session: Session, challenge_id: int) -> Challenge:
    challenge = session.get(Challenge, challenge_id)
    if challenge is None:
        raise NotFound(f"No challenge with id {challenge_id}.")
    return challenge


def get_challenge_by_discussion_ref(session: Session, ref: int) -> Challenge:
    challenge = session.scalar(select(Challenge).where(Challenge.discussion_ref == ref))
    if challenge is None:
        raise NotFound("This thread is not linked to a challenge.")
    return challenge


def set_challenge_discussion_ref(
    session: Session, challenge_id: int, ref: int | None
) -> Challenge:
    """The one mutation a challenge allows after creation."""
    challenge = get_challenge(session, challenge_id)
    challenge.discussion_ref = ref
    session.flush()
    return challenge


# ---------------------------------------------------------------------------
# Solves
# ---------------------------------------------------------------------------
def create_solve(
    session: Session,
    *,
    challenge_id: int,
    flag: str,
    participant_ids: Iterable[int],
    submitted_by: int,
    decision_message_ref: int | None = None,
) -> int:
    """Insert a Pending solve plus one participation row per distinct user.

    Participants that have no user row yet are created with zero points.
    Everything happens in the caller's transaction.
    """
    participants = dedupe_ids(participant_ids)
    if not participants:
        raise ConstraintViolation("A solve needs at least one participant.")
    if not flag or not flag.strip():
        raise ConstraintViolation("The flag must not be empty.")
    get_challenge(session, challenge_id)

    solve = Solve(
        challenge_id=challenge_id,
        decision_message_ref=decision_message_ref,
        flag=flag.strip(),
        approval_status=ApprovalStatus.PENDING,
        submitted_by=submitted_by,
    )
    session.add(solve)
    session.flush()

    for user_id in participants:
        ensure_user(session, user_id)
        session.add(UserSolve(user_id=user_id, solve_id=solve.id))
    session.flush()

    logger.info(
        "Solve %d submitted for challenge %d by %d (%d participant(s))",
        solve.id, challenge_id, submitted_by, len(participants),
    )
    return solve.id


def attach_decision_message(session: Session, solve_id: int, ref: int) -> None:
    solve = get_solve(session, solve_id)
    solve.decision_message_ref = ref
    session.flush()


def get_solve(session: Session, solve_id: int) -> Solve:
    solve = session.get(Solve, solve_id)
    if solve is None:
        raise NotFound(f"No solve with id {solve_id}.")
    return solve


def get_solve_by_decision_message_id(session: Session, ref: int) -> Solve:
    solve = session.scalar(select(Solve).where(Solve.decision_message_ref == ref))
    if solve is None:
        raise NotFound(
            "No solve is attached to that message yet. "
            "If it was just posted, try again in a moment."
        )
    return solve


def get_participant_ids(session: Session, solve_id: int) -> list[int]:
    return list(session.scalars(
        select(UserSolve.user_id)
        .where(UserSolve.solve_id == solve_id)
        .order_by(UserSolve.user_id)
    ).all())


def update_solve_status(
    session: Session,
    solve_id: int,
    status: ApprovalStatus,
    *,
    decided_by: int | None = None,
) -> bool:
    """Move a Pending solve to a terminal *status*.

    Returns ``False`` (and changes nothing) if the solve was no longer
    Pending when the UPDATE ran.
    """
    status = ApprovalStatus(status)
    if not status.is_terminal:
        raise ConstraintViolation("A solve can only be moved to a terminal status.")

    result = session.execute(
        update(Solve)
        .where(
            Solve.id == solve_id,
            Solve.approval_status == ApprovalStatus.PENDING,
        )
        .values(
            approval_status=status,
            decided_by=decided_by,
            decided_at=datetime.now(UTC),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------
def get_solved_challenges_for_user(session: Session, user_id: int) -> list[Challenge]:
    """Challenges from approved solves *user_id* took part in."""
    return list(session.scalars(
        select(Challenge)
        .join(Solve, Solve.challenge_id == Challenge.id)
        .join(UserSolve, UserSolve.solve_id == Solve.id)
        .where(
            UserSolve.user_id == user_id,
            Solve.approval_status == ApprovalStatus.APPROVED,
        )
        .order_by(Challenge.id)
        .distinct()
    ).all())


def count_solves_by_category(
    session: Session, user_id: int
) -> dict[ChallengeCategory, int]:
    """Approved solves per category for *user_id*, zero-filled."""
    rows = session.execute(
        select(Challenge.category, func.count(func.distinct(Challenge.id)))
        .join(Solve, Solve.challenge_id == Challenge.id)
        .join(UserSolve, UserSolve.solve_id == Solve.id)
        .where(
            UserSolve.user_id == user_id,
            Solve.approval_status == ApprovalStatus.APPROVED,
        )
        .group_by(Challenge.category)
    ).all()
    counts = {category: 0 for category in ChallengeCategory}
    for category, count in rows:
        counts[category] = count
    return counts
