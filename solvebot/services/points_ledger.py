"""
solvebot.services.points_ledger — Atomic Point Balance Mutation
================================================================

Every function works on a caller-supplied :class:`Session`; the caller's
``get_session`` block is the transaction, so crediting several users either
lands completely or not at all.

Balances are integers in tenths of a displayed point (see
:func:`solvebot.constants.format_points`).  Increments happen SQL-side
(``points = points + :amount``) so concurrent credits from different solves
commute.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from solvebot.database.models import User
from solvebot.errors import NotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PointsUpdate:
    """Before/after snapshot of one user's balance inside a credit."""

    user_id: int
    old_points: int
    new_points: int
    cached_rank: int | None

    @property
    def delta(self) -> int:
        return self.new_points - self.old_points


def dedupe_ids(user_ids: Iterable[int]) -> list[int]:
    """Drop repeated ids, keeping first-seen order."""
    return list(dict.fromkeys(int(uid) for uid in user_ids))


def ensure_user(session: Session, user_id: int) -> User:
    """Fetch or insert a User row (zero points, unranked).

    The insert runs in a SAVEPOINT: if a concurrent transaction created the
    same user first, the IntegrityError is absorbed and the existing row is
    returned.
    """
    user = session.get(User, user_id)
    if user is not None:
        return user
    try:
        with session.begin_nested():
            user = User(id=user_id, points=0, cached_rank=None)
            session.add(user)
            session.flush()
    except IntegrityError:
        user = session.get(User, user_id)
        if user is None:
            raise
    return user


def credit_users(
    session: Session, user_ids: Iterable[int], amount: int
) -> list[PointsUpdate]:
    """Add *amount* to every listed user's balance.

    Missing users are created first.  Returns one :class:`PointsUpdate` per
    distinct id, in first-seen order.
    """
    ids = dedupe_ids(user_ids)
    updates: list[PointsUpdate] = []
    for user_id in ids:
        ensure_user(session, user_id)
        new_points, cached_rank = session.execute(
            update(User)
            .where(User.id == user_id)
            .values(points=User.points + amount)
            .returning(User.points, User.cached_rank)
        ).one()
        updates.append(PointsUpdate(
            user_id=user_id,
            old_points=new_points - amount,
            new_points=new_points,
            cached_rank=cached_rank,
        ))

    if ids:
        logger.debug("Credited %d to %d user(s)", amount, len(ids))
    return updates


def get_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise NotFound(f"No user with id {user_id}.")
    return user


def get_top_users_by_points(session: Session, n: int) -> list[User]:
    """Top *n* users by balance; ties broken by id ascending."""
    if n <= 0:
        return []
    return list(session.scalars(
        select(User).order_by(User.points.desc(), User.id.asc()).limit(n)
    ).all())


def get_top_score(session: Session) -> int:
    """Highest balance in the population, 0 when there are no users."""
    return session.scalar(select(func.max(User.points))) or 0


def advance_cached_rank(session: Session, user_id: int, rank: int) -> bool:
    """Raise the cached rank to *rank*; never lowers it.

    Returns ``False`` if the stored cache was already at or above *rank*.
    """
    result = session.execute(
        update(User)
        .where(
            User.id == user_id,
            or_(User.cached_rank.is_(None), User.cached_rank < rank),
        )
        .values(cached_rank=rank)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def mark_verified(session: Session, user_id: int, email: str) -> User:
    """Record a verified identity for *user_id*, creating the user if needed."""
    user = ensure_user(session, user_id)
    user.verified_email = email
    session.flush()
    return user


def swap_cached_rank(
    session: Session, user_id: int, rank: int
) -> tuple[bool, int | None]:
    """Advance the cached rank to *rank* and report the rank it replaced.

    The row is read ``FOR UPDATE`` so two rank-ups for the same user
    serialise on it.  Returns ``(advanced, previous)``; when the cache was
    already at or above *rank* nothing is written and ``advanced`` is False.
    """
    row = session.execute(
        select(User.cached_rank).where(User.id == user_id).with_for_update()
    ).one_or_none()
    if row is None:
        raise NotFound(f"No user with id {user_id}.")
    previous = row.cached_rank
    if previous is not None and previous >= rank:
        return False, previous
    session.execute(
        update(User)
        .where(User.id == user_id)
        .values(cached_rank=rank)
        .execution_options(synchronize_session=False)
    )
    return True, previous
