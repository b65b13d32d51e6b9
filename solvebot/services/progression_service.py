"""
solvebot.services.progression_service — Rank Re-evaluation & Role Sync
=======================================================================

Shared by every point-earning path (solve approval, message activity,
admin corrections):

1. Credit points and evaluate rank transitions inside **one** transaction,
   reading a fresh top score after the credit (no cached ladder).
2. After commit, apply each transition's side effects in a fixed order:
   grant new role → persist cached rank → revoke old role → announce.

Granting before revoking means a user is never observably role-less.  The
role to revoke comes from the cached rank the swap replaced, so overlapping
rank-ups for one user leave exactly one rank role behind.  If the grant fails
the cache is left alone and the remaining steps are skipped; the failure is
reported, not raised.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from solvebot.database.engine import get_session, run_db
from solvebot.engine.ranks import RankTransition, compute_cutoffs, evaluate_transition
from solvebot.errors import ExternalSideEffectFailure, StorageFailure
from solvebot.services import points_ledger
from solvebot.services.points_ledger import PointsUpdate
from solvebot.services.side_effects import (
    NotificationSink,
    RoleSync,
    SideEffectRunner,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from solvebot.config import RankConfig, SolveBotConfig

logger = logging.getLogger(__name__)


def evaluate_updates(
    session: Session,
    updates: Sequence[PointsUpdate],
    ranks: RankConfig,
) -> list[RankTransition]:
    """Evaluate every update against the ladder as it stands in *session*."""
    if not updates:
        return []
    top_score = points_ledger.get_top_score(session)
    cutoffs = compute_cutoffs(top_score, ranks.rank_count, ranks.cutoff_decay)
    transitions = []
    for upd in updates:
        transition = evaluate_transition(upd, cutoffs, ranks.rank_names)
        if transition is not None:
            transitions.append(transition)
    return transitions


@dataclass
class AwardResult:
    """Outcome of a direct point award (message points, admin correction)."""

    updates: list[PointsUpdate] = field(default_factory=list)
    transitions: list[RankTransition] = field(default_factory=list)
    side_effect_failures: list[ExternalSideEffectFailure] = field(default_factory=list)


def _credit_and_evaluate(
    engine: Engine, user_ids: list[int], amount: int, ranks: RankConfig
) -> tuple[list[PointsUpdate], list[RankTransition]]:
    with get_session(engine) as session:
        updates = points_ledger.credit_users(session, user_ids, amount)
        transitions = evaluate_updates(session, updates, ranks)
        return updates, transitions


def _swap_cached_rank(
    engine: Engine, user_id: int, rank: int
) -> tuple[bool, int | None]:
    with get_session(engine) as session:
        return points_ledger.swap_cached_rank(session, user_id, rank)


class RankProgression:
    """Turns committed point changes into rank-up side effects."""

    def __init__(
        self,
        engine: Engine,
        cfg: SolveBotConfig,
        role_sync: RoleSync,
        notifier: NotificationSink,
        runner: SideEffectRunner | None = None,
    ) -> None:
        self.engine = engine
        self.cfg = cfg
        self.role_sync = role_sync
        self.notifier = notifier
        self.runner = runner or SideEffectRunner()

    async def award_points(
        self, user_ids: Iterable[int], amount: int, *, reason: str = ""
    ) -> AwardResult:
        """Credit *amount* to each user, then apply any rank-ups.

        Raises :class:`StorageFailure` if the credit could not commit.
        """
        ids = points_ledger.dedupe_ids(user_ids)
        try:
            updates, transitions = await run_db(
                _credit_and_evaluate, self.engine, ids, amount, self.cfg.ranks
            )
        except SQLAlchemyError as exc:
            logger.exception("Point award failed for %s", ids)
            raise StorageFailure("Could not record the point award; try again.") from exc

        if reason:
            logger.info("Awarded %d to %s (%s)", amount, ids, reason)
        failures = await self.apply_transitions(transitions)
        return AwardResult(
            updates=updates, transitions=transitions, side_effect_failures=failures
        )

    async def apply_transitions(
        self, transitions: Iterable[RankTransition]
    ) -> list[ExternalSideEffectFailure]:
        failures: list[ExternalSideEffectFailure] = []
        for transition in transitions:
            failures.extend(await self._apply_one(transition))
        return failures

    def _role_name(self, rank: int | None) -> str | None:
        names = self.cfg.ranks.rank_names
        if rank is None or not 0 <= rank < len(names):
            return None
        return names[rank]

    async def _apply_one(self, t: RankTransition) -> list[ExternalSideEffectFailure]:
        failures: list[ExternalSideEffectFailure] = []

        ok, value = await self.runner.run(
            f"grant-role:{t.user_id}:{t.grant_role}",
            lambda: self.role_sync.grant_role(t.user_id, t.grant_role),
        )
        if not ok:
            failures.append(value)
            return failures

        # Revoke the rank the swap replaced, not the one seen at credit time.
        ok, value = await self.runner.run(
            f"cache-rank:{t.user_id}:{t.new_rank}",
            lambda: run_db(_swap_cached_rank, self.engine, t.user_id, t.new_rank),
        )
        if ok:
            advanced, previous = value
            if not advanced:
                # A concurrent rank-up already moved past this one.
                if previous != t.new_rank:
                    logger.info(
                        "User %d already at rank %s; dropping stale %s",
                        t.user_id, previous, t.grant_role,
                    )
                    failures.extend(await self._revoke(t.user_id, t.grant_role))
                return failures
            revoke = self._role_name(previous)
        else:
            failures.append(value)
            revoke = t.revoke_role

        logger.info(
            "User %d ranked up: %s → %s", t.user_id, revoke or "unranked", t.grant_role
        )
        if revoke is not None and revoke != t.grant_role:
            failures.extend(await self._revoke(t.user_id, revoke))

        ok, value = await self.runner.run(
            f"announce-rank:{t.user_id}:{t.grant_role}",
            lambda: self.notifier.announce_rank_up(t.user_id, t.grant_role),
        )
        if not ok:
            failures.append(value)
        return failures

    async def _revoke(self, user_id: int, role_name: str) -> list[ExternalSideEffectFailure]:
        ok, value = await self.runner.run(
            f"revoke-role:{user_id}:{role_name}",
            lambda: self.role_sync.revoke_role(user_id, role_name),
        )
        return [] if ok else [value]
