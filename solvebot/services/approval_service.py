"""
solvebot.services.approval_service — Solve Approval Workflow
=============================================================

The state machine behind every solve::

    submit ──► PENDING ──decide(accept)──► APPROVED  (points + rank-ups)
                      └─decide(reject)──► DECLINED

Both terminal states are final.  This module is the only writer of
``approval_status``.

Guarantees:

* ``decide`` is idempotent.  A solve that already left Pending reports its
  existing status and triggers nothing, however many times the platform
  redelivers the button press.
* The status change and the point credit share one transaction, and the
  status change is a compare-and-set on ``PENDING``.  A decline racing a
  duplicate approve can never pay out, and a failed credit leaves the solve
  Pending so a moderator can retry.
* Notifications and role changes run after commit through
  :class:`~solvebot.services.side_effects.SideEffectRunner`.  Their failures
  are reported on the result and never undo the ledger.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from solvebot.database.engine import get_session, run_db
from solvebot.database.models import ApprovalStatus
from solvebot.engine.ranks import RankTransition
from solvebot.errors import ExternalSideEffectFailure, StorageFailure
from solvebot.services import points_ledger, solve_store
from solvebot.services.points_ledger import PointsUpdate
from solvebot.services.progression_service import RankProgression, evaluate_updates
from solvebot.services.side_effects import (
    DecisionRequest,
    NotificationSink,
    RoleSync,
    SideEffectRunner,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from solvebot.config import SolveBotConfig

logger = logging.getLogger(__name__)


class DecisionOutcome(enum.StrEnum):
    """Moderator choice; values match the decision-trigger payload."""
    APPROVE = "accept"
    DECLINE = "reject"

    @property
    def target_status(self) -> ApprovalStatus:
        if self is DecisionOutcome.APPROVE:
            return ApprovalStatus.APPROVED
        return ApprovalStatus.DECLINED


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
@dataclass
class SubmitResult:
    solve_id: int
    participant_ids: list[int]
    decision_message_ref: int | None = None
    side_effect_failures: list[ExternalSideEffectFailure] = field(default_factory=list)


@dataclass
class DecisionResult:
    """What ``decide`` did.  ``already_decided`` marks a no-op re-entry."""

    solve_id: int
    status: ApprovalStatus
    already_decided: bool = False
    updates: list[PointsUpdate] = field(default_factory=list)
    transitions: list[RankTransition] = field(default_factory=list)
    side_effect_failures: list[ExternalSideEffectFailure] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.already_decided:
            return f"Solve #{self.solve_id} was already {self.status.label}."
        if self.status is ApprovalStatus.APPROVED:
            return (
                f"Solve #{self.solve_id} approved; "
                f"{len(self.updates)} solver(s) credited."
            )
        return f"Solve #{self.solve_id} declined."


# ---------------------------------------------------------------------------
# Sync units of work (run via run_db)
# ---------------------------------------------------------------------------
def _create_pending_solve(
    engine: Engine,
    challenge_id: int,
    flag: str,
    participant_ids: list[int],
    submitter_id: int,
) -> tuple[int, DecisionRequest]:
    with get_session(engine) as session:
        challenge = solve_store.get_challenge(session, challenge_id)
        solve_id = solve_store.create_solve(
            session,
            challenge_id=challenge_id,
            flag=flag,
            participant_ids=participant_ids,
            submitted_by=submitter_id,
        )
        request = DecisionRequest(
            solve_id=solve_id,
            challenge_id=challenge.id,
            challenge_name=challenge.name,
            category=challenge.category.label,
            flag=flag.strip(),
            submitter_id=submitter_id,
            participant_ids=tuple(solve_store.get_participant_ids(session, solve_id)),
        )
        return solve_id, request


def _attach_message(engine: Engine, solve_id: int, ref: int) -> None:
    with get_session(engine) as session:
        solve_store.attach_decision_message(session, solve_id, ref)


def _apply_decision(
    engine: Engine,
    cfg: SolveBotConfig,
    outcome: DecisionOutcome,
    decider_id: int,
    solve_id: int | None,
    decision_message_id: int | None,
) -> DecisionResult:
    """Load, compare-and-set, and (on approve) credit — all one transaction."""
    with get_session(engine) as session:
        if solve_id is not None:
            solve = solve_store.get_solve(session, solve_id)
        else:
            solve = solve_store.get_solve_by_decision_message_id(
                session, decision_message_id
            )

        if solve.approval_status.is_terminal:
            return DecisionResult(
                solve_id=solve.id, status=solve.approval_status, already_decided=True
            )

        target = outcome.target_status
        if not solve_store.update_solve_status(
            session, solve.id, target, decided_by=decider_id
        ):
            # Lost a race with a concurrent decision; report what won.
            session.expire(solve)
            current = solve_store.get_solve(session, solve.id)
            return DecisionResult(
                solve_id=current.id, status=current.approval_status, already_decided=True
            )

        if target is ApprovalStatus.DECLINED:
            return DecisionResult(solve_id=solve.id, status=target)

        participants = solve_store.get_participant_ids(session, solve.id)
        updates = points_ledger.credit_users(
            session, participants, cfg.ranks.points_per_solve
        )
        transitions = evaluate_updates(session, updates, cfg.ranks)
        return DecisionResult(
            solve_id=solve.id,
            status=target,
            updates=updates,
            transitions=transitions,
        )


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------
class ApprovalWorkflow:
    """Orchestrates submission, moderation and point distribution."""

    def __init__(
        self,
        engine: Engine,
        cfg: SolveBotConfig,
        role_sync: RoleSync,
        notifier: NotificationSink,
        runner: SideEffectRunner | None = None,
        progression: RankProgression | None = None,
    ) -> None:
        self.engine = engine
        self.cfg = cfg
        self.notifier = notifier
        self.runner = runner or SideEffectRunner()
        self.progression = progression or RankProgression(
            engine, cfg, role_sync, notifier, self.runner
        )

    # -------------------------------------------------------------------
    # submit
    # -------------------------------------------------------------------
    async def submit(
        self,
        *,
        challenge_id: int,
        flag: str,
        submitter_id: int,
        teammate_ids: Iterable[int] = (),
    ) -> SubmitResult:
        """Record a Pending solve and ask moderators to judge it.

        The submitter is always a participant.  No points move here.
        Raises ``NotFound`` / ``ConstraintViolation`` for bad input and
        :class:`StorageFailure` if the insert could not commit.
        """
        participants = points_ledger.dedupe_ids([submitter_id, *teammate_ids])
        try:
            solve_id, request = await run_db(
                _create_pending_solve,
                self.engine, challenge_id, flag, participants, submitter_id,
            )
        except SQLAlchemyError as exc:
            logger.exception("Could not store solve for challenge %d", challenge_id)
            raise StorageFailure("Could not record the solve; try again.") from exc

        result = SubmitResult(solve_id=solve_id, participant_ids=list(request.participant_ids))

        ok, value = await self.runner.run(
            f"decision-request:{solve_id}",
            lambda: self.notifier.publish_decision_request(request),
        )
        if not ok:
            result.side_effect_failures.append(value)
            return result

        result.decision_message_ref = value
        try:
            await run_db(_attach_message, self.engine, solve_id, value)
        except SQLAlchemyError as exc:
            logger.exception("Could not link message %s to solve %d", value, solve_id)
            raise StorageFailure(
                f"Solve #{solve_id} was recorded but its approval message could not be linked."
            ) from exc
        return result

    # -------------------------------------------------------------------
    # decide
    # -------------------------------------------------------------------
    async def decide(
        self,
        *,
        outcome: DecisionOutcome | str,
        decider_id: int,
        solve_id: int | None = None,
        decision_message_id: int | None = None,
    ) -> DecisionResult:
        """Apply a moderator decision.  Safe to call any number of times.

        Identify the solve by exactly one of *solve_id* or
        *decision_message_id*.
        """
        if (solve_id is None) == (decision_message_id is None):
            raise ValueError("Pass exactly one of solve_id or decision_message_id")
        outcome = DecisionOutcome(outcome)

        try:
            result = await run_db(
                _apply_decision,
                self.engine, self.cfg, outcome, decider_id, solve_id, decision_message_id,
            )
        except SQLAlchemyError as exc:
            logger.exception(
                "Decision %s on solve %s failed to commit",
                outcome.value, solve_id or f"msg:{decision_message_id}",
            )
            raise StorageFailure("The decision could not be saved; please retry.") from exc

        if result.already_decided:
            logger.info(
                "Ignoring %s for solve %d: already %s",
                outcome.value, result.solve_id, result.status.label,
            )
            return result

        logger.info(
            "Solve %d %s by %d", result.solve_id, result.status.label, decider_id
        )

        ok, value = await self.runner.run(
            f"decision-notice:{result.solve_id}",
            lambda: self.notifier.publish_decision(result.solve_id, result.status, decider_id),
        )
        if not ok:
            result.side_effect_failures.append(value)

        result.side_effect_failures.extend(
            await self.progression.apply_transitions(result.transitions)
        )
        return result

    async def handle_decision_trigger(
        self, decision_message_ref: int, chosen_outcome: str, acting_user_id: int
    ) -> DecisionResult:
        """Entry point for the platform's ``{message, outcome, actor}`` callback."""
        return await self.decide(
            outcome=chosen_outcome,
            decider_id=acting_user_id,
            decision_message_id=decision_message_ref,
        )
