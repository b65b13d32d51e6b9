"""
tests/test_approval_workflow.py — Submission, Decision & Rank-Up Flow
======================================================================

Drives :class:`ApprovalWorkflow` end to end against in-memory SQLite with a
recording fake standing in for Discord.  Covers idempotent decisions, the
decline/approve race, transactional rollback and side-effect ordering.
"""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from solvebot.database.engine import get_session
from solvebot.database.models import ApprovalStatus, User
from solvebot.errors import NotFound, StorageFailure
from solvebot.services import points_ledger, solve_store
from solvebot.services.approval_service import ApprovalWorkflow, DecisionOutcome
from solvebot.services.side_effects import SideEffectRunner


# Helper to run async tests without pytest-asyncio
def run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def workflow(db_engine, cfg, platform) -> ApprovalWorkflow:
    return ApprovalWorkflow(
        db_engine, cfg, platform, platform,
        runner=SideEffectRunner(max_attempts=2, base_delay=0),
    )


def _balances(engine, *user_ids) -> list[int | None]:
    with get_session(engine) as session:
        users = [session.get(User, uid) for uid in user_ids]
        return [u.points if u else None for u in users]


def _status(engine, solve_id: int) -> ApprovalStatus:
    with get_session(engine) as session:
        return solve_store.get_solve(session, solve_id).approval_status


def _seed(engine, user_id: int, points: int, cached_rank: int | None = None) -> None:
    with get_session(engine) as session:
        points_ledger.credit_users(session, [user_id], points)
        if cached_rank is not None:
            points_ledger.advance_cached_rank(session, user_id, cached_rank)


def _cached_rank(engine, user_id: int) -> int | None:
    with get_session(engine) as session:
        return session.get(User, user_id).cached_rank


def _submit(workflow, challenge_id, submitter=1, teammates=(2, 3)):
    return run_async(workflow.submit(
        challenge_id=challenge_id, flag="flag{pwned}",
        submitter_id=submitter, teammate_ids=teammates,
    ))


# ---------------------------------------------------------------------------
# submit
# ---------------------------------------------------------------------------
class TestSubmit:
    def test_creates_pending_solve_and_posts_request(
        self, workflow, challenge_factory, db_engine, platform
    ):
        result = _submit(workflow, challenge_factory())
        assert result.participant_ids == [1, 2, 3]
        assert result.decision_message_ref == 9001
        assert not result.side_effect_failures
        assert platform.named("request") == [("request", result.solve_id)]
        assert _status(db_engine, result.solve_id) is ApprovalStatus.PENDING
        with get_session(db_engine) as session:
            solve = solve_store.get_solve_by_decision_message_id(session, 9001)
            assert solve.id == result.solve_id

    def test_no_points_on_submit(self, workflow, challenge_factory, db_engine):
        _submit(workflow, challenge_factory())
        assert _balances(db_engine, 1, 2, 3) == [0, 0, 0]

    def test_submitter_listed_as_teammate_counted_once(self, workflow, challenge_factory):
        result = _submit(workflow, challenge_factory(), submitter=4, teammates=(4, 5, 5))
        assert result.participant_ids == [4, 5]

    def test_unknown_challenge(self, workflow):
        with pytest.raises(NotFound):
            _submit(workflow, 999)

    def test_request_post_failure_keeps_solve_pending(
        self, workflow, challenge_factory, db_engine, platform
    ):
        platform.failing.add("request")
        result = _submit(workflow, challenge_factory())
        assert result.decision_message_ref is None
        assert [f.label for f in result.side_effect_failures] == [
            f"decision-request:{result.solve_id}"
        ]
        assert _status(db_engine, result.solve_id) is ApprovalStatus.PENDING

        # Officers can still decide it by id.
        decision = run_async(workflow.decide(
            outcome=DecisionOutcome.APPROVE, decider_id=99, solve_id=result.solve_id,
        ))
        assert decision.status is ApprovalStatus.APPROVED


# ---------------------------------------------------------------------------
# decide
# ---------------------------------------------------------------------------
class TestDecide:
    def test_approve_credits_every_participant_once(
        self, workflow, challenge_factory, db_engine, platform
    ):
        submitted = _submit(workflow, challenge_factory())
        result = run_async(workflow.decide(
            outcome="accept", decider_id=99, solve_id=submitted.solve_id,
        ))
        assert result.status is ApprovalStatus.APPROVED
        assert not result.already_decided
        assert _balances(db_engine, 1, 2, 3) == [100, 100, 100]
        assert platform.named("decision") == [
            ("decision", submitted.solve_id, ApprovalStatus.APPROVED, 99)
        ]

    def test_second_approve_is_noop(self, workflow, challenge_factory, db_engine, platform):
        submitted = _submit(workflow, challenge_factory())
        run_async(workflow.decide(outcome="accept", decider_id=99, solve_id=submitted.solve_id))
        calls_before = len(platform.calls)

        again = run_async(workflow.decide(
            outcome="accept", decider_id=98, solve_id=submitted.solve_id,
        ))
        assert again.already_decided
        assert again.status is ApprovalStatus.APPROVED
        assert "already approved" in again.message
        assert _balances(db_engine, 1, 2, 3) == [100, 100, 100]
        assert len(platform.calls) == calls_before

    def test_decline_then_approve(self, workflow, challenge_factory, db_engine):
        submitted = _submit(workflow, challenge_factory())
        declined = run_async(workflow.decide(
            outcome="reject", decider_id=99, solve_id=submitted.solve_id,
        ))
        assert declined.status is ApprovalStatus.DECLINED
        assert _balances(db_engine, 1, 2, 3) == [0, 0, 0]

        late = run_async(workflow.decide(
            outcome="accept", decider_id=99, solve_id=submitted.solve_id,
        ))
        assert late.already_decided
        assert late.status is ApprovalStatus.DECLINED
        assert _balances(db_engine, 1, 2, 3) == [0, 0, 0]

    def test_decision_trigger_by_message(self, workflow, challenge_factory, db_engine):
        submitted = _submit(workflow, challenge_factory())
        result = run_async(workflow.handle_decision_trigger(
            submitted.decision_message_ref, "accept", 99,
        ))
        assert result.solve_id == submitted.solve_id
        assert _status(db_engine, submitted.solve_id) is ApprovalStatus.APPROVED

    def test_unknown_message(self, workflow):
        with pytest.raises(NotFound, match="try again"):
            run_async(workflow.handle_decision_trigger(123, "accept", 99))

    def test_needs_exactly_one_reference(self, workflow):
        with pytest.raises(ValueError):
            run_async(workflow.decide(outcome="accept", decider_id=1))
        with pytest.raises(ValueError):
            run_async(workflow.decide(
                outcome="accept", decider_id=1, solve_id=1, decision_message_id=2,
            ))

    def test_unknown_outcome(self, workflow):
        with pytest.raises(ValueError):
            run_async(workflow.decide(outcome="maybe", decider_id=1, solve_id=1))

    def test_lost_race_reports_winner(
        self, workflow, challenge_factory, db_engine, monkeypatch
    ):
        submitted = _submit(workflow, challenge_factory())
        real_update = solve_store.update_solve_status

        def _declined_first(session, solve_id, status, *, decided_by=None):
            # A concurrent decline commits between our read and our UPDATE.
            real_update(session, solve_id, ApprovalStatus.DECLINED, decided_by=7)
            return False

        monkeypatch.setattr(solve_store, "update_solve_status", _declined_first)
        result = run_async(workflow.decide(
            outcome="accept", decider_id=99, solve_id=submitted.solve_id,
        ))
        assert result.already_decided
        assert result.status is ApprovalStatus.DECLINED
        assert _balances(db_engine, 1, 2, 3) == [0, 0, 0]


# ---------------------------------------------------------------------------
# Transactions and side-effect failures
# ---------------------------------------------------------------------------
class TestFailureSemantics:
    def test_credit_failure_rolls_back_status(
        self, workflow, challenge_factory, db_engine, platform, monkeypatch
    ):
        submitted = _submit(workflow, challenge_factory())

        def _broken(session, user_ids, amount):
            raise OperationalError("UPDATE users", {}, Exception("disk I/O error"))

        monkeypatch.setattr(points_ledger, "credit_users", _broken)
        with pytest.raises(StorageFailure):
            run_async(workflow.decide(
                outcome="accept", decider_id=99, solve_id=submitted.solve_id,
            ))
        assert _status(db_engine, submitted.solve_id) is ApprovalStatus.PENDING
        assert _balances(db_engine, 1, 2, 3) == [0, 0, 0]
        assert platform.named("decision") == []

        # The moderator retries once storage recovers.
        monkeypatch.undo()
        result = run_async(workflow.decide(
            outcome="accept", decider_id=99, solve_id=submitted.solve_id,
        ))
        assert result.status is ApprovalStatus.APPROVED
        assert _balances(db_engine, 1, 2, 3) == [100, 100, 100]

    def test_notification_failure_keeps_approval(
        self, workflow, challenge_factory, db_engine, platform
    ):
        submitted = _submit(workflow, challenge_factory())
        platform.failing.update({"decision", "announce"})
        result = run_async(workflow.decide(
            outcome="accept", decider_id=99, solve_id=submitted.solve_id,
        ))
        labels = [f.label for f in result.side_effect_failures]
        assert f"decision-notice:{submitted.solve_id}" in labels
        assert any(label.startswith("announce-rank:") for label in labels)
        assert _status(db_engine, submitted.solve_id) is ApprovalStatus.APPROVED
        assert _balances(db_engine, 1, 2, 3) == [100, 100, 100]
        # Retried up to max_attempts.
        assert len(platform.named("decision")) == 2


# ---------------------------------------------------------------------------
# Rank progression through approvals
# ---------------------------------------------------------------------------
class TestRankUps:
    def test_first_solve_makes_everyone_top_rank(
        self, workflow, challenge_factory, db_engine, platform
    ):
        submitted = _submit(workflow, challenge_factory())
        result = run_async(workflow.decide(
            outcome="accept", decider_id=99, solve_id=submitted.solve_id,
        ))
        assert [(t.user_id, t.grant_role, t.revoke_role) for t in result.transitions] == [
            (1, "elite", None), (2, "elite", None), (3, "elite", None),
        ]
        assert platform.named("revoke") == []
        assert [_cached_rank(db_engine, uid) for uid in (1, 2, 3)] == [4, 4, 4]

    def test_grant_before_revoke_before_announce(
        self, workflow, challenge_factory, db_engine, platform
    ):
        _seed(db_engine, 50, 1000)                 # leader: ladder [316,421,562,750,1000]
        _seed(db_engine, 1, 500, cached_rank=1)    # holds "hacker"
        submitted = _submit(workflow, challenge_factory(), submitter=1, teammates=())
        run_async(workflow.decide(
            outcome="accept", decider_id=99, solve_id=submitted.solve_id,
        ))
        rank_calls = [c for c in platform.calls if c[0] in {"grant", "revoke", "announce"}]
        assert rank_calls == [
            ("grant", 1, "pwner"),
            ("revoke", 1, "hacker"),
            ("announce", 1, "pwner"),
        ]
        assert _cached_rank(db_engine, 1) == 2

    def test_ladder_drift_no_spurious_rank_up(
        self, workflow, challenge_factory, db_engine, platform
    ):
        _seed(db_engine, 50, 1000)
        _seed(db_engine, 1, 600, cached_rank=3)    # ladder moved up since rank 3
        submitted = _submit(workflow, challenge_factory(), submitter=1, teammates=())
        result = run_async(workflow.decide(
            outcome="accept", decider_id=99, solve_id=submitted.solve_id,
        ))
        assert result.transitions == []
        assert platform.named("grant") == []
        assert _cached_rank(db_engine, 1) == 3

    def test_failed_grant_skips_rest(
        self, workflow, challenge_factory, db_engine, platform
    ):
        _seed(db_engine, 50, 1000)
        _seed(db_engine, 1, 500, cached_rank=1)
        platform.failing.add("grant")
        submitted = _submit(workflow, challenge_factory(), submitter=1, teammates=())
        result = run_async(workflow.decide(
            outcome="accept", decider_id=99, solve_id=submitted.solve_id,
        ))
        assert [f.label for f in result.side_effect_failures] == ["grant-role:1:pwner"]
        assert platform.named("revoke") == []
        assert platform.named("announce") == []
        assert _cached_rank(db_engine, 1) == 1
        assert _balances(db_engine, 1) == [600]
