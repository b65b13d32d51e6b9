"""
tests/test_progression.py — Direct Point Awards & Rank Re-evaluation
=====================================================================

Message points and officer corrections share the approval path's
ledger and rank-up logic through :class:`RankProgression`.
"""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from solvebot.database.engine import get_session
from solvebot.database.models import User
from solvebot.errors import StorageFailure
from solvebot.services import points_ledger
from solvebot.services.progression_service import (
    RankProgression,
    _credit_and_evaluate,
    evaluate_updates,
)
from solvebot.services.side_effects import SideEffectRunner


def run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def progression(db_engine, cfg, platform) -> RankProgression:
    return RankProgression(
        db_engine, cfg, platform, platform, SideEffectRunner(max_attempts=1, base_delay=0)
    )


def test_award_creates_user_and_ranks_up(progression, db_engine, platform):
    result = run_async(progression.award_points([1], 1, reason="message"))
    assert [u.new_points for u in result.updates] == [1]
    assert platform.calls == [("grant", 1, "elite"), ("announce", 1, "elite")]
    with get_session(db_engine) as session:
        assert session.get(User, 1).cached_rank == 4


def test_repeated_awards_do_not_reannounce(progression, platform):
    run_async(progression.award_points([1], 1))
    run_async(progression.award_points([1], 1))
    assert len(platform.named("announce")) == 1


def test_debit_never_demotes(progression, db_engine, platform):
    run_async(progression.award_points([1], 100))
    platform.calls.clear()
    result = run_async(progression.award_points([1], -80))
    assert result.transitions == []
    assert platform.calls == []
    with get_session(db_engine) as session:
        user = session.get(User, 1)
        assert user.points == 20
        assert user.cached_rank == 4


def test_storage_failure(progression, monkeypatch):
    def _broken(session, user_ids, amount):
        raise OperationalError("UPDATE users", {}, Exception("locked"))

    monkeypatch.setattr(points_ledger, "credit_users", _broken)
    with pytest.raises(StorageFailure):
        run_async(progression.award_points([1], 10))


def test_cache_write_is_retried_as_side_effect(progression, db_engine, platform, monkeypatch):
    def _broken(session, user_id, rank):
        raise OperationalError("UPDATE users", {}, Exception("locked"))

    monkeypatch.setattr(points_ledger, "swap_cached_rank", _broken)
    result = run_async(progression.award_points([1], 10))
    assert [f.label for f in result.side_effect_failures] == ["cache-rank:1:4"]
    # Role still granted and announced; points kept.
    assert [c[0] for c in platform.calls] == ["grant", "announce"]
    with get_session(db_engine) as session:
        assert session.get(User, 1).points == 10


def test_evaluate_updates_reads_fresh_top_score(db_session, cfg):
    points_ledger.credit_users(db_session, [9], 1000)
    updates = points_ledger.credit_users(db_session, [1], 600)
    (t,) = evaluate_updates(db_session, updates, cfg.ranks)
    assert t.new_rank == 2
    assert t.grant_role == "pwner"


def test_evaluate_updates_empty(db_session, cfg):
    assert evaluate_updates(db_session, [], cfg.ranks) == []


# ---------------------------------------------------------------------------
# Overlapping rank-ups for one user
# ---------------------------------------------------------------------------
def _held_roles(platform, user_id: int) -> set[str]:
    held: set[str] = set()
    for name, uid, *rest in platform.calls:
        if uid != user_id:
            continue
        if name == "grant":
            held.add(rest[0])
        elif name == "revoke":
            held.discard(rest[0])
    return held


class TestOverlappingRankUps:
    @pytest.fixture
    def two_pending(self, db_engine, cfg, platform):
        """Two credits committed before either transition is applied."""
        with get_session(db_engine) as session:
            points_ledger.credit_users(session, [50], 1000)   # ladder [316,421,562,750,1000]
            points_ledger.credit_users(session, [1], 500)
            points_ledger.advance_cached_rank(session, 1, 1)
        platform.calls.append(("grant", 1, "hacker"))   # role already held
        _, (to_pwner,) = _credit_and_evaluate(db_engine, [1], 100, cfg.ranks)
        _, (to_wizard,) = _credit_and_evaluate(db_engine, [1], 200, cfg.ranks)
        assert (to_pwner.grant_role, to_wizard.grant_role) == ("pwner", "wizard")
        assert to_pwner.revoke_role == to_wizard.revoke_role == "hacker"
        return to_pwner, to_wizard

    def test_applied_in_order_revokes_intermediate_role(
        self, progression, two_pending, db_engine, platform
    ):
        to_pwner, to_wizard = two_pending
        run_async(progression.apply_transitions([to_pwner]))
        run_async(progression.apply_transitions([to_wizard]))
        assert platform.calls[1:] == [
            ("grant", 1, "pwner"),
            ("revoke", 1, "hacker"),
            ("announce", 1, "pwner"),
            ("grant", 1, "wizard"),
            ("revoke", 1, "pwner"),
            ("announce", 1, "wizard"),
        ]
        assert _held_roles(platform, 1) == {"wizard"}
        with get_session(db_engine) as session:
            assert session.get(User, 1).cached_rank == 3

    def test_applied_out_of_order_drops_stale_grant(
        self, progression, two_pending, db_engine, platform
    ):
        to_pwner, to_wizard = two_pending
        run_async(progression.apply_transitions([to_wizard]))
        failures = run_async(progression.apply_transitions([to_pwner]))
        assert failures == []
        assert platform.calls[1:] == [
            ("grant", 1, "wizard"),
            ("revoke", 1, "hacker"),
            ("announce", 1, "wizard"),
            ("grant", 1, "pwner"),
            ("revoke", 1, "pwner"),
        ]
        assert _held_roles(platform, 1) == {"wizard"}
        with get_session(db_engine) as session:
            assert session.get(User, 1).cached_rank == 3
