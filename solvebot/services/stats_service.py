"""
solvebot.services.stats_service — Leaderboard, Stats & Ladder Read Models
==========================================================================

Read-only queries shared by the bot commands and the HTTP API.  Each
returns plain dicts; embeds and JSON shaping belong to the caller.  The
ladder is recomputed from a fresh top score on every call.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from solvebot.constants import format_points
from solvebot.database.engine import get_session
from solvebot.engine.ranks import build_ladder, compute_cutoffs, max_rank, rank_for_points
from solvebot.services import points_ledger, solve_store

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from solvebot.config import SolveBotConfig


def _rank_name(rank: int | None, rank_names) -> str | None:
    return rank_names[rank] if rank is not None else None


def _effective_rank(user, cutoffs, rank_count: int) -> int | None:
    """Higher of the ladder rank and the cached rank the member holds as a role."""
    cached = user.cached_rank
    if cached is not None and not 0 <= cached < rank_count:
        cached = None
    return max_rank(rank_for_points(user.points, cutoffs), cached)


def get_leaderboard(engine: Engine, cfg: SolveBotConfig, n: int = 10) -> list[dict]:
    """Top *n* users with the rank they hold on today's ladder."""
    ranks = cfg.ranks
    with get_session(engine) as session:
        users = points_ledger.get_top_users_by_points(session, n)
        top_score = points_ledger.get_top_score(session)

    cutoffs = compute_cutoffs(top_score, ranks.rank_count, ranks.cutoff_decay)
    return [
        {
            "position": i + 1,
            "user_id": user.id,
            "points": user.points,
            "display_points": format_points(user.points),
            "rank": _rank_name(
                _effective_rank(user, cutoffs, ranks.rank_count), ranks.rank_names
            ),
        }
        for i, user in enumerate(users)
    ]


def get_user_stats(engine: Engine, cfg: SolveBotConfig, user_id: int) -> dict:
    """Balance, rank and solve breakdown for one user.

    Raises :class:`~solvebot.errors.NotFound` for an unknown user.
    """
    ranks = cfg.ranks
    with get_session(engine) as session:
        user = points_ledger.get_user(session, user_id)
        top_score = points_ledger.get_top_score(session)
        by_category = solve_store.count_solves_by_category(session, user_id)
        solved = solve_store.get_solved_challenges_for_user(session, user_id)
        solved_rows = [
            {
                "id": ch.id,
                "name": ch.name,
                "category": ch.category.label,
                "competition_id": ch.competition_id,
            }
            for ch in solved
        ]

    cutoffs = compute_cutoffs(top_score, ranks.rank_count, ranks.cutoff_decay)
    rank = _effective_rank(user, cutoffs, ranks.rank_count)
    return {
        "user_id": user.id,
        "points": user.points,
        "display_points": format_points(user.points),
        "rank": _rank_name(rank, ranks.rank_names),
        "rank_index": rank,
        "verified": user.is_verified,
        "solves_by_category": {cat.label: count for cat, count in by_category.items()},
        "solved_challenges": solved_rows,
    }


def get_rank_ladder(engine: Engine, cfg: SolveBotConfig) -> list[dict]:
    """Current cutoff for every rank, lowest first."""
    with get_session(engine) as session:
        top_score = points_ledger.get_top_score(session)
    return [
        {
            "index": step.index,
            "name": step.name,
            "cutoff": step.cutoff,
            "display_cutoff": format_points(step.cutoff),
        }
        for step in build_ladder(top_score, cfg.ranks.rank_names, cfg.ranks.cutoff_decay)
    ]
