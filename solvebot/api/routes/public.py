"""
solvebot.api.routes.public — Read-only public endpoints
========================================================

User ids are serialised as strings; Discord snowflakes overflow a
JavaScript number.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import Engine

from solvebot.api.deps import get_config, get_engine
from solvebot.config import SolveBotConfig
from solvebot.errors import NotFound
from solvebot.services import stats_service

router = APIRouter(tags=["public"])


# ---------------------------------------------------------------------------
# GET /leaderboard
# ---------------------------------------------------------------------------
@router.get("/leaderboard")
def get_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    engine: Engine = Depends(get_engine),
    cfg: SolveBotConfig = Depends(get_config),
):
    rows = stats_service.get_leaderboard(engine, cfg, limit)
    return {
        "entries": [{**row, "user_id": str(row["user_id"])} for row in rows],
    }


# ---------------------------------------------------------------------------
# GET /users/{user_id}/stats
# ---------------------------------------------------------------------------
@router.get("/users/{user_id}/stats")
def get_user_stats(
    user_id: int,
    engine: Engine = Depends(get_engine),
    cfg: SolveBotConfig = Depends(get_config),
):
    try:
        stats = stats_service.get_user_stats(engine, cfg, user_id)
    except NotFound as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, str(exc)) from exc
    return {**stats, "user_id": str(stats["user_id"])}


# ---------------------------------------------------------------------------
# GET /ranks
# ---------------------------------------------------------------------------
@router.get("/ranks")
def get_ranks(
    engine: Engine = Depends(get_engine),
    cfg: SolveBotConfig = Depends(get_config),
):
    return {"ranks": stats_service.get_rank_ladder(engine, cfg)}
