"""
solvebot.api.deps — FastAPI dependency injection
=================================================
"""

from __future__ import annotations

import os
from functools import lru_cache

from sqlalchemy import Engine

from solvebot.config import SolveBotConfig, load_config
from solvebot.database.engine import create_db_engine


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> SolveBotConfig:
    return load_config(os.getenv("SOLVEBOT_CONFIG", "config.yaml"))
