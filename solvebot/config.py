"""
solvebot.config — YAML Configuration Loader
============================================

Reads ``config.yaml`` into immutable dataclasses.  The resulting
:class:`SolveBotConfig` is built once at startup and handed to every
component that needs it, so tests can construct their own per case.

Secrets (``DISCORD_TOKEN``, ``DATABASE_URL``) stay in ``.env``.

Usage::

    from solvebot.config import load_config

    cfg = load_config()                 # reads ./config.yaml by default
    print(cfg.ranks.rank_names)         # ("script kiddie", ..., "elite")
    print(cfg.ranks.points_per_solve)   # 100  (tenths → 10.0 displayed)
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

DEFAULT_CUTOFF_DECAY = 0.75


# ---------------------------------------------------------------------------
# Typed settings objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ServerConfig:
    """Discord guild, channels and role names."""

    guild_id: int
    solve_approvals_channel_id: int
    rank_up_channel_id: int
    officer_role: str
    member_role: str
    bot_log_channel_id: int | None = None


@dataclass(frozen=True, slots=True)
class RankConfig:
    """Point awards and the rank ladder.

    All point values are in stored units (tenths of a displayed point).
    ``rank_names`` is ordered from lowest to highest rank.
    """

    points_per_solve: int
    points_per_message: int
    rank_names: tuple[str, ...]
    cutoff_decay: float = DEFAULT_CUTOFF_DECAY

    def __post_init__(self) -> None:
        if not self.rank_names:
            raise ValueError("ranks.rank_names must list at least one rank")
        if not 0 < self.cutoff_decay < 1:
            raise ValueError(
                f"ranks.cutoff_decay must be between 0 and 1, got {self.cutoff_decay}"
            )

    @property
    def rank_count(self) -> int:
        return len(self.rank_names)


@dataclass(frozen=True, slots=True)
class SolveBotConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    server: ServerConfig
    ranks: RankConfig
    bot_prefix: str = "!"
    dashboard_port: int = 8000


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> SolveBotConfig:
    """Read *path* and return a :class:`SolveBotConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If the rank ladder is empty or the decay factor is out of range.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh)

    server = raw["server"]
    ranks = raw["ranks"]

    return SolveBotConfig(
        server=ServerConfig(
            guild_id=int(server["guild_id"]),
            solve_approvals_channel_id=int(server["solve_approvals_channel_id"]),
            rank_up_channel_id=int(server["rank_up_channel_id"]),
            officer_role=str(server["officer_role"]),
            member_role=str(server["member_role"]),
            bot_log_channel_id=(
                int(server["bot_log_channel_id"])
                if server.get("bot_log_channel_id") else None
            ),
        ),
        ranks=RankConfig(
            points_per_solve=int(ranks["points_per_solve"]),
            points_per_message=int(ranks.get("points_per_message", 0)),
            rank_names=tuple(str(name) for name in ranks["rank_names"]),
            cutoff_decay=float(ranks.get("cutoff_decay", DEFAULT_CUTOFF_DECAY)),
        ),
        bot_prefix=raw.get("bot_prefix", "!"),
        dashboard_port=int(raw.get("dashboard_port", 8000)),
    )
