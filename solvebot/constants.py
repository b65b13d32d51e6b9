"""
solvebot.constants — Shared Constants & Helpers
================================================

Single source of truth for presentation constants and the points display
rule.  Import from here instead of duplicating in cogs and API routes.
"""

from __future__ import annotations

# Brand colour used on every embed.
EMBED_COLOR = 0xC22026

RANK_BADGES: list[str] = ["\U0001f947", "\U0001f948", "\U0001f949"]  # 🥇🥈🥉

# Stored balances are integer tenths of a displayed point.
POINTS_SCALE = 10


def format_points(stored: int) -> str:
    """Render a stored balance as a one-decimal display string.

    Division truncates toward zero, so ``-15`` renders as ``"-1.5"`` and
    ``-5`` as ``"-0.5"`` rather than flooring to ``-2``/``-1``.
    """
    sign = "-" if stored < 0 else ""
    whole, tenths = divmod(abs(stored), POINTS_SCALE)
    return f"{sign}{whole}.{tenths}"
