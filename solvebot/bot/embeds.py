"""
solvebot.bot.embeds — Discord embed builders
=============================================

All embed construction lives here so the sinks and cogs only supply data.
"""

from __future__ import annotations

import discord

from solvebot.constants import EMBED_COLOR, RANK_BADGES
from solvebot.database.models import ApprovalStatus
from solvebot.services.side_effects import DecisionRequest


def _mentions(user_ids) -> str:
    return ", ".join(f"<@{uid}>" for uid in user_ids) or "nobody"


def build_decision_request_embed(request: DecisionRequest) -> discord.Embed:
    """Moderator prompt carrying the submitted flag."""
    embed = discord.Embed(
        title=f"\U0001f6a9 Solve #{request.solve_id} awaiting approval",
        description=f"**{request.category}/{request.challenge_name}**",
        color=EMBED_COLOR,
    )
    # Field values are capped at 1024 characters.
    embed.add_field(name="Flag", value=f"`{request.flag[:1000]}`", inline=False)
    embed.add_field(name="Submitted by", value=f"<@{request.submitter_id}>", inline=True)
    embed.add_field(name="Solvers", value=_mentions(request.participant_ids), inline=True)
    return embed


def build_decision_embed(
    solve_id: int, status: ApprovalStatus, decider_id: int
) -> discord.Embed:
    approved = status is ApprovalStatus.APPROVED
    return discord.Embed(
        title=f"{'✅' if approved else '❌'} Solve #{solve_id} {status.label}",
        description=f"Decided by <@{decider_id}>.",
        color=discord.Color.green() if approved else discord.Color.red(),
    )


def build_rank_up_embed(user_id: int, rank_name: str) -> discord.Embed:
    return discord.Embed(
        title="⬆️ Rank Up!",
        description=f"<@{user_id}> has reached the rank **{rank_name}**!",
        color=discord.Color.gold(),
    )


def build_leaderboard_embed(rows: list[dict]) -> discord.Embed:
    lines = []
    for row in rows:
        i = row["position"]
        medal = RANK_BADGES[i - 1] if 0 < i <= len(RANK_BADGES) else f"**{i}.**"
        rank = f" ({row['rank']})" if row["rank"] else ""
        lines.append(f"{medal} <@{row['user_id']}> — {row['display_points']} pts{rank}")
    return discord.Embed(
        title=f"\U0001f3c6 Leaderboard — Top {len(rows)}",
        description="\n".join(lines),
        color=EMBED_COLOR,
    )


def build_stats_embed(stats: dict, display_name: str) -> discord.Embed:
    embed = discord.Embed(
        title=f"CTF Solve Stats — {display_name}",
        description=(
            f"**{stats['display_points']}** points · "
            f"rank **{stats['rank'] or 'unranked'}**"
        ),
        color=EMBED_COLOR,
    )
    for category, count in stats["solves_by_category"].items():
        embed.add_field(name=category, value=str(count), inline=True)
    if stats["verified"]:
        embed.set_footer(text="Verified member")
    return embed


def build_ladder_embed(ladder: list[dict]) -> discord.Embed:
    lines = [
        f"**{step['name']}** — {step['display_cutoff']} pts"
        for step in reversed(ladder)
    ]
    return discord.Embed(
        title="\U0001fa9c Rank Ladder",
        description="\n".join(lines) or "No ranks configured.",
        color=EMBED_COLOR,
    )
