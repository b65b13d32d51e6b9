"""
solvebot.bot.cogs.meta — Leaderboard, Stats & Rank Ladder
==========================================================

Hybrid commands for member self-service:
- /leaderboard — top members by points
- /stats — a member's points, rank and solves per category
- /ranks — today's cutoff for every rank
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from solvebot.bot.embeds import build_ladder_embed, build_leaderboard_embed, build_stats_embed
from solvebot.database.engine import run_db
from solvebot.errors import NotFound
from solvebot.services import stats_service

if TYPE_CHECKING:
    from solvebot.bot.core import SolveBot


class Meta(commands.Cog, name="Meta"):
    """Read-only views over the points ledger."""

    def __init__(self, bot: SolveBot) -> None:
        self.bot = bot

    @commands.hybrid_command(  # type: ignore[arg-type]
        name="leaderboard",
        description="Show the top members by points.",
    )
    @app_commands.describe(limit="How many members to show (1-25)")
    async def leaderboard(self, ctx: commands.Context, limit: int = 10) -> None:
        limit = max(1, min(limit, 25))
        rows = await run_db(
            stats_service.get_leaderboard, self.bot.engine, self.bot.cfg, limit
        )
        if not rows:
            await ctx.send("Nobody has scored yet.", ephemeral=True)
            return
        await ctx.send(embed=build_leaderboard_embed(rows))

    @commands.hybrid_command(  # type: ignore[arg-type]
        name="stats",
        description="View your (or another member's) solve stats.",
    )
    @app_commands.describe(member="The member to look up (defaults to you)")
    async def stats(self, ctx: commands.Context, member: discord.Member | None = None) -> None:
        target = member or ctx.author
        try:
            data = await run_db(
                stats_service.get_user_stats, self.bot.engine, self.bot.cfg, target.id
            )
        except NotFound:
            await ctx.send(
                f"\U0001f50d **{target.display_name}** hasn't scored any points yet.",
                ephemeral=True,
            )
            return
        await ctx.send(embed=build_stats_embed(data, target.display_name))

    @commands.hybrid_command(  # type: ignore[arg-type]
        name="ranks",
        description="Show the points needed for each rank right now.",
    )
    async def ranks(self, ctx: commands.Context) -> None:
        ladder = await run_db(stats_service.get_rank_ladder, self.bot.engine, self.bot.cfg)
        await ctx.send(embed=build_ladder_embed(ladder), ephemeral=True)


async def setup(bot: SolveBot) -> None:
    await bot.add_cog(Meta(bot))
