"""
solvebot.bot.cogs.admin — Officer Point Corrections
====================================================

``/award`` credits (or, with a negative amount, debits) a member's points.
The change runs through the same ledger and rank-up path as an approved
solve.  Ranks only move up; a debit never strips a rank role.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from solvebot.bot.checks import is_officer
from solvebot.constants import POINTS_SCALE, format_points
from solvebot.errors import StorageFailure

if TYPE_CHECKING:
    from solvebot.bot.core import SolveBot

logger = logging.getLogger(__name__)


class Admin(commands.Cog, name="Admin"):
    """Officer-only ledger corrections."""

    def __init__(self, bot: SolveBot) -> None:
        self.bot = bot

    @app_commands.command(name="award", description="Add or remove points from a member.")
    @app_commands.describe(
        member="The member to adjust",
        amount="Points to add (negative to remove), e.g. 2.5",
        reason="Reason for the correction",
    )
    @app_commands.guild_only()
    @is_officer()
    async def award(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        amount: float,
        reason: str = "Manual officer correction",
    ) -> None:
        stored = round(amount * POINTS_SCALE)
        if stored == 0:
            await interaction.response.send_message(
                "❌ Please specify a non-zero amount.", ephemeral=True,
            )
            return

        await interaction.response.defer(ephemeral=True, thinking=True)
        try:
            result = await self.bot.progression.award_points(
                [member.id], stored,
                reason=f"{reason} (by {interaction.user.id})",
            )
        except StorageFailure as exc:
            await interaction.followup.send(f"⚠️ {exc}", ephemeral=True)
            return

        update = result.updates[0]
        sign = "+" if stored > 0 else ""
        summary = (
            f"**{member.display_name}**: {sign}{format_points(stored)} pts "
            f"→ {format_points(update.new_points)} pts\nReason: {reason}"
        )
        if result.transitions:
            summary += f"\nRanked up to **{result.transitions[0].grant_role}**."
        if result.side_effect_failures:
            summary += "\n⚠️ Some role or announcement updates failed; see bot log."
        await interaction.followup.send(f"✅ {summary}", ephemeral=True)

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        if isinstance(error, app_commands.CheckFailure):
            await interaction.response.send_message(
                "🔒 You need the officer role to use this command.",
                ephemeral=True,
            )
        else:
            raise error


async def setup(bot: SolveBot) -> None:
    await bot.add_cog(Admin(bot))
