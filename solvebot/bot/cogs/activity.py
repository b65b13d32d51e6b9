"""
solvebot.bot.cogs.activity — Message Points
============================================

Every message a member posts in the primary guild is worth
``ranks.points_per_message``.  Credits go through
:class:`~solvebot.services.progression_service.RankProgression`, so chatty
members can rank up too.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from solvebot.errors import StorageFailure

if TYPE_CHECKING:
    from solvebot.bot.core import SolveBot

logger = logging.getLogger(__name__)


class Activity(commands.Cog, name="Activity"):
    """Awards points for messages."""

    def __init__(self, bot: SolveBot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or message.guild is None:
            return
        if message.guild.id != self.bot.cfg.server.guild_id:
            return
        amount = self.bot.cfg.ranks.points_per_message
        if amount <= 0:
            return

        try:
            await self.bot.progression.award_points([message.author.id], amount)
        except StorageFailure:
            # award_points already logged the traceback.
            logger.warning("Dropped message credit for user %d", message.author.id)


async def setup(bot: SolveBot) -> None:
    await bot.add_cog(Activity(bot))
