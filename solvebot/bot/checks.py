"""
solvebot.bot.checks — Who may moderate
=======================================

Officers (members holding the configured ``officer_role`` in the primary
guild) may decide solves and run admin commands.  That is the whole
permission model.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import discord
from discord import app_commands

if TYPE_CHECKING:
    from solvebot.bot.core import SolveBot


def member_is_officer(user: discord.abc.User | None, bot: SolveBot) -> bool:
    if user is None or not hasattr(user, "roles"):
        return False
    guild = getattr(user, "guild", None)
    if guild is None or guild.id != bot.cfg.server.guild_id:
        return False
    officer_role = bot.cfg.server.officer_role
    return any(role.name == officer_role for role in user.roles)


def is_officer():
    """App-command check requiring the officer role."""
    async def predicate(interaction: discord.Interaction) -> bool:
        bot: SolveBot = interaction.client  # type: ignore[assignment]
        return member_is_officer(interaction.user, bot)
    return app_commands.check(predicate)
