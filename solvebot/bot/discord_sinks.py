"""
solvebot.bot.discord_sinks — discord.py side-effect implementations
====================================================================

:class:`DiscordRoleSync` and :class:`DiscordNotifier` satisfy the
``RoleSync`` / ``NotificationSink`` protocols.  They raise on failure;
retrying and reporting is the :class:`SideEffectRunner`'s job.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.abc import Messageable

from solvebot.bot.embeds import (
    build_decision_embed,
    build_decision_request_embed,
    build_rank_up_embed,
)
from solvebot.bot.views import ApprovalView
from solvebot.database.models import ApprovalStatus
from solvebot.services.side_effects import DecisionRequest

if TYPE_CHECKING:
    from solvebot.bot.core import SolveBot

logger = logging.getLogger(__name__)


async def resolve_channel(bot: SolveBot, channel_id: int) -> Messageable:
    channel = bot.get_channel(channel_id)
    if channel is None:
        channel = await bot.fetch_channel(channel_id)
    if not isinstance(channel, Messageable):
        raise TypeError(f"Channel {channel_id} cannot receive messages")
    return channel


class DiscordRoleSync:
    """Adds / removes rank roles by name in the primary guild."""

    def __init__(self, bot: SolveBot) -> None:
        self.bot = bot

    async def _member_and_role(
        self, user_id: int, role_name: str
    ) -> tuple[discord.Member, discord.Role]:
        guild = self.bot.get_guild(self.bot.cfg.server.guild_id)
        if guild is None:
            raise LookupError(f"Guild {self.bot.cfg.server.guild_id} not available")
        role = discord.utils.get(guild.roles, name=role_name)
        if role is None:
            raise LookupError(f"Role {role_name!r} does not exist in {guild.name}")
        member = guild.get_member(user_id) or await guild.fetch_member(user_id)
        return member, role

    async def grant_role(self, user_id: int, role_name: str) -> None:
        member, role = await self._member_and_role(user_id, role_name)
        await member.add_roles(role, reason="solvebot: rank up")

    async def revoke_role(self, user_id: int, role_name: str) -> None:
        member, role = await self._member_and_role(user_id, role_name)
        await member.remove_roles(role, reason="solvebot: rank up")


class DiscordNotifier:
    """Posts approval prompts, outcomes and rank-ups to configured channels."""

    def __init__(self, bot: SolveBot) -> None:
        self.bot = bot

    async def publish_decision_request(self, request: DecisionRequest) -> int:
        channel = await resolve_channel(self.bot, self.bot.cfg.server.solve_approvals_channel_id)
        message = await channel.send(
            embed=build_decision_request_embed(request), view=ApprovalView()
        )
        return message.id

    async def publish_decision(
        self, solve_id: int, status: ApprovalStatus, decider_id: int
    ) -> None:
        channel = await resolve_channel(self.bot, self.bot.cfg.server.solve_approvals_channel_id)
        await channel.send(embed=build_decision_embed(solve_id, status, decider_id))

    async def announce_rank_up(self, user_id: int, rank_name: str) -> None:
        channel = await resolve_channel(self.bot, self.bot.cfg.server.rank_up_channel_id)
        await channel.send(embed=build_rank_up_embed(user_id, rank_name))
