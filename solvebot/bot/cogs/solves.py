"""
solvebot.bot.cogs.solves — Competitions, Challenges & Solve Submission
=======================================================================

Slash commands:
- /competition — (officer) register the current channel as a competition
- /challenge — open a discussion thread for a new challenge
- /solve — submit a flag from inside a challenge thread

The Approve / Decline buttons live in :mod:`solvebot.bot.views`; this Cog
only creates the requests they act on.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands
from sqlalchemy.exc import SQLAlchemyError

from solvebot.bot.checks import is_officer
from solvebot.database.engine import get_session, run_db
from solvebot.database.models import ChallengeCategory
from solvebot.errors import ConstraintViolation, NotFound, StorageFailure
from solvebot.services import solve_store

if TYPE_CHECKING:
    from solvebot.bot.core import SolveBot

logger = logging.getLogger(__name__)

CATEGORY_CHOICES = [
    app_commands.Choice(name=c.label, value=c.value) for c in ChallengeCategory
]


class Solves(commands.Cog, name="Solves"):
    """Competition bookkeeping and flag submission."""

    def __init__(self, bot: SolveBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # DB helpers
    # -------------------------------------------------------------------
    def _register_competition(self, channel_id: int, name: str) -> None:
        with get_session(self.bot.engine) as session:
            solve_store.create_competition(session, channel_id, name)

    def _competition_name(self, channel_id: int) -> str:
        with get_session(self.bot.engine) as session:
            return solve_store.get_competition(session, channel_id).name

    def _register_challenge(
        self, competition_id: int, name: str, category: ChallengeCategory, thread_id: int
    ) -> int:
        with get_session(self.bot.engine) as session:
            return solve_store.create_challenge(
                session,
                competition_id=competition_id,
                name=name,
                category=category,
                discussion_ref=thread_id,
            )

    def _challenge_for_thread(self, thread_id: int) -> tuple[int, str]:
        with get_session(self.bot.engine) as session:
            challenge = solve_store.get_challenge_by_discussion_ref(session, thread_id)
            return challenge.id, challenge.display_name

    async def _discard_thread(self, thread: discord.Thread) -> None:
        try:
            await thread.delete(reason="solvebot: challenge was not saved")
        except discord.HTTPException as exc:
            logger.warning("Could not delete orphaned thread %d: %s", thread.id, exc)

    # -------------------------------------------------------------------
    # /competition
    # -------------------------------------------------------------------
    @app_commands.command(
        name="competition",
        description="Register this channel as a CTF competition.",
    )
    @app_commands.describe(name="Competition name, e.g. 'DEF CON Quals 2026'")
    @app_commands.guild_only()
    @is_officer()
    async def competition(self, interaction: discord.Interaction, name: str) -> None:
        try:
            await run_db(self._register_competition, interaction.channel_id, name)
        except ConstraintViolation:
            await interaction.response.send_message(
                "❌ This channel is already a competition.", ephemeral=True
            )
            return
        logger.info("Competition %s registered in channel %d", name, interaction.channel_id)
        await interaction.response.send_message(
            f"\U0001f6a9 **{name}** is open. Use `/challenge` here to add challenges."
        )

    # -------------------------------------------------------------------
    # /challenge
    # -------------------------------------------------------------------
    @app_commands.command(
        name="challenge",
        description="Open a discussion thread for a challenge in this competition.",
    )
    @app_commands.describe(name="Challenge name", category="Challenge category")
    @app_commands.choices(category=CATEGORY_CHOICES)
    @app_commands.guild_only()
    async def challenge(
        self,
        interaction: discord.Interaction,
        name: str,
        category: app_commands.Choice[int],
    ) -> None:
        channel = interaction.channel
        if not isinstance(channel, discord.TextChannel):
            await interaction.response.send_message(
                "❌ Run this in a competition's text channel.", ephemeral=True
            )
            return
        try:
            competition_name = await run_db(self._competition_name, channel.id)
        except NotFound as exc:
            await interaction.response.send_message(f"❌ {exc}", ephemeral=True)
            return

        cat = ChallengeCategory(category.value)
        await interaction.response.defer()
        thread = await channel.create_thread(
            name=f"[{cat.label}] {name}"[:100],
            type=discord.ChannelType.public_thread,
            reason=f"solvebot: challenge in {competition_name}",
        )
        try:
            challenge_id = await run_db(
                self._register_challenge, channel.id, name, cat, thread.id
            )
        except (ConstraintViolation, SQLAlchemyError):
            logger.exception("Could not register challenge %s in channel %d", name, channel.id)
            await self._discard_thread(thread)
            await interaction.followup.send(
                "⚠️ Could not save the challenge, so its thread was removed. Try again.",
                ephemeral=True,
            )
            return
        await thread.send(
            f"Discussion for **{name}** ({cat.label}). "
            "Submit with `/solve` in this thread."
        )
        await interaction.followup.send(
            f"\U0001f9e9 Challenge #{challenge_id} created: {thread.mention}"
        )

    # -------------------------------------------------------------------
    # /solve
    # -------------------------------------------------------------------
    @app_commands.command(
        name="solve",
        description="Submit a flag for this challenge thread.",
    )
    @app_commands.describe(
        flag="The flag you captured",
        teammate1="A teammate who helped",
        teammate2="A teammate who helped",
        teammate3="A teammate who helped",
    )
    @app_commands.guild_only()
    async def solve(
        self,
        interaction: discord.Interaction,
        flag: str,
        teammate1: discord.Member | None = None,
        teammate2: discord.Member | None = None,
        teammate3: discord.Member | None = None,
    ) -> None:
        try:
            challenge_id, display_name = await run_db(
                self._challenge_for_thread, interaction.channel_id
            )
        except NotFound as exc:
            await interaction.response.send_message(f"❌ {exc}", ephemeral=True)
            return

        teammates = [
            m.id for m in (teammate1, teammate2, teammate3)
            if m is not None and not m.bot
        ]
        await interaction.response.defer(ephemeral=True, thinking=True)

        try:
            result = await self.bot.workflow.submit(
                challenge_id=challenge_id,
                flag=flag,
                submitter_id=interaction.user.id,
                teammate_ids=teammates,
            )
        except (ConstraintViolation, NotFound) as exc:
            await interaction.followup.send(f"❌ {exc}", ephemeral=True)
            return
        except StorageFailure as exc:
            await interaction.followup.send(f"⚠️ {exc}", ephemeral=True)
            return

        if result.side_effect_failures:
            await interaction.followup.send(
                f"⚠️ Solve #{result.solve_id} for **{display_name}** was recorded, "
                "but the officers could not be notified. Ping an officer.",
                ephemeral=True,
            )
            return
        await interaction.followup.send(
            f"\U0001f4e8 Solve #{result.solve_id} for **{display_name}** submitted "
            f"for {len(result.participant_ids)} solver(s). Waiting on an officer.",
            ephemeral=True,
        )

    # -------------------------------------------------------------------
    # Error handler for missing officer role
    # -------------------------------------------------------------------
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
    await bot.add_cog(Solves(bot))
