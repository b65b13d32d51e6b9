"""
solvebot.bot.core — Bot Instance & Cog Loader
==============================================

Defines :class:`SolveBot`, a ``commands.Bot`` subclass that:

1. Stores the shared config (``bot.cfg``) and DB engine (``bot.engine``)
   so every Cog can reach them via ``self.bot``.
2. Builds the workflow objects once: the Discord side-effect sinks, the
   retrying :class:`SideEffectRunner`, :class:`RankProgression` and
   :class:`ApprovalWorkflow`.
3. Loads the Cogs listed in :data:`EXTENSIONS` and registers the
   persistent Approve / Decline view so buttons survive restarts.
4. Syncs the slash-command tree on startup (guild-scoped when
   ``DEV_GUILD_ID`` is set, global otherwise).
5. Mirrors WARNING+ log records into the bot-log channel, if configured.
"""

from __future__ import annotations

import asyncio
import logging
import os

import discord
from discord.ext import commands
from sqlalchemy import Engine

from solvebot.bot.discord_sinks import DiscordNotifier, DiscordRoleSync, resolve_channel
from solvebot.bot.views import ApprovalView
from solvebot.config import SolveBotConfig
from solvebot.services.approval_service import ApprovalWorkflow
from solvebot.services.log_channel import ChannelLogHandler, install_channel_handler
from solvebot.services.progression_service import RankProgression
from solvebot.services.side_effects import SideEffectRunner

logger = logging.getLogger(__name__)

# Cog modules to load on startup.
EXTENSIONS: list[str] = [
    "solvebot.bot.cogs.solves",
    "solvebot.bot.cogs.meta",
    "solvebot.bot.cogs.activity",
    "solvebot.bot.cogs.admin",
]


class SolveBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`SolveBotConfig` from ``config.yaml``.
    engine:
        A SQLAlchemy :class:`Engine` connected to the solves database.
    """

    def __init__(self, cfg: SolveBotConfig, engine: Engine) -> None:
        intents = discord.Intents.default()
        intents.message_content = True    # Privileged: prefix commands
        intents.members = True            # Privileged: role sync needs members

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            description="CTF solve approvals and ranks",
        )

        self.cfg = cfg
        self.engine = engine

        self.runner = SideEffectRunner()
        self.role_sync = DiscordRoleSync(self)
        self.notifier = DiscordNotifier(self)
        self.progression = RankProgression(
            engine, cfg, self.role_sync, self.notifier, self.runner
        )
        self.workflow = ApprovalWorkflow(
            engine, cfg, self.role_sync, self.notifier,
            runner=self.runner, progression=self.progression,
        )
        self.log_handler: ChannelLogHandler | None = None

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load Cogs and re-attach the persistent approval view.

        A broken Cog is logged and skipped rather than taking the bot down.
        """
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

        self.add_view(ApprovalView())

    async def on_ready(self) -> None:
        """Fired when the bot has connected and the cache is populated."""
        assert self.user is not None
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        # --- Slash-command sync ---------------------------------------------
        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))

        # --- Bot-log channel mirror -----------------------------------------
        log_channel_id = self.cfg.server.bot_log_channel_id
        if log_channel_id and self.log_handler is None:
            self.log_handler = install_channel_handler()

            async def _send(text: str) -> None:
                channel = await resolve_channel(self, log_channel_id)
                await channel.send(text)

            self.log_handler.start(asyncio.get_running_loop(), _send)
            logger.info("Mirroring warnings to channel %d", log_channel_id)

    async def close(self) -> None:
        """Graceful shutdown: stop the log drain before disconnecting."""
        logger.info("Bot shutting down…")
        if self.log_handler is not None:
            self.log_handler.stop()
            logging.getLogger("solvebot").removeHandler(self.log_handler)
            self.log_handler = None
        await super().close()
