"""
solvebot.bot.views — Persistent Approve / Decline buttons
==========================================================

The view is registered once in ``setup_hook`` with fixed ``custom_id``s, so
buttons on old approval messages keep working across restarts.  The
message id of the clicked message is the decision reference.

The interaction is acknowledged (deferred) before any database work so
Discord doesn't time out and redeliver; the workflow's idempotency covers
any redelivery that happens anyway.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord

from solvebot.bot.checks import member_is_officer
from solvebot.errors import NotFound, StorageFailure
from solvebot.services.approval_service import DecisionOutcome

if TYPE_CHECKING:
    from solvebot.bot.core import SolveBot

logger = logging.getLogger(__name__)

APPROVE_ID = "solvebot:approve"
DECLINE_ID = "solvebot:decline"


async def handle_decision(
    interaction: discord.Interaction, outcome: DecisionOutcome
) -> None:
    bot: SolveBot = interaction.client  # type: ignore[assignment]

    if not member_is_officer(interaction.user, bot):
        await interaction.response.send_message(
            "❌ Only officers can approve or decline solves.", ephemeral=True
        )
        return

    await interaction.response.defer(ephemeral=True, thinking=True)

    try:
        result = await bot.workflow.handle_decision_trigger(
            interaction.message.id, outcome.value, interaction.user.id
        )
    except NotFound as exc:
        await interaction.followup.send(f"❌ {exc}", ephemeral=True)
        return
    except StorageFailure as exc:
        await interaction.followup.send(
            f"⚠️ {exc} The solve is still pending.", ephemeral=True
        )
        return

    text = result.message
    if result.side_effect_failures:
        text += f"\n⚠️ {len(result.side_effect_failures)} follow-up action(s) failed; see bot log."
    await interaction.followup.send(text, ephemeral=True)

    if not result.already_decided:
        try:
            await interaction.message.edit(view=None)
        except discord.HTTPException:
            logger.warning("Could not remove buttons from message %d", interaction.message.id)


class ApprovalView(discord.ui.View):
    """Approve / Decline buttons attached to every decision request."""

    def __init__(self) -> None:
        super().__init__(timeout=None)

    @discord.ui.button(label="Approve", style=discord.ButtonStyle.success, custom_id=APPROVE_ID)
    async def approve(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        await handle_decision(interaction, DecisionOutcome.APPROVE)

    @discord.ui.button(label="Decline", style=discord.ButtonStyle.danger, custom_id=DECLINE_ID)
    async def decline(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        await handle_decision(interaction, DecisionOutcome.DECLINE)
