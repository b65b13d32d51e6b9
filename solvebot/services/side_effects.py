"""
solvebot.services.side_effects — External Collaborators & Bounded Retry
========================================================================

Role changes and channel posts happen on the community platform, after the
core transaction has committed.  They are best-effort: a failure is retried
a bounded number of times, then logged and recorded as an
:class:`~solvebot.errors.ExternalSideEffectFailure`.  It never rolls back
points or approval status.

The concrete discord.py implementations live in
:mod:`solvebot.bot.discord_sinks`; tests pass in ``AsyncMock`` fakes.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

from solvebot.database.models import ApprovalStatus
from solvebot.errors import ExternalSideEffectFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Collaborator protocols
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class DecisionRequest:
    """Everything a moderator needs to judge a submission."""

    solve_id: int
    challenge_id: int
    challenge_name: str
    category: str
    flag: str
    submitter_id: int
    participant_ids: tuple[int, ...] = field(default_factory=tuple)


class RoleSync(Protocol):
    """Grants and revokes named role tags on the community platform."""

    async def grant_role(self, user_id: int, role_name: str) -> None: ...

    async def revoke_role(self, user_id: int, role_name: str) -> None: ...


class NotificationSink(Protocol):
    """Posts moderation requests, outcomes and rank-up announcements."""

    async def publish_decision_request(self, request: DecisionRequest) -> int:
        """Post the approve/decline prompt and return its message id."""
        ...

    async def publish_decision(
        self, solve_id: int, status: ApprovalStatus, decider_id: int
    ) -> None: ...

    async def announce_rank_up(self, user_id: int, rank_name: str) -> None: ...


# ---------------------------------------------------------------------------
# Bounded retry runner
# ---------------------------------------------------------------------------
class SideEffectRunner:
    """Run side effects with bounded retry and exponential backoff.

    - Up to ``max_attempts`` tries per effect, sleeping
      ``base_delay * 2**attempt`` seconds between them.
    - Exhausted effects are logged and kept in :attr:`failures`
      (most recent ``history`` entries) so they stay observable.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        history: int = 100,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.failures: deque[ExternalSideEffectFailure] = deque(maxlen=history)

    async def run(
        self, label: str, factory: Callable[[], Awaitable[T]]
    ) -> tuple[bool, T | ExternalSideEffectFailure]:
        """Await ``factory()`` until it succeeds or attempts run out.

        *factory* must build a fresh awaitable per call; a coroutine object
        cannot be awaited twice.

        Returns ``(True, value)`` on success, ``(False, failure)`` otherwise.
        """
        last_exc: BaseException | None = None
        for attempt in range(self.max_attempts):
            try:
                return True, await factory()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                last_exc = exc
                if attempt + 1 < self.max_attempts:
                    delay = self.base_delay * (2 ** attempt)
                    logger.warning(
                        "Side effect %s failed (attempt %d/%d), retrying in %.1fs: %s",
                        label, attempt + 1, self.max_attempts, delay, exc,
                    )
                    if delay > 0:
                        await asyncio.sleep(delay)

        failure = ExternalSideEffectFailure(label, last_exc)
        logger.error(
            "Side effect %s gave up after %d attempt(s)",
            label, self.max_attempts, exc_info=last_exc,
        )
        self.failures.append(failure)
        return False, failure


def collect_failures(*outcomes: tuple[bool, Any]) -> list[ExternalSideEffectFailure]:
    """Pick the failures out of several :meth:`SideEffectRunner.run` results."""
    return [value for ok, value in outcomes if not ok]
