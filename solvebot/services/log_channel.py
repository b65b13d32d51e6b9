"""
solvebot.services.log_channel — Mirror Warnings to the Bot-Log Channel
=======================================================================

A :class:`logging.Handler` that queues WARNING+ records and a drain task
that posts them to the configured Discord channel inside an ``ansi`` code
block.  ``emit`` never touches the network; the drain task does, so a
slow or failing channel can't stall the code that logged.

Send failures are reported on stderr via ``handleError`` rather than
logged, which would feed the handler its own errors.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 200
# Discord rejects embed descriptions over 4096 characters.
MAX_MESSAGE_CHARS = 3900


class ChannelLogHandler(logging.Handler):
    """Buffer formatted records until :meth:`drain_once` ships them."""

    def __init__(
        self,
        level: int = logging.WARNING,
        capacity: int = DEFAULT_CAPACITY,
    ) -> None:
        super().__init__(level)
        self._pending: deque[str] = deque(maxlen=capacity)
        self._drain_task: asyncio.Task | None = None

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._pending.append(self.format(record))
        except Exception:
            self.handleError(record)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def _next_batch(self) -> str | None:
        if not self._pending:
            return None
        lines: list[str] = []
        size = 0
        while self._pending:
            line = self._pending[0][:MAX_MESSAGE_CHARS]
            if lines and size + len(line) + 1 > MAX_MESSAGE_CHARS:
                break
            lines.append(line)
            size += len(line) + 1
            self._pending.popleft()
        return "\n".join(lines)

    async def drain_once(self, send) -> int:
        """Post everything buffered via ``await send(text)``; return batches sent.

        A batch that fails to send is dropped and reported on stderr.
        """
        sent = 0
        while (batch := self._next_batch()) is not None:
            try:
                await send(f"```ansi\n{batch}\n```")
                sent += 1
            except Exception:
                self.handleError(
                    logging.makeLogRecord({"msg": "bot-log channel send failed"})
                )
        return sent

    def start(self, loop: asyncio.AbstractEventLoop, send, interval: float = 5.0) -> None:
        """Start the background drain task."""
        if self._drain_task is not None:
            return

        async def _drain_loop() -> None:
            while True:
                await asyncio.sleep(interval)
                await self.drain_once(send)

        self._drain_task = loop.create_task(_drain_loop(), name="bot-log-drain")

    def stop(self) -> None:
        if self._drain_task:
            self._drain_task.cancel()
            self._drain_task = None


def install_channel_handler(level: int = logging.WARNING) -> ChannelLogHandler:
    """Attach a :class:`ChannelLogHandler` to the ``solvebot`` logger."""
    handler = ChannelLogHandler(level=level)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", "%H:%M:%S")
    )
    logging.getLogger("solvebot").addHandler(handler)
    return handler
