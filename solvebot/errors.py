"""
solvebot.errors — Error Taxonomy
=================================

Core transactional errors abort a ``submit``/``decide`` call and reach the
caller typed.  Side-effect failures are recorded, never raised, because the
ledger is already committed by the time they happen.
"""

from __future__ import annotations


class SolveBotError(Exception):
    """Base class for every error raised by solvebot."""


class NotFound(SolveBotError):
    """A referenced solve, challenge, competition or user does not exist."""


class ConstraintViolation(SolveBotError):
    """Input rejected before any write (missing competition, no participants…)."""


# Older name used by the store contract.
ConstraintError = ConstraintViolation


class AlreadyDecided(SolveBotError):
    """The solve has already left the Pending state.

    ``ApprovalWorkflow.decide`` reports this through its result instead of
    raising; the class exists for callers that prefer an exception.
    """

    def __init__(self, solve_id: int, status) -> None:
        super().__init__(f"Solve {solve_id} was already {status.label}.")
        self.solve_id = solve_id
        self.status = status


class StorageFailure(SolveBotError):
    """The transaction could not commit.  Safe to retry."""


class ExternalSideEffectFailure(SolveBotError):
    """A role change or notification failed after the core state committed."""

    def __init__(self, label: str, cause: BaseException | None = None) -> None:
        detail = f": {cause!r}" if cause is not None else ""
        super().__init__(f"Side effect '{label}' failed{detail}")
        self.label = label
        self.cause = cause


class CorruptRecord(SolveBotError):
    """A stored enum value does not map to any known variant."""
