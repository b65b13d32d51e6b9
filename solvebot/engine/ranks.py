"""
solvebot.engine.ranks — Rank Ladder & Transition Logic
=======================================================

Pure calculation module.  No Discord I/O, no DB I/O.

The ladder is anchored to the current leader: the top rank's cutoff is the
highest balance in the population and each lower rank's cutoff decays
geometrically from it.  Nothing is hard-coded, so the ladder rescales as the
top score grows.  Callers supply a fresh top score on every evaluation.

A rank is an index into the configured rank names, or ``None`` for
"unranked".  Unranked compares below every index.
"""

from __future__ import annotations

import math
from bisect import bisect_right
from collections.abc import Sequence
from dataclasses import dataclass
from fractions import Fraction
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from solvebot.services.points_ledger import PointsUpdate

__all__ = [
    "Rank",
    "RankStep",
    "RankTransition",
    "build_ladder",
    "compute_cutoffs",
    "evaluate_transition",
    "max_rank",
    "rank_for_points",
    "rank_value",
]

Rank = int | None

DEFAULT_DECAY = 0.75


def rank_value(rank: Rank) -> int:
    """Total ordering key for ranks: unranked sorts below index 0."""
    return -1 if rank is None else rank


def max_rank(a: Rank, b: Rank) -> Rank:
    return a if rank_value(a) >= rank_value(b) else b


# ---------------------------------------------------------------------------
# Cutoff ladder
# ---------------------------------------------------------------------------
def compute_cutoffs(
    top_score: int, rank_count: int, decay: float = DEFAULT_DECAY
) -> list[int]:
    """Return ascending cutoffs, one per rank.

    ``cutoffs[-1]`` equals *top_score*; the cutoff *k* steps below the top is
    ``floor(top_score * decay**k)``, computed with exact fractions so no
    float rounding creeps in.  A negative top score is treated as zero.

    >>> compute_cutoffs(1000, 5)
    [316, 421, 562, 750, 1000]
    """
    if rank_count <= 0:
        return []
    top = max(int(top_score), 0)
    factor = Fraction(str(decay))
    descending = [math.floor(top * factor**k) for k in range(rank_count)]
    return descending[::-1]


def rank_for_points(points: int, cutoffs: Sequence[int]) -> Rank:
    """Map a balance to a rank index using ascending *cutoffs*.

    The rank is the highest index whose cutoff is ``<= points``.  Below the
    lowest cutoff the user is unranked.  A non-positive balance is always
    unranked, otherwise an all-zero ladder would rank everyone.
    """
    if points <= 0 or not cutoffs:
        return None
    idx = bisect_right(cutoffs, points) - 1
    return idx if idx >= 0 else None


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RankTransition:
    """A rank increase that needs external side effects."""

    user_id: int
    old_rank: Rank
    new_rank: int
    grant_role: str
    # Role held when the credit was evaluated; the cache swap has the final say.
    revoke_role: str | None = None


def evaluate_transition(
    update: PointsUpdate,
    cutoffs: Sequence[int],
    rank_names: Sequence[str],
) -> RankTransition | None:
    """Decide whether *update* moved its user up the ladder.

    The effective old rank is the greater of the rank the old balance maps
    to on the current ladder and the user's cached rank.  The ladder moves up
    as the leader scores, so the old balance alone could look lower than the
    role the user already holds.
    """
    new_rank = rank_for_points(update.new_points, cutoffs)
    cached = update.cached_rank
    if cached is not None and not 0 <= cached < len(rank_names):
        # Rank list shrank since the cache was written; treat as unranked.
        cached = None
    effective_old = max_rank(rank_for_points(update.old_points, cutoffs), cached)

    if new_rank is None or rank_value(new_rank) <= rank_value(effective_old):
        return None

    return RankTransition(
        user_id=update.user_id,
        old_rank=effective_old,
        new_rank=new_rank,
        grant_role=rank_names[new_rank],
        revoke_role=rank_names[cached] if cached is not None else None,
    )


# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RankStep:
    index: int
    name: str
    cutoff: int


def build_ladder(
    top_score: int, rank_names: Sequence[str], decay: float = DEFAULT_DECAY
) -> list[RankStep]:
    """Pair every rank name with its current cutoff, lowest rank first."""
    cutoffs = compute_cutoffs(top_score, len(rank_names), decay)
    return [
        RankStep(index=i, name=name, cutoff=cutoff)
        for i, (name, cutoff) in enumerate(zip(rank_names, cutoffs))
    ]
