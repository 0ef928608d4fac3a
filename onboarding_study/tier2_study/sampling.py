"""
onboarding_study.tier2_study.sampling
───────────────────────────────────────
Deterministic bucketing primitives: a stable hash fraction in [0, 1) and
weighted arm selection. Same seed always gives the same fraction, so a client
keeps its arm across restarts.
"""
from __future__ import annotations

import hashlib
from typing import Sequence

from onboarding_study.tier0_core.config import WeightedVariation
from onboarding_study.tier0_core.errors import ConfigurationError

DEFAULT_HASH_BITS = 12


def hash_fraction(seed: str, bits: int = DEFAULT_HASH_BITS) -> float:
    """
    Map a seed to [0, 1) via SHA-256.

    The first `bits` hex digits of the digest are read as an integer and
    divided by 16**bits, so resolution grows with `bits` (12 gives 48 bits).
    """
    if not 1 <= bits <= 64:
        raise ValueError(f"bits must be within 1..64, got {bits}")
    digest = hashlib.sha256(seed.encode("utf-8")).hexdigest()
    return int(digest[:bits], 16) / 16 ** bits


def validate_table(table: Sequence[WeightedVariation]) -> float:
    """Return the total weight; an empty or zero-weight table is fatal."""
    if not table:
        raise ConfigurationError(user_message="Weighted variation table is empty.")
    total = sum(v.weight for v in table)
    if total <= 0:
        raise ConfigurationError(
            user_message="Weighted variation table has zero total weight.",
            variations=[v.name for v in table],
        )
    return total


def choose_weighted(table: Sequence[WeightedVariation], fraction: float) -> WeightedVariation:
    """
    Pick the first arm, in declared order, whose cumulative normalised weight
    is >= fraction. A fraction sitting exactly on a boundary stays in the
    lower arm; zero-weight arms cover no range and are never picked.
    """
    total = validate_table(table)
    cumulative = 0.0
    for variation in table:
        if variation.weight <= 0:
            continue
        cumulative += variation.weight
        if fraction <= cumulative / total:
            return variation

    # Fallback: last arm with weight (floating point overrun)
    return [v for v in table if v.weight > 0][-1]


class Sampler:
    """The `sample` surface of the study-lifecycle collaborator."""

    async def hash_fraction(self, seed: str, bits: int = DEFAULT_HASH_BITS) -> float:
        return hash_fraction(seed, bits)

    def choose_weighted(
        self, table: Sequence[WeightedVariation], fraction: float
    ) -> WeightedVariation:
        return choose_weighted(table, fraction)


__all__ = [
    "DEFAULT_HASH_BITS",
    "hash_fraction",
    "validate_table",
    "choose_weighted",
    "Sampler",
]
