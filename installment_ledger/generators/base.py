"""Shared plumbing for the synthetic ledger generators."""

from __future__ import annotations

import random
from abc import ABC
from collections.abc import Mapping
from decimal import Decimal
from typing import TypeVar

from faker import Faker

T = TypeVar("T")


class BaseGenerator(ABC):
    """Faker plus a private ``random.Random``, both seeded from one value.

    Generators draw every random choice from ``self.rng`` so two instances
    built with the same seed produce identical portfolios without touching
    the global ``random`` state.

    Parameters
    ----------
    seed : int | None
        Random seed for reproducibility.
    locale : str
        Faker locale used for names (default ``ru_RU``).
    """

    def __init__(self, seed: int | None = None, locale: str = "ru_RU") -> None:
        self.rng = random.Random(seed)
        self.fake = Faker(locale)
        if seed is not None:
            self.fake.seed_instance(seed)

    def weighted_choice(self, weights: Mapping[T, float]) -> T:
        """Pick a key of ``weights`` with probability proportional to its value."""
        return self.rng.choices(list(weights), weights=list(weights.values()))[0]

    def amount(self, low: int, high: int, step: int = 1) -> Decimal:
        """Whole-dollar amount in ``[low, high]`` rounded down to ``step``."""
        return Decimal(self.rng.randint(low, high) // step * step)
