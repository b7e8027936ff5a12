"""Deterministic random utilities."""

from __future__ import annotations

import random
from typing import Optional, Protocol, Sequence, TypeVar

T = TypeVar("T")


class RandomSource(Protocol):
    """Minimal surface the narrative code draws randomness from."""

    def choice(self, seq: Sequence[T]) -> T: ...

    def randint(self, a: int, b: int) -> int: ...


class DeterministicRNG:
    """Wraps :mod:`random` with deterministic replay support.

    A ``None`` seed draws one from system entropy so production sessions
    still vary while tests can pin a seed.
    """

    def __init__(self, seed: Optional[int] = None) -> None:
        if seed is None:
            seed = random.SystemRandom().getrandbits(32)
        self._seed = seed & 0xFFFFFFFF
        # nosec B311 - deterministic pseudo-RNG acceptable for comment selection
        self._random = random.Random(self._seed)

    @property
    def seed(self) -> int:
        return self._seed

    def choice(self, seq: Sequence[T]) -> T:
        return self._random.choice(seq)

    def randint(self, a: int, b: int) -> int:
        return self._random.randint(a, b)

    def uniform(self, a: float, b: float) -> float:
        return self._random.uniform(a, b)

    def shuffle(self, seq) -> None:
        self._random.shuffle(seq)

    def fork(self, salt: int) -> "DeterministicRNG":
        """Derive an independent stream, e.g. one per simulated match."""

        return DeterministicRNG(self._seed ^ ((salt * 0x9E3779B9) & 0xFFFFFFFF))


__all__ = ["DeterministicRNG", "RandomSource"]
