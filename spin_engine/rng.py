"""
REELFORGE — RNG Boundary

The engine only ever calls `rng.random()` and expects a float in [0, 1).
Anything with that method plugs in: `random.Random`, a certified hardware
source wrapper, or the bundled `FastRNG`.

For simulation we need speed and replayability over provability, so runs
default to a seeded splitmix64 stream. Each run owns its stream; streams are
never shared between runs.

Usage:
    from spin_engine.rng import make_rng
    rng = make_rng(42)
    rng.random()
"""

from __future__ import annotations

import hashlib
import os
from typing import Optional, Protocol

_MASK64 = 0xFFFFFFFFFFFFFFFF


class RandomSource(Protocol):
    def random(self) -> float: ...


class FastRNG:
    """Splitmix64 PRNG. Deterministic per seed."""

    def __init__(self, seed: int = 0):
        self.seed = seed
        self.state = seed & _MASK64

    def _next(self) -> int:
        self.state = (self.state + 0x9E3779B97F4A7C15) & _MASK64
        z = self.state
        z = ((z ^ (z >> 30)) * 0xBF58476D1CE4E5B9) & _MASK64
        z = ((z ^ (z >> 27)) * 0x94D049BB133111EB) & _MASK64
        return (z ^ (z >> 31)) & _MASK64

    def random(self) -> float:
        """Float in [0, 1)."""
        # 53 high bits so the result is exactly representable and < 1.0
        return (self._next() >> 11) * (1.0 / (1 << 53))

    def getstate(self) -> int:
        return self.state

    def setstate(self, state: int) -> None:
        self.state = state & _MASK64


def new_seed() -> int:
    """Fresh 63-bit seed from the OS entropy pool."""
    return int.from_bytes(os.urandom(8), "big") >> 1


def derive_seed(base_seed: int, label: str) -> int:
    """Deterministic child seed, e.g. one per parallel run."""
    h = hashlib.md5(f"{base_seed}:{label}".encode()).hexdigest()[:16]
    return int(h, 16) >> 1


def make_rng(seed: Optional[int] = None) -> FastRNG:
    """Build an exclusive stream for one run. `None` draws a fresh seed."""
    return FastRNG(new_seed() if seed is None else int(seed))
