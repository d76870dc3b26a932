"""Injectable random sources.

Selection code never calls the ``random`` module directly; it takes a
``RandomSource`` so tests and seeded papers are reproducible. The seeded
source is Mulberry32, so a given seed yields the same paper on every platform.
"""
from __future__ import annotations

import math
import random
from typing import List, Protocol, Sequence, TypeVar, Union

from . import config

T = TypeVar("T")

_MASK = 0xFFFFFFFF
_GOLDEN = 0x9E3779B9


class RandomSource(Protocol):
    def next(self) -> float:
        """Uniform float in [0, 1)."""
        ...


def _imul(a: int, b: int) -> int:
    return (a * b) & _MASK


def hash_seed(seed: Union[int, str]) -> int:
    if isinstance(seed, str):
        h = 0
        # hash over UTF-16 code units so astral characters count twice
        data = seed.encode("utf-16-le")
        for i in range(0, len(data), 2):
            unit = data[i] | (data[i + 1] << 8)
            h = (h * 31 + unit) & _MASK
        return h
    return int(seed) & _MASK


class SeededRandomSource:
    def __init__(self, seed: Union[int, str]):
        self.seed = seed
        self._state = hash_seed(seed) or _GOLDEN

    def next(self) -> float:
        self._state = (self._state + 0x6D2B79F5) & _MASK
        t = self._state
        x = _imul(t ^ (t >> 15), 1 | t)
        x = (x ^ ((x + _imul(x ^ (x >> 7), 61 | x)) & _MASK)) & _MASK
        return ((x ^ (x >> 14)) & _MASK) / 4294967296.0


class SystemRandomSource:
    def __init__(self, seed: int | None = None):
        if seed is None:
            seed = config.DEBUG_SEED
        self._rnd = random.Random(seed)

    def next(self) -> float:
        return self._rnd.random()


def make_source(seed: Union[int, str, None] = None) -> RandomSource:
    if seed is None or seed == "":
        return SystemRandomSource()
    return SeededRandomSource(seed)


def shuffle(items: Sequence[T], rng: RandomSource) -> List[T]:
    """Fisher-Yates over a copy; the input is left untouched."""
    out = list(items)
    for i in range(len(out) - 1, 0, -1):
        j = int(math.floor(rng.next() * (i + 1)))
        out[i], out[j] = out[j], out[i]
    return out


def sample(items: Sequence[T], count: int, rng: RandomSource) -> List[T]:
    if len(items) <= count:
        return list(items)
    return shuffle(items, rng)[:count]
