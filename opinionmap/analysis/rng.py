"""Seedable random number generators."""

import hashlib
import random
import time
from typing import Optional

_MASK32 = 0xFFFFFFFF
_DEFAULT_STATE = 0x9E3779B9


class XorShift32(random.Random):
    """Marsaglia xorshift32 generator with the ``random.Random`` interface.

    Only ``random()`` is overridden, so ``sample``, ``choice``, ``shuffle``
    and ``randrange`` all draw from the xorshift stream and a given seed
    always reproduces the same sequence.
    """

    def __init__(self, seed: Optional[int] = None) -> None:
        self._state = _DEFAULT_STATE
        super().__init__(seed)

    def seed(self, a=None, version: int = 2) -> None:
        if a is None:
            a = time.time_ns()
        elif isinstance(a, (str, bytes, bytearray)):
            data = a.encode("utf-8") if isinstance(a, str) else bytes(a)
            a = int.from_bytes(hashlib.sha256(data).digest()[:4], "big")
        # zero is a fixed point of xorshift
        self._state = (int(a) & _MASK32) or _DEFAULT_STATE
        self.gauss_next = None

    def next_uint32(self) -> int:
        x = self._state
        x ^= (x << 13) & _MASK32
        x ^= x >> 17
        x ^= (x << 5) & _MASK32
        self._state = x
        return x

    def random(self) -> float:
        return self.next_uint32() / 4294967296.0

    def getstate(self):
        return (self._state, self.gauss_next)

    def setstate(self, state) -> None:
        self._state, self.gauss_next = state


def make_rng(seed: Optional[int] = None) -> random.Random:
    """Seeded xorshift generator when a seed is given, system-seeded otherwise."""
    if seed is None:
        return random.Random()
    return XorShift32(seed)
