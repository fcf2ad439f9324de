"""Random number engines, ranges and a Zipfian distribution for workloads."""

from __future__ import annotations

import math
import secrets
from typing import Callable, Iterator, List

_MASK64 = (1 << 64) - 1


class XorShiftEngine:
    """64-bit xorshift* generator."""

    MIN = 0
    MAX = _MASK64
    _MAGIC = 0x2545F4914F6CDD1D

    def __init__(self, seed: int | None = None) -> None:
        if seed is None:
            self._state = self._fresh_seed()
        else:
            if not 0 < seed <= _MASK64:
                raise ValueError("seed must be a non-zero 64-bit value")
            self._state = seed

    @staticmethod
    def _fresh_seed() -> int:
        for _ in range(10000):
            value = secrets.randbits(64)
            if value:
                return value
        raise RuntimeError("failed to seed the engine")

    def __call__(self) -> int:
        s = self._state
        if s == 0:
            s = self._fresh_seed()
        s ^= s >> 12
        s ^= (s << 25) & _MASK64
        s ^= s >> 27
        self._state = s
        return (s * self._MAGIC) & _MASK64


class RangeIterator:
    """Yields lower, lower + step, ... while below upper."""

    def __init__(self, lower: int, upper: int, step: int = 1) -> None:
        if step <= 0:
            raise ValueError("step must be positive")
        self.lower = lower
        self.upper = upper
        self.step = step
        self._curr = lower

    def __call__(self) -> int:
        old = self._curr
        if old >= self.upper:
            raise IndexError("range is exhausted")
        self._curr += self.step
        return old

    def __iter__(self) -> Iterator[int]:
        while self._curr < self.upper:
            yield self()


class ZipfianDistribution:
    """P(X = k) = k^-s / zeta(N; s) for k in [1, N]."""

    DEFAULT_S = 0.99
    PRECALC_N = 8
    _HALF = 0.5
    _ACC_N = 100

    def __init__(self, n: int, s: float = DEFAULT_S) -> None:
        if n < 1:
            raise ValueError("n must be at least 1")
        if s <= 0:
            raise ValueError("s must be positive")
        self.n = n
        self.s = s
        self._r = 1 - s
        self._a = self.PRECALC_N + self._HALF
        self._a_exp_r = self._a ** self._r
        self._zeta_acc: float | None = None
        self._zeta_k: List[float] = [self.zeta(i + 1) for i in range(self.PRECALC_N)]
        self._zeta_n = self.zeta(n)

    def zeta(self, k: int) -> float:
        """Sum of i^-s for i in [1, k], approximated by an integral beyond 100 terms."""
        if k <= self._ACC_N:
            return math.fsum(i ** -self.s for i in range(1, k + 1))
        if self._zeta_acc is None:
            self._zeta_acc = self.zeta(self._ACC_N)
        a = self._ACC_N + self._HALF
        b = k + self._HALF
        if self.s != 1.0:
            return self._zeta_acc + (b ** self._r - a ** self._r) / self._r
        return self._zeta_acc + (math.log(b) - math.log(a))

    def _inv_zeta(self, total: float) -> int:
        for i, z in enumerate(self._zeta_k):
            if total <= z:
                return i + 1
        integral = total - self._zeta_k[-1]
        if self.s != 1.0:
            b = (integral * self._r + self._a_exp_r) ** (1 / self._r)
        else:
            b = self._a * math.exp(integral)
        return max(1, min(self.n, math.floor(b + self._HALF)))

    def __call__(self, gen: Callable[[], int]) -> int:
        lo = getattr(gen, "MIN", 0)
        hi = getattr(gen, "MAX", _MASK64)
        value = gen()
        total = (value - lo) * self._zeta_n / (hi - lo)
        return self._inv_zeta(total)

    def probability(self, k: int) -> float:
        if k < 1 or k > self.n:
            return 0.0
        return k ** -self.s / self._zeta_n