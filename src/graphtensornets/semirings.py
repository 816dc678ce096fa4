"""Semiring element types used as tensor elements.

Contracting the same tensor network over a different semiring changes what
the contraction computes:

- ``Tropical``: max-plus algebra, yields the optimal value.
- ``CountingTropical``: optimal value paired with a count or a configuration
  payload.
- ``Polynomial``: dense counting polynomial, yields counts per solution size.
- ``TruncatedPoly``: the K highest-degree terms of a counting polynomial.
- ``Mod``: integers modulo a prime, for the finite-field polynomial method.

Plain Python numbers are valid elements of the ordinary sum-product semiring.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Tuple


class Semiring(ABC):
    """Element of a semiring: ``zero``, ``one``, ``+`` and ``*``."""

    @abstractmethod
    def zero(self) -> "Semiring":
        """Additive identity of the same shape as ``self``."""

    @abstractmethod
    def one(self) -> "Semiring":
        """Multiplicative identity of the same shape as ``self``."""

    @abstractmethod
    def __add__(self, other):
        pass

    @abstractmethod
    def __mul__(self, other):
        pass

    def is_zero(self) -> bool:
        return self == self.zero()


def zero_of(x: Any) -> Any:
    """Additive identity for ``x``'s algebra."""
    if isinstance(x, Semiring):
        return x.zero()
    return type(x)(0)


def one_of(x: Any) -> Any:
    """Multiplicative identity for ``x``'s algebra."""
    if isinstance(x, Semiring):
        return x.one()
    return type(x)(1)


def is_zero(x: Any) -> bool:
    if isinstance(x, Semiring):
        return x.is_zero()
    return x == zero_of(x)


@dataclass(frozen=True)
class Tropical(Semiring):
    """Max-plus number: ``a + b = max(a, b)``, ``a * b = a + b``."""

    n: float

    def zero(self) -> "Tropical":
        return Tropical(-math.inf)

    def one(self) -> "Tropical":
        return Tropical(0.0)

    def __add__(self, other: "Tropical") -> "Tropical":
        return self if self.n >= other.n else other

    def __mul__(self, other: "Tropical") -> "Tropical":
        return Tropical(self.n + other.n)

    def __repr__(self) -> str:
        return f"{self.n}ₜ"


@dataclass(frozen=True)
class CountingTropical(Semiring):
    """Tropical number carrying a count or configuration payload ``c``."""

    n: float
    c: Any = 1

    def zero(self) -> "CountingTropical":
        return CountingTropical(-math.inf, zero_of(self.c))

    def one(self) -> "CountingTropical":
        return CountingTropical(0.0, one_of(self.c))

    def __add__(self, other: "CountingTropical") -> "CountingTropical":
        if self.n > other.n:
            return self
        if other.n > self.n:
            return other
        return CountingTropical(self.n, self.c + other.c)

    def __mul__(self, other: "CountingTropical") -> "CountingTropical":
        return CountingTropical(self.n + other.n, self.c * other.c)

    def __repr__(self) -> str:
        return f"({self.n}, {self.c!r})ₜ"


def _trim(coeffs: Tuple[Any, ...]) -> Tuple[Any, ...]:
    end = len(coeffs)
    while end > 1 and is_zero(coeffs[end - 1]):
        end -= 1
    return tuple(coeffs[:end])


@dataclass(frozen=True, init=False)
class Polynomial(Semiring):
    """Dense polynomial; ``coeffs[d]`` is the coefficient of ``x**d``.

    Coefficients may be numbers or configuration payloads. Trailing zero
    coefficients are dropped on construction.
    """

    coeffs: Tuple[Any, ...]

    def __init__(self, coeffs):
        coeffs = tuple(coeffs)
        if not coeffs:
            raise ValueError("Polynomial needs at least one coefficient.")
        object.__setattr__(self, "coeffs", _trim(coeffs))

    @property
    def degree(self) -> int:
        return len(self.coeffs) - 1

    def zero(self) -> "Polynomial":
        return Polynomial((zero_of(self.coeffs[0]),))

    def one(self) -> "Polynomial":
        return Polynomial((one_of(self.coeffs[0]),))

    def __add__(self, other: "Polynomial") -> "Polynomial":
        z = zero_of(self.coeffs[0])
        size = max(len(self.coeffs), len(other.coeffs))
        a = self.coeffs + (z,) * (size - len(self.coeffs))
        b = other.coeffs + (z,) * (size - len(other.coeffs))
        return Polynomial(tuple(x + y for x, y in zip(a, b)))

    def __mul__(self, other: "Polynomial") -> "Polynomial":
        z = zero_of(self.coeffs[0])
        out = [z] * (len(self.coeffs) + len(other.coeffs) - 1)
        for i, x in enumerate(self.coeffs):
            for j, y in enumerate(other.coeffs):
                out[i + j] = out[i + j] + x * y
        return Polynomial(out)

    def __call__(self, x):
        result = 0
        for c in reversed(self.coeffs):
            result = result * x + c
        return result

    def __repr__(self) -> str:
        return f"Polynomial({list(self.coeffs)!r})"


@dataclass(frozen=True, init=False)
class TruncatedPoly(Semiring):
    """The ``K`` highest-degree terms of a counting polynomial.

    ``coeffs[i]`` is the coefficient at degree ``maxorder - K + 1 + i``, so
    ``coeffs[-1]`` belongs to ``maxorder``. The zero element has
    ``maxorder = -inf``. With more than one term the degrees of operands
    must differ by whole numbers.
    """

    coeffs: Tuple[Any, ...]
    maxorder: float

    def __init__(self, coeffs, maxorder):
        coeffs = tuple(coeffs)
        if not coeffs:
            raise ValueError("TruncatedPoly needs at least one coefficient.")
        object.__setattr__(self, "coeffs", coeffs)
        object.__setattr__(self, "maxorder", maxorder)

    @property
    def k(self) -> int:
        return len(self.coeffs)

    def zero(self) -> "TruncatedPoly":
        z = zero_of(self.coeffs[0])
        return TruncatedPoly((z,) * self.k, -math.inf)

    def one(self) -> "TruncatedPoly":
        z = zero_of(self.coeffs[0])
        return TruncatedPoly((z,) * (self.k - 1) + (one_of(self.coeffs[0]),), 0.0)

    def __add__(self, other: "TruncatedPoly") -> "TruncatedPoly":
        if self.maxorder == other.maxorder:
            return TruncatedPoly(
                tuple(x + y for x, y in zip(self.coeffs, other.coeffs)), self.maxorder
            )
        high, low = (self, other) if self.maxorder > other.maxorder else (other, self)
        offset = high.maxorder - low.maxorder
        if self.k == 1 or offset >= self.k:
            return high
        if offset != int(offset):
            raise ValueError(
                f"Cannot align truncated polynomials with maxorders "
                f"{high.maxorder} and {low.maxorder}: non-integer degree offset."
            )
        offset = int(offset)
        coeffs = tuple(
            high.coeffs[i] + low.coeffs[i + offset] if i + offset < self.k else high.coeffs[i]
            for i in range(self.k)
        )
        return TruncatedPoly(coeffs, high.maxorder)

    def __mul__(self, other: "TruncatedPoly") -> "TruncatedPoly":
        k = self.k
        coeffs = []
        for target in range(k):
            acc = zero_of(self.coeffs[0])
            # degrees of i and j add up to the degree of ``target``
            for i in range(target, k):
                j = k - 1 + target - i
                acc = acc + self.coeffs[i] * other.coeffs[j]
            coeffs.append(acc)
        return TruncatedPoly(coeffs, self.maxorder + other.maxorder)

    def __repr__(self) -> str:
        return f"TruncatedPoly({list(self.coeffs)!r}, {self.maxorder})"


@dataclass(frozen=True)
class Mod(Semiring):
    """Integer modulo ``modulus``."""

    value: int
    modulus: int

    def __post_init__(self):
        object.__setattr__(self, "value", int(self.value) % self.modulus)

    def zero(self) -> "Mod":
        return Mod(0, self.modulus)

    def one(self) -> "Mod":
        return Mod(1, self.modulus)

    def _check(self, other: "Mod") -> None:
        if other.modulus != self.modulus:
            raise ValueError(f"Modulus mismatch: {self.modulus} vs {other.modulus}.")

    def __add__(self, other: "Mod") -> "Mod":
        self._check(other)
        return Mod(self.value + other.value, self.modulus)

    def __mul__(self, other: "Mod") -> "Mod":
        self._check(other)
        return Mod(self.value * other.value, self.modulus)

    def __int__(self) -> int:
        return self.value
