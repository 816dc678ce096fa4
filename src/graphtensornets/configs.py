"""Bit-packed configurations and the payloads that carry them through a contraction."""

from __future__ import annotations

import functools
import math
import pathlib
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .semirings import Semiring

WORD_BITS = 64
_WORD_MASK = (1 << WORD_BITS) - 1


def bits_per_flavor(nflavor: int) -> int:
    if nflavor < 2:
        raise ValueError(f"A variable needs at least two flavors, got {nflavor}.")
    return max(1, math.ceil(math.log2(nflavor)))


def _split_words(value: int, nwords: int) -> Tuple[int, ...]:
    return tuple((value >> (WORD_BITS * i)) & _WORD_MASK for i in range(nwords))


def _join_words(words: Sequence[int]) -> int:
    value = 0
    for i, word in enumerate(words):
        value |= int(word) << (WORD_BITS * i)
    return value


@functools.total_ordering
@dataclass(frozen=True)
class StaticElementVector:
    """Fixed-length vector of small integers packed into 64-bit words.

    Slot ``i`` occupies bits ``[i * bits, (i + 1) * bits)`` of the packed
    integer, so a slot may straddle two words.
    """

    length: int
    nflavor: int
    data: Tuple[int, ...]

    @property
    def bits(self) -> int:
        return bits_per_flavor(self.nflavor)

    @staticmethod
    def nwords(length: int, nflavor: int) -> int:
        return max(1, math.ceil(length * bits_per_flavor(nflavor) / WORD_BITS))

    @classmethod
    def from_int(cls, value: int, length: int, nflavor: int = 2) -> "StaticElementVector":
        return cls(length, nflavor, _split_words(value, cls.nwords(length, nflavor)))

    @classmethod
    def zeros(cls, length: int, nflavor: int = 2) -> "StaticElementVector":
        return cls.from_int(0, length, nflavor)

    def to_int(self) -> int:
        return _join_words(self.data)

    def __len__(self) -> int:
        return self.length

    def __getitem__(self, i: int) -> int:
        if not 0 <= i < self.length:
            raise IndexError(f"index {i} out of range for length {self.length}")
        bits = self.bits
        return (self.to_int() >> (i * bits)) & ((1 << bits) - 1)

    def __iter__(self) -> Iterator[int]:
        value = self.to_int()
        bits = self.bits
        mask = (1 << bits) - 1
        for i in range(self.length):
            yield (value >> (i * bits)) & mask

    def _check(self, other: "StaticElementVector") -> None:
        if (self.length, self.nflavor) != (other.length, other.nflavor):
            raise ValueError(
                f"Configuration shapes differ: ({self.length}, {self.nflavor}) vs "
                f"({other.length}, {other.nflavor})."
            )

    def __or__(self, other: "StaticElementVector") -> "StaticElementVector":
        self._check(other)
        return StaticElementVector(
            self.length, self.nflavor, tuple(a | b for a, b in zip(self.data, other.data))
        )

    def __and__(self, other: "StaticElementVector") -> "StaticElementVector":
        self._check(other)
        return StaticElementVector(
            self.length, self.nflavor, tuple(a & b for a, b in zip(self.data, other.data))
        )

    def __xor__(self, other: "StaticElementVector") -> "StaticElementVector":
        self._check(other)
        return StaticElementVector(
            self.length, self.nflavor, tuple(a ^ b for a, b in zip(self.data, other.data))
        )

    def __lt__(self, other: "StaticElementVector") -> bool:
        self._check(other)
        return self.to_int() < other.to_int()

    def __str__(self) -> str:
        return "".join(str(v) for v in self)

    def __repr__(self) -> str:
        return f"StaticElementVector({self.nflavor}, {list(self)})"


def StaticBitVector(bits: Iterable[int]) -> StaticElementVector:
    """Binary configuration from an iterable of 0/1 values."""
    return encode(bits, nflavor=2)


def encode(assignment: Iterable[int], nflavor: int = 2) -> StaticElementVector:
    """Pack per-variable values in ``range(nflavor)`` into a configuration."""
    values = [int(v) for v in assignment]
    bits = bits_per_flavor(nflavor)
    packed = 0
    for i, v in enumerate(values):
        if not 0 <= v < nflavor:
            raise ValueError(f"Value {v} at position {i} is outside range({nflavor}).")
        packed |= v << (i * bits)
    return StaticElementVector.from_int(packed, len(values), nflavor)


def decode(config: StaticElementVector) -> List[int]:
    return list(config)


def onehot(length: int, position: int, value: int = 1, nflavor: int = 2) -> StaticElementVector:
    """Configuration that is zero everywhere except ``value`` at ``position``."""
    if not 0 <= position < length:
        raise IndexError(f"position {position} out of range for length {length}")
    if not 0 <= value < nflavor:
        raise ValueError(f"Value {value} is outside range({nflavor}).")
    bits = bits_per_flavor(nflavor)
    return StaticElementVector.from_int(value << (position * bits), length, nflavor)


# =============================================================================
# Payloads
# =============================================================================


@dataclass(frozen=True)
class ConfigSampler(Semiring):
    """Carries a single representative configuration.

    ``data is None`` marks the additive zero. Addition keeps the first
    non-zero operand, so which of several tied configurations survives is
    decided by the contraction order, not by any property of the
    configurations. Multiplication ORs the bit patterns.
    """

    length: int
    nflavor: int
    data: Optional[StaticElementVector]

    @classmethod
    def from_config(cls, config: StaticElementVector) -> "ConfigSampler":
        return cls(config.length, config.nflavor, config)

    def zero(self) -> "ConfigSampler":
        return ConfigSampler(self.length, self.nflavor, None)

    def one(self) -> "ConfigSampler":
        return ConfigSampler(
            self.length, self.nflavor, StaticElementVector.zeros(self.length, self.nflavor)
        )

    def is_zero(self) -> bool:
        return self.data is None

    def __add__(self, other: "ConfigSampler") -> "ConfigSampler":
        return self if self.data is not None else other

    def __mul__(self, other: "ConfigSampler") -> "ConfigSampler":
        if self.data is None or other.data is None:
            return self.zero()
        return ConfigSampler(self.length, self.nflavor, self.data | other.data)

    def __repr__(self) -> str:
        return f"ConfigSampler({self.data!r})"


@dataclass(frozen=True)
class ConfigEnumerator(Semiring):
    """Deduplicated set of configurations.

    Addition is set union; multiplication ORs every pair of configurations.
    """

    length: int
    nflavor: int
    configs: frozenset = field(default_factory=frozenset)

    @classmethod
    def from_configs(
        cls, configs: Iterable[StaticElementVector], length: int, nflavor: int = 2
    ) -> "ConfigEnumerator":
        return cls(length, nflavor, frozenset(configs))

    def zero(self) -> "ConfigEnumerator":
        return ConfigEnumerator(self.length, self.nflavor, frozenset())

    def one(self) -> "ConfigEnumerator":
        zeros = StaticElementVector.zeros(self.length, self.nflavor)
        return ConfigEnumerator(self.length, self.nflavor, frozenset([zeros]))

    def is_zero(self) -> bool:
        return not self.configs

    def __add__(self, other: "ConfigEnumerator") -> "ConfigEnumerator":
        return ConfigEnumerator(self.length, self.nflavor, self.configs | other.configs)

    def __mul__(self, other: "ConfigEnumerator") -> "ConfigEnumerator":
        return ConfigEnumerator(
            self.length,
            self.nflavor,
            frozenset(a | b for a in self.configs for b in other.configs),
        )

    def __len__(self) -> int:
        return len(self.configs)

    def __iter__(self) -> Iterator[StaticElementVector]:
        return iter(sorted(self.configs))

    def __contains__(self, config: StaticElementVector) -> bool:
        return config in self.configs

    def __repr__(self) -> str:
        return f"ConfigEnumerator({[str(c) for c in self]})"


@dataclass(frozen=True, eq=False)
class SumProductTree(Semiring):
    """Configuration set stored as a tree of unions and products.

    ``kind`` is one of ``"zero"``, ``"one"``, ``"leaf"``, ``"sum"`` and
    ``"prod"``. Subtrees are shared rather than copied, so a set with many
    ties costs memory proportional to the tree, not to its expansion.
    Equality compares the represented sets.
    """

    length: int
    nflavor: int
    kind: str
    data: Optional[StaticElementVector] = None
    left: Optional["SumProductTree"] = None
    right: Optional["SumProductTree"] = None

    @classmethod
    def leaf(cls, config: StaticElementVector) -> "SumProductTree":
        return cls(config.length, config.nflavor, "leaf", data=config)

    def zero(self) -> "SumProductTree":
        return SumProductTree(self.length, self.nflavor, "zero")

    def one(self) -> "SumProductTree":
        return SumProductTree(self.length, self.nflavor, "one")

    def is_zero(self) -> bool:
        # sums and products of non-empty trees are never empty
        return self.kind == "zero"

    def __add__(self, other: "SumProductTree") -> "SumProductTree":
        if self.kind == "zero":
            return other
        if other.kind == "zero":
            return self
        return SumProductTree(self.length, self.nflavor, "sum", left=self, right=other)

    def __mul__(self, other: "SumProductTree") -> "SumProductTree":
        if self.kind == "zero" or other.kind == "zero":
            return self.zero()
        if self.kind == "one":
            return other
        if other.kind == "one":
            return self
        return SumProductTree(self.length, self.nflavor, "prod", left=self, right=other)

    def __len__(self) -> int:
        """Size of the expansion with multiplicity.

        Overlapping branches of a union are counted once per branch, so this
        can exceed ``len(self.to_enumerator())``.
        """
        return self.count()

    def count(self) -> int:
        """Number of configurations, counting each branch of a union separately."""
        if self.kind == "zero":
            return 0
        if self.kind in ("one", "leaf"):
            return 1
        if self.kind == "sum":
            return self.left.count() + self.right.count()
        return self.left.count() * self.right.count()

    def __iter__(self) -> Iterator[StaticElementVector]:
        if self.kind == "zero":
            return
        if self.kind == "one":
            yield StaticElementVector.zeros(self.length, self.nflavor)
        elif self.kind == "leaf":
            yield self.data
        elif self.kind == "sum":
            yield from self.left
            yield from self.right
        else:
            for a in self.left:
                for b in self.right:
                    yield a | b

    def to_enumerator(self) -> ConfigEnumerator:
        return ConfigEnumerator(self.length, self.nflavor, frozenset(self))

    def __eq__(self, other) -> bool:
        if not isinstance(other, SumProductTree):
            return NotImplemented
        return frozenset(self) == frozenset(other)

    __hash__ = None

    def __repr__(self) -> str:
        return f"SumProductTree({self.kind}, count={self.count()})"


# =============================================================================
# Persistence
# =============================================================================


def save_configs(
    path: str | pathlib.Path,
    configs: Iterable[StaticElementVector],
    format: str = "binary",
) -> None:
    """Write configurations to ``path``.

    Args:
        path: Output file.
        configs: Configurations of identical shape.
        format: ``"binary"`` stores the packed little-endian 64-bit words of
            each configuration back to back; the bit length is not stored and
            must be passed to :func:`load_configs`. ``"text"`` writes one line
            of slot values per configuration.
    """
    configs = list(configs)
    path = pathlib.Path(path)
    if format == "binary":
        words = np.array([list(c.data) for c in configs], dtype="<u8")
        path.write_bytes(words.tobytes())
    elif format == "text":
        sep = "" if all(c.nflavor <= 10 for c in configs) else " "
        lines = [sep.join(str(v) for v in c) for c in configs]
        path.write_text("\n".join(lines) + ("\n" if lines else ""), encoding="utf-8")
    else:
        raise ValueError(f"Unknown configuration format: {format!r}. Use 'binary' or 'text'.")


def load_configs(
    path: str | pathlib.Path,
    format: str = "binary",
    bitlength: Optional[int] = None,
    nflavor: int = 2,
) -> List[StaticElementVector]:
    """Read configurations written by :func:`save_configs`.

    ``bitlength`` (the number of slots per configuration) is required for the
    binary format.
    """
    path = pathlib.Path(path)
    if format == "binary":
        if bitlength is None:
            raise ValueError("bitlength is required to load binary configurations.")
        nwords = StaticElementVector.nwords(bitlength, nflavor)
        raw = np.frombuffer(path.read_bytes(), dtype="<u8")
        if raw.size % nwords:
            raise ValueError(
                f"File size does not match {nwords} words per configuration."
            )
        rows = raw.reshape(-1, nwords)
        return [
            StaticElementVector(bitlength, nflavor, tuple(int(w) for w in row)) for row in rows
        ]
    if format == "text":
        configs = []
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line:
                continue
            values = list(line) if nflavor <= 10 else line.split()
            config = encode((int(v) for v in values), nflavor=nflavor)
            if bitlength is not None and len(config) != bitlength:
                raise ValueError(f"Expected {bitlength} slots, got {len(config)}.")
            configs.append(config)
        return configs
    raise ValueError(f"Unknown configuration format: {format!r}. Use 'binary' or 'text'.")
