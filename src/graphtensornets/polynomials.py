"""Counting polynomials of graph problems.

The coefficient of ``x**d`` counts the configurations of size ``d``. Four
strategies compute it:

- ``"polynomial"``: contract with dense ``Polynomial`` elements. Exact.
- ``"finitefield"``: contract with integers modulo large primes at
  ``x = 0..maxorder``, solve the Vandermonde system in GF(p) and combine the
  primes by the Chinese remainder theorem until the result stops changing.
  Exact.
- ``"fft"``: evaluate at ``r`` times the roots of unity and invert with an
  FFT. Floating point.
- ``"fitting"``: evaluate at ``0..maxorder`` and fit by least squares.
  Floating point.
"""

from __future__ import annotations

import logging
import warnings
from typing import Any, Iterator, List, Optional

import galois
import numpy as np
from numpy.polynomial import polynomial as npoly

from .network import GraphProblem, contractx
from .semirings import Mod, Polynomial, Tropical

logger = logging.getLogger(__name__)

METHODS = ("polynomial", "finitefield", "fft", "fitting")


class InconsistentResultWarning(UserWarning):
    """The finite-field reconstruction did not settle within the prime budget."""


class PrimeGenerator:
    """Descending primes, starting from the largest prime not above ``start``.

    The generator is owned by the caller; successive calls to
    ``graph_polynomial`` sharing one instance use fresh primes.
    """

    def __init__(self, start: int = 2**31 - 1):
        self._next = start

    def __iter__(self) -> Iterator[int]:
        return self

    def __next__(self) -> int:
        p = int(galois.prev_prime(self._next))
        self._next = p - 1
        return p


def graph_polynomial_maxorder(problem: GraphProblem, usecuda: bool = False) -> int:
    """Largest configuration size with unit weights."""
    if problem.kind == "coloring":
        raise ValueError("Counting polynomials are not defined for coloring problems.")
    values = contractx(problem, Tropical(1.0), usecuda=usecuda)
    return int(max(v.n for v in values.reshape(-1)))


def _stack_evaluations(problem: GraphProblem, points: List[Any], usecuda: bool) -> np.ndarray:
    """Network values at every point, stacked along a leading axis."""
    results = [contractx(problem, x, usecuda=usecuda) for x in points]
    shape = results[0].shape
    out = np.empty((len(points),) + shape, dtype=object)
    for i, r in enumerate(results):
        for idx in np.ndindex(*shape):
            out[(i,) + idx] = r[idx]
    return out


def _to_polynomials(coeffs: np.ndarray, shape) -> np.ndarray:
    """Object array of ``shape`` from a (degree, slice) coefficient matrix."""
    out = np.empty(shape, dtype=object)
    for j, idx in enumerate(np.ndindex(*shape)):
        out[idx] = Polynomial(list(coeffs[:, j]))
    return out


def _solve_mod(ys: np.ndarray, p: int) -> np.ndarray:
    """Coefficients modulo ``p`` of the polynomials taking values ``ys`` at ``0..n-1``."""
    n = ys.shape[0]
    GF = galois.GF(p)
    vandermonde = GF([[pow(x, d, p) for d in range(n)] for x in range(n)])
    rhs = GF([[int(y) for y in row] for row in ys])
    solution = np.linalg.solve(vandermonde, rhs)
    return np.array([[int(c) for c in row] for row in solution], dtype=object)


def _finitefield(
    problem: GraphProblem,
    maxorder: int,
    primes: PrimeGenerator,
    max_iter: int,
) -> np.ndarray:
    residues = []
    moduli = []
    previous = None
    for _ in range(max_iter):
        p = next(primes)
        ys = _stack_evaluations(problem, [Mod(x, p) for x in range(maxorder + 1)], False)
        shape = ys.shape[1:]
        residues.append(_solve_mod(ys.reshape(maxorder + 1, -1), p))
        moduli.append(p)
        current = np.empty(residues[0].shape, dtype=object)
        for idx in np.ndindex(*current.shape):
            current[idx] = int(galois.crt([int(r[idx]) for r in residues], moduli))
        if previous is not None and np.array_equal(previous, current):
            logger.debug("finite field reconstruction converged after %d primes", len(moduli))
            return _to_polynomials(current, shape)
        previous = current
    warnings.warn(
        f"Finite field reconstruction did not converge after {max_iter} primes.",
        InconsistentResultWarning,
        stacklevel=3,
    )
    return _to_polynomials(previous, shape)


def _fft(problem: GraphProblem, maxorder: int, r: float, usecuda: bool) -> np.ndarray:
    n = maxorder + 1
    omega = np.exp(-2j * np.pi / n)
    points = [complex(r * omega**j) for j in range(n)]
    ys = _stack_evaluations(problem, points, usecuda)
    shape = ys.shape[1:]
    values = np.asarray(ys.reshape(n, -1), dtype=complex)
    scale = np.array([r**j for j in range(n)], dtype=float).reshape(n, 1)
    coeffs = np.real(np.fft.ifft(values, axis=0)) / scale
    return _to_polynomials(coeffs, shape)


def _fitting(problem: GraphProblem, maxorder: int, usecuda: bool) -> np.ndarray:
    n = maxorder + 1
    ys = _stack_evaluations(problem, [float(x) for x in range(n)], usecuda)
    shape = ys.shape[1:]
    values = np.asarray(ys.reshape(n, -1), dtype=float)
    coeffs = npoly.polyfit(np.arange(n, dtype=float), values, maxorder)
    return _to_polynomials(coeffs.reshape(n, -1), shape)


def graph_polynomial(
    problem: GraphProblem,
    method: str = "finitefield",
    usecuda: bool = False,
    maxorder: Optional[int] = None,
    r: float = 1.0,
    max_iter: int = 100,
    primes: Optional[PrimeGenerator] = None,
) -> np.ndarray:
    """Counting polynomial of ``problem``, one per slice of the open labels.

    Args:
        problem: The graph problem. Weights are ignored.
        method: One of ``"polynomial"``, ``"finitefield"``, ``"fft"`` and
            ``"fitting"``.
        usecuda: Contract numeric evaluations on the ``cuda`` device.
        maxorder: Degree of the polynomial; defaults to the largest
            configuration size.
        r: Radius of the evaluation circle of the ``"fft"`` method.
        max_iter: Prime budget of the ``"finitefield"`` method.
        primes: Prime source of the ``"finitefield"`` method; a fresh
            ``PrimeGenerator`` by default.

    Returns:
        Object array of ``Polynomial`` over the open labels; 0-d when none
        are open.
    """
    if method not in METHODS:
        raise ValueError(f"Unknown polynomial method {method!r}. Expected one of {METHODS}.")
    if problem.kind == "coloring":
        raise ValueError("Counting polynomials are not defined for coloring problems.")
    if max_iter < 1:
        raise ValueError(f"max_iter must be at least 1, got {max_iter}.")
    if method in ("polynomial", "finitefield") and usecuda:
        raise ValueError(f"Method {method!r} contracts on the CPU only.")

    if method == "polynomial":
        return contractx(problem, Polynomial([0, 1]))

    if maxorder is None:
        maxorder = graph_polynomial_maxorder(problem, usecuda=usecuda)
    logger.debug("computing counting polynomial of degree %d with %s", maxorder, method)
    if method == "finitefield":
        return _finitefield(problem, maxorder, primes or PrimeGenerator(), max_iter)
    if method == "fft":
        return _fft(problem, maxorder, r, usecuda)
    return _fitting(problem, maxorder, usecuda)
