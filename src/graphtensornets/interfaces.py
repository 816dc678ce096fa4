"""Solution-space properties of graph problems.

Every function contracts the network of a ``GraphProblem`` once (twice for
the bounded top-k search) and returns an object array over the open labels
of its plan, 0-d when none are open.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from typing import Any, Callable, Optional

import numpy as np

from .backprop import solution_ad
from .bounding import bounding_contract
from .configs import (
    ConfigEnumerator,
    ConfigSampler,
    StaticElementVector,
    SumProductTree,
    encode,
    onehot,
)
from .einsum import TorchExecutor
from .network import GraphProblem, contractf, contractx, extract_config, generate_tensors
from .semirings import (
    CountingTropical,
    Polynomial,
    Semiring,
    Tropical,
    TruncatedPoly,
    zero_of,
)

logger = logging.getLogger(__name__)


def _map(f: Callable[[Any], Any], values: np.ndarray) -> np.ndarray:
    out = np.empty(values.shape, dtype=object)
    for idx in np.ndindex(*values.shape):
        out[idx] = f(values[idx])
    return out


def onehot_value(basetype: type, payload: Any, weight: Any = 1, k: int = 2) -> Any:
    """Element of ``basetype`` carrying ``payload`` at degree ``weight``.

    Args:
        basetype: ``Polynomial``, ``TruncatedPoly`` or ``CountingTropical``.
        payload: Configuration payload of the selected state.
        weight: Degree (size contribution) of the selected state.
        k: Number of terms of a ``TruncatedPoly``.

    Raises:
        ValueError: for a weighted ``Polynomial`` or an unknown ``basetype``.
    """
    if basetype is Polynomial:
        if weight != 1:
            raise ValueError("Polynomial elements only support unit weights.")
        return Polynomial([zero_of(payload), payload])
    if basetype is TruncatedPoly:
        return TruncatedPoly((zero_of(payload),) * (k - 1) + (payload,), weight)
    if basetype is CountingTropical:
        return CountingTropical(weight, payload)
    raise ValueError(f"Unsupported element type {basetype!r} for configuration payloads.")


def _payload_factory(problem: GraphProblem, all: bool, tree_storage: bool):
    n, nflavor = problem.nsymbols, problem.nflavor

    def payload(i: int, flavor: int):
        config = onehot(n, i, flavor, nflavor)
        if not all:
            return ConfigSampler.from_config(config)
        if tree_storage:
            return SumProductTree.leaf(config)
        return ConfigEnumerator.from_configs([config], n, nflavor)

    return payload


def _config_fx(problem: GraphProblem, basetype: type, all: bool, tree_storage: bool, k: int):
    payload = _payload_factory(problem, all, tree_storage)

    def fx(i: int):
        w = problem.weight(i)
        if problem.nflavor == 2:
            return onehot_value(basetype, payload(i, 1), w, k)
        return [onehot_value(basetype, payload(i, c), w, k) for c in range(problem.nflavor)]

    return fx


def _tropical_leaves(problem: GraphProblem, usecuda: bool):
    executor = TorchExecutor(tropical=True, device="cuda" if usecuda else "cpu")
    tensors = generate_tensors(lambda i: Tropical(float(problem.weight(i))), problem)
    return [executor.asarray(t) for t in tensors]


def max_size(problem: GraphProblem, usecuda: bool = False) -> np.ndarray:
    """Largest (weighted) configuration size."""
    values = contractf(lambda i: Tropical(float(problem.weight(i))), problem, usecuda=usecuda)
    return _map(lambda t: t.n, values)


def count_max(problem: GraphProblem, usecuda: bool = False) -> np.ndarray:
    """Largest size together with the number of configurations reaching it."""
    return contractf(
        lambda i: CountingTropical(float(problem.weight(i)), 1), problem, usecuda=usecuda
    )


def count_all(problem: GraphProblem, usecuda: bool = False) -> np.ndarray:
    """Number of valid configurations."""
    return contractx(problem, 1, usecuda=usecuda)


def solutions(
    problem: GraphProblem,
    basetype: type,
    all: bool = False,
    usecuda: bool = False,
    k: int = 2,
    tree_storage: bool = False,
) -> np.ndarray:
    """Contract with configuration-carrying elements of ``basetype``.

    With ``all=False`` each entry keeps a single sampled configuration per
    degree, with ``all=True`` the complete set.
    """
    if all and usecuda:
        raise ValueError("Enumerating all configurations is not supported on an accelerator.")
    return contractf(_config_fx(problem, basetype, all, tree_storage, k), problem, usecuda=usecuda)


def best_solutions(
    problem: GraphProblem,
    all: bool = False,
    usecuda: bool = False,
    tree_storage: bool = False,
) -> np.ndarray:
    """Configurations of the largest size.

    Returns:
        ``CountingTropical`` entries whose payload is a ``ConfigSampler``
        (``all=False``) or the complete set of optimal configurations.
    """
    if all and usecuda:
        raise ValueError("Enumerating all configurations is not supported on an accelerator.")
    if all:
        xsa = _tropical_leaves(problem, usecuda)
        xsb = generate_tensors(_config_fx(problem, TruncatedPoly, True, tree_storage, 1), problem)
        result = bounding_contract(1, problem.plan, xsa, None, xsb)
        return _map(lambda t: CountingTropical(t.maxorder, t.coeffs[-1]), result)
    if problem.plan.iy:
        return solutions(problem, CountingTropical, all=False, usecuda=usecuda)

    optimum, assignment = solution_ad(problem.plan, _tropical_leaves(problem, usecuda), usecuda)
    logger.debug("backpropagated optimum %s", optimum)
    config = encode(extract_config(problem, assignment), problem.nflavor)
    best = np.empty((), dtype=object)
    best[()] = CountingTropical(optimum, ConfigSampler.from_config(config))
    return best


def bestk_solutions(
    problem: GraphProblem,
    k: int,
    ymask: Optional[Any] = None,
    tree_storage: bool = False,
) -> np.ndarray:
    """Complete configuration sets of the ``k`` largest sizes.

    Sizes are counted in whole steps below the optimum, so for ``k > 1``
    every weight must be integral.

    Returns:
        ``TruncatedPoly`` entries of ``k`` terms, each coefficient a set of
        configurations.

    Raises:
        ValueError: if ``k > 1`` and a weight is not a whole number.
    """
    if k > 1:
        fractional = [
            i for i in range(problem.nsymbols) if float(problem.weight(i)) != int(problem.weight(i))
        ]
        if fractional:
            raise ValueError(
                f"bestk_solutions with k={k} needs integer weights; symbols {fractional} "
                "have fractional weights."
            )
    xsa = _tropical_leaves(problem, False)
    xsb = generate_tensors(_config_fx(problem, TruncatedPoly, True, tree_storage, k), problem)
    return bounding_contract(k, problem.plan, xsa, ymask, xsb)


def best2_solutions(
    problem: GraphProblem, ymask: Optional[Any] = None, tree_storage: bool = False
) -> np.ndarray:
    """Configuration sets of the largest and the second largest size."""
    return bestk_solutions(problem, 2, ymask=ymask, tree_storage=tree_storage)


def all_solutions(problem: GraphProblem, tree_storage: bool = False) -> np.ndarray:
    """Every valid configuration, grouped by size into a ``Polynomial``."""
    return solutions(problem, Polynomial, all=True, tree_storage=tree_storage)


def config_list(payload: Any) -> list[StaticElementVector]:
    """Sorted configurations held by a payload."""
    if isinstance(payload, ConfigSampler):
        return [] if payload.data is None else [payload.data]
    return sorted(set(payload))


# =============================================================================
# Minimum-size properties
# =============================================================================


def _negated(problem: GraphProblem) -> GraphProblem:
    weights = tuple(-problem.weight(i) for i in range(problem.nsymbols))
    return dataclasses.replace(problem, weights=weights)


def _flip(t: CountingTropical) -> CountingTropical:
    return CountingTropical(-t.n, t.c)


def min_size(problem: GraphProblem, usecuda: bool = False) -> np.ndarray:
    """Smallest (weighted) configuration size."""
    return _map(lambda n: -n, max_size(_negated(problem), usecuda=usecuda))


def count_min(problem: GraphProblem, usecuda: bool = False) -> np.ndarray:
    """Smallest size together with the number of configurations reaching it."""
    return _map(_flip, count_max(_negated(problem), usecuda=usecuda))


def best_solutions_min(
    problem: GraphProblem,
    all: bool = False,
    usecuda: bool = False,
    tree_storage: bool = False,
) -> np.ndarray:
    """Configurations of the smallest size, as in :func:`best_solutions`."""
    result = best_solutions(
        _negated(problem), all=all, usecuda=usecuda, tree_storage=tree_storage
    )
    return _map(_flip, result)


# =============================================================================
# Open-vertex compaction
# =============================================================================


def _size_of(x: Any) -> float:
    return x.n if isinstance(x, (Tropical, CountingTropical)) else x


def _tropical_zero(x: Any) -> Any:
    return zero_of(x) if isinstance(x, Semiring) else -math.inf


def mis_compactify(values: np.ndarray) -> np.ndarray:
    """Drop open-vertex selections that a smaller selection dominates.

    ``values`` is a tropical result over open vertices, e.g. from
    :func:`max_size` on an ``Independence`` problem with ``outputs``. Axis
    ``i`` set to one means open vertex ``i`` is selected. An entry is replaced
    by the tropical zero when the selection of another entry is a strict
    subset of its own and reaches at least the same size.

    Returns:
        A new array; ``values`` is left untouched.

    Raises:
        ValueError: if an axis is not of size two.
    """
    if any(d != 2 for d in values.shape):
        raise ValueError(f"Expected an axis of size two per open vertex, got shape {values.shape}.")
    out = values.copy()
    entries = list(np.ndindex(*values.shape))
    for a in entries:
        for b in entries:
            subset = a != b and all(y <= x for x, y in zip(a, b))
            if subset and _size_of(values[a]) <= _size_of(values[b]):
                out[a] = _tropical_zero(values[a])
                break
    return out
