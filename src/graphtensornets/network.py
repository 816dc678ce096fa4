"""Tensor network encoders for graph problems.

Every problem maps a ``networkx`` graph to a list of labelled tensors. A
label is an integer: a vertex index for independent sets, maximal
independent sets, coloring and max-cut, an edge index for matchings. The
*symbols* of a problem are the objects a configuration is written over,
vertices everywhere except matching and max-cut, whose symbols are edges.

Tensor elements are supplied by a callback ``fx(i)`` called once per
symbol ``i``. For two-flavor problems the callback returns the weight of
the "selected" state and the "unselected" state gets the multiplicative
identity; a list return value gives every flavor explicitly.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import networkx as nx
import numpy as np

from .contraction import ContractionPlan, contract_plan, optimize_code
from .einsum import select_executor, stack_elements
from .semirings import one_of, zero_of

PROBLEM_KINDS = ("independence", "maximal_independence", "matching", "coloring", "maxcut")


@dataclass(frozen=True)
class ProblemContext:
    """Graph data shared by the tensor generators of one problem."""

    kind: str
    nvertices: int
    edges: Tuple[Tuple[int, int], ...]
    nflavor: int
    neighbors: Dict[int, Tuple[int, ...]] = field(default_factory=dict)

    def incident_edges(self, v: int) -> Tuple[int, ...]:
        return tuple(i for i, e in enumerate(self.edges) if v in e)


@dataclass(frozen=True)
class GraphProblem:
    """A graph problem together with its contraction plan."""

    kind: str
    graph: nx.Graph
    plan: ContractionPlan
    symbols: Tuple[Any, ...]
    nflavor: int
    weights: Optional[Tuple[Any, ...]]
    context: ProblemContext

    @property
    def nsymbols(self) -> int:
        return len(self.symbols)

    def weight(self, i: int) -> Any:
        return 1 if self.weights is None else self.weights[i]


def _build_context(kind: str, graph: nx.Graph, nflavor: int) -> Tuple[ProblemContext, List[Any]]:
    vertices = list(graph.nodes)
    index = {v: i for i, v in enumerate(vertices)}
    edges = []
    for u, v in graph.edges:
        if u == v:
            raise ValueError(f"Self loop on vertex {u!r} is not supported.")
        edges.append((index[u], index[v]))
    neighbors = {
        index[v]: tuple(sorted(index[u] for u in graph.neighbors(v))) for v in vertices
    }
    context = ProblemContext(
        kind=kind,
        nvertices=len(vertices),
        edges=tuple(edges),
        nflavor=nflavor,
        neighbors=neighbors,
    )
    return context, vertices


def _labels(context: ProblemContext) -> Tuple[List[Tuple[int, ...]], Dict[int, int]]:
    kind = context.kind
    n = context.nvertices
    if kind == "independence":
        ixs = [(v,) for v in range(n)] + list(context.edges)
    elif kind == "maximal_independence":
        ixs = [context.neighbors[v] + (v,) for v in range(n)]
    elif kind == "matching":
        ixs = [(e,) for e in range(len(context.edges))]
        ixs += [context.incident_edges(v) for v in range(n) if context.incident_edges(v)]
    elif kind == "coloring":
        ixs = [(v,) for v in range(n)] + list(context.edges)
    elif kind == "maxcut":
        ixs = list(context.edges)
    else:
        raise ValueError(f"Unknown problem kind {kind!r}. Expected one of {PROBLEM_KINDS}.")
    size_dict = {v: context.nflavor for ix in ixs for v in ix}
    return ixs, size_dict


def _make_problem(
    kind: str,
    graph: nx.Graph,
    nflavor: int,
    weights: Optional[Sequence[Any]],
    outputs: Sequence[int],
    optimizer: str,
) -> GraphProblem:
    context, vertices = _build_context(kind, graph, nflavor)
    symbols = tuple(graph.edges) if kind in ("matching", "maxcut") else tuple(vertices)
    if weights is not None:
        weights = tuple(weights)
        if len(weights) != len(symbols):
            raise ValueError(
                f"Expected {len(symbols)} weights for {kind}, got {len(weights)}."
            )
    ixs, size_dict = _labels(context)
    if not ixs:
        raise ValueError("Cannot build a tensor network for a graph without tensors.")
    plan = optimize_code(ixs, tuple(outputs), size_dict, optimizer=optimizer)
    return GraphProblem(
        kind=kind,
        graph=graph,
        plan=plan,
        symbols=symbols,
        nflavor=nflavor,
        weights=weights,
        context=context,
    )


def Independence(graph, weights=None, outputs=(), optimizer="greedy") -> GraphProblem:
    """Independent sets; symbols and labels are vertices."""
    return _make_problem("independence", graph, 2, weights, outputs, optimizer)


def MaximalIndependence(graph, weights=None, outputs=(), optimizer="greedy") -> GraphProblem:
    """Maximal independent sets; one tensor per vertex over its closed neighborhood."""
    return _make_problem("maximal_independence", graph, 2, weights, outputs, optimizer)


def Matching(graph, weights=None, outputs=(), optimizer="greedy") -> GraphProblem:
    """Matchings; symbols and labels are edges."""
    return _make_problem("matching", graph, 2, weights, outputs, optimizer)


def Coloring(graph, k: int, weights=None, outputs=(), optimizer="greedy") -> GraphProblem:
    """Proper vertex colorings with ``k`` colors."""
    if k < 2:
        raise ValueError(f"Coloring needs at least 2 colors, got {k}.")
    return _make_problem("coloring", graph, k, weights, outputs, optimizer)


def MaxCut(graph, weights=None, outputs=(), optimizer="greedy") -> GraphProblem:
    """Cuts; labels are vertices (the side of the cut), symbols are edges."""
    return _make_problem("maxcut", graph, 2, weights, outputs, optimizer)


# =============================================================================
# Tensor generation
# =============================================================================

def flavor_values(value: Any, nflavor: int) -> List[Any]:
    """Expand a callback result into one element per flavor."""
    if isinstance(value, (list, tuple)):
        if len(value) != nflavor:
            raise ValueError(f"Expected {nflavor} flavor values, got {len(value)}.")
        return list(value)
    if nflavor == 2:
        return [one_of(value), value]
    return [value] * nflavor


def _independence_tensors(ctx: ProblemContext, xs: List[List[Any]]) -> List[np.ndarray]:
    tensors = [stack_elements(x, (2,)) for x in xs]
    for u, v in ctx.edges:
        one, zero = one_of(xs[u][1]), zero_of(xs[u][1])
        tensors.append(stack_elements([one, one, one, zero], (2, 2)))
    return tensors


def _maximal_independence_tensors(ctx: ProblemContext, xs: List[List[Any]]) -> List[np.ndarray]:
    tensors = []
    for v in range(ctx.nvertices):
        unselected, x = xs[v]
        zero = zero_of(x)
        degree = len(ctx.neighbors[v])
        values = []
        for *nbrs, s in itertools.product((0, 1), repeat=degree + 1):
            if s == 1:
                values.append(x if not any(nbrs) else zero)
            else:
                values.append(unselected if any(nbrs) else zero)
        tensors.append(stack_elements(values, (2,) * (degree + 1)))
    return tensors


def _matching_tensors(ctx: ProblemContext, xs: List[List[Any]]) -> List[np.ndarray]:
    tensors = [stack_elements(x, (2,)) for x in xs]
    for v in range(ctx.nvertices):
        incident = ctx.incident_edges(v)
        if not incident:
            continue
        x = xs[incident[0]][1]
        one, zero = one_of(x), zero_of(x)
        values = [
            one if sum(idx) <= 1 else zero
            for idx in itertools.product((0, 1), repeat=len(incident))
        ]
        tensors.append(stack_elements(values, (2,) * len(incident)))
    return tensors


def _coloring_tensors(ctx: ProblemContext, xs: List[List[Any]]) -> List[np.ndarray]:
    k = ctx.nflavor
    tensors = [stack_elements(x, (k,)) for x in xs]
    for u, v in ctx.edges:
        one, zero = one_of(xs[u][0]), zero_of(xs[u][0])
        values = [zero if a == b else one for a in range(k) for b in range(k)]
        tensors.append(stack_elements(values, (k, k)))
    return tensors


def _maxcut_tensors(ctx: ProblemContext, xs: List[List[Any]]) -> List[np.ndarray]:
    tensors = []
    for unselected, selected in xs:
        tensors.append(stack_elements([unselected, selected, selected, unselected], (2, 2)))
    return tensors


_GENERATORS: Dict[str, Callable[[ProblemContext, List[List[Any]]], List[np.ndarray]]] = {
    "independence": _independence_tensors,
    "maximal_independence": _maximal_independence_tensors,
    "matching": _matching_tensors,
    "coloring": _coloring_tensors,
    "maxcut": _maxcut_tensors,
}


def generate_tensors(fx: Callable[[int], Any], problem: GraphProblem) -> List[np.ndarray]:
    """Leaf tensors of ``problem`` in plan order, as object arrays.

    Args:
        fx: Called once per symbol index; returns the element of the selected
            state, or a list with one element per flavor.
        problem: The graph problem.

    Returns:
        One object array per entry of ``problem.plan.ixs``.
    """
    xs = [flavor_values(fx(i), problem.nflavor) for i in range(problem.nsymbols)]
    return _GENERATORS[problem.kind](problem.context, xs)


def extract_config(problem: GraphProblem, assignment: Dict[int, int]) -> List[int]:
    """Map a label assignment to a configuration over the problem's symbols."""
    if problem.kind == "maxcut":
        return [assignment[u] ^ assignment[v] for u, v in problem.context.edges]
    return [int(assignment[label]) for label in range(problem.nsymbols)]


# =============================================================================
# Evaluation
# =============================================================================

def contractf(fx: Callable[[int], Any], problem: GraphProblem, usecuda: bool = False) -> np.ndarray:
    """Contract the network of ``problem`` with leaf elements from ``fx``.

    Returns:
        Object array over the open labels of the plan; 0-d when none are open.
    """
    tensors = generate_tensors(fx, problem)
    executor = select_executor(tensors[0].reshape(-1)[0], usecuda)
    result = contract_plan(problem.plan, [executor.asarray(t) for t in tensors], executor)
    return executor.to_objects(result)


def contractx(problem: GraphProblem, x: Any, usecuda: bool = False) -> np.ndarray:
    """Contract with the same element ``x`` for every symbol, ignoring weights."""
    return contractf(lambda i: x, problem, usecuda=usecuda)
