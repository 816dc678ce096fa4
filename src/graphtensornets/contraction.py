"""Contraction planning and binary contraction tree execution."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

import omeco

from .einsum import Executor, TorchExecutor
from .tropical_einsum import Backpointer, tropical_einsum

logger = logging.getLogger(__name__)

OPTIMIZERS = ("greedy", "treesa", "raw")


class ContractionComplexity(NamedTuple):
    """log2 of time, space and read-write cost of a plan."""

    tc: float
    sc: float
    rwc: float


@dataclass(frozen=True)
class ContractionPlan:
    """A fixed binary contraction tree over labelled leaf tensors.

    ``tree`` follows omeco's dictionary layout: leaves are
    ``{"tensor_index": i}``, internal nodes are
    ``{"args": [...], "eins": {"ixs": [[...], ...], "iy": [...]}}``.
    """

    tree: dict
    ixs: Tuple[Tuple[int, ...], ...]
    iy: Tuple[int, ...]
    size_dict: Dict[int, int]
    complexity: ContractionComplexity

    @property
    def labels(self) -> Tuple[int, ...]:
        return tuple(dict.fromkeys(v for ix in self.ixs for v in ix))


@dataclass(frozen=True)
class TensorNode:
    """Leaf tensor with its labels."""

    vars: Tuple[int, ...]
    values: Any


@dataclass
class ContractNode:
    vars: Tuple[int, ...]
    values: Any
    left: "TreeNode"
    right: "TreeNode"
    elim_vars: Tuple[int, ...]
    backpointer: Backpointer | None


@dataclass
class ReduceNode:
    vars: Tuple[int, ...]
    values: Any
    child: "TreeNode"
    elim_vars: Tuple[int, ...]
    backpointer: Backpointer | None


TreeNode = TensorNode | ContractNode | ReduceNode


def _infer_var_sizes(nodes: Iterable[TensorNode]) -> dict[int, int]:
    sizes: dict[int, int] = {}
    for node in nodes:
        for var, dim in zip(node.vars, node.values.shape):
            if var in sizes and sizes[var] != dim:
                raise ValueError(
                    f"Variable {var} has inconsistent sizes: {sizes[var]} vs {dim}."
                )
            sizes[var] = int(dim)
    return sizes


def _find_connected_components(ixs: Sequence[Sequence[int]]) -> list[list[int]]:
    """Group tensor indices into components connected by shared labels (union-find)."""
    n = len(ixs)
    parent = list(range(n))

    def find(x):
        if parent[x] != x:
            parent[x] = find(parent[x])
        return parent[x]

    var_to_tensors: dict[int, list[int]] = {}
    for i, vars in enumerate(ixs):
        for v in vars:
            var_to_tensors.setdefault(v, []).append(i)

    for tensors in var_to_tensors.values():
        for i in tensors[1:]:
            px, py = find(tensors[0]), find(i)
            if px != py:
                parent[px] = py

    components: dict[int, list[int]] = {}
    for i in range(n):
        components.setdefault(find(i), []).append(i)
    return list(components.values())


# =============================================================================
# Planning
# =============================================================================

def _tree_output(node: dict, ixs: Sequence[Tuple[int, ...]]) -> Tuple[int, ...]:
    if "tensor_index" in node:
        return tuple(ixs[node["tensor_index"]])
    return tuple(node["eins"]["iy"])


def _node(args: list[dict], ixs: Sequence[Tuple[int, ...]], iy: Iterable[int]) -> dict:
    return {
        "args": args,
        "eins": {"ixs": [list(_tree_output(a, ixs)) for a in args], "iy": list(iy)},
    }


def _normalize(node: dict, ixs: Sequence[Tuple[int, ...]], remap: Sequence[int]) -> dict:
    """Remap leaf indices into the full network and split n-ary nodes into binary steps."""
    if "tensor_index" in node:
        return {"tensor_index": remap[node["tensor_index"]]}
    args = [_normalize(a, ixs, remap) for a in node.get("args", node.get("children", []))]
    iy = node["eins"]["iy"]
    if len(args) <= 2:
        return _node(args, ixs, iy)
    result = args[0]
    for arg in args[1:-1]:
        merged = dict.fromkeys(_tree_output(result, ixs) + _tree_output(arg, ixs))
        result = _node([result, arg], ixs, merged)
    return _node([result, args[-1]], ixs, iy)


def _raw_chain(
    members: Sequence[int], ixs: Sequence[Tuple[int, ...]], out: Tuple[int, ...]
) -> dict:
    """Contract tensors left to right, dropping labels as soon as nothing later needs them."""
    result: dict = {"tensor_index": members[0]}
    for pos, i in enumerate(members[1:], start=1):
        needed = set(out)
        for j in members[pos + 1:]:
            needed.update(ixs[j])
        merged = _tree_output(result, ixs) + tuple(ixs[i])
        iy = [v for v in dict.fromkeys(merged) if v in needed]
        result = _node([result, {"tensor_index": i}], ixs, iy)
    return result


def _optimize_component(
    members: Sequence[int],
    ixs: Sequence[Tuple[int, ...]],
    out: Tuple[int, ...],
    size_dict: Dict[int, int],
    optimizer: str,
) -> dict:
    if len(members) == 1:
        leaf = {"tensor_index": members[0]}
        if tuple(ixs[members[0]]) == out:
            return leaf
        return _node([leaf], ixs, out)
    if optimizer == "raw":
        return _raw_chain(members, ixs, out)

    comp_ixs = [list(ixs[i]) for i in members]
    comp_sizes = {v: size_dict[v] for ix in comp_ixs for v in ix}
    method = omeco.GreedyMethod() if optimizer == "greedy" else omeco.TreeSA.fast()
    tree = omeco.optimize_code(comp_ixs, list(out), comp_sizes, method)
    root = _normalize(tree.to_dict(), ixs, members)
    if _tree_output(root, ixs) != out:
        root = _node([root], ixs, out)
    return root


def contraction_complexity(
    tree: dict, ixs: Sequence[Tuple[int, ...]], size_dict: Dict[int, int]
) -> ContractionComplexity:
    """Time, space and read-write complexity (log2) of a contraction tree."""

    def size(labels: Iterable[int]) -> int:
        return math.prod(size_dict[v] for v in labels)

    tc = 0
    sc = max((size(ix) for ix in ixs), default=1)
    rwc = 0

    def visit(node: dict) -> None:
        nonlocal tc, sc, rwc
        if "tensor_index" in node:
            return
        for arg in node["args"]:
            visit(arg)
        inputs = [tuple(ix) for ix in node["eins"]["ixs"]]
        iy = tuple(node["eins"]["iy"])
        tc += size(dict.fromkeys(sum(inputs, ()) + iy))
        sc = max(sc, size(iy))
        rwc += size(iy) + sum(size(ix) for ix in inputs)

    visit(tree)
    return ContractionComplexity(
        math.log2(max(tc, 1)), math.log2(max(sc, 1)), math.log2(max(rwc, 1))
    )


def optimize_code(
    ixs: Sequence[Sequence[int]],
    iy: Sequence[int],
    size_dict: Dict[int, int],
    optimizer: str = "greedy",
) -> ContractionPlan:
    """Build a contraction plan for tensors labelled ``ixs`` with open labels ``iy``.

    Disconnected components are planned separately and joined by outer
    products.

    Args:
        ixs: Label tuple of every leaf tensor.
        iy: Labels left open in the output tensor.
        size_dict: Dimension of every label.
        optimizer: ``"greedy"`` (omeco greedy search), ``"treesa"`` (omeco
            tree simulated annealing) or ``"raw"`` (left-to-right order).

    Returns:
        The plan with its complexity, which is also logged at INFO level.
    """
    if optimizer not in OPTIMIZERS:
        raise ValueError(
            f"Unknown contraction optimizer {optimizer!r}. Expected one of {OPTIMIZERS}."
        )
    ixs = tuple(tuple(ix) for ix in ixs)
    iy = tuple(iy)
    if not ixs:
        raise ValueError("Cannot contract empty list of tensors")
    labels = set(v for ix in ixs for v in ix)
    missing = [v for v in iy if v not in labels]
    if missing:
        raise ValueError(f"Output labels {missing} do not appear in any tensor.")
    unsized = [v for v in labels if v not in size_dict]
    if unsized:
        raise ValueError(f"Labels {sorted(unsized)} have no size.")

    trees = []
    for members in _find_connected_components(ixs):
        comp_labels = set(v for i in members for v in ixs[i])
        out = tuple(v for v in iy if v in comp_labels)
        trees.append(_optimize_component(members, ixs, out, size_dict, optimizer))

    root = trees[0]
    for tree in trees[1:]:
        merged = _tree_output(root, ixs) + _tree_output(tree, ixs)
        root = _node([root, tree], ixs, merged)
    if _tree_output(root, ixs) != iy:
        root = _node([root], ixs, iy)

    complexity = contraction_complexity(root, ixs, size_dict)
    logger.info(
        "time/space/read-write complexity is 2^%.2f, 2^%.2f, 2^%.2f",
        complexity.tc,
        complexity.sc,
        complexity.rwc,
    )
    return ContractionPlan(
        tree=root, ixs=ixs, iy=iy, size_dict=dict(size_dict), complexity=complexity
    )


# =============================================================================
# Execution
# =============================================================================

def _check_leaves(plan: ContractionPlan, tensors: Sequence[Any]) -> List[TensorNode]:
    if len(tensors) != len(plan.ixs):
        raise ValueError(f"Plan expects {len(plan.ixs)} tensors, got {len(tensors)}.")
    leaves = [TensorNode(vars=ix, values=t) for ix, t in zip(plan.ixs, tensors)]
    for leaf in leaves:
        if len(leaf.vars) != len(leaf.values.shape):
            raise ValueError(
                f"Tensor of shape {tuple(leaf.values.shape)} does not match labels {leaf.vars}."
            )
    _infer_var_sizes(leaves)
    return leaves


def _check_step(node: dict, child_vars: Sequence[Tuple[int, ...]]) -> Tuple[int, ...]:
    expected = [tuple(ix) for ix in node["eins"]["ixs"]]
    if expected != list(child_vars):
        raise ValueError(
            f"Malformed contraction plan: step expects inputs {expected}, "
            f"got {list(child_vars)}."
        )
    return tuple(node["eins"]["iy"])


def contract_plan(plan: ContractionPlan, tensors: Sequence[Any], executor: Executor) -> Any:
    """Evaluate ``plan``, keeping no intermediate tensor beyond its consumer."""
    leaves = _check_leaves(plan, tensors)

    def recurse(node: dict) -> Tuple[Tuple[int, ...], Any]:
        if "tensor_index" in node:
            leaf = leaves[node["tensor_index"]]
            return leaf.vars, leaf.values
        results = [recurse(arg) for arg in node["args"]]
        iy = _check_step(node, [r[0] for r in results])
        values = executor.einsum([r[1] for r in results], [r[0] for r in results], iy)
        return iy, values

    return recurse(plan.tree)[1]


def contract_tree(
    plan: ContractionPlan,
    tensors: Sequence[Any],
    executor: Executor,
    track_argmax: bool = False,
    masks: Optional[Any] = None,
) -> TreeNode:
    """Contract tensors following ``plan``, caching every intermediate tensor.

    Args:
        plan: Contraction plan.
        tensors: Leaf tensors in the executor's storage, in plan order.
        executor: Executor used for every step.
        track_argmax: Record argmax backpointers (tropical torch executor only).
        masks: Optional tree of ``keep`` arrays parallel to ``plan.tree``
            (``.keep`` and ``.children``); entries that are not kept are set
            to the additive zero right after they are computed.

    Returns:
        Root TreeNode with contracted result and backpointers.
    """
    if track_argmax and not (isinstance(executor, TorchExecutor) and executor.tropical):
        raise ValueError("Argmax tracking needs the tropical torch executor.")
    leaves = _check_leaves(plan, tensors)

    def recurse(node: dict, mask) -> TreeNode:
        if "tensor_index" in node:
            leaf = leaves[node["tensor_index"]]
            if mask is None:
                return leaf
            return TensorNode(vars=leaf.vars, values=executor.mask(leaf.values, mask.keep))

        submasks = mask.children if mask is not None else [None] * len(node["args"])
        children = [recurse(arg, m) for arg, m in zip(node["args"], submasks)]
        iy = _check_step(node, [c.vars for c in children])
        tensors_ = [c.values for c in children]
        ixs_ = [c.vars for c in children]
        if track_argmax:
            values, backpointer = tropical_einsum(tensors_, ixs_, iy, track_argmax=True)
        else:
            values, backpointer = executor.einsum(tensors_, ixs_, iy), None
        if mask is not None:
            values = executor.mask(values, mask.keep)

        all_input = tuple(dict.fromkeys(sum(ixs_, ())))
        elim_vars = tuple(v for v in all_input if v not in iy)
        if len(children) == 2:
            return ContractNode(
                vars=iy,
                values=values,
                left=children[0],
                right=children[1],
                elim_vars=elim_vars,
                backpointer=backpointer,
            )
        return ReduceNode(
            vars=iy,
            values=values,
            child=children[0],
            elim_vars=elim_vars,
            backpointer=backpointer,
        )

    return recurse(plan.tree, masks)


def node_children(node: TreeNode) -> List[TreeNode]:
    if isinstance(node, ContractNode):
        return [node.left, node.right]
    if isinstance(node, ReduceNode):
        return [node.child]
    return []
