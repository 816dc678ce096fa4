"""Single optimal configuration by tracing argmax backpointers."""

from __future__ import annotations

from typing import Dict, Iterable, Sequence, Tuple

import torch

from .contraction import (
    ContractionPlan,
    ReduceNode,
    TensorNode,
    TreeNode,
    contract_tree,
)
from .einsum import TorchExecutor
from .tropical_einsum import argmax_trace, tropical_reduce_max


def _require_vars(required: Iterable[int], available: Dict[int, int]) -> None:
    missing = [v for v in required if v not in available]
    if missing:
        raise KeyError(
            "Missing assignment values for variables: "
            f"{missing}. Provided assignment keys: {sorted(available.keys())}"
        )


def recover_assignment(root: TreeNode) -> Dict[int, int]:
    """Assignment of every label, read from the backpointers of a closed tree."""
    assignment: Dict[int, int] = {}

    def traverse(node: TreeNode, out_assignment: Dict[int, int]) -> None:
        assignment.update(out_assignment)
        if isinstance(node, TensorNode):
            return
        elim_assignment = (
            argmax_trace(node.backpointer, out_assignment) if node.backpointer else {}
        )
        combined = {**out_assignment, **elim_assignment}
        children = [node.child] if isinstance(node, ReduceNode) else [node.left, node.right]
        for child in children:
            _require_vars(child.vars, combined)
        for child in children:
            traverse(child, {v: combined[v] for v in child.vars})

    traverse(root, {})
    return assignment


def close_tree(root: TreeNode) -> TreeNode:
    """Reduce any open labels of ``root`` so that it holds a single optimum."""
    if not root.vars:
        return root
    values, backpointer = tropical_reduce_max(
        root.values, root.vars, tuple(root.vars), track_argmax=True
    )
    return ReduceNode(
        vars=(),
        values=values,
        child=root,
        elim_vars=tuple(root.vars),
        backpointer=backpointer,
    )


def solution_ad(
    plan: ContractionPlan, xst: Sequence[torch.Tensor], usecuda: bool = False
) -> Tuple[float, Dict[int, int]]:
    """Optimum of a tropical network and one label assignment reaching it.

    Ties resolve to the first maximal entry of every reduction.

    Args:
        plan: Contraction plan.
        xst: Tropical leaf tensors (max-plus floats) in plan order.
        usecuda: Contract on the ``cuda`` device.

    Returns:
        Tuple of (optimum, assignment) with one value per label of the plan.
    """
    executor = TorchExecutor(tropical=True, device="cuda" if usecuda else "cpu")
    xst = [t.to(executor.device) for t in xst]
    root = close_tree(contract_tree(plan, xst, executor, track_argmax=True))
    return float(root.values.item()), recover_assignment(root)
