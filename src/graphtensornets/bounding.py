"""Bounded two-pass contraction for the k best configurations.

The first pass contracts plain tropical tensors and keeps every intermediate
tensor. Walking the tree back from the root then gives, for each cached
entry, the best value any completion of that entry reaches in the full
network, relative to the optimum of its output slice. An entry whose inside
value plus that outside value falls below ``-(k - 1)`` can not be part of a
configuration among the ``k`` best degrees.

The second pass contracts configuration-carrying tensors along the same plan
and zeroes those entries as soon as they are produced, so sets of
configurations are only ever built for entries that can still matter.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

import numpy as np
import torch

from .contraction import (
    ContractionPlan,
    ContractNode,
    ReduceNode,
    TreeNode,
    contract_tree,
    node_children,
)
from .einsum import ObjectExecutor, TorchExecutor
from .tropical_einsum import align_tensor, tropical_unary

logger = logging.getLogger(__name__)

_ROUNDOFF = 1e-12


@dataclass
class MaskNode:
    """Keep-mask of one cached tensor and the masks of its children."""

    keep: np.ndarray
    children: List["MaskNode"] = field(default_factory=list)


def _outside_of_child(
    parent: TreeNode, g: torch.Tensor, index: int
) -> torch.Tensor:
    """Best completion of every entry of child ``index`` given the parent's."""
    children = node_children(parent)
    child = children[index]
    if isinstance(parent, ReduceNode):
        aligned = align_tensor(g, parent.vars, child.vars)
        return torch.broadcast_to(aligned, tuple(child.values.shape))

    other = children[1 - index]
    all_vars = tuple(dict.fromkeys(child.vars + other.vars + parent.vars))
    combined = align_tensor(g, parent.vars, all_vars) + align_tensor(
        other.values, other.vars, all_vars
    )
    # labels that only the child carries stay at size one until the broadcast
    reduced, _ = tropical_unary(combined, all_vars, child.vars, track_argmax=False)
    return torch.broadcast_to(reduced, tuple(child.values.shape))


def _build_masks(node: TreeNode, g: torch.Tensor, k: int) -> MaskNode:
    keep = (node.values + g) >= -(k - 1) - _ROUNDOFF
    mask = MaskNode(keep=keep.detach().cpu().numpy())
    if isinstance(node, (ContractNode, ReduceNode)):
        for i, child in enumerate(node_children(node)):
            mask.children.append(_build_masks(child, _outside_of_child(node, g, i), k))
    return mask


def root_outside(values: torch.Tensor, ymask: Optional[Any] = None) -> torch.Tensor:
    """Negated optimum per output slice, ``-inf`` where the slice is masked or infeasible."""
    keep = values > float("-inf")
    if ymask is not None:
        keep = keep & torch.as_tensor(np.asarray(ymask, dtype=bool), device=values.device)
    return torch.where(keep, -values, torch.full_like(values, float("-inf")))


def bound_masks(
    k: int, plan: ContractionPlan, xsa: Sequence[torch.Tensor], ymask: Optional[Any] = None
) -> MaskNode:
    """Forward tropical pass and outside pass; returns the keep-mask tree."""
    if k < 1:
        raise ValueError(f"k must be a positive integer, got {k}.")
    device = xsa[0].device if xsa else torch.device("cpu")
    executor = TorchExecutor(tropical=True, device=device)
    root = contract_tree(plan, list(xsa), executor)
    logger.debug("bound pass finished, optimum per output slice: %s", root.values.tolist())
    masks = _build_masks(root, root_outside(root.values, ymask), k)
    logger.debug("outside pass finished")
    return masks


def bounding_contract(
    k: int,
    plan: ContractionPlan,
    xsa: Sequence[torch.Tensor],
    ymask: Optional[Any],
    xsb: Sequence[np.ndarray],
) -> np.ndarray:
    """Contract ``xsb`` along ``plan``, pruned by the tropical bound of ``xsa``.

    Args:
        k: Number of highest degrees to keep.
        plan: Contraction plan shared by both passes.
        xsa: Tropical leaf tensors (torch, max-plus floats) giving the bound.
        ymask: Boolean array over the output labels; slices where it is false
            are discarded. ``None`` keeps every slice.
        xsb: Object-array leaf tensors carrying ``TruncatedPoly`` elements with
            ``k`` terms and configuration payloads.

    Returns:
        Object array over ``plan.iy`` of truncated polynomials whose
        coefficients hold the complete configuration sets of up to ``k``
        degrees.
    """
    masks = bound_masks(k, plan, xsa, ymask)
    root = contract_tree(plan, list(xsb), ObjectExecutor(), masks=masks)
    logger.debug("pruned pass finished")
    return root.values
