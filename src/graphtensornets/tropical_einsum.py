"""Tropical einsum on torch tensors with rule-based dispatch.

Tensors hold max-plus numbers as floats:
- "multiplication" = addition
- "addition" = max

Unary rules: Identity, Permutedims, TropicalSum (max reduction).
Binary rule: align both operands to a common label order, add, reduce.
Reductions can record the argmax of every output entry so that a witness
assignment can be traced back afterwards.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import torch


@dataclass
class Backpointer:
    """Stores argmax metadata for eliminated labels."""

    elim_vars: Tuple[int, ...]
    elim_shape: Tuple[int, ...]
    out_vars: Tuple[int, ...]
    argmax_flat: torch.Tensor


def check_labels(ixs: Sequence[Tuple[int, ...]], iy: Tuple[int, ...]) -> None:
    """Reject index patterns this engine does not contract."""
    for ix in list(ixs) + [iy]:
        if len(set(ix)) != len(ix):
            raise ValueError(f"Repeated labels in {ix} are not supported.")
    inputs = set()
    for ix in ixs:
        inputs.update(ix)
    missing = [v for v in iy if v not in inputs]
    if missing:
        raise ValueError(f"Output labels {missing} do not appear in inputs {list(ixs)}.")


# =============================================================================
# Rule Types
# =============================================================================

class EinRule(ABC):
    """Base class for einsum rules."""

    @abstractmethod
    def execute(
        self,
        tensors: List[torch.Tensor],
        ixs: List[Tuple[int, ...]],
        iy: Tuple[int, ...],
        track_argmax: bool = False,
    ) -> Tuple[torch.Tensor, Optional[Backpointer]]:
        """Execute the rule."""


class Identity(EinRule):
    """Identity: ix == iy, just copy."""

    def execute(self, tensors, ixs, iy, track_argmax=False):
        return tensors[0].clone(), None


class Permutedims(EinRule):
    """Permute dimensions."""

    def execute(self, tensors, ixs, iy, track_argmax=False):
        perm = tuple(ixs[0].index(v) for v in iy)
        return tensors[0].permute(perm).contiguous(), None


class TropicalSum(EinRule):
    """Tropical sum: max reduction over eliminated dimensions."""

    def execute(self, tensors, ixs, iy, track_argmax=False):
        return tropical_unary(tensors[0], ixs[0], iy, track_argmax)


class BinaryRule(EinRule):
    """Binary contraction: broadcast add, then max over eliminated labels."""

    def execute(self, tensors, ixs, iy, track_argmax=False):
        return tropical_binary(tensors[0], tensors[1], ixs[0], ixs[1], iy, track_argmax)


def match_rule(ixs: List[Tuple[int, ...]], iy: Tuple[int, ...]) -> EinRule:
    """Match contraction pattern to a rule."""
    check_labels(ixs, iy)
    if len(ixs) == 1:
        ix = ixs[0]
        if ix == iy:
            return Identity()
        if set(ix) == set(iy):
            return Permutedims()
        return TropicalSum()
    if len(ixs) == 2:
        return BinaryRule()
    raise ValueError(
        f"n-ary contractions (n={len(ixs)}) are not supported. "
        "Decompose them into binary contractions first."
    )


# =============================================================================
# Execution Functions
# =============================================================================

def align_tensor(
    tensor: torch.Tensor,
    tensor_vars: Tuple[int, ...],
    target_vars: Tuple[int, ...],
) -> torch.Tensor:
    """Align tensor dimensions to target label order, size 1 for absent labels."""
    if not target_vars:
        return tensor.reshape(())
    if not tensor_vars:
        return tensor.reshape((1,) * len(target_vars))

    present = [v for v in target_vars if v in tensor_vars]
    perm = [tensor_vars.index(v) for v in present]
    aligned = tensor if perm == list(range(len(tensor_vars))) else tensor.permute(perm)

    shape = []
    p = 0
    for var in target_vars:
        if var in tensor_vars:
            shape.append(aligned.shape[p])
            p += 1
        else:
            shape.append(1)
    return aligned.reshape(tuple(shape))


def tropical_reduce_max(
    tensor: torch.Tensor,
    vars: Tuple[int, ...],
    elim_vars: Tuple[int, ...],
    track_argmax: bool = True,
) -> Tuple[torch.Tensor, Optional[Backpointer]]:
    """Tropical sum (max) over ``elim_vars``.

    Ties resolve to the first maximal entry in row-major order of the
    eliminated labels.
    """
    if not elim_vars:
        return tensor, None

    missing_vars = [v for v in elim_vars if v not in vars]
    if missing_vars:
        raise ValueError(
            f"Elimination variables {missing_vars} are not present in vars {vars}"
        )

    elim_axes = [vars.index(v) for v in elim_vars]
    keep_axes = [i for i in range(len(vars)) if i not in elim_axes]

    perm = keep_axes + elim_axes
    permuted = tensor.permute(perm) if perm != list(range(len(vars))) else tensor

    out_shape = [tensor.shape[i] for i in keep_axes]
    elim_shape = [tensor.shape[i] for i in elim_axes]

    flat = permuted.reshape(*out_shape, -1) if out_shape else permuted.reshape(-1)
    values = torch.amax(flat, dim=-1)

    if not track_argmax:
        return values, None

    backpointer = Backpointer(
        elim_vars=tuple(elim_vars),
        elim_shape=tuple(elim_shape),
        out_vars=tuple(vars[i] for i in keep_axes),
        argmax_flat=torch.argmax(flat, dim=-1),
    )
    return values, backpointer


def tropical_binary(
    a: torch.Tensor,
    b: torch.Tensor,
    ix1: Tuple[int, ...],
    ix2: Tuple[int, ...],
    iy: Tuple[int, ...],
    track_argmax: bool = True,
) -> Tuple[torch.Tensor, Optional[Backpointer]]:
    """Binary max-plus contraction."""
    all_vars = tuple(dict.fromkeys(ix1 + ix2))
    elim_vars = tuple(v for v in all_vars if v not in iy)

    combined = align_tensor(a, ix1, all_vars) + align_tensor(b, ix2, all_vars)

    if not elim_vars:
        if all_vars != iy:
            perm = [all_vars.index(v) for v in iy]
            combined = combined.permute(perm)
        return combined.contiguous(), None

    values, backpointer = tropical_reduce_max(combined, all_vars, elim_vars, track_argmax)
    kept = tuple(v for v in all_vars if v in iy)
    if kept != iy:
        perm = [kept.index(v) for v in iy]
        values = values.permute(perm).contiguous()
        if backpointer is not None:
            backpointer.argmax_flat = backpointer.argmax_flat.permute(perm).contiguous()
            backpointer.out_vars = iy
    return values, backpointer


def tropical_unary(
    x: torch.Tensor,
    ix: Tuple[int, ...],
    iy: Tuple[int, ...],
    track_argmax: bool = True,
) -> Tuple[torch.Tensor, Optional[Backpointer]]:
    """Max over labels of ``ix`` missing from ``iy``, then permute to ``iy``."""
    elim_vars = tuple(v for v in ix if v not in iy)
    if not elim_vars:
        if ix != iy:
            perm = [ix.index(v) for v in iy]
            return x.permute(perm).contiguous(), None
        return x.clone(), None

    values, backpointer = tropical_reduce_max(x, ix, elim_vars, track_argmax)
    kept = tuple(v for v in ix if v in iy)
    if kept != iy:
        perm = [kept.index(v) for v in iy]
        values = values.permute(perm).contiguous()
        if backpointer is not None:
            backpointer.argmax_flat = backpointer.argmax_flat.permute(perm).contiguous()
            backpointer.out_vars = iy
    return values, backpointer


# =============================================================================
# Main API
# =============================================================================

def tropical_einsum(
    tensors: List[torch.Tensor],
    ixs: List[Tuple[int, ...]],
    iy: Tuple[int, ...],
    track_argmax: bool = True,
) -> Tuple[torch.Tensor, Optional[Backpointer]]:
    """Tropical einsum over one or two tensors.

    Args:
        tensors: Input tensors holding max-plus numbers.
        ixs: Label tuples for each tensor.
        iy: Output labels.
        track_argmax: Whether to record argmax for backtracing.

    Returns:
        Result tensor and optional backpointer.

    Example:
        # C[i,k] = max_j(A[i,j] + B[j,k])
        result, bp = tropical_einsum([A, B], [(0, 1), (1, 2)], (0, 2))
    """
    ixs = [tuple(ix) for ix in ixs]
    rule = match_rule(ixs, tuple(iy))
    return rule.execute(tensors, ixs, tuple(iy), track_argmax)


def argmax_trace(backpointer: Backpointer, assignment: Dict[int, int]) -> Dict[int, int]:
    """Decode eliminated label values from a backpointer."""
    if not backpointer.elim_vars:
        return {}

    if backpointer.out_vars:
        missing = [v for v in backpointer.out_vars if v not in assignment]
        if missing:
            raise KeyError(
                f"Missing assignment values for output variables: {missing}"
            )
        idx = tuple(assignment[v] for v in backpointer.out_vars)
        flat = int(backpointer.argmax_flat[idx].item())
    else:
        flat = int(backpointer.argmax_flat.item())

    values = []
    for size in reversed(backpointer.elim_shape):
        values.append(flat % size)
        flat //= size
    values = list(reversed(values))

    return {var: int(val) for var, val in zip(backpointer.elim_vars, values)}
