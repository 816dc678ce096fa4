"""Contraction executors.

An executor evaluates a single einsum step over one or two tensors. Which
executor runs a contraction is decided once, from the element type of the
leaf tensors:

- ``TorchExecutor(tropical=True)``: ``Tropical`` elements as floats, max-plus.
- ``TorchExecutor(tropical=False)``: plain floats or complex numbers.
- ``ObjectExecutor``: anything else (counting tropical numbers, polynomials,
  modular integers, configuration payloads, exact Python integers), stored
  in ``numpy`` object arrays and combined with the elements' own ``+`` and
  ``*``. CPU only.
"""

from __future__ import annotations

import functools
import operator
from abc import ABC, abstractmethod
from typing import Any, List, Sequence, Tuple

import numpy as np
import torch

from .semirings import Tropical, zero_of
from .tropical_einsum import check_labels, tropical_einsum

_LETTERS = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"


def object_array(shape: Tuple[int, ...], fill=None) -> np.ndarray:
    out = np.empty(shape, dtype=object)
    if fill is not None:
        for idx in np.ndindex(*shape):
            out[idx] = fill
    return out


def _as_object_array(value: Any) -> np.ndarray:
    if isinstance(value, np.ndarray):
        return value
    out = np.empty((), dtype=object)
    out[()] = value
    return out


def _first_element(tensor: np.ndarray) -> Any:
    return tensor.reshape(-1)[0]


def _align_objects(
    tensor: np.ndarray, tensor_vars: Tuple[int, ...], target_vars: Tuple[int, ...]
) -> np.ndarray:
    present = [v for v in target_vars if v in tensor_vars]
    aligned = np.transpose(tensor, [tensor_vars.index(v) for v in present])
    shape = []
    p = 0
    for var in target_vars:
        if var in tensor_vars:
            shape.append(aligned.shape[p])
            p += 1
        else:
            shape.append(1)
    return aligned.reshape(tuple(shape))


def _reduce_objects(
    tensor: np.ndarray, vars: Tuple[int, ...], iy: Tuple[int, ...]
) -> np.ndarray:
    """Semiring sum over labels of ``vars`` missing from ``iy``; result ordered as ``iy``."""
    keep_axes = [vars.index(v) for v in iy]
    elim_axes = [i for i, v in enumerate(vars) if v not in iy]
    permuted = np.transpose(tensor, keep_axes + elim_axes)
    out_shape = permuted.shape[: len(keep_axes)]
    if not elim_axes:
        return np.ascontiguousarray(permuted)
    flat = permuted.reshape(out_shape + (-1,))
    out = np.empty(out_shape, dtype=object)
    for idx in np.ndindex(*out_shape):
        out[idx] = functools.reduce(operator.add, flat[idx])
    return out


class Executor(ABC):
    """Evaluates einsum steps over one element type."""

    device = torch.device("cpu")

    @abstractmethod
    def einsum(self, tensors: List[Any], ixs: List[Tuple[int, ...]], iy: Tuple[int, ...]) -> Any:
        """Contract ``tensors`` labelled ``ixs`` into a tensor labelled ``iy``."""

    @abstractmethod
    def asarray(self, tensor: np.ndarray) -> Any:
        """Convert an object array of elements into this executor's storage."""

    @abstractmethod
    def to_objects(self, tensor: Any) -> np.ndarray:
        """Convert this executor's storage back into an object array of elements."""

    @abstractmethod
    def mask(self, tensor: Any, keep: np.ndarray) -> Any:
        """Replace entries where ``keep`` is false by the additive zero."""


class ObjectExecutor(Executor):
    """Generic semiring einsum on ``numpy`` object arrays."""

    def einsum(self, tensors, ixs, iy):
        ixs = [tuple(ix) for ix in ixs]
        iy = tuple(iy)
        check_labels(ixs, iy)
        if len(tensors) == 1:
            return _reduce_objects(tensors[0], ixs[0], iy)
        if len(tensors) != 2:
            raise ValueError(
                f"n-ary contractions (n={len(tensors)}) are not supported. "
                "Decompose them into binary contractions first."
            )
        all_vars = tuple(dict.fromkeys(ixs[0] + ixs[1]))
        a = _align_objects(tensors[0], ixs[0], all_vars)
        b = _align_objects(tensors[1], ixs[1], all_vars)
        combined = _as_object_array(a * b)
        return _reduce_objects(combined, all_vars, iy)

    def asarray(self, tensor):
        return tensor

    def to_objects(self, tensor):
        return tensor

    def mask(self, tensor, keep):
        out = tensor.copy()
        zero = zero_of(_first_element(tensor))
        for idx in np.ndindex(*tensor.shape):
            if not keep[idx]:
                out[idx] = zero
        return out


class TorchExecutor(Executor):
    """Numeric einsum on torch tensors.

    With ``tropical=True`` elements are ``Tropical`` numbers contracted with
    max-plus; otherwise they are plain numbers contracted with sum-product.
    """

    def __init__(
        self,
        tropical: bool,
        device: str | torch.device = "cpu",
        dtype=torch.float64,
        integral: bool = False,
    ):
        self.tropical = tropical
        self.integral = integral
        self.device = torch.device(device)
        self.dtype = dtype

    def einsum(self, tensors, ixs, iy):
        ixs = [tuple(ix) for ix in ixs]
        iy = tuple(iy)
        if self.tropical:
            values, _ = tropical_einsum(tensors, ixs, iy, track_argmax=False)
            return values
        check_labels(ixs, iy)
        labels = {v: _LETTERS[i] for i, v in enumerate(dict.fromkeys(sum(ixs, ()) + iy))}
        inputs = ",".join("".join(labels[v] for v in ix) for ix in ixs)
        output = "".join(labels[v] for v in iy)
        return torch.einsum(f"{inputs}->{output}", *tensors)

    def asarray(self, tensor):
        if self.tropical:
            values = [x.n for x in tensor.reshape(-1)]
        else:
            values = list(tensor.reshape(-1))
        return torch.tensor(values, dtype=self.dtype, device=self.device).reshape(tensor.shape)

    def to_objects(self, tensor):
        values = tensor.detach().cpu()
        out = np.empty(tuple(values.shape), dtype=object)
        for idx in np.ndindex(*out.shape):
            item = values[idx].item()
            if self.tropical:
                out[idx] = Tropical(float(item))
            elif self.integral:
                out[idx] = int(round(item))
            else:
                out[idx] = item
        return out

    def mask(self, tensor, keep):
        keep = torch.as_tensor(keep, dtype=torch.bool, device=tensor.device)
        fill = float("-inf") if self.tropical else 0
        return torch.where(keep, tensor, torch.full_like(tensor, fill))


def select_executor(sample: Any, usecuda: bool = False) -> Executor:
    """Pick the executor for tensors whose elements look like ``sample``.

    Raises:
        ValueError: if the element type can only be contracted on the CPU but
            ``usecuda`` was requested.
    """
    device = "cuda" if usecuda else "cpu"
    if isinstance(sample, Tropical):
        return TorchExecutor(tropical=True, device=device)
    if isinstance(sample, complex):
        return TorchExecutor(tropical=False, device=device, dtype=torch.complex128)
    if isinstance(sample, float):
        return TorchExecutor(tropical=False, device=device)
    if isinstance(sample, int) and usecuda:
        return TorchExecutor(tropical=False, device=device, integral=True)
    if usecuda:
        raise ValueError(
            f"Elements of type {type(sample).__name__} can not be contracted on an accelerator."
        )
    return ObjectExecutor()


def stack_elements(values: Sequence[Any], shape: Tuple[int, ...]) -> np.ndarray:
    """Object array of ``shape`` filled in row-major order from ``values``."""
    out = np.empty(shape, dtype=object)
    for idx, value in zip(np.ndindex(*shape), values):
        out[idx] = value
    return out


__all__ = [
    "Executor",
    "ObjectExecutor",
    "TorchExecutor",
    "object_array",
    "select_executor",
    "stack_elements",
]
