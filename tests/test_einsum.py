"""Tests for contraction executors."""

from __future__ import annotations

import numpy as np
import pytest
import torch

from graphtensornets.configs import ConfigEnumerator, StaticBitVector
from graphtensornets.einsum import (
    ObjectExecutor,
    TorchExecutor,
    object_array,
    select_executor,
    stack_elements,
)
from graphtensornets.semirings import CountingTropical, Mod, Polynomial, Tropical


class TestObjectExecutor:
    """Generic semiring einsum on object arrays."""

    def test_matches_numeric_matmul(self):
        a = np.arange(6).reshape(2, 3)
        b = np.arange(12).reshape(3, 4)
        result = ObjectExecutor().einsum(
            [a.astype(object), b.astype(object)], [(0, 1), (1, 2)], (0, 2)
        )
        np.testing.assert_array_equal(result.astype(int), a @ b)

    def test_output_order(self):
        a = np.arange(6).reshape(2, 3).astype(object)
        result = ObjectExecutor().einsum([a], [(0, 1)], (1, 0))
        np.testing.assert_array_equal(result.astype(int), np.arange(6).reshape(2, 3).T)

    def test_scalar_result_is_array(self):
        a = stack_elements([Polynomial([1, 1]), Polynomial([1])], (2,))
        result = ObjectExecutor().einsum([a, a], [(0,), (0,)], ())
        assert result.shape == ()
        assert result.item() == Polynomial([2, 2, 1])

    def test_counting_tropical(self):
        a = stack_elements([CountingTropical(1.0, 1), CountingTropical(1.0, 2)], (2,))
        result = ObjectExecutor().einsum([a], [(0,)], ())
        assert result.item() == CountingTropical(1.0, 3)

    def test_mask_sets_zero(self):
        a = stack_elements([Mod(3, 7), Mod(4, 7)], (2,))
        masked = ObjectExecutor().mask(a, np.array([True, False]))
        assert list(masked) == [Mod(3, 7), Mod(0, 7)]

    def test_set_payloads(self):
        x = ConfigEnumerator.from_configs([StaticBitVector([1, 0])], 2)
        y = ConfigEnumerator.from_configs([StaticBitVector([0, 1])], 2)
        a = stack_elements([x, y], (2,))
        result = ObjectExecutor().einsum([a], [(0,)], ())
        assert len(result.item()) == 2

    def test_nary_rejected(self):
        a = object_array((2,), fill=1)
        with pytest.raises(ValueError, match="n-ary"):
            ObjectExecutor().einsum([a, a, a], [(0,), (0,), (0,)], ())


class TestTorchExecutor:
    """Numeric einsum on torch tensors."""

    def test_sum_product(self):
        executor = TorchExecutor(tropical=False)
        a = executor.asarray(stack_elements([1.0, 2.0, 3.0, 4.0], (2, 2)))
        result = executor.einsum([a, a], [(0, 1), (1, 2)], (0, 2))
        torch.testing.assert_close(result, a @ a)

    def test_tropical_roundtrip(self):
        executor = TorchExecutor(tropical=True)
        objects = stack_elements([Tropical(1.0), Tropical(3.0)], (2,))
        result = executor.einsum([executor.asarray(objects)], [(0,)], ())
        assert executor.to_objects(result).item() == Tropical(3.0)

    def test_mask_uses_additive_zero(self):
        executor = TorchExecutor(tropical=True)
        masked = executor.mask(torch.tensor([1.0, 2.0]), np.array([False, True]))
        assert masked.tolist() == [float("-inf"), 2.0]


class TestSelectExecutor:
    """Executor selection from the element type."""

    def test_tropical(self):
        executor = select_executor(Tropical(1.0))
        assert isinstance(executor, TorchExecutor) and executor.tropical

    def test_float_and_complex(self):
        assert isinstance(select_executor(1.0), TorchExecutor)
        assert select_executor(1j).dtype == torch.complex128

    def test_exact_integers_stay_on_objects(self):
        assert isinstance(select_executor(1), ObjectExecutor)

    def test_objects(self):
        assert isinstance(select_executor(Polynomial([0, 1])), ObjectExecutor)

    @pytest.mark.parametrize("sample", [Polynomial([0, 1]), Mod(3, 7)])
    def test_objects_on_accelerator_rejected(self, sample):
        with pytest.raises(ValueError, match="accelerator"):
            select_executor(sample, usecuda=True)
