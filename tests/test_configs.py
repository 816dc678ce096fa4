"""Tests for bit-packed configurations, payloads and persistence."""

from __future__ import annotations

import random

import pytest

from graphtensornets.configs import (
    ConfigEnumerator,
    ConfigSampler,
    StaticBitVector,
    StaticElementVector,
    SumProductTree,
    bits_per_flavor,
    decode,
    encode,
    load_configs,
    onehot,
    save_configs,
)


@pytest.mark.parametrize("length", [1, 2, 31, 63, 64, 65, 127, 128, 129, 200, 256])
def test_encode_decode_roundtrip(length):
    rng = random.Random(length)
    assignment = [rng.randint(0, 1) for _ in range(length)]
    config = encode(assignment)
    assert decode(config) == assignment
    assert len(config) == length
    assert len(config.data) == (length + 63) // 64


@pytest.mark.parametrize("nflavor", [3, 4, 5, 8])
def test_multi_flavor_roundtrip_across_words(nflavor):
    rng = random.Random(nflavor)
    assignment = [rng.randrange(nflavor) for _ in range(70)]
    config = encode(assignment, nflavor=nflavor)
    assert decode(config) == assignment
    assert all(config[i] == v for i, v in enumerate(assignment))


def test_bits_per_flavor():
    assert bits_per_flavor(2) == 1
    assert bits_per_flavor(3) == 2
    assert bits_per_flavor(4) == 2
    assert bits_per_flavor(5) == 3
    with pytest.raises(ValueError):
        bits_per_flavor(1)


def test_bitwise_operations():
    a = StaticBitVector([1, 0, 1, 0])
    b = StaticBitVector([1, 1, 0, 0])
    assert decode(a | b) == [1, 1, 1, 0]
    assert decode(a & b) == [1, 0, 0, 0]
    assert decode(a ^ b) == [0, 1, 1, 0]


def test_bitwise_shape_mismatch():
    with pytest.raises(ValueError):
        StaticBitVector([1, 0]) | StaticBitVector([1, 0, 1])


def test_onehot():
    assert decode(onehot(5, 2)) == [0, 0, 1, 0, 0]
    assert decode(onehot(4, 3, 2, nflavor=3)) == [0, 0, 0, 2]
    with pytest.raises(IndexError):
        onehot(3, 3)


def test_index_out_of_range():
    config = StaticBitVector([1, 0, 1])
    with pytest.raises(IndexError):
        config[3]


def test_encode_rejects_out_of_range_values():
    with pytest.raises(ValueError):
        encode([0, 2], nflavor=2)


def test_ordering_and_hashing():
    a = StaticBitVector([1, 0])
    b = StaticBitVector([0, 1])
    assert a < b
    assert len({a, StaticBitVector([1, 0])}) == 1
    assert str(b) == "01"


class TestConfigSampler:
    """Tests for the single-configuration payload."""

    def test_add_keeps_first_nonzero(self):
        a = ConfigSampler.from_config(StaticBitVector([1, 0]))
        b = ConfigSampler.from_config(StaticBitVector([0, 1]))
        assert a + b == a
        assert b + a == b
        assert a.zero() + b == b

    def test_mul_ors(self):
        a = ConfigSampler.from_config(StaticBitVector([1, 0]))
        b = ConfigSampler.from_config(StaticBitVector([0, 1]))
        assert (a * b).data == StaticBitVector([1, 1])
        assert (a * a.zero()).data is None


class TestConfigEnumerator:
    """Tests for the deduplicated set payload."""

    def test_union_deduplicates(self):
        a = ConfigEnumerator.from_configs([StaticBitVector([1, 0])], 2)
        b = ConfigEnumerator.from_configs(
            [StaticBitVector([1, 0]), StaticBitVector([0, 1])], 2
        )
        assert len(a + b) == 2

    def test_pairwise_product(self):
        a = ConfigEnumerator.from_configs([StaticBitVector([1, 0, 0]), StaticBitVector([0, 1, 0])], 3)
        b = ConfigEnumerator.from_configs([StaticBitVector([0, 0, 1])], 3)
        assert sorted(decode(c) for c in a * b) == [[0, 1, 1], [1, 0, 1]]

    def test_identities(self):
        a = ConfigEnumerator.from_configs([StaticBitVector([1, 0])], 2)
        assert a * a.one() == a
        assert a + a.zero() == a
        assert len(a * a.zero()) == 0


class TestSumProductTree:
    """Tests for the lazily expanded configuration set."""

    def _leaves(self):
        return [SumProductTree.leaf(onehot(3, i)) for i in range(3)]

    def test_count_and_enumerate(self):
        x0, x1, x2 = self._leaves()
        tree = (x0 + x1) * x2
        assert len(tree) == 2
        assert sorted(decode(c) for c in tree) == [[0, 1, 1], [1, 0, 1]]

    def test_to_enumerator_matches_set_payload(self):
        x0, x1, x2 = self._leaves()
        tree = (x0 + x1) * (x2 + x2.one())
        expected = {
            StaticBitVector(c) for c in ([1, 0, 1], [0, 1, 1], [1, 0, 0], [0, 1, 0])
        }
        assert set(tree.to_enumerator()) == expected

    def test_len_counts_overlapping_branches(self):
        x0, x1, _ = self._leaves()
        tree = (x0 + x1) + x0
        assert len(tree) == 3
        assert len(tree.to_enumerator()) == 2

    def test_is_zero_reads_kind(self):
        x0, _, _ = self._leaves()
        assert x0.zero().is_zero()
        assert not (x0 * x0.one()).is_zero()
        assert (x0 * x0.zero()).is_zero()

    def test_semantic_equality(self):
        x0, x1, _ = self._leaves()
        assert x0 + x1 == x1 + x0
        assert x0 * x0.zero() == x0.zero()
        assert x0 * x0.one() == x0


class TestPersistence:
    """Tests for saving and loading configurations."""

    def _configs(self, length, nflavor=2):
        rng = random.Random(length)
        return [
            encode([rng.randrange(nflavor) for _ in range(length)], nflavor=nflavor)
            for _ in range(5)
        ]

    @pytest.mark.parametrize("length", [3, 64, 100])
    def test_binary_roundtrip(self, tmp_path, length):
        configs = self._configs(length)
        path = tmp_path / "configs.bin"
        save_configs(path, configs, format="binary")
        assert load_configs(path, format="binary", bitlength=length) == configs

    def test_binary_needs_bitlength(self, tmp_path):
        path = tmp_path / "configs.bin"
        save_configs(path, self._configs(4))
        with pytest.raises(ValueError, match="bitlength"):
            load_configs(path, format="binary")

    @pytest.mark.parametrize("nflavor", [2, 3])
    def test_text_roundtrip(self, tmp_path, nflavor):
        configs = self._configs(20, nflavor)
        path = tmp_path / "configs.txt"
        save_configs(path, configs, format="text")
        assert load_configs(path, format="text", nflavor=nflavor) == configs

    def test_text_is_readable(self, tmp_path):
        path = tmp_path / "configs.txt"
        save_configs(path, [StaticBitVector([1, 0, 1])], format="text")
        assert path.read_text() == "101\n"

    def test_unknown_format(self, tmp_path):
        with pytest.raises(ValueError, match="Unknown configuration format"):
            save_configs(tmp_path / "x", [], format="json")

    def test_element_vector_equality(self):
        assert StaticElementVector.zeros(3) == encode([0, 0, 0])
