"""Tests for counting polynomial strategies."""

from __future__ import annotations

import networkx as nx
import pytest

from bruteforce import size_counts
from graphtensornets.network import Coloring, Independence, Matching, MaximalIndependence
from graphtensornets.polynomials import (
    InconsistentResultWarning,
    PrimeGenerator,
    graph_polynomial,
    graph_polynomial_maxorder,
)
from graphtensornets.semirings import Polynomial

METHODS = ["polynomial", "finitefield", "fft", "fitting"]


def _coefficients(result):
    return [float(c) for c in result.item().coeffs]


@pytest.mark.parametrize("method", METHODS)
def test_complete_graph(method):
    """The independence polynomial of K4 is 1 + 4x."""
    result = graph_polynomial(Independence(nx.complete_graph(4)), method=method)
    assert _coefficients(result) == pytest.approx([1.0, 4.0], abs=1e-8)


@pytest.mark.parametrize("method", METHODS)
def test_methods_agree_with_bruteforce(method):
    graph = nx.petersen_graph()
    result = graph_polynomial(Independence(graph), method=method)
    expected = size_counts("independence", graph)
    assert _coefficients(result)[: len(expected)] == pytest.approx(expected, rel=1e-6, abs=1e-6)


def test_exact_methods_return_integers():
    graph = nx.cycle_graph(6)
    for method in ("polynomial", "finitefield"):
        result = graph_polynomial(Matching(graph), method=method).item()
        assert result == Polynomial(size_counts("matching", graph))
        assert all(isinstance(c, int) for c in result.coeffs)


def test_fft_with_radius():
    graph = nx.path_graph(6)
    result = graph_polynomial(MaximalIndependence(graph), method="fft", r=2.0)
    expected = size_counts("maximal_independence", graph)
    assert _coefficients(result) == pytest.approx(expected, abs=1e-8)


def test_open_outputs():
    problem = Independence(nx.path_graph(3), outputs=(0,))
    result = graph_polynomial(problem, method="finitefield")
    assert result.shape == (2,)
    assert result[0] == Polynomial([1, 2])
    assert result[1] == Polynomial([0, 1, 1])


def test_maxorder():
    assert graph_polynomial_maxorder(Independence(nx.petersen_graph())) == 4


def test_prime_generator_descends():
    primes = PrimeGenerator()
    first, second = next(primes), next(primes)
    assert first == 2**31 - 1
    assert second < first


def test_shared_prime_generator_is_advanced():
    primes = PrimeGenerator()
    graph_polynomial(Independence(nx.path_graph(3)), method="finitefield", primes=primes)
    assert next(primes) < 2**31 - 1


def test_non_convergence_warns():
    problem = Independence(nx.path_graph(3))
    with pytest.warns(InconsistentResultWarning):
        result = graph_polynomial(problem, method="finitefield", max_iter=1)
    assert result.item() == Polynomial([1, 3, 1])


def test_unknown_method():
    with pytest.raises(ValueError, match="Unknown polynomial method"):
        graph_polynomial(Independence(nx.path_graph(3)), method="laurent")


def test_exact_methods_reject_accelerator():
    with pytest.raises(ValueError, match="CPU"):
        graph_polynomial(Independence(nx.path_graph(3)), method="polynomial", usecuda=True)


def test_coloring_rejected():
    with pytest.raises(ValueError, match="coloring"):
        graph_polynomial(Coloring(nx.path_graph(3), 3))
