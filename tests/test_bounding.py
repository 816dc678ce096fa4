"""Tests for the bounded top-k contraction."""

from __future__ import annotations

import networkx as nx
import numpy as np
import pytest
import torch

from bruteforce import best_sizes, configs_of_size
from graphtensornets.bounding import bound_masks, bounding_contract, root_outside
from graphtensornets.configs import decode
from graphtensornets.interfaces import (
    _tropical_leaves,
    best2_solutions,
    best_solutions,
    bestk_solutions,
)
from graphtensornets.network import Independence, Matching, MaxCut, MaximalIndependence

PROBLEMS = {
    "independence": Independence,
    "maximal_independence": MaximalIndependence,
    "matching": Matching,
    "maxcut": MaxCut,
}


def _decoded(payload):
    return {tuple(decode(c)) for c in payload}


@pytest.mark.parametrize("kind", sorted(PROBLEMS))
@pytest.mark.parametrize("graph", [nx.petersen_graph(), nx.cycle_graph(6)])
def test_best_solutions_all_matches_bruteforce(kind, graph):
    problem = PROBLEMS[kind](graph)
    result = best_solutions(problem, all=True).item()
    (best,) = best_sizes(kind, graph)
    assert result.n == best
    assert _decoded(result.c) == configs_of_size(kind, graph, best)


@pytest.mark.parametrize("kind", sorted(PROBLEMS))
def test_best2_solutions_matches_bruteforce(kind):
    graph = nx.petersen_graph()
    result = best2_solutions(PROBLEMS[kind](graph)).item()
    (best,) = best_sizes(kind, graph)
    assert result.maxorder == best
    assert _decoded(result.coeffs[1]) == configs_of_size(kind, graph, best)
    assert _decoded(result.coeffs[0]) == configs_of_size(kind, graph, best - 1)


def test_bestk_with_tree_storage():
    graph = nx.cycle_graph(7)
    result = bestk_solutions(Independence(graph), 3, tree_storage=True).item()
    sizes = best_sizes("independence", graph, count=3)
    for payload, size in zip(reversed(result.coeffs), sizes):
        assert _decoded(payload) == configs_of_size("independence", graph, size)


def test_weighted_best_solutions():
    graph = nx.path_graph(4)
    weights = [1, 3, 1, 1]
    result = best_solutions(Independence(graph, weights=weights), all=True).item()
    assert result.n == 4
    assert _decoded(result.c) == {(0, 1, 0, 1)}


def test_fractional_weights_best_solutions():
    problem = Independence(nx.path_graph(3), weights=[1.0, 1.5, 0.75])
    result = best_solutions(problem, all=True).item()
    assert result.n == pytest.approx(1.75)
    assert _decoded(result.c) == {(1, 0, 1)}


def test_bestk_rejects_fractional_weights():
    problem = Independence(nx.path_graph(3), weights=[1.0, 1.5, 0.75])
    with pytest.raises(ValueError, match="integer weights"):
        bestk_solutions(problem, 2)
    with pytest.raises(ValueError, match="integer weights"):
        best2_solutions(problem)


def test_bestk_accepts_integral_float_weights():
    graph = nx.path_graph(3)
    result = bestk_solutions(Independence(graph, weights=[1.0, 1.0, 1.0]), 2).item()
    assert result.maxorder == 2
    assert _decoded(result.coeffs[0]) == configs_of_size("independence", graph, 1)


def test_open_outputs_and_ymask():
    graph = nx.path_graph(3)
    problem = Independence(graph, outputs=(1,))
    result = bestk_solutions(problem, 1, ymask=np.array([True, False]))
    assert result.shape == (2,)
    assert result[0].maxorder == 2
    assert _decoded(result[0].coeffs[0]) == {(1, 0, 1)}
    assert result[1].maxorder == float("-inf")


def test_enumeration_on_accelerator_rejected():
    with pytest.raises(ValueError, match="accelerator"):
        best_solutions(Independence(nx.path_graph(3)), all=True, usecuda=True)


def test_root_outside_masks_infeasible_slices():
    values = torch.tensor([2.0, float("-inf"), 1.0])
    outside = root_outside(values, np.array([True, True, False]))
    assert outside.tolist() == [-2.0, float("-inf"), float("-inf")]


def test_masks_keep_only_optimal_leaf_entries():
    # path 0-1-2: the unique maximum independent set is {0, 2}
    problem = Independence(nx.path_graph(3))
    masks = bound_masks(1, problem.plan, _tropical_leaves(problem, False))
    assert masks.keep.all()

    def leaf_masks(mask, node):
        if "tensor_index" in node:
            return {node["tensor_index"]: mask.keep}
        out = {}
        for child_mask, child in zip(mask.children, node["args"]):
            out.update(leaf_masks(child_mask, child))
        return out

    leaves = leaf_masks(masks, problem.plan.tree)
    assert leaves[0].tolist() == [False, True]
    assert leaves[1].tolist() == [True, False]
    assert leaves[2].tolist() == [False, True]


def test_bounding_contract_rejects_invalid_k():
    problem = Independence(nx.path_graph(2))
    with pytest.raises(ValueError, match="k must be"):
        bounding_contract(0, problem.plan, [], None, [])
