"""Tests for single-witness extraction by backpointer tracing."""

from __future__ import annotations

import networkx as nx
import pytest
import torch

from bruteforce import best_sizes, valid_configs
from graphtensornets.backprop import close_tree, recover_assignment, solution_ad
from graphtensornets.configs import decode
from graphtensornets.contraction import TensorNode, optimize_code
from graphtensornets.interfaces import _tropical_leaves, best_solutions
from graphtensornets.network import (
    Coloring,
    Independence,
    Matching,
    MaxCut,
    MaximalIndependence,
    extract_config,
)

PROBLEMS = {
    "independence": Independence,
    "maximal_independence": MaximalIndependence,
    "matching": Matching,
    "maxcut": MaxCut,
}


def _config_size(kind, graph, config, weights=None):
    sizes = {c: s for c, s in valid_configs(kind, graph, weights=weights)}
    return sizes.get(tuple(config))


@pytest.mark.parametrize("kind", sorted(PROBLEMS))
@pytest.mark.parametrize("optimizer", ["greedy", "raw"])
def test_witness_reaches_optimum(kind, optimizer):
    graph = nx.petersen_graph()
    problem = PROBLEMS[kind](graph, optimizer=optimizer)
    optimum, assignment = solution_ad(problem.plan, _tropical_leaves(problem, False))
    (best,) = best_sizes(kind, graph)
    assert optimum == best
    assert set(assignment) == set(problem.plan.labels)
    config = extract_config(problem, assignment)
    assert _config_size(kind, graph, config) == best


def test_weighted_witness():
    graph = nx.cycle_graph(5)
    weights = [1.0, 2.5, 1.0, 2.5, 1.0]
    problem = Independence(graph, weights=weights)
    optimum, assignment = solution_ad(problem.plan, _tropical_leaves(problem, False))
    assert optimum == pytest.approx(5.0)
    assert extract_config(problem, assignment) == [0, 1, 0, 1, 0]


def test_best_solutions_uses_backprop_witness():
    graph = nx.path_graph(5)
    result = best_solutions(Independence(graph)).item()
    assert result.n == 3
    assert decode(result.c.data) == [1, 0, 1, 0, 1]


def test_coloring_witness_is_proper():
    graph = nx.petersen_graph()
    problem = Coloring(graph, 3)
    optimum, assignment = solution_ad(problem.plan, _tropical_leaves(problem, False))
    assert optimum == graph.number_of_nodes()
    config = extract_config(problem, assignment)
    assert all(config[u] != config[v] for u, v in graph.edges)


def test_open_outputs_are_reduced():
    problem = Independence(nx.path_graph(4), outputs=(0, 3))
    optimum, assignment = solution_ad(problem.plan, _tropical_leaves(problem, False))
    assert optimum == 2.0
    config = extract_config(problem, assignment)
    assert sum(config) == 2
    assert _config_size("independence", nx.path_graph(4), config) == 2


def test_ties_resolve_to_first_entry():
    plan = optimize_code([(0,)], (), {0: 3})
    optimum, assignment = solution_ad(plan, [torch.tensor([1.0, 1.0, 0.0])])
    assert optimum == 1.0
    assert assignment == {0: 0}


def test_close_tree_is_noop_for_scalars():
    node = TensorNode(vars=(), values=torch.tensor(3.0))
    assert close_tree(node) is node
    assert recover_assignment(node) == {}
