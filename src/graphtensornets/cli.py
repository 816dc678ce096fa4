"""
Command-line interface for computing solution-space properties of graph problems.
"""

from __future__ import annotations

import argparse
import logging
import pathlib
import sys

import networkx as nx
import numpy as np

from graphtensornets.configs import save_configs
from graphtensornets.interfaces import (
    all_solutions,
    best2_solutions,
    best_solutions,
    config_list,
    count_all,
    count_max,
    count_min,
    max_size,
    min_size,
)
from graphtensornets.network import (
    Coloring,
    Independence,
    Matching,
    MaxCut,
    MaximalIndependence,
)
from graphtensornets.polynomials import METHODS, graph_polynomial

PROBLEMS = {
    "independence": Independence,
    "maximal-independence": MaximalIndependence,
    "matching": Matching,
    "coloring": Coloring,
    "maxcut": MaxCut,
}

PROPERTIES = (
    "max-size",
    "min-size",
    "count-max",
    "count-min",
    "count-all",
    "polynomial",
    "best-solutions",
    "best2-solutions",
    "all-solutions",
)


def parse_graph(spec: str) -> nx.Graph:
    """Build a graph from a name such as ``petersen``, ``path-5`` or ``grid-3x4``.

    Supported names: ``petersen``, ``complete-N``, ``path-N``, ``cycle-N``,
    ``star-N``, ``grid-MxN`` and ``regular-D-N[-SEED]`` (random regular).
    """
    name, _, rest = spec.partition("-")
    try:
        if name == "petersen" and not rest:
            return nx.petersen_graph()
        if name == "complete":
            return nx.complete_graph(int(rest))
        if name == "path":
            return nx.path_graph(int(rest))
        if name == "cycle":
            return nx.cycle_graph(int(rest))
        if name == "star":
            return nx.star_graph(int(rest))
        if name == "grid":
            m, n = rest.split("x")
            return nx.convert_node_labels_to_integers(nx.grid_2d_graph(int(m), int(n)))
        if name == "regular":
            parts = [int(p) for p in rest.split("-")]
            seed = parts[2] if len(parts) > 2 else None
            return nx.random_regular_graph(parts[0], parts[1], seed=seed)
    except (ValueError, IndexError) as e:
        raise ValueError(f"Invalid graph specification {spec!r}: {e}") from e
    raise ValueError(f"Unknown graph {spec!r}")


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        description="Solve graph problems by tensor network contraction.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "-g",
        "--graph",
        default="petersen",
        help="Graph name, e.g. petersen, path-5, cycle-6, grid-3x3, regular-3-10-1",
    )
    parser.add_argument(
        "--problem",
        choices=sorted(PROBLEMS),
        default="independence",
        help="Graph problem to encode",
    )
    parser.add_argument(
        "-k",
        "--colors",
        type=int,
        default=3,
        help="Number of colors for the coloring problem",
    )
    parser.add_argument(
        "--property",
        choices=PROPERTIES,
        default="max-size",
        help="Solution-space property to compute",
    )
    parser.add_argument(
        "--method",
        choices=METHODS,
        default="finitefield",
        help="Counting polynomial method",
    )
    parser.add_argument(
        "--optimizer",
        choices=["greedy", "treesa", "raw"],
        default="greedy",
        help="Contraction order optimizer",
    )
    parser.add_argument(
        "--all",
        action="store_true",
        help="Return every optimal configuration instead of one",
    )
    parser.add_argument(
        "--usecuda",
        action="store_true",
        help="Contract numeric tensors on the cuda device",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=pathlib.Path,
        help="Write the configurations found to this file",
    )
    parser.add_argument(
        "--format",
        choices=["binary", "text"],
        default="text",
        help="Format of the configuration file",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log contraction complexity and solver progress",
    )
    return parser


def _build_problem(args):
    graph = parse_graph(args.graph)
    if args.problem == "coloring":
        return Coloring(graph, args.colors, optimizer=args.optimizer)
    return PROBLEMS[args.problem](graph, optimizer=args.optimizer)


def _compute(problem, args) -> np.ndarray:
    prop = args.property
    if prop == "max-size":
        return max_size(problem, usecuda=args.usecuda)
    if prop == "min-size":
        return min_size(problem, usecuda=args.usecuda)
    if prop == "count-min":
        return count_min(problem, usecuda=args.usecuda)
    if prop == "count-max":
        return count_max(problem, usecuda=args.usecuda)
    if prop == "count-all":
        return count_all(problem, usecuda=args.usecuda)
    if prop == "polynomial":
        return graph_polynomial(problem, method=args.method, usecuda=args.usecuda)
    if prop == "best-solutions":
        return best_solutions(problem, all=args.all, usecuda=args.usecuda)
    if prop == "best2-solutions":
        return best2_solutions(problem)
    return all_solutions(problem)


def _collect_configs(value) -> list:
    if hasattr(value, "c"):
        return config_list(value.c)
    configs = []
    for payload in value.coeffs:
        configs.extend(config_list(payload))
    return configs


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    parser = create_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        problem = _build_problem(args)
        result = _compute(problem, args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    value = result.item() if result.shape == () else result
    print(value)

    if args.output is not None:
        if args.property not in ("best-solutions", "best2-solutions", "all-solutions"):
            print("Error: --output needs a solutions property", file=sys.stderr)
            return 1
        configs = []
        for entry in result.reshape(-1):
            configs.extend(_collect_configs(entry))
        save_configs(args.output, configs, format=args.format)
        print(f"Wrote {len(configs)} configurations to {args.output}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
