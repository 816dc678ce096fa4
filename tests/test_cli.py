"""Tests for CLI module."""

from __future__ import annotations

import networkx as nx
import pytest

from graphtensornets.cli import create_parser, main, parse_graph
from graphtensornets.configs import load_configs


class TestCreateParser:
    """Tests for create_parser function."""

    def test_parser_defaults(self):
        """Test parser has correct defaults."""
        args = create_parser().parse_args([])

        assert args.graph == "petersen"
        assert args.problem == "independence"
        assert args.property == "max-size"
        assert args.method == "finitefield"
        assert args.optimizer == "greedy"
        assert args.all is False
        assert args.output is None

    def test_custom_arguments(self):
        """Test parser with custom arguments."""
        args = create_parser().parse_args([
            "-g", "cycle-6",
            "--problem", "coloring",
            "-k", "4",
            "--property", "count-all",
            "--optimizer", "raw",
        ])

        assert args.graph == "cycle-6"
        assert args.problem == "coloring"
        assert args.colors == 4
        assert args.property == "count-all"
        assert args.optimizer == "raw"

    def test_invalid_property(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["--property", "entropy"])


class TestParseGraph:
    """Tests for graph specifications."""

    def test_named_graphs(self):
        assert nx.is_isomorphic(parse_graph("petersen"), nx.petersen_graph())
        assert parse_graph("path-5").number_of_nodes() == 5
        assert parse_graph("grid-2x3").number_of_edges() == 7
        assert parse_graph("regular-3-8-1").number_of_edges() == 12

    def test_invalid_graph(self):
        with pytest.raises(ValueError):
            parse_graph("cube")
        with pytest.raises(ValueError):
            parse_graph("path-x")


class TestMain:
    """Tests for main function."""

    def test_max_size(self, capsys):
        assert main(["-g", "path-5"]) == 0
        assert capsys.readouterr().out.strip() == "3.0"

    def test_count_all_coloring(self, capsys):
        assert main(["-g", "cycle-4", "--problem", "coloring", "--property", "count-all"]) == 0
        assert capsys.readouterr().out.strip() == "18"

    def test_min_size(self, capsys):
        assert main(["-g", "path-5", "--problem", "maximal-independence", "--property", "min-size"]) == 0
        assert capsys.readouterr().out.strip() == "2.0"

    def test_polynomial(self, capsys):
        assert main(["-g", "complete-4", "--property", "polynomial"]) == 0
        assert "Polynomial([1, 4])" in capsys.readouterr().out

    def test_save_solutions(self, tmp_path):
        output = tmp_path / "best.txt"
        result = main([
            "-g", "cycle-6",
            "--property", "best-solutions",
            "--all",
            "-o", str(output),
        ])
        assert result == 0
        configs = load_configs(output, format="text")
        assert sorted(str(c) for c in configs) == ["010101", "101010"]

    def test_output_needs_solutions(self, tmp_path, capsys):
        assert main(["--property", "max-size", "-o", str(tmp_path / "x")]) == 1
        assert "Error" in capsys.readouterr().err

    def test_invalid_graph_returns_error(self, capsys):
        assert main(["-g", "nope"]) == 1
        assert "Unknown graph" in capsys.readouterr().err
