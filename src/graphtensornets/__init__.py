"""
graphtensornets: solution-space properties of graph problems by tensor network contraction.

A graph problem is encoded as a tensor network once; contracting it over
different semirings yields the optimal size, the number of optima, counting
polynomials and explicit optimal configurations.
"""

from graphtensornets.configs import (
    ConfigEnumerator,
    ConfigSampler,
    StaticBitVector,
    StaticElementVector,
    SumProductTree,
    decode,
    encode,
    load_configs,
    onehot,
    save_configs,
)
from graphtensornets.contraction import ContractionPlan, optimize_code
from graphtensornets.interfaces import (
    all_solutions,
    best2_solutions,
    best_solutions,
    best_solutions_min,
    bestk_solutions,
    count_all,
    count_max,
    count_min,
    max_size,
    min_size,
    mis_compactify,
    onehot_value,
    solutions,
)
from graphtensornets.network import (
    Coloring,
    GraphProblem,
    Independence,
    Matching,
    MaxCut,
    MaximalIndependence,
    contractf,
    contractx,
    generate_tensors,
)
from graphtensornets.polynomials import (
    InconsistentResultWarning,
    PrimeGenerator,
    graph_polynomial,
)
from graphtensornets.semirings import (
    CountingTropical,
    Mod,
    Polynomial,
    Tropical,
    TruncatedPoly,
)

__version__ = "0.1.0"
__all__ = [
    "Coloring",
    "ConfigEnumerator",
    "ConfigSampler",
    "ContractionPlan",
    "CountingTropical",
    "GraphProblem",
    "InconsistentResultWarning",
    "Independence",
    "Matching",
    "MaxCut",
    "MaximalIndependence",
    "Mod",
    "Polynomial",
    "PrimeGenerator",
    "StaticBitVector",
    "StaticElementVector",
    "SumProductTree",
    "Tropical",
    "TruncatedPoly",
    "all_solutions",
    "best2_solutions",
    "best_solutions",
    "best_solutions_min",
    "bestk_solutions",
    "contractf",
    "contractx",
    "count_all",
    "count_max",
    "count_min",
    "decode",
    "encode",
    "generate_tensors",
    "graph_polynomial",
    "load_configs",
    "max_size",
    "min_size",
    "mis_compactify",
    "onehot",
    "onehot_value",
    "optimize_code",
    "save_configs",
    "solutions",
]
