"""
aco_core — Ant Colony Optimisation routing core.

Public API:
    LogisticsGraph        — named stops + symmetric cost matrix, disruptable
    PheromoneMatrix       — evaporate / deposit field parallel to the costs
    Wagon                 — one probabilistic walk from start to end
    Colony                — one iteration of wagons + pheromone update
    InvalidParameterError — out-of-range index, cost or multiplier

Usage:
    from aco_core import Colony, LogisticsGraph, PheromoneMatrix

    graph  = LogisticsGraph.build_graph(names, edges)
    colony = Colony(graph, PheromoneMatrix(graph.n_nodes), rng=rng)
    result = colony.run_iteration(run_config)
"""

from aco_core.graph import InvalidParameterError, LogisticsGraph, Node
from aco_core.pheromone import PheromoneMatrix
from aco_core.ant import Wagon, WalkState
from aco_core.colony import Colony

__all__ = [
    "Colony",
    "InvalidParameterError",
    "LogisticsGraph",
    "Node",
    "PheromoneMatrix",
    "Wagon",
    "WalkState",
]
