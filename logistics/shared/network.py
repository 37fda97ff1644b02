"""
logistics/shared/network.py
───────────────────────────
The built-in rail network used when a session is created without a graph.

Ten stops around a steel plant: the plant itself, its marshalling yard,
two junctions, a coal feeder, a maintenance depot, a stockyard, a
scrapyard, and two customer sidings. Costs are illustrative travel
costs, not distances.

Default run: Bokaro Steel (0) → Customer A (6).
"""

from __future__ import annotations

from typing import List, Tuple

from aco_core.graph import LogisticsGraph

NODE_NAMES: List[str] = [
    "Bokaro Steel",      # 0
    "Main Yard",         # 1
    "Junction Alpha",    # 2
    "Coal Feeder",       # 3
    "Maintenance",       # 4
    "Junction Bravo",    # 5
    "Customer A",        # 6
    "Stockyard Gamma",   # 7
    "Scrapyard",         # 8
    "Customer B",        # 9
]

EDGES: List[Tuple[int, int, float]] = [
    (0, 1, 15), (1, 2, 20), (1, 3, 18), (2, 3, 12), (2, 5, 22),
    (3, 4, 25), (4, 5, 15), (5, 6, 18), (1, 7, 30), (7, 8, 20),
    (8, 6, 25), (5, 9, 28), (3, 5, 20), (7, 6, 35), (4, 8, 22),
    (2, 4, 30), (0, 7, 40), (3, 7, 28), (4, 9, 30), (6, 9, 20),
]

DEFAULT_START_NODE: int = 0
DEFAULT_END_NODE: int = 6


def build_default_network() -> LogisticsGraph:
    """A fresh copy of the built-in network. Each call returns a new graph."""
    return LogisticsGraph.build_graph(NODE_NAMES, EDGES)
