"""
aco_core/graph.py
─────────────────
The logistics graph: named nodes plus a symmetric cost matrix.

Matrix layout
─────────────
  Shape : (n_nodes, n_nodes)
  cost[i][j] = travel cost of the track segment between node i and node j.
  cost[i][j] = inf  → no direct segment (the pair is not adjacent).
  cost[i][i] = 0    → always.

Two copies are held:
  • _cost      — the live matrix. disrupt() mutates it in place.
  • _baseline  — an immutable snapshot taken at construction.
                 reset_to_baseline() copies it back over _cost.

The graph knows nothing about pheromone or agents. The Colony reads a
cost_snapshot() at the start of every iteration, so a disruption applied
while agents are walking can never be seen half-way through a walk.

Disruption semantics
────────────────────
disrupt(a, b, multiplier) multiplies cost[a][b] and cost[b][a] by the
multiplier. Repeated disruptions compound on the live value, never on the
baseline. Disrupting a pair that has no direct segment is a no-op: it
returns False and does not raise. Node indices outside [0, n) are a
caller bug and DO raise InvalidParameterError.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

logger = logging.getLogger(__name__)

NO_EDGE: float = math.inf
"""Sentinel cost for a pair of nodes with no direct segment."""

Edge = Tuple[int, int, float]


class InvalidParameterError(ValueError):
    """
    Raised when a caller supplies an out-of-range value.

    Covers node indices outside [0, n), non-positive or non-finite edge
    costs, and non-positive disruption multipliers. Raised synchronously,
    before any state is touched.
    """
    pass


@dataclass(frozen=True)
class Node:
    """One stop on the network. Immutable after graph construction."""
    index: int
    name: str


class LogisticsGraph:
    """
    Fixed node set with an undirected weighted adjacency matrix.

    Usage:
        graph = LogisticsGraph.build_graph(
            ["A", "B", "C"],
            [(0, 1, 10.0), (1, 2, 5.0)],
        )
        graph.disrupt(0, 1, 4.0)        # A–B now costs 40
        graph.reset_to_baseline()       # A–B back to 10

    Attributes:
        nodes       : Tuple[Node, ...] — order defines every matrix index.
        _cost       : live (n, n) float64 cost matrix.
        _baseline   : original (n, n) cost matrix, never mutated.
        _name_index : Dict[str, int] — node name → index.
    """

    def __init__(self, names: Sequence[str], cost: NDArray[np.float64]) -> None:
        n = len(names)
        if n < 1:
            raise InvalidParameterError("LogisticsGraph requires at least one node.")
        if cost.shape != (n, n):
            raise InvalidParameterError(
                f"Cost matrix shape {cost.shape} does not match {n} nodes."
            )
        if len(set(names)) != n:
            raise InvalidParameterError("Node names must be unique.")

        self.nodes: Tuple[Node, ...] = tuple(
            Node(index=i, name=name) for i, name in enumerate(names)
        )
        self._name_index: Dict[str, int] = {name: i for i, name in enumerate(names)}
        self._cost: NDArray[np.float64] = cost.astype(np.float64, copy=True)
        self._baseline: NDArray[np.float64] = self._cost.copy()
        self._baseline.setflags(write=False)

    # ── Construction ───────────────────────────────────────────────────────────

    @classmethod
    def build_graph(
        cls,
        names: Sequence[str],
        edges: Iterable[Edge],
    ) -> "LogisticsGraph":
        """
        Build a graph from node names and (node_a, node_b, cost) triples.

        Every listed pair is set symmetrically. Any pair not listed gets
        NO_EDGE. The diagonal is always 0. If the same pair is listed twice,
        the later triple wins.

        Raises:
            InvalidParameterError: on an out-of-range index, a self-loop,
                                   or a cost that is not a positive finite number.
        """
        n = len(names)
        cost = np.full((n, n), NO_EDGE, dtype=np.float64)

        for a, b, weight in edges:
            if not (0 <= a < n and 0 <= b < n):
                raise InvalidParameterError(
                    f"Edge ({a}, {b}) references a node outside [0, {n})."
                )
            if a == b:
                raise InvalidParameterError(f"Self-loop on node {a} is not allowed.")
            weight = float(weight)
            # Zero-cost segments would make the 1/cost heuristic infinite.
            if not math.isfinite(weight) or weight <= 0.0:
                raise InvalidParameterError(
                    f"Edge ({a}, {b}) cost must be a positive finite number, got {weight}."
                )
            cost[a, b] = weight
            cost[b, a] = weight

        np.fill_diagonal(cost, 0.0)
        return cls(names, cost)

    # ── Mutation ───────────────────────────────────────────────────────────────

    def disrupt(self, node_a: int, node_b: int, multiplier: float) -> bool:
        """
        Multiply the live cost of segment (node_a, node_b) by `multiplier`.

        Args:
            node_a, node_b: Node indices in [0, n).
            multiplier:     Positive finite factor. 4.0 simulates heavy congestion.

        Returns:
            True if the segment exists and was disrupted, False if the pair is
            not adjacent (silent no-op, nothing changes).

        Raises:
            InvalidParameterError: index out of range or invalid multiplier.
        """
        self.check_index(node_a)
        self.check_index(node_b)
        multiplier = float(multiplier)
        if not math.isfinite(multiplier) or multiplier <= 0.0:
            raise InvalidParameterError(
                f"Disruption multiplier must be a positive finite number, got {multiplier}."
            )

        if not self.has_edge(node_a, node_b):
            logger.debug(
                "disrupt: no segment between %d and %d, ignoring.", node_a, node_b
            )
            return False

        self._cost[node_a, node_b] *= multiplier
        self._cost[node_b, node_a] = self._cost[node_a, node_b]
        return True

    def reset_to_baseline(self) -> None:
        """Restore the live cost matrix from the construction-time snapshot."""
        np.copyto(self._cost, self._baseline)

    # ── Queries ────────────────────────────────────────────────────────────────

    def has_edge(self, node_a: int, node_b: int) -> bool:
        """True if a direct segment exists. A node is never adjacent to itself."""
        return node_a != node_b and math.isfinite(self._cost[node_a, node_b])

    def cost(self, node_a: int, node_b: int) -> float:
        return float(self._cost[node_a, node_b])

    def path_cost(self, path: Sequence[int]) -> float:
        """Sum of live segment costs along `path`. inf if any hop is missing."""
        return float(sum(self._cost[u, v] for u, v in zip(path, path[1:])))

    def edges(self) -> List[Edge]:
        """All live segments as (i, j, cost) with i < j."""
        rows, cols = np.nonzero(np.isfinite(self._cost))
        return [
            (int(i), int(j), float(self._cost[i, j]))
            for i, j in zip(rows, cols)
            if i < j
        ]

    def index_of(self, name: str) -> int:
        try:
            return self._name_index[name]
        except KeyError:
            raise InvalidParameterError(f"Unknown node name: {name!r}") from None

    def names_for(self, path: Sequence[int]) -> List[str]:
        return [self.nodes[i].name for i in path]

    def cost_snapshot(self) -> NDArray[np.float64]:
        """Deep copy of the live cost matrix. Safe to hand to agents."""
        return self._cost.copy()

    def baseline_snapshot(self) -> NDArray[np.float64]:
        return self._baseline.copy()

    def check_index(self, index: int) -> None:
        """Raise InvalidParameterError unless 0 <= index < n_nodes."""
        if not (0 <= index < self.n_nodes):
            raise InvalidParameterError(
                f"Node index {index} outside [0, {self.n_nodes})."
            )

    @property
    def n_nodes(self) -> int:
        return len(self.nodes)

    def __repr__(self) -> str:
        return f"LogisticsGraph(nodes={self.n_nodes}, edges={len(self.edges())})"
