"""
aco_core/pheromone.py
─────────────────────
The pheromone matrix: the colony's shared, persistent memory of good track.

What is pheromone here?
───────────────────────
Every wagon that reaches its destination leaves pheromone on each segment
it used. Cheaper routes leave more (Q / route_cost), so over many
iterations the segments of the cheapest route accumulate the most τ and
attract more wagons.

Two forces balance each other:
  1. Evaporation  — every value is multiplied by (1 − ρ) once per iteration.
                    Old information fades, which is what lets the colony
                    re-route after a disruption makes a well-used segment
                    expensive.
  2. Deposit      — every successful route reinforces its own segments.
                    Deposits from many wagons in one iteration are additive.

Matrix layout
─────────────
  Shape : (n_nodes, n_nodes), symmetric.
  τ[i][j]: pheromone on the segment between node i and node j.
  Non-adjacent pairs carry pheromone too (initialised to TAU_INITIAL and
  evaporated with everything else) but no wagon ever reads them.

Floor, no ceiling
─────────────────
  After evaporation every cell is clamped up to TAU_MIN so that no segment
  can become permanently invisible. There is no upper clamp: a route that
  keeps winning keeps accumulating, balanced only by evaporation.

NumPy design choices
────────────────────
  • float64 throughout.
  • In-place operations (*=, np.maximum(..., out=)) on the hot path.
  • .copy() only in snapshot().
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
from numpy.typing import NDArray

# ── Pheromone constants ────────────────────────────────────────────────────────
# Module-level so tests can import and assert against them directly.

TAU_INITIAL: float = 1.0
"""Starting pheromone on every pair. Uniform → wagons start with no bias."""

TAU_MIN: float = 0.01
"""Minimum allowed pheromone after evaporation (the floor).

Without a floor, a long run of evaporation drives unused segments to ≈0.
If a disruption later makes one of them the best option, the colony would
effectively never try it again. TAU_MIN keeps every segment discoverable.
"""


class PheromoneMatrix:
    """
    A symmetric 2D numpy array τ[n_nodes][n_nodes].

    Used by:
        Colony.run_iteration() → snapshot() before agents walk,
                                 evaporate() + deposit() after they finish.
        SimulationSession      → initialize() on reset, snapshot() for rendering.

    Thread safety:
        Not thread-safe. Agents never touch the live matrix; they read a
        snapshot. The session serialises every mutation behind its lock.
    """

    def __init__(
        self,
        n_nodes: int,
        initial: float = TAU_INITIAL,
        floor: float = TAU_MIN,
    ) -> None:
        """
        Args:
            n_nodes: Number of nodes in the graph. Must be ≥ 1.
            initial: Uniform starting value restored by initialize().
            floor:   Evaporation floor. Must be > 0 and ≤ initial.

        Raises:
            ValueError: if n_nodes < 1 or the floor is not in (0, initial].
        """
        if n_nodes < 1:
            raise ValueError(f"PheromoneMatrix requires n_nodes≥1, got {n_nodes}")
        if not (0.0 < floor <= initial):
            raise ValueError(
                f"PheromoneMatrix requires 0 < floor ≤ initial, "
                f"got floor={floor}, initial={initial}"
            )
        self._n_nodes = n_nodes
        self._initial = initial
        self._floor = floor
        self._matrix: NDArray[np.float64] = np.empty(
            (n_nodes, n_nodes), dtype=np.float64
        )
        self.initialize()

    # ── Core operations ────────────────────────────────────────────────────────

    def initialize(self) -> None:
        """Set every cell back to the uniform starting value."""
        self._matrix.fill(self._initial)

    def evaporate(self, rate: float) -> None:
        """
        Decay every cell in-place, then clamp up to the floor.

            τ[i][j] = max( τ[i][j] × (1 − rate),  floor )

        Applied once per iteration, always BEFORE deposit: the fresh
        reinforcement of this iteration is never immediately weakened.

        Args:
            rate: Evaporation fraction ρ in (0, 1).
        """
        if not (0.0 < rate < 1.0):
            raise ValueError(f"Evaporation rate must be in (0, 1), got {rate}")
        self._matrix *= (1.0 - rate)
        np.maximum(self._matrix, self._floor, out=self._matrix)

    def deposit(self, path: Sequence[int], cost: float, q: float) -> None:
        """
        Reinforce every segment of one successful route.

        For each consecutive pair (u, v) in `path`:
            τ[u][v] += q / cost
            τ[v][u] += q / cost

        Args:
            path: Node indices from start to end (length ≥ 2 to deposit).
            cost: Total cost of the whole route, NOT of one segment, so that
                  the reinforcement reflects overall route quality.
            q:    Deposit constant.

        Guards:
            • cost ≤ 0 or a path shorter than 2 nodes → skip. A zero-length
              route (start == end) has nothing to reinforce.
        """
        if cost <= 0.0 or len(path) < 2:
            return

        amount = q / cost
        for u, v in zip(path, path[1:]):
            self._matrix[u, v] += amount
            self._matrix[v, u] += amount

    # ── Inspection & testing ───────────────────────────────────────────────────

    def snapshot(self) -> NDArray[np.float64]:
        """
        Deep copy of the current matrix.

        The Colony hands this copy to agents so that nothing done to the
        live matrix can change what an in-flight agent sees.
        """
        return self._matrix.copy()

    # ── Properties ────────────────────────────────────────────────────────────

    @property
    def shape(self) -> tuple[int, int]:
        return (self._n_nodes, self._n_nodes)

    @property
    def n_nodes(self) -> int:
        return self._n_nodes

    @property
    def floor(self) -> float:
        return self._floor

    @property
    def initial(self) -> float:
        return self._initial

    def __repr__(self) -> str:
        return (
            f"PheromoneMatrix(n_nodes={self._n_nodes}, "
            f"min={self._matrix.min():.4f}, max={self._matrix.max():.4f}, "
            f"mean={self._matrix.mean():.4f})"
        )
