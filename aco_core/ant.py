"""
aco_core/ant.py
───────────────
One wagon: walks the network once from start to end, choosing each next
stop probabilistically.

What does a wagon do?
─────────────────────
A wagon is one independent sample of the route space. At every stop it
looks at the segments leading to stops it has not visited yet and picks
one — more likely the cheap, well-travelled ones, but not always. Fifty
wagons per iteration give fifty slightly different routes; the colony
learns from all of the ones that arrive.

The two inputs to every decision
──────────────────────────────────
1. Pheromone trail (τ)  — what did previous wagons learn?
   Read from the pheromone snapshot taken at the start of the iteration.

2. Heuristic desirability (η) — 1 / segment_cost.
   Cheap segments look attractive even before any pheromone builds up.

The selection formula
──────────────────────
P(current → j) = (τ[c][j]^α × η[c][j]^β) / Σ_k(τ[c][k]^α × η[c][k]^β)

  over the candidate set k ∈ { unvisited stops directly connected to c }.

States
──────
    WALKING ──► ARRIVED   current == end, route is final.
       │
       └──────► STUCK     no unvisited neighbour before reaching end.
                          The route is discarded.

The walk always terminates: the visited set grows by one every step and
the graph is finite, so there are at most n_nodes − 1 steps.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

import numpy as np
from numpy.typing import NDArray


class WalkState(str, Enum):
    WALKING = "walking"
    ARRIVED = "arrived"
    STUCK = "stuck"


class Wagon:
    """
    Constructs one route using pheromone + heuristic.

    Lifecycle:
        1. __init__()     → place the wagon on `start`.
        2. find_path()    → step until ARRIVED or STUCK.
        3. Read results:  → wagon.path, wagon.path_cost, wagon.state.

    A wagon is single-use. It only reads the matrices it was given and
    never mutates them, so any number of wagons can share one snapshot.

    Attributes:
        path      : List[int]  — stops visited so far, starting with `start`.
        path_cost : float      — running sum of traversed segment costs.
        state     : WalkState
    """

    def __init__(
        self,
        start: int,
        end: int,
        cost: NDArray[np.float64],
        pheromone: NDArray[np.float64],
        alpha: float,
        beta: float,
        rng: np.random.Generator,
    ) -> None:
        """
        Args:
            start, end: Node indices, fixed for the wagon's lifetime.
            cost:       (n, n) cost snapshot. inf marks a missing segment.
            pheromone:  (n, n) pheromone snapshot.
            alpha:      Pheromone exponent.
            beta:       Heuristic exponent.
            rng:        Source of the uniform draw at each step.
        """
        self.start = start
        self.end = end
        self.current = start
        self.path: List[int] = [start]
        self.path_cost: float = 0.0

        self._cost = cost
        self._pheromone = pheromone
        self._alpha = alpha
        self._beta = beta
        self._rng = rng

        self._visited: NDArray[np.bool_] = np.zeros(cost.shape[0], dtype=bool)
        self._visited[start] = True

        # start == end is a zero-length route: arrived before moving.
        self.state = WalkState.ARRIVED if start == end else WalkState.WALKING

    # ── Node selection ─────────────────────────────────────────────────────────

    def _candidates(self) -> NDArray[np.intp]:
        """Unvisited stops with a direct segment from the current stop."""
        reachable = np.isfinite(self._cost[self.current]) & ~self._visited
        return np.flatnonzero(reachable)

    def choose_next_node(self) -> Optional[int]:
        """
        Roulette-wheel selection of the next stop.

        Returns:
            The chosen node index, or None if there is no candidate.

        Selection:
            weights    = τ[c, cand]^α × (1 / cost[c, cand])^β
            cumulative = cumsum(weights / Σ weights)
            u          = uniform draw in [0, 1)
            chosen     = first candidate with cumulative ≥ u

        np.searchsorted(side="left") returns exactly that first index.
        Weights are computed in log space and rescaled so the largest is 1.0,
        which keeps large exponents from overflowing.
        Rounding can leave cumulative[-1] a hair below 1.0, in which case
        searchsorted returns len(candidates); clamp to the last candidate.
        """
        candidates = self._candidates()
        if candidates.size == 0:
            return None

        row = self.current
        # τ ≥ floor > 0 and candidate costs are finite and positive, so log_w is finite.
        log_w = (
            self._alpha * np.log(self._pheromone[row, candidates])
            - self._beta * np.log(self._cost[row, candidates])
        )
        weights = np.exp(log_w - log_w.max())
        total = float(weights.sum())

        cumulative = np.cumsum(weights / total)
        idx = int(np.searchsorted(cumulative, self._rng.random(), side="left"))
        idx = min(idx, candidates.size - 1)
        return int(candidates[idx])

    def step(self) -> WalkState:
        """Advance one stop. No-op once the wagon is ARRIVED or STUCK."""
        if self.state is not WalkState.WALKING:
            return self.state

        next_node = self.choose_next_node()
        if next_node is None:
            self.state = WalkState.STUCK
            return self.state

        self.path_cost += float(self._cost[self.current, next_node])
        self.current = next_node
        self.path.append(next_node)
        self._visited[next_node] = True

        if self.current == self.end:
            self.state = WalkState.ARRIVED
        return self.state

    # ── Route construction ─────────────────────────────────────────────────────

    def find_path(self) -> bool:
        """
        Walk until the wagon arrives or gets stuck.

        Returns:
            True if the wagon ARRIVED.
        """
        while self.state is WalkState.WALKING:
            self.step()
        return self.state is WalkState.ARRIVED

    @property
    def arrived(self) -> bool:
        return self.state is WalkState.ARRIVED

    def __repr__(self) -> str:
        return (
            f"Wagon(start={self.start}, end={self.end}, "
            f"state={self.state.value}, path={self.path}, "
            f"cost={self.path_cost:.2f})"
        )
