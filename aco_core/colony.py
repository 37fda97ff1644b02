"""
aco_core/colony.py
──────────────────
The Colony: runs one iteration of wagons and folds the results into the
pheromone field and the running best route.

How one iteration works
───────────────────────
  1. Freeze: copy the live cost matrix and pheromone matrix.
  2. Spawn agents_per_iteration wagons at start_node, each with its own
     random generator, all reading the same frozen copies.
  3. Walk every wagon to ARRIVED or STUCK (optionally on a thread pool).
  4. Evaporate the live pheromone matrix once.
  5. Deposit Q / cost for every arrived route (all of them, not only the
     best — the deposits are additive).
  6. Replace the running best if some arrived route is strictly cheaper.
     Ties keep the earlier route.
  7. Increment the iteration counter and report.

If every wagon got stuck the pheromone still evaporates, nothing is
deposited, and the running best stays as it was.

Stopping is not the colony's business: run_iteration() does exactly one
iteration per call. The session decides cadence and when to stop.

Determinism
───────────
The colony owns one numpy Generator. At the start of each iteration it
draws one seed per wagon from it and gives every wagon its own child
Generator. Wagons never share a generator, so the outcome is identical
whether they run sequentially or on a pool of any size.
"""

from __future__ import annotations

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

import numpy as np

from aco_core.ant import Wagon
from aco_core.graph import LogisticsGraph
from aco_core.pheromone import PheromoneMatrix
from logistics.shared.models import IterationResult, RunConfig

logger = logging.getLogger(__name__)

_SEED_BOUND: int = 2 ** 32
"""Exclusive upper bound for per-wagon seeds drawn from the colony generator."""


class Colony:
    """
    Runs colony iterations against one graph and one pheromone matrix.

    Usage:
        colony = Colony(graph, PheromoneMatrix(graph.n_nodes), rng=np.random.default_rng(7))
        result = colony.run_iteration(RunConfig(start_node=0, end_node=3))

    Attributes:
        best_path   : Optional[List[int]] — cheapest arrived route so far.
        best_cost   : float               — its cost; inf until one arrives.
        iteration   : int                 — iterations completed since reset().
        last_run_ms : float               — wall-clock of the last iteration.
    """

    def __init__(
        self,
        graph: LogisticsGraph,
        pheromone: PheromoneMatrix,
        rng: Optional[np.random.Generator] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        """
        Args:
            graph:       The network. Read once per iteration via cost_snapshot().
            pheromone:   The live pheromone matrix. Mutated after each iteration.
            rng:         Injected randomness. Defaults to an unseeded generator.
            max_workers: Walk wagons on a thread pool of this size. None or 1
                         walks them sequentially.

        Raises:
            ValueError: if the graph and pheromone matrix disagree on size.
        """
        if pheromone.n_nodes != graph.n_nodes:
            raise ValueError(
                f"Pheromone matrix has {pheromone.n_nodes} nodes, "
                f"graph has {graph.n_nodes}."
            )
        self._graph = graph
        self._pheromone = pheromone
        self._rng: np.random.Generator = rng if rng is not None else np.random.default_rng()
        self._executor: Optional[ThreadPoolExecutor] = (
            ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="wagon")
            if max_workers is not None and max_workers > 1
            else None
        )

        self.best_path: Optional[List[int]] = None
        self.best_cost: float = math.inf
        self.iteration: int = 0
        self.last_run_ms: float = 0.0

    # ── Main loop body ─────────────────────────────────────────────────────────

    def spawn(self, config: RunConfig) -> List[Wagon]:
        """
        Create this iteration's wagons against frozen copies of both matrices.

        The copies are taken here and nowhere else. Anything done to the
        live graph or pheromone after this call is invisible to the wagons.
        """
        params = config.params
        cost = self._graph.cost_snapshot()
        tau = self._pheromone.snapshot()
        seeds = self._rng.integers(0, _SEED_BOUND, size=params.agents_per_iteration)

        return [
            Wagon(
                config.start_node,
                config.end_node,
                cost,
                tau,
                params.alpha,
                params.beta,
                np.random.default_rng(int(seed)),
            )
            for seed in seeds
        ]

    def _walk_all(self, wagons: List[Wagon]) -> None:
        if self._executor is None:
            for wagon in wagons:
                wagon.find_path()
            return
        # list() drains the iterator: this is the join point before any update.
        list(self._executor.map(Wagon.find_path, wagons))

    def run_iteration(self, config: RunConfig) -> IterationResult:
        """
        Execute exactly one colony iteration.

        Args:
            config: Endpoints and coefficients for this iteration. Passed
                    explicitly every call; the colony keeps no copy.

        Returns:
            IterationResult with the running best after this iteration.
        """
        start = time.perf_counter()
        params = config.params

        wagons = self.spawn(config)
        self._walk_all(wagons)

        arrived = [w for w in wagons if w.arrived]

        # Evaporate BEFORE deposit (decay always precedes reinforcement)
        self._pheromone.evaporate(params.evaporation_rate)
        for wagon in arrived:
            self._pheromone.deposit(wagon.path, wagon.path_cost, params.q)

        # First strict improvement wins; equal-cost routes never replace the best.
        improved = False
        for wagon in arrived:
            if wagon.path_cost < self.best_cost:
                self.best_cost = wagon.path_cost
                self.best_path = list(wagon.path)
                improved = True

        self.iteration += 1
        self.last_run_ms = (time.perf_counter() - start) * 1000.0

        if improved:
            logger.info(
                "colony: iteration %d new best cost %.2f via %s",
                self.iteration, self.best_cost, self.best_path,
            )
        elif not arrived:
            logger.warning(
                "colony: iteration %d, all %d wagons stuck between %d and %d.",
                self.iteration, len(wagons), config.start_node, config.end_node,
            )
        else:
            logger.debug(
                "colony: iteration %d, %d/%d arrived (%.2fms)",
                self.iteration, len(arrived), len(wagons), self.last_run_ms,
            )

        return IterationResult(
            iteration=self.iteration,
            best_path=list(self.best_path) if self.best_path is not None else None,
            best_cost=self.best_cost,
            arrived=len(arrived),
            stuck=len(wagons) - len(arrived),
            improved=improved,
        )

    # ── Lifecycle ──────────────────────────────────────────────────────────────

    def reset(self) -> None:
        """Uniform pheromone, no best route, iteration counter back to 0."""
        self._pheromone.initialize()
        self.best_path = None
        self.best_cost = math.inf
        self.iteration = 0

    def close(self) -> None:
        """Shut down the wagon thread pool, if there is one."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    @property
    def parallel(self) -> bool:
        return self._executor is not None

    def __repr__(self) -> str:
        return (
            f"Colony(nodes={self._graph.n_nodes}, iteration={self.iteration}, "
            f"best_cost={self.best_cost:.2f}, last_run_ms={self.last_run_ms:.2f})"
        )
