"""
logistics/control_plane/session.py
──────────────────────────────────
SimulationSession: the command surface the dashboard (or any caller) talks to.

What the session owns
─────────────────────
  • one LogisticsGraph      — the live network, disruptable at any time.
  • one PheromoneMatrix     — reset to uniform on every fresh run.
  • one Colony              — runs iterations, tracks the running best.
  • one RunConfig           — endpoints + coefficients for the current run.
  • the run state           — IDLE / RUNNING / PAUSED / COMPLETED.

Command surface
───────────────
    configure(...)          → set endpoints and coefficients (not mid-run).
    start()                 → begin a fresh run, or resume a paused one.
    step()                  → one iteration if RUNNING (the caller's tick).
    pause()                 → stop advancing; state is kept.
    reset()                 → back to IDLE, uniform pheromone, no best route.
    disrupt(a, b, mult)     → multiply one segment's live cost.
    reset_to_baseline()     → undo every disruption.
    get_snapshot()          → everything a renderer needs.
    close()                 → release the wagon thread pool (also on `with` exit).

State machine
─────────────
    IDLE ──start──► RUNNING ──pause──► PAUSED
                     │  ▲                │
                     │  └─────start──────┘
                     │
                     └── iteration == max_iterations ──► COMPLETED

    reset() from any state → IDLE.
    start() from IDLE or COMPLETED → fresh run (pheromone, best, counter reset).
    start() from PAUSED → resume in place.
    start() from RUNNING → no-op.

Costs across reset
──────────────────
reset() does NOT restore the cost matrix: disruptions survive a reset and
a fresh start(). Call reset_to_baseline(), or reset(restore_baseline=True),
to get the original network back.

Thread safety
─────────────
Every public method takes one re-entrant lock, and step() holds it for the
whole iteration. Consequences:
  • Iterations never overlap.
  • disrupt() lands either before an iteration's snapshot or after its
    pheromone update, never while wagons are walking.
  • pause() / reset() called from another thread while an iteration is in
    flight wait for that iteration to commit, then take effect. The
    in-flight iteration is never cancelled.
  • get_snapshot() always sees a committed state.
"""

from __future__ import annotations

import logging
import math
import threading
from typing import List, Optional

import numpy as np
from pydantic import ValidationError

from aco_core.colony import Colony
from aco_core.graph import InvalidParameterError, LogisticsGraph
from aco_core.pheromone import PheromoneMatrix
from logistics.shared.models import (
    DEFAULT_ALPHA,
    DEFAULT_AGENTS_PER_ITERATION,
    DEFAULT_BETA,
    DEFAULT_DISRUPTION_MULTIPLIER,
    DEFAULT_EVAPORATION_RATE,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_Q,
    AlgorithmParameters,
    EdgePheromone,
    IterationResult,
    RunConfig,
    SessionSnapshot,
    SessionState,
)
from logistics.shared.network import (
    DEFAULT_END_NODE,
    DEFAULT_START_NODE,
    build_default_network,
)

logger = logging.getLogger(__name__)


class SessionActiveError(RuntimeError):
    """
    Raised by configure() while a run is RUNNING or PAUSED.

    Changing coefficients half-way through a run would mix two pheromone
    trajectories in one matrix. Caller contract: reset() first.
    """
    pass


class SimulationSession:
    """
    Restartable simulation core with an explicit, caller-driven tick.

    Usage:
        session = SimulationSession(seed=42)
        session.configure(start_node=0, end_node=6)
        session.start()
        while session.step() is not None:
            render(session.get_snapshot())

    Attributes:
        graph : LogisticsGraph — the live network.
    """

    def __init__(
        self,
        graph: Optional[LogisticsGraph] = None,
        config: Optional[RunConfig] = None,
        seed: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        """
        Args:
            graph:       Network to route over. Defaults to the built-in
                         ten-stop rail network.
            config:      Initial run configuration. Defaults to the built-in
                         endpoints (or 0 → n−1 for a custom graph).
            seed:        Seed for a fresh numpy Generator. Ignored if `rng`
                         is given.
            rng:         Injected generator; takes precedence over `seed`.
            max_workers: Thread-pool size for walking wagons. None = sequential.

        Raises:
            InvalidParameterError: if `config` references nodes outside the graph.
        """
        if graph is None:
            graph = build_default_network()
            default_config = RunConfig(
                start_node=DEFAULT_START_NODE, end_node=DEFAULT_END_NODE
            )
        else:
            default_config = RunConfig(start_node=0, end_node=graph.n_nodes - 1)

        self.graph = graph
        self._pheromone = PheromoneMatrix(graph.n_nodes)
        self._colony = Colony(
            graph,
            self._pheromone,
            rng=rng if rng is not None else np.random.default_rng(seed),
            max_workers=max_workers,
        )

        self._config: RunConfig = config if config is not None else default_config
        self._check_endpoints(self._config)

        self._state: SessionState = SessionState.IDLE
        self._last_result: Optional[IterationResult] = None
        self._lock = threading.RLock()

        logger.info(
            "SimulationSession initialised: %d nodes, %d → %d.",
            graph.n_nodes, self._config.start_node, self._config.end_node,
        )

    # ── Configuration ──────────────────────────────────────────────────────────

    def configure(
        self,
        start_node: int,
        end_node: int,
        alpha: float = DEFAULT_ALPHA,
        beta: float = DEFAULT_BETA,
        evaporation_rate: float = DEFAULT_EVAPORATION_RATE,
        agents_per_iteration: int = DEFAULT_AGENTS_PER_ITERATION,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        q: float = DEFAULT_Q,
    ) -> RunConfig:
        """
        Replace the run configuration.

        Validation happens before any state changes: on failure the
        previous configuration stays in force.

        Raises:
            SessionActiveError:    a run is RUNNING or PAUSED.
            InvalidParameterError: a node index is outside [0, n), or a
                                   coefficient is outside its allowed range.
        """
        try:
            config = RunConfig(
                start_node=start_node,
                end_node=end_node,
                params=AlgorithmParameters(
                    alpha=alpha,
                    beta=beta,
                    evaporation_rate=evaporation_rate,
                    q=q,
                    agents_per_iteration=agents_per_iteration,
                    max_iterations=max_iterations,
                ),
            )
        except ValidationError as exc:
            raise InvalidParameterError(str(exc)) from exc
        return self.apply_config(config)

    def apply_config(self, config: RunConfig) -> RunConfig:
        """configure() for a pre-built RunConfig."""
        with self._lock:
            if self._state in (SessionState.RUNNING, SessionState.PAUSED):
                raise SessionActiveError(
                    f"Cannot configure while {self._state.value}; reset() first."
                )
            self._check_endpoints(config)
            self._config = config
            logger.info(
                "session configured: %d → %d, %s",
                config.start_node, config.end_node, config.params,
            )
            return config

    def _check_endpoints(self, config: RunConfig) -> None:
        self.graph.check_index(config.start_node)
        self.graph.check_index(config.end_node)

    # ── Run control ────────────────────────────────────────────────────────────

    def start(self) -> SessionState:
        """
        Begin a fresh run, or resume a paused one.

        From IDLE or COMPLETED: pheromone back to uniform, best route cleared,
        iteration counter to 0, then RUNNING. Costs are left as they are.
        From PAUSED: RUNNING, nothing else touched.
        From RUNNING: no-op.
        """
        with self._lock:
            if self._state is SessionState.RUNNING:
                return self._state
            if self._state is SessionState.PAUSED:
                logger.info("session resumed at iteration %d.", self._colony.iteration)
            else:
                self._colony.reset()
                self._last_result = None
                logger.info(
                    "session started: %d → %d, max %d iterations.",
                    self._config.start_node, self._config.end_node,
                    self._config.params.max_iterations,
                )
            self._state = SessionState.RUNNING
            return self._state

    def step(self) -> Optional[IterationResult]:
        """
        Run exactly one iteration if the session is RUNNING.

        This is the tick. Call it on whatever cadence suits the caller;
        SimulationTicker calls it every 40ms.

        Returns:
            The IterationResult, or None if the session is not RUNNING
            (paused, idle, or already completed).
        """
        with self._lock:
            if self._state is not SessionState.RUNNING:
                return None

            if self._colony.iteration >= self._config.params.max_iterations:
                self._complete()
                return None

            result = self._colony.run_iteration(self._config)
            self._last_result = result

            if result.iteration >= self._config.params.max_iterations:
                self._complete()
            return result

    def run(self, n_iterations: Optional[int] = None) -> List[IterationResult]:
        """
        Start (or resume) and step synchronously.

        Args:
            n_iterations: Stop after this many steps. None runs until the
                          session leaves RUNNING.
        """
        self.start()
        results: List[IterationResult] = []
        while n_iterations is None or len(results) < n_iterations:
            result = self.step()
            if result is None:
                break
            results.append(result)
        return results

    def _complete(self) -> None:
        self._state = SessionState.COMPLETED
        logger.info(
            "session completed after %d iterations, best cost %.2f.",
            self._colony.iteration, self._colony.best_cost,
        )

    def pause(self) -> SessionState:
        """
        Stop advancing iterations. Only a RUNNING session can be paused.

        If an iteration is in flight on another thread, this waits for it
        to commit; the paused state then includes that iteration.
        """
        with self._lock:
            if self._state is SessionState.RUNNING:
                self._state = SessionState.PAUSED
                logger.info("session paused at iteration %d.", self._colony.iteration)
            return self._state

    def reset(self, restore_baseline: bool = False) -> None:
        """
        Back to IDLE with uniform pheromone, no best route, iteration 0.

        Args:
            restore_baseline: Also undo every disruption. Off by default:
                              a plain reset keeps the disrupted costs.
        """
        with self._lock:
            self._state = SessionState.IDLE
            self._colony.reset()
            self._last_result = None
            if restore_baseline:
                self.graph.reset_to_baseline()
            logger.info("session reset (restore_baseline=%s).", restore_baseline)

    # ── Disruption ─────────────────────────────────────────────────────────────

    def disrupt(
        self,
        node_a: int,
        node_b: int,
        multiplier: float = DEFAULT_DISRUPTION_MULTIPLIER,
    ) -> bool:
        """
        Multiply the live cost of one segment. Allowed in any state.

        Returns:
            True if applied, False if the two stops are not adjacent.

        Raises:
            InvalidParameterError: index out of range or invalid multiplier.
        """
        with self._lock:
            applied = self.graph.disrupt(node_a, node_b, multiplier)
            if applied:
                logger.info(
                    "disruption: %s – %s ×%.2f, cost now %.2f",
                    self.graph.nodes[node_a].name, self.graph.nodes[node_b].name,
                    multiplier, self.graph.cost(node_a, node_b),
                )
            return applied

    def reset_to_baseline(self) -> None:
        """Undo every disruption. Pheromone and run state are untouched."""
        with self._lock:
            self.graph.reset_to_baseline()
            logger.info("costs restored to baseline.")

    # ── Inspection ─────────────────────────────────────────────────────────────

    def get_snapshot(self) -> SessionSnapshot:
        """Copy of everything a renderer needs. Safe from any thread."""
        with self._lock:
            cost = self.graph.cost_snapshot()
            tau = self._pheromone.snapshot()
            best_path = self._colony.best_path

            edges = self.graph.edges()
            max_tau = max((tau[a, b] for a, b, _ in edges), default=0.0)
            edge_pheromones = [
                EdgePheromone(
                    node_a=a,
                    node_b=b,
                    cost=c,
                    pheromone=float(tau[a, b]),
                    intensity=float(tau[a, b] / max_tau) if max_tau > 0 else 0.0,
                )
                for a, b, c in edges
            ]

            return SessionSnapshot(
                state=self._state,
                iteration=self._colony.iteration,
                max_iterations=self._config.params.max_iterations,
                start_node=self._config.start_node,
                end_node=self._config.end_node,
                node_names=[node.name for node in self.graph.nodes],
                best_path=list(best_path) if best_path is not None else None,
                best_path_names=(
                    self.graph.names_for(best_path) if best_path is not None else None
                ),
                best_cost=self._colony.best_cost,
                no_path_found=(
                    self._last_result is not None and not self._last_result.path_found
                ),
                pheromone_matrix=tau.tolist(),
                cost_matrix=cost.tolist(),
                edge_pheromones=edge_pheromones,
            )

    def close(self) -> None:
        """Release the wagon thread pool."""
        self._colony.close()

    def __enter__(self) -> "SimulationSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SessionState.RUNNING

    @property
    def iteration(self) -> int:
        return self._colony.iteration

    @property
    def best_path(self) -> Optional[List[int]]:
        path = self._colony.best_path
        return list(path) if path is not None else None

    @property
    def best_cost(self) -> float:
        return self._colony.best_cost

    @property
    def config(self) -> RunConfig:
        return self._config

    @property
    def last_result(self) -> Optional[IterationResult]:
        return self._last_result

    def pheromone_snapshot(self) -> np.ndarray:
        with self._lock:
            return self._pheromone.snapshot()

    def __repr__(self) -> str:
        cost = "none" if math.isinf(self.best_cost) else f"{self.best_cost:.2f}"
        return (
            f"SimulationSession(state={self._state.value}, "
            f"iteration={self.iteration}, best_cost={cost})"
        )
