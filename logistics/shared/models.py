"""
logistics/shared/models.py
──────────────────────────
Every data structure that crosses the boundary between the routing engine
and its caller.

Reading guide
-------------
Section 1 holds the tunable defaults. Section 2 the inputs (what the
caller configures). Section 3 the outputs (what the caller renders).
Read top-to-bottom; each model builds on the ones above it.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 1: DEFAULTS
# ─────────────────────────────────────────────────────────────────────────────

DEFAULT_ALPHA: float = 1.0
"""Pheromone exponent. 1.0 = linear trust in what earlier wagons learned."""

DEFAULT_BETA: float = 2.5
"""Heuristic exponent.
β > α: segment cost dominates early, when pheromone is still uniform.
"""

DEFAULT_EVAPORATION_RATE: float = 0.15
"""ρ: fraction of every pheromone value removed per iteration."""

DEFAULT_Q: float = 100.0
"""Deposit constant. A route of cost 50 deposits 2.0 on each of its segments."""

DEFAULT_AGENTS_PER_ITERATION: int = 50
"""Wagons spawned per iteration."""

DEFAULT_MAX_ITERATIONS: int = 200
"""Iterations per run before the session marks itself COMPLETED."""

DEFAULT_DISRUPTION_MULTIPLIER: float = 4.0
"""Cost multiplier applied by a disruption when the caller gives none."""

DEFAULT_TICK_INTERVAL_S: float = 0.04
"""Wall-clock gap between iterations when driven by SimulationTicker (40ms)."""


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 2: INPUTS
# ─────────────────────────────────────────────────────────────────────────────

class SessionState(str, Enum):
    """
    Run lifecycle of a SimulationSession.

    IDLE       → Configured (or freshly reset), nothing has run.
    RUNNING    → step() advances one iteration per call.
    PAUSED     → step() is a no-op. start() resumes in place.
    COMPLETED  → max_iterations reached. start() begins a fresh run.
    """
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class AlgorithmParameters(BaseModel):
    """
    Colony coefficients, passed explicitly into every iteration.

    The field constraints are the validation contract: any value outside
    them raises a pydantic ValidationError at construction.
    """
    alpha: float = Field(DEFAULT_ALPHA, gt=0, description="Pheromone influence exponent")
    beta: float = Field(DEFAULT_BETA, gt=0, description="Heuristic (1/cost) influence exponent")
    evaporation_rate: float = Field(
        DEFAULT_EVAPORATION_RATE, gt=0, lt=1,
        description="Fraction of pheromone removed from every pair each iteration",
    )
    q: float = Field(DEFAULT_Q, gt=0, description="Deposit constant: each route adds q / cost")
    agents_per_iteration: int = Field(
        DEFAULT_AGENTS_PER_ITERATION, ge=1, description="Wagons spawned per iteration"
    )
    max_iterations: int = Field(
        DEFAULT_MAX_ITERATIONS, ge=1, description="Iterations per run"
    )

    model_config = {"frozen": True}


class RunConfig(BaseModel):
    """
    One run's full configuration: endpoints plus coefficients.

    Node-index bounds depend on the graph, so they are checked by the
    session at configure() time rather than here.
    """
    start_node: int = Field(0, ge=0, description="Index of the origin stop")
    end_node: int = Field(..., ge=0, description="Index of the destination stop")
    params: AlgorithmParameters = Field(default_factory=AlgorithmParameters)

    model_config = {"frozen": True}


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 3: OUTPUTS
# ─────────────────────────────────────────────────────────────────────────────

class IterationResult(BaseModel):
    """
    What one colony iteration reports back.

    best_path / best_cost are the session-wide best so far, not this
    iteration's best. path_found is False when every wagon got stuck;
    that is a status, never an error.
    """
    iteration: int = Field(..., ge=0, description="Iterations completed, including this one")
    best_path: Optional[List[int]] = Field(None, description="Cheapest route found so far")
    best_cost: float = Field(math.inf, description="Cost of best_path; inf if none found")
    arrived: int = Field(0, ge=0, description="Wagons that reached the destination")
    stuck: int = Field(0, ge=0, description="Wagons that ran out of unvisited neighbours")
    improved: bool = Field(False, description="True if this iteration lowered best_cost")

    @property
    def path_found(self) -> bool:
        return self.arrived > 0


class EdgePheromone(BaseModel):
    """Pheromone on one real segment, ready to draw."""
    node_a: int
    node_b: int
    cost: float
    pheromone: float
    intensity: float = Field(
        ..., ge=0, le=1,
        description="pheromone / max pheromone over all segments",
    )


class SessionSnapshot(BaseModel):
    """
    Everything a renderer needs after a tick.

    Matrices are plain nested lists (copies), so a snapshot stays valid
    no matter what the session does next.
    """
    state: SessionState
    iteration: int
    max_iterations: int
    start_node: int
    end_node: int
    node_names: List[str]
    best_path: Optional[List[int]] = None
    best_path_names: Optional[List[str]] = None
    best_cost: float = math.inf
    no_path_found: bool = Field(
        False, description="True if the most recent iteration had no arrivals"
    )
    pheromone_matrix: List[List[float]]
    cost_matrix: List[List[float]]
    edge_pheromones: List[EdgePheromone] = Field(default_factory=list)

    @property
    def progress(self) -> float:
        """Fraction of max_iterations completed, in [0, 1]."""
        return min(self.iteration / self.max_iterations, 1.0)
