"""
tests/test_simulation_session.py
─────────────────────────────────
SimulationSession and SimulationTicker.

Test groups:
    Group 1 — Configuration and validation
    Group 2 — Run control (start / step / pause / resume / complete / reset)
    Group 3 — Disruption and baseline
    Group 4 — Routing outcomes (convergence, single route, determinism)
    Group 5 — Snapshots
    Group 6 — Concurrency (in-flight iteration vs pause / disrupt)
    Group 7 — SimulationTicker
"""

from __future__ import annotations

import math
import threading
import time
from typing import List

import numpy as np
import pytest

from aco_core import InvalidParameterError, LogisticsGraph
from aco_core.pheromone import TAU_INITIAL, TAU_MIN
from logistics.control_plane import (
    SessionActiveError,
    SimulationSession,
    SimulationTicker,
)
from logistics.shared.models import (
    DEFAULT_DISRUPTION_MULTIPLIER,
    IterationResult,
    SessionState,
)
from logistics.shared.network import EDGES, NODE_NAMES


# ─────────────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────────────

A, B, C, D = 0, 1, 2, 3


def _four_stop() -> LogisticsGraph:
    """A–B 10, B–C 10, A–C 30, C–D 5. Best A→D is A-B-C-D = 25."""
    return LogisticsGraph.build_graph(
        ["A", "B", "C", "D"],
        [(A, B, 10.0), (B, C, 10.0), (A, C, 30.0), (C, D, 5.0)],
    )


@pytest.fixture
def session() -> SimulationSession:
    s = SimulationSession(seed=42)
    s.configure(0, 6, agents_per_iteration=10, max_iterations=20)
    return s


@pytest.fixture
def four_stop() -> SimulationSession:
    s = SimulationSession(graph=_four_stop(), seed=7)
    s.configure(A, D, agents_per_iteration=20, max_iterations=30)
    return s


# ─────────────────────────────────────────────────────────────────────────────
# Group 1 — Configuration and validation
# ─────────────────────────────────────────────────────────────────────────────

class TestConfiguration:

    def test_default_session_uses_builtin_network(self):
        s = SimulationSession(seed=0)
        assert s.graph.n_nodes == len(NODE_NAMES)
        assert len(s.graph.edges()) == len(EDGES)
        assert (s.config.start_node, s.config.end_node) == (0, 6)
        assert s.state is SessionState.IDLE

    def test_custom_graph_defaults_to_first_and_last(self):
        s = SimulationSession(graph=_four_stop(), seed=0)
        assert (s.config.start_node, s.config.end_node) == (A, D)

    def test_configure_sets_parameters(self, session):
        cfg = session.configure(1, 9, alpha=2.0, beta=1.5, evaporation_rate=0.3,
                                agents_per_iteration=7, max_iterations=11)
        assert session.config == cfg
        assert cfg.params.alpha == 2.0 and cfg.params.beta == 1.5
        assert cfg.params.evaporation_rate == 0.3
        assert cfg.params.agents_per_iteration == 7 and cfg.params.max_iterations == 11

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"start_node": -1, "end_node": 6},
            {"start_node": 0, "end_node": 10},
            {"start_node": 0, "end_node": 6, "alpha": 0.0},
            {"start_node": 0, "end_node": 6, "beta": -1.0},
            {"start_node": 0, "end_node": 6, "evaporation_rate": 0.0},
            {"start_node": 0, "end_node": 6, "evaporation_rate": 1.0},
            {"start_node": 0, "end_node": 6, "agents_per_iteration": 0},
            {"start_node": 0, "end_node": 6, "max_iterations": 0},
        ],
    )
    def test_invalid_configuration_rejected(self, session, kwargs):
        before = session.config
        with pytest.raises(InvalidParameterError):
            session.configure(**kwargs)
        assert session.config == before
        assert session.state is SessionState.IDLE

    def test_configure_rejected_while_running(self, session):
        session.start()
        with pytest.raises(SessionActiveError):
            session.configure(0, 9)

    def test_configure_rejected_while_paused(self, session):
        session.start()
        session.step()
        session.pause()
        with pytest.raises(SessionActiveError):
            session.configure(0, 9)

    def test_configure_allowed_after_reset_and_completion(self, session):
        session.start()
        session.reset()
        session.configure(0, 9, max_iterations=1)
        session.run()
        assert session.state is SessionState.COMPLETED
        session.configure(0, 6)


# ─────────────────────────────────────────────────────────────────────────────
# Group 2 — Run control
# ─────────────────────────────────────────────────────────────────────────────

class TestRunControl:

    def test_step_before_start_is_noop(self, session):
        assert session.step() is None
        assert session.iteration == 0

    def test_step_advances_one_iteration(self, session):
        session.start()
        result = session.step()
        assert isinstance(result, IterationResult)
        assert result.iteration == 1 == session.iteration

    def test_completes_at_max_iterations(self, session):
        results = session.run()
        assert len(results) == 20
        assert [r.iteration for r in results] == list(range(1, 21))
        assert session.state is SessionState.COMPLETED
        assert session.step() is None
        assert session.iteration == 20

    def test_pause_stops_advancing(self, session):
        session.start()
        session.step()
        session.step()
        assert session.pause() is SessionState.PAUSED
        assert session.step() is None
        assert session.iteration == 2

    def test_resume_continues_in_place(self, session):
        session.run(3)
        session.pause()
        tau_before = session.pheromone_snapshot()
        best_before = session.best_cost

        session.start()
        assert session.state is SessionState.RUNNING
        assert session.iteration == 3
        assert np.array_equal(session.pheromone_snapshot(), tau_before)
        assert session.best_cost == best_before

        assert session.step().iteration == 4

    def test_start_while_running_is_noop(self, session):
        session.run(2)
        session.start()
        assert session.iteration == 2

    def test_start_after_completion_begins_fresh(self, session):
        session.run()
        session.start()
        assert session.iteration == 0
        assert session.best_path is None
        assert np.allclose(session.pheromone_snapshot(), TAU_INITIAL)

    def test_pause_when_not_running_is_noop(self, session):
        assert session.pause() is SessionState.IDLE

    def test_reset_restores_initial_state(self, session):
        session.run(5)
        session.reset()
        assert session.state is SessionState.IDLE
        assert session.iteration == 0
        assert session.best_path is None
        assert session.best_cost == math.inf
        assert np.allclose(session.pheromone_snapshot(), TAU_INITIAL)

    def test_reset_stops_active_run(self, session):
        session.start()
        session.step()
        session.reset()
        assert session.step() is None

    def test_best_cost_never_increases(self, session):
        costs = [r.best_cost for r in session.run()]
        assert all(b <= a for a, b in zip(costs, costs[1:]))

    def test_floor_holds_after_every_iteration(self):
        s = SimulationSession(seed=3)
        s.configure(0, 9, evaporation_rate=0.95, agents_per_iteration=5, max_iterations=40)
        s.start()
        while s.step() is not None:
            assert np.all(s.pheromone_snapshot() >= TAU_MIN)


# ─────────────────────────────────────────────────────────────────────────────
# Group 3 — Disruption and baseline
# ─────────────────────────────────────────────────────────────────────────────

class TestDisruption:

    def test_disrupt_scales_both_directions(self, session):
        original = session.graph.cost(2, 5)
        assert session.disrupt(2, 5, 4.0) is True
        assert session.graph.cost(2, 5) == session.graph.cost(5, 2) == original * 4.0

    def test_second_disruption_compounds(self, session):
        original = session.graph.cost(2, 5)
        session.disrupt(2, 5, 4.0)
        session.disrupt(2, 5, 1.5)
        assert session.graph.cost(5, 2) == pytest.approx(original * 4.0 * 1.5)

    def test_default_multiplier(self, session):
        original = session.graph.cost(0, 1)
        session.disrupt(0, 1)
        assert session.graph.cost(0, 1) == original * DEFAULT_DISRUPTION_MULTIPLIER

    def test_non_adjacent_disruption_is_noop(self, session):
        before = session.graph.cost_snapshot()
        assert session.disrupt(0, 6, 4.0) is False
        assert np.array_equal(session.graph.cost_snapshot(), before)

    def test_out_of_range_disruption_raises(self, session):
        with pytest.raises(InvalidParameterError):
            session.disrupt(0, 42, 4.0)

    def test_disrupt_while_running_is_allowed(self, session):
        session.run(3)
        session.disrupt(5, 6, 4.0)
        result = session.step()
        assert result.iteration == 4
        assert session.get_snapshot().cost_matrix[5][6] == 18.0 * 4.0

    def test_reset_keeps_disrupted_costs(self, session):
        session.disrupt(2, 5, 4.0)
        session.run(2)
        session.reset()
        assert session.graph.cost(2, 5) == 22.0 * 4.0
        assert np.allclose(session.pheromone_snapshot(), TAU_INITIAL)
        assert session.iteration == 0

    def test_reset_with_restore_baseline(self, session):
        session.disrupt(2, 5, 4.0)
        session.reset(restore_baseline=True)
        assert session.graph.cost(2, 5) == 22.0

    def test_reset_to_baseline_leaves_run_state(self, session):
        session.run(2)
        session.disrupt(2, 5, 4.0)
        session.reset_to_baseline()
        assert session.graph.cost(2, 5) == 22.0
        assert session.iteration == 2


# ─────────────────────────────────────────────────────────────────────────────
# Group 4 — Routing outcomes
# ─────────────────────────────────────────────────────────────────────────────

class TestRouting:

    def test_four_stop_converges_to_cheapest(self, four_stop):
        four_stop.run()
        assert four_stop.best_path == [A, B, C, D]
        assert four_stop.best_cost == 25.0

    def test_single_route_found_in_one_iteration(self):
        g = LogisticsGraph.build_graph(
            ["A", "B", "C", "D"], [(0, 1, 2.5), (1, 2, 4.0), (2, 3, 1.5)]
        )
        s = SimulationSession(graph=g, seed=1)
        s.configure(0, 3, agents_per_iteration=3, max_iterations=5)
        result = s.run(1)[0]
        assert result.best_path == [0, 1, 2, 3]
        assert result.best_cost == 8.0

    def test_fully_connected_route_is_valid(self):
        n = 6
        names = [f"S{i}" for i in range(n)]
        edges = [(i, j, float(abs(i - j) * 3 + 1)) for i in range(n) for j in range(i + 1, n)]
        g = LogisticsGraph.build_graph(names, edges)
        s = SimulationSession(graph=g, seed=5)
        s.configure(1, 4, agents_per_iteration=10, max_iterations=15)
        s.run()
        path = s.best_path
        assert path[0] == 1 and path[-1] == 4
        assert all(g.has_edge(u, v) for u, v in zip(path, path[1:]))
        assert s.best_cost == pytest.approx(g.path_cost(path))

    def test_builtin_network_route_is_valid(self, session):
        session.run()
        path = session.best_path
        assert path[0] == 0 and path[-1] == 6
        assert session.best_cost == pytest.approx(session.graph.path_cost(path))

    def test_reroutes_after_disruption_and_restart(self, four_stop):
        four_stop.run()
        assert four_stop.best_path == [A, B, C, D]

        four_stop.disrupt(B, C, 10.0)          # A-B-C-D now costs 115
        four_stop.reset()
        four_stop.run()
        assert four_stop.best_path == [A, C, D]
        assert four_stop.best_cost == 35.0

    def test_disconnected_endpoints_report_no_path(self):
        g = LogisticsGraph.build_graph(["A", "B", "C"], [(0, 1, 1.0)])
        s = SimulationSession(graph=g, seed=0)
        s.configure(0, 2, agents_per_iteration=4, max_iterations=5)
        results = s.run()
        assert len(results) == 5
        assert all(not r.path_found for r in results)
        snap = s.get_snapshot()
        assert snap.no_path_found
        assert snap.best_path is None and snap.best_cost == math.inf

    def test_start_equals_end(self):
        s = SimulationSession(seed=0)
        s.configure(3, 3, agents_per_iteration=2, max_iterations=2)
        s.run()
        assert s.best_path == [3]
        assert s.best_cost == 0.0
        assert np.all(s.pheromone_snapshot() <= TAU_INITIAL)

    def test_seeded_runs_are_identical(self):
        def trajectory(seed: int) -> List[IterationResult]:
            s = SimulationSession(seed=seed)
            s.configure(0, 9, agents_per_iteration=8, max_iterations=25)
            out = []
            for _ in range(25):
                out.extend(s.run(1))
                if s.iteration == 10:
                    s.disrupt(5, 9, 4.0)
                if s.iteration == 15:
                    s.disrupt(4, 9, 2.0)
            return out

        assert trajectory(123) == trajectory(123)

    def test_parallel_session_matches_sequential(self):
        seq = SimulationSession(seed=8)
        par = SimulationSession(seed=8, max_workers=4)
        try:
            for s in (seq, par):
                s.configure(0, 9, agents_per_iteration=12, max_iterations=10)
            assert seq.run() == par.run()
        finally:
            par.close()

    def test_context_manager_releases_thread_pool(self):
        with SimulationSession(seed=8, max_workers=2) as s:
            s.configure(0, 6, agents_per_iteration=4, max_iterations=2)
            s.run()
            assert s._colony.parallel
        assert not s._colony.parallel


# ─────────────────────────────────────────────────────────────────────────────
# Group 5 — Snapshots
# ─────────────────────────────────────────────────────────────────────────────

class TestSnapshot:

    def test_fresh_snapshot(self, session):
        snap = session.get_snapshot()
        assert snap.state is SessionState.IDLE
        assert snap.iteration == 0
        assert snap.best_path is None and snap.best_cost == math.inf
        assert not snap.no_path_found
        assert len(snap.pheromone_matrix) == 10
        assert all(v == TAU_INITIAL for row in snap.pheromone_matrix for v in row)
        assert snap.cost_matrix[0][1] == 15.0
        assert snap.cost_matrix[0][6] == math.inf
        assert snap.progress == 0.0

    def test_snapshot_after_run(self, session):
        session.run(5)
        snap = session.get_snapshot()
        assert snap.iteration == 5
        assert snap.state is SessionState.RUNNING
        assert snap.best_path_names == [NODE_NAMES[i] for i in snap.best_path]
        assert snap.progress == pytest.approx(5 / 20)

    def test_edge_pheromones_cover_real_segments(self, session):
        session.run(5)
        snap = session.get_snapshot()
        assert len(snap.edge_pheromones) == len(EDGES)
        intensities = [e.intensity for e in snap.edge_pheromones]
        assert max(intensities) == pytest.approx(1.0)
        assert all(0.0 <= i <= 1.0 for i in intensities)
        for e in snap.edge_pheromones:
            assert e.pheromone == snap.pheromone_matrix[e.node_a][e.node_b]

    def test_snapshot_is_a_copy(self, session):
        session.run(2)
        snap = session.get_snapshot()
        frozen = [row[:] for row in snap.pheromone_matrix]
        session.step()
        assert snap.pheromone_matrix == frozen
        assert session.get_snapshot().pheromone_matrix != frozen


# ─────────────────────────────────────────────────────────────────────────────
# Group 6 — Concurrency
# ─────────────────────────────────────────────────────────────────────────────

class TestConcurrency:
    """Out-of-band commands wait for the in-flight iteration to commit."""

    @staticmethod
    def _hold_iteration(session, monkeypatch):
        started, release = threading.Event(), threading.Event()
        original = session._colony.run_iteration

        def held(config):
            started.set()
            release.wait(5)
            return original(config)

        monkeypatch.setattr(session._colony, "run_iteration", held)
        return started, release

    def test_pause_waits_for_in_flight_iteration(self, session, monkeypatch):
        started, release = self._hold_iteration(session, monkeypatch)
        session.start()
        stepper = threading.Thread(target=session.step)
        stepper.start()
        assert started.wait(5)

        pauser = threading.Thread(target=session.pause)
        pauser.start()
        pauser.join(0.1)
        assert pauser.is_alive(), "pause() returned while an iteration was in flight"

        release.set()
        stepper.join(5)
        pauser.join(5)
        assert session.iteration == 1
        assert session.state is SessionState.PAUSED

    def test_disrupt_lands_after_in_flight_iteration(self, monkeypatch):
        g = LogisticsGraph.build_graph(["A", "B", "C"], [(0, 1, 3.0), (1, 2, 4.0)])
        s = SimulationSession(graph=g, seed=0)
        s.configure(0, 2, agents_per_iteration=3, max_iterations=5)
        started, release = self._hold_iteration(s, monkeypatch)
        s.start()

        results: List[IterationResult] = []
        stepper = threading.Thread(target=lambda: results.append(s.step()))
        stepper.start()
        assert started.wait(5)

        disrupter = threading.Thread(target=s.disrupt, args=(0, 1, 10.0))
        disrupter.start()
        disrupter.join(0.1)
        assert disrupter.is_alive()

        release.set()
        stepper.join(5)
        disrupter.join(5)
        assert results[0].best_cost == 7.0          # walked the undisrupted costs
        assert g.cost(0, 1) == 30.0

    def test_snapshots_consistent_while_ticking(self):
        s = SimulationSession(seed=4)
        s.configure(0, 9, agents_per_iteration=5, max_iterations=60)
        s.start()
        ticker = SimulationTicker(s, tick_interval_s=0.0)
        ticker.start()
        last = 0
        try:
            while ticker.is_alive:
                snap = s.get_snapshot()
                assert snap.iteration >= last
                assert min(min(row) for row in snap.pheromone_matrix) >= TAU_MIN
                last = snap.iteration
        finally:
            ticker.stop(5)
        assert s.iteration == 60


# ─────────────────────────────────────────────────────────────────────────────
# Group 7 — SimulationTicker
# ─────────────────────────────────────────────────────────────────────────────

class TestTicker:

    def test_runs_until_completed_and_pushes_results(self, session):
        pushed: List[IterationResult] = []
        session.configure(0, 6, agents_per_iteration=5, max_iterations=5)
        session.start()
        ticker = SimulationTicker(session, tick_interval_s=0.0, on_iteration=pushed.append)
        ticker.start()
        ticker.join(5)
        assert not ticker.is_alive
        assert session.state is SessionState.COMPLETED
        assert [r.iteration for r in pushed] == [1, 2, 3, 4, 5]
        assert ticker.tick_count == 5

    def test_exits_when_session_paused(self, session):
        def pause_at_three(result: IterationResult) -> None:
            if result.iteration == 3:
                session.pause()

        session.start()
        ticker = SimulationTicker(session, tick_interval_s=0.0, on_iteration=pause_at_three)
        ticker.start()
        ticker.join(5)
        assert not ticker.is_alive
        assert session.iteration == 3
        assert session.state is SessionState.PAUSED

    def test_stop_halts_loop_without_changing_state(self):
        s = SimulationSession(seed=0)
        s.configure(0, 6, agents_per_iteration=2, max_iterations=100_000)
        s.start()
        ticker = SimulationTicker(s, tick_interval_s=0.01)
        ticker.start()
        time.sleep(0.05)
        ticker.stop(5)
        assert not ticker.is_alive
        assert 0 < s.iteration < 100_000
        assert s.state is SessionState.RUNNING

    def test_tick_on_idle_session_returns_none(self, session):
        assert SimulationTicker(session).tick() is None

    def test_negative_interval_rejected(self, session):
        with pytest.raises(ValueError):
            SimulationTicker(session, tick_interval_s=-1.0)

    def test_failing_callback_stops_loop_and_logs_once(self, session, monkeypatch, caplog):
        def explode(result: IterationResult) -> None:
            if result.iteration == 2:
                raise RuntimeError("dashboard went away")

        uncaught: List[threading.ExceptHookArgs] = []
        monkeypatch.setattr(threading, "excepthook", uncaught.append)

        session.start()
        ticker = SimulationTicker(session, tick_interval_s=0.0, on_iteration=explode)
        with caplog.at_level("ERROR", logger="logistics.control_plane.ticker"):
            ticker.start()
            ticker.join(5)

        assert not ticker.is_alive
        assert isinstance(ticker.error, RuntimeError)
        assert ticker.tick_count == 2
        assert session.state is SessionState.RUNNING
        assert uncaught == []
        failures = [r for r in caplog.records if "iteration failed" in r.getMessage()]
        assert len(failures) == 1
