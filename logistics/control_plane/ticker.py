"""
logistics/control_plane/ticker.py
─────────────────────────────────
SimulationTicker: drives SimulationSession.step() on a fixed wall-clock cadence.

What this is
────────────
The session itself never schedules anything: step() runs one iteration
and returns. A dashboard wants iterations to arrive on their own, about
every 40ms, and wants each result pushed to it. The ticker is that loop.

    session.start()
    ticker = SimulationTicker(session, on_iteration=push_to_dashboard)
    ticker.start()          # background thread, one step() per tick
    ...
    session.pause()         # ticker notices and exits after the current tick
    ticker.join()

Cadence
───────
The next tick is scheduled only after the previous step() has returned,
so iterations never overlap. The wait between ticks is tick_interval_s
measured from the end of one step to the start of the next; a slow
iteration delays the next tick rather than queueing a backlog.

Stopping
────────
The loop exits when:
  • step() returns None (session paused, reset, or completed), or
  • stop() is called (the in-flight step, if any, still finishes), or
  • step() or the callback raises. The exception is logged and kept on
    `error`; it is not re-raised into the thread.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from logistics.control_plane.session import SimulationSession
from logistics.shared.models import DEFAULT_TICK_INTERVAL_S, IterationResult

logger = logging.getLogger(__name__)

IterationCallback = Callable[[IterationResult], None]


class SimulationTicker:
    """
    Background thread that calls session.step() every tick_interval_s.

    Attributes:
        tick_count : int — step() calls that produced a result.
        error      : Optional[Exception] — what stopped the loop, if it failed.
    """

    def __init__(
        self,
        session: SimulationSession,
        tick_interval_s: float = DEFAULT_TICK_INTERVAL_S,
        on_iteration: Optional[IterationCallback] = None,
    ) -> None:
        if tick_interval_s < 0:
            raise ValueError(f"tick_interval_s must be ≥ 0, got {tick_interval_s}")
        self._session = session
        self._interval = tick_interval_s
        self._on_iteration = on_iteration
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.tick_count: int = 0
        self.error: Optional[Exception] = None

    # ── Public API ─────────────────────────────────────────────────────────────

    def tick(self) -> Optional[IterationResult]:
        """
        One step() plus the callback. Returns None once the session is
        no longer RUNNING.
        """
        result = self._session.step()
        if result is None:
            return None
        self.tick_count += 1
        if self._on_iteration is not None:
            self._on_iteration(result)
        return result

    def start(self) -> None:
        """Launch the background loop. Calling start() twice is a no-op."""
        if self.is_alive:
            return
        self._stop.clear()
        self.error = None
        self._thread = threading.Thread(
            target=self._loop, name="simulation-ticker", daemon=True
        )
        self._thread.start()
        logger.debug("ticker started (interval=%.3fs).", self._interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Ask the loop to exit and wait for it."""
        self._stop.set()
        self.join(timeout)

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ── Loop ───────────────────────────────────────────────────────────────────

    def _loop(self) -> None:
        try:
            while not self._stop.is_set():
                if self.tick() is None:
                    break
                # Event.wait doubles as an interruptible sleep.
                if self._stop.wait(self._interval):
                    break
        except Exception as exc:
            # Logged once here; the thread ends and the error stays on self.error.
            self.error = exc
            logger.exception("ticker: iteration failed, stopping.")
        finally:
            logger.debug("ticker stopped after %d ticks.", self.tick_count)

    def __repr__(self) -> str:
        return (
            f"SimulationTicker(interval={self._interval:.3f}s, "
            f"ticks={self.tick_count}, alive={self.is_alive})"
        )
