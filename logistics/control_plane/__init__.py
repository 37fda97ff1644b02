"""
logistics/control_plane — run control for the routing simulation.

    SimulationSession   — configure / start / step / pause / reset / disrupt / snapshot
    SessionActiveError  — configure() while a run is in progress
    SimulationTicker    — drives step() on a fixed wall-clock cadence
"""

from logistics.control_plane.session import SessionActiveError, SimulationSession
from logistics.control_plane.ticker import SimulationTicker

__all__ = [
    "SimulationSession",
    "SessionActiveError",
    "SimulationTicker",
]
