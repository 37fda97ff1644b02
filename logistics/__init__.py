"""
logistics — the caller-facing layer around the ACO routing engine.

    logistics.shared.models         — pydantic parameters, results, snapshots
    logistics.shared.network        — the built-in ten-stop rail network
    logistics.control_plane         — SimulationSession and SimulationTicker
"""
