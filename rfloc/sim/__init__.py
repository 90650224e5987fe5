"""
Simulation utilities for generating synthetic radio scenarios.

Modules:
    rssi_scenario: Access point placement and Friis-model RSSI fingerprints
"""

from rfloc.sim.rssi_scenario import (
    generate_access_points,
    generate_calibration_grid,
    generate_fingerprint,
    perturb_readings,
)

__all__ = [
    "generate_access_points",
    "generate_fingerprint",
    "generate_calibration_grid",
    "perturb_readings",
]
