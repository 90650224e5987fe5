"""
Synthetic RSSI scenarios.

Access points are placed at random with a transmitted power model, and RSSI
readings at a receiver position follow the generalized Friis model

    Pr_dBm = n·10·log10(c / (4·π·f)) + Pt_dBm - 10·n·log10(d) + X_σ

with optional Gaussian shadowing X_σ. All randomness goes through the
generator passed in, so scenarios are reproducible from a seed.
"""

from typing import List, Optional, Sequence, Tuple

import numpy as np

from rfloc.fingerprinting.types import (
    LocatedFingerprint,
    LocatedRadioSource,
    RadioSource,
    RadioSourceWithPower,
    RssiReading,
)
from rfloc.rf.path_loss import WIFI_2_4_GHZ, received_rssi


def generate_access_points(
    n_aps: int,
    area_size: Sequence[float],
    rng: np.random.Generator,
    tx_power: float = -50.0,
    min_exponent: float = 2.0,
    max_exponent: float = 2.0,
    frequency: float = WIFI_2_4_GHZ,
) -> List[LocatedRadioSource]:
    """
    Place access points uniformly at random inside a box.

    Args:
        n_aps: Number of access points.
        area_size: Box size per axis in meters, length 2 or 3.
        rng: Random generator.
        tx_power: Transmitted power in dBm.
        min_exponent: Lower bound of the path-loss exponent.
        max_exponent: Upper bound of the path-loss exponent.
        frequency: Carrier frequency in Hz.

    Returns:
        Located access points with power model.
    """
    area_size = np.asarray(area_size, dtype=float)
    aps = []
    for i in range(n_aps):
        power = RadioSourceWithPower(
            RadioSource(id=f"AP{i + 1:03d}", frequency=frequency),
            transmitted_power=tx_power,
            path_loss_exponent=float(rng.uniform(min_exponent, max_exponent)),
        )
        aps.append(LocatedRadioSource(power, rng.uniform(0.0, area_size)))
    return aps


def generate_fingerprint(
    position: np.ndarray,
    aps: Sequence[LocatedRadioSource],
    rng: Optional[np.random.Generator] = None,
    shadowing_std: float = 0.0,
    min_distance: float = 0.1,
) -> List[RssiReading]:
    """
    RSSI readings of every access point at a receiver position.

    Args:
        position: Receiver position.
        aps: Located access points with power model.
        rng: Random generator, required when shadowing_std > 0.
        shadowing_std: Gaussian shadowing std in dB.
        min_distance: Distances are floored to this value (meters).

    Returns:
        One RssiReading per access point, in access point order.
    """
    readings = []
    for ap in aps:
        d = max(float(np.linalg.norm(ap.position - position)), min_distance)
        power = ap.source
        rssi = received_rssi(power.transmitted_power, d, power.frequency, power.path_loss_exponent)
        if shadowing_std > 0:
            rssi += rng.normal(0.0, shadowing_std)
        readings.append(RssiReading(power, rssi, rssi_std=shadowing_std if shadowing_std > 0 else None))
    return readings


def perturb_readings(
    readings: Sequence[RssiReading],
    fraction: float,
    std: float,
    rng: np.random.Generator,
) -> Tuple[List[RssiReading], np.ndarray]:
    """
    Add large Gaussian errors to a random fraction of the readings.

    Returns:
        Tuple of (readings, outlier_mask).
    """
    n = len(readings)
    outliers = np.zeros(n, dtype=bool)
    outliers[rng.choice(n, size=int(round(fraction * n)), replace=False)] = True
    result = [
        RssiReading(r.source, r.rssi + rng.normal(0.0, std), r.rssi_std) if bad else r
        for r, bad in zip(readings, outliers)
    ]
    return result, outliers


def generate_calibration_grid(
    aps: Sequence[LocatedRadioSource],
    area_size: Sequence[float],
    spacing: float,
    rng: Optional[np.random.Generator] = None,
    shadowing_std: float = 0.0,
) -> List[LocatedFingerprint]:
    """Located fingerprints on a regular 2D grid covering the area."""
    xs = np.arange(0.0, area_size[0] + 1e-9, spacing)
    ys = np.arange(0.0, area_size[1] + 1e-9, spacing)
    calibration = []
    for x in xs:
        for y in ys:
            position = np.array([x, y])
            readings = generate_fingerprint(position, aps, rng, shadowing_std)
            calibration.append(LocatedFingerprint(tuple(readings), position))
    return calibration
