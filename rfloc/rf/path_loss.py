"""
Path-loss model for RSSI based ranging.

This module converts among received signal strength (dBm), linear power,
power ratios and distance using a generalized Friis (log-distance) model.

Model:
    Friis constant:      k = c / (4·π·f)
    Received power:      Pr = Pt · k^n / d^n                    (linear units)
    Received RSSI:       Pr_dBm = n·10·log10(k) + Pt_dBm - 10·n·log10(d)
    Inverse (distance):  d = 10^((n·10·log10(k) + Pt_dBm - Pr_dBm) / (10·n))

where c is the speed of light, f the carrier frequency and n the path-loss
exponent (n = 2 for free space).

Fixed-coefficient beacon models use an affine power law instead:
    d = c1 · ratio^c2 + c3

Domain edges (distance <= 0, ratio <= 0) are preconditions checked by the
caller; the functions here never clamp their inputs.
"""

from typing import Optional, Tuple

import numpy as np

# Physical constants
SPEED_OF_LIGHT = 299792458.0  # m/s

# Common carrier frequencies
WIFI_2_4_GHZ = 2.4e9  # Hz
WIFI_5_GHZ = 5.0e9  # Hz


def dbm_to_power(dbm: float) -> float:
    """
    Convert a power level in dBm to linear power in milliwatts.

    Args:
        dbm: Power level in dBm.

    Returns:
        Power in mW, 10^(dBm/10).

    Example:
        >>> dbm_to_power(0.0)
        1.0
        >>> dbm_to_power(-30.0)
        0.001
    """
    return float(10.0 ** (dbm / 10.0))


def power_to_dbm(power: float) -> float:
    """
    Convert linear power in milliwatts to dBm.

    Args:
        power: Power in mW. Must be positive.

    Returns:
        Power level in dBm, 10·log10(power).
    """
    return float(10.0 * np.log10(power))


def get_k(frequency: float) -> float:
    """
    Friis constant k = c / (4·π·f) for a carrier frequency.

    Args:
        frequency: Carrier frequency in Hz.

    Returns:
        Friis constant in meters.

    Raises:
        ValueError: If frequency is not positive.
    """
    if frequency <= 0:
        raise ValueError(f"Frequency must be positive, got {frequency}")
    return SPEED_OF_LIGHT / (4.0 * np.pi * frequency)


def get_frequency(k: float) -> float:
    """
    Carrier frequency corresponding to a Friis constant (inverse of get_k).

    Args:
        k: Friis constant in meters.

    Returns:
        Frequency in Hz.
    """
    if k <= 0:
        raise ValueError(f"Friis constant must be positive, got {k}")
    return SPEED_OF_LIGHT / (4.0 * np.pi * k)


def received_power(
    tx_power: float,
    distance: float,
    frequency: float,
    path_loss_exponent: float = 2.0,
) -> float:
    """
    Received power from the generalized Friis model (linear units).

    Pr = Pt · (c / (4·π·f))^n / d^n

    Args:
        tx_power: Transmitted power (mW or any linear unit).
        distance: Distance between transmitter and receiver in meters.
        frequency: Carrier frequency in Hz.
        path_loss_exponent: Path-loss exponent n. Defaults to 2.0 (free space).

    Returns:
        Received power, in the same unit as tx_power.
    """
    k = get_k(frequency)
    return tx_power * k**path_loss_exponent / distance**path_loss_exponent


def received_rssi(
    tx_power_dbm: float,
    distance: float,
    frequency: float,
    path_loss_exponent: float = 2.0,
) -> float:
    """
    Received signal strength in dBm from the generalized Friis model.

    Pr_dBm = n·10·log10(k) + Pt_dBm - 10·n·log10(d)

    Args:
        tx_power_dbm: Transmitted power in dBm.
        distance: Distance in meters.
        frequency: Carrier frequency in Hz.
        path_loss_exponent: Path-loss exponent n.

    Returns:
        RSSI in dBm.

    Example:
        >>> rssi = received_rssi(-50.0, 10.0, 2.4e9, 2.0)
        >>> round(rssi, 2)
        -110.05
    """
    k_db = 10.0 * np.log10(get_k(frequency))
    n = path_loss_exponent
    return float(n * k_db + tx_power_dbm - 10.0 * n * np.log10(distance))


def rssi_to_distance(
    rssi_dbm: float,
    tx_power_dbm: float,
    frequency: float,
    path_loss_exponent: float = 2.0,
) -> float:
    """
    Invert the Friis model to estimate distance from a received RSSI.

    d = 10^((n·10·log10(k) + Pt_dBm - Pr_dBm) / (10·n))

    Args:
        rssi_dbm: Received signal strength in dBm.
        tx_power_dbm: Transmitted power in dBm.
        frequency: Carrier frequency in Hz.
        path_loss_exponent: Path-loss exponent n.

    Returns:
        Estimated distance in meters.
    """
    k_db = 10.0 * np.log10(get_k(frequency))
    n = path_loss_exponent
    exponent = (n * k_db + tx_power_dbm - rssi_dbm) / (10.0 * n)
    return float(10.0**exponent)


def distance_from_ratio(c1: float, c2: float, c3: float, ratio: float) -> float:
    """
    Distance from a received/reference power ratio using d = c1·ratio^c2 + c3.

    Args:
        c1: Scale coefficient.
        c2: Exponent coefficient.
        c3: Offset coefficient in meters.
        ratio: Received power over reference power (linear). Must be positive.

    Returns:
        Distance in meters.
    """
    return float(c1 * ratio**c2 + c3)


def ratio_from_distance(c1: float, c2: float, c3: float, distance: float) -> float:
    """Inverse of distance_from_ratio: ratio = ((d - c3) / c1)^(1/c2)."""
    return float(((distance - c3) / c1) ** (1.0 / c2))


def propagate_variances_to_distance_variance(
    frequency: float,
    tx_power_dbm: float,
    rx_power_dbm: float,
    path_loss_exponent: float,
    tx_power_variance: Optional[float] = None,
    rx_power_variance: Optional[float] = None,
    path_loss_exponent_variance: Optional[float] = None,
) -> Tuple[float, Optional[float]]:
    """
    First-order propagation of power and exponent variances to distance.

    With g = (n·kdB + Pt - Pr) / (10·n) the distance is d = 10^g and the
    partial derivatives are:

        ∂d/∂Pt =  ln(10) / (10·n) · 10^g
        ∂d/∂Pr = -ln(10) / (10·n) · 10^g
        ∂d/∂n  = -ln(10) · (Pt - Pr) / (10·n²) · 10^g

    The distance variance is J·diag(σ²)·J' with missing variances treated as
    zero.

    Args:
        frequency: Carrier frequency in Hz.
        tx_power_dbm: Transmitted power in dBm.
        rx_power_dbm: Received power (RSSI) in dBm.
        path_loss_exponent: Path-loss exponent n.
        tx_power_variance: Variance of the transmitted power (dBm²).
        rx_power_variance: Variance of the received power (dBm²).
        path_loss_exponent_variance: Variance of the path-loss exponent.

    Returns:
        Tuple of:
            - distance: Estimated distance in meters.
            - variance: Distance variance in m², or None if no input variance
              was provided.
    """
    n = path_loss_exponent
    k_db = 10.0 * np.log10(get_k(frequency))
    g = (n * k_db + tx_power_dbm - rx_power_dbm) / (10.0 * n)
    distance = float(10.0**g)

    variances = (tx_power_variance, rx_power_variance, path_loss_exponent_variance)
    if all(v is None for v in variances):
        return distance, None

    ln10 = np.log(10.0)
    d_tx = ln10 / (10.0 * n) * distance
    d_rx = -d_tx
    d_n = -ln10 * (tx_power_dbm - rx_power_dbm) / (10.0 * n**2) * distance

    variance = 0.0
    for derivative, v in zip((d_tx, d_rx, d_n), variances):
        if v is not None:
            variance += derivative**2 * v

    return distance, float(variance)
