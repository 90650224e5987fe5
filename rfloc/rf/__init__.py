"""
RF signal model module.

Submodules:
    path_loss: Friis/log-distance conversions among RSSI, power, ratio and
        distance, plus variance propagation to distance.
"""

from rfloc.rf.path_loss import (
    SPEED_OF_LIGHT,
    WIFI_2_4_GHZ,
    WIFI_5_GHZ,
    dbm_to_power,
    distance_from_ratio,
    get_frequency,
    get_k,
    power_to_dbm,
    propagate_variances_to_distance_variance,
    ratio_from_distance,
    received_power,
    received_rssi,
    rssi_to_distance,
)

__all__ = [
    "SPEED_OF_LIGHT",
    "WIFI_2_4_GHZ",
    "WIFI_5_GHZ",
    "dbm_to_power",
    "power_to_dbm",
    "get_k",
    "get_frequency",
    "received_power",
    "received_rssi",
    "rssi_to_distance",
    "distance_from_ratio",
    "ratio_from_distance",
    "propagate_variances_to_distance_variance",
]
