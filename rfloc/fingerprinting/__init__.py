"""Radio fingerprint data model and signal-space nearest-neighbour search.

Main components:
    - RadioSource, RadioSourceWithPower, LocatedRadioSource: source identity,
      power model and position
    - RssiReading, RangingReading, RangingAndRssiReading: readings
    - Fingerprint, LocatedFingerprint: readings at one (known) point
    - RadioSourceKNearestFinder, find_k_nearest_to: KNN in signal space
    - load/save functions: calibration dataset I/O

Example usage:
    >>> from rfloc.fingerprinting import (
    ...     RadioSourceKNearestFinder,
    ...     load_calibration_dataset,
    ... )
    >>> calibration = load_calibration_dataset('data/sim/rssi_fingerprint_grid')
    >>> finder = RadioSourceKNearestFinder(calibration)
    >>> nearest = finder.find_nearest_to(query)
"""

from .dataset import (
    load_calibration_dataset,
    load_radio_sources,
    save_calibration_dataset,
    save_radio_sources,
    summarize_dataset,
)
from .knn import (
    RadioSourceKNearestFinder,
    find_k_nearest_to,
    find_k_nearest_to_with_distances,
    find_nearest_to,
    knn_localize,
    squared_signal_distance,
    weighted_knn_position,
)
from .types import (
    Fingerprint,
    LocatedFingerprint,
    LocatedRadioSource,
    RadioSource,
    RadioSourceKind,
    RadioSourceWithPower,
    RangingAndRssiReading,
    RangingReading,
    Reading,
    ReadingType,
    RssiReading,
    as_fingerprint,
)

__all__ = [
    # Core types
    "RadioSource",
    "RadioSourceKind",
    "RadioSourceWithPower",
    "LocatedRadioSource",
    "Reading",
    "ReadingType",
    "RssiReading",
    "RangingReading",
    "RangingAndRssiReading",
    "Fingerprint",
    "LocatedFingerprint",
    "as_fingerprint",
    # Dataset I/O
    "load_calibration_dataset",
    "save_calibration_dataset",
    "load_radio_sources",
    "save_radio_sources",
    "summarize_dataset",
    # KNN
    "RadioSourceKNearestFinder",
    "squared_signal_distance",
    "find_nearest_to",
    "find_k_nearest_to",
    "find_k_nearest_to_with_distances",
    "weighted_knn_position",
    "knn_localize",
]
