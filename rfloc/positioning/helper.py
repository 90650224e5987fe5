"""
Conversion of fingerprint readings into lateration entries.

Each reading whose source is among the located sources yields one entry
(source position, distance, distance standard deviation):

    - RangingReading: distance used as is.
    - RssiReading: distance from the Friis model using the source's
      transmitted power and path-loss exponent; the standard deviation is
      propagated from the RSSI, power and exponent uncertainties.
    - RangingAndRssiReading: one ranging entry plus one RSSI entry.

Readings whose source is unknown, or RSSI readings of sources without a
power model, are ignored. Missing uncertainties fall back to a fixed
standard deviation. When requested, the source position uncertainty
sqrt(mean singular value of its covariance) is added in quadrature.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from rfloc.fingerprinting.types import (
    Fingerprint,
    LocatedRadioSource,
    RadioSource,
    RangingAndRssiReading,
    RangingReading,
    RssiReading,
)
from rfloc.rf.path_loss import propagate_variances_to_distance_variance

DEFAULT_FALLBACK_DISTANCE_STD = 1e-3  # meters


@dataclass
class LaterationInputs:
    """Lateration entries built from a fingerprint.

    Attributes:
        positions: Source positions (M, N).
        distances: Distance estimates (M,).
        distance_stds: Distance standard deviations (M,), all positive.
        source_indices: Index of each entry's source in the source list (M,).
        reading_indices: Index of each entry's reading in the fingerprint (M,).
        quality_scores: Entry quality scores (M,), or None when no score
            arrays were supplied.
    """

    positions: np.ndarray
    distances: np.ndarray
    distance_stds: np.ndarray
    source_indices: np.ndarray
    reading_indices: np.ndarray
    quality_scores: Optional[np.ndarray] = None

    def __len__(self) -> int:
        return len(self.distances)

    @property
    def dimensions(self) -> int:
        return self.positions.shape[1]


def _optional_variance(std: Optional[float]) -> Optional[float]:
    return None if std is None else std**2


def _rssi_distance(located: LocatedRadioSource, reading, fallback: float) -> Tuple[float, float]:
    power = located.source
    distance, variance = propagate_variances_to_distance_variance(
        frequency=power.frequency,
        tx_power_dbm=power.transmitted_power,
        rx_power_dbm=reading.rssi,
        path_loss_exponent=power.path_loss_exponent,
        tx_power_variance=_optional_variance(power.transmitted_power_std),
        rx_power_variance=_optional_variance(reading.rssi_std),
        path_loss_exponent_variance=_optional_variance(power.path_loss_exponent_std),
    )
    std = math.sqrt(variance) if variance is not None and variance > 0.0 else fallback
    return distance, std


def _position_std(located: LocatedRadioSource) -> float:
    if located.position_covariance is None:
        return 0.0
    singular = np.linalg.svd(located.position_covariance, compute_uv=False)
    return float(math.sqrt(np.mean(singular)))


def evenly_distributed_scores(source_indices: np.ndarray, scores: np.ndarray) -> np.ndarray:
    """
    Rank entries so that consecutive ranks belong to different sources.

    Entries are grouped by source and sorted by score within each group.
    Round r takes the r-th best entry of every source, ordered by score, and
    rounds are concatenated. The returned scores decrease along that order,
    so progressive sampling visits one reading per source before repeating
    any source.
    """
    groups: Dict[int, List[int]] = {}
    for entry in np.argsort(-scores, kind="stable"):
        groups.setdefault(int(source_indices[entry]), []).append(int(entry))

    ordered = []
    depth = max((len(g) for g in groups.values()), default=0)
    for r in range(depth):
        layer = [g[r] for g in groups.values() if len(g) > r]
        layer.sort(key=lambda e: -scores[e])
        ordered.extend(layer)

    result = np.empty(len(scores))
    for rank, entry in enumerate(ordered):
        result[entry] = len(scores) - rank
    return result


def build_lateration_inputs(
    sources: Sequence[LocatedRadioSource],
    fingerprint: Fingerprint,
    fallback_distance_std: float = DEFAULT_FALLBACK_DISTANCE_STD,
    use_radio_source_position_covariance: bool = False,
    source_quality_scores: Optional[Sequence[float]] = None,
    fingerprint_reading_quality_scores: Optional[Sequence[float]] = None,
    evenly_distribute_readings: bool = False,
) -> LaterationInputs:
    """
    Match readings to located sources and convert them to distances.

    Args:
        sources: Located radio sources (all of the same dimension).
        fingerprint: Readings to position.
        fallback_distance_std: Standard deviation used when a distance has no
            uncertainty information.
        use_radio_source_position_covariance: Add source position uncertainty
            to the distance standard deviation.
        source_quality_scores: Optional score per source.
        fingerprint_reading_quality_scores: Optional score per reading.
        evenly_distribute_readings: Re-rank quality scores so that readings
            of different sources alternate.

    Returns:
        LaterationInputs, possibly empty.
    """
    lookup: Dict[RadioSource, int] = {}
    for index, located in enumerate(sources):
        lookup.setdefault(located.radio_source, index)

    dims = sources[0].dimensions if len(sources) > 0 else 0
    positions, distances, stds, source_idx, reading_idx = [], [], [], [], []

    def add(index: int, r_index: int, distance: float, std: float) -> None:
        located = sources[index]
        if use_radio_source_position_covariance:
            std = math.sqrt(std**2 + _position_std(located) ** 2)
        positions.append(located.position)
        distances.append(distance)
        stds.append(std)
        source_idx.append(index)
        reading_idx.append(r_index)

    for r_index, reading in enumerate(fingerprint.readings):
        index = lookup.get(reading.radio_source)
        if index is None:
            continue
        located = sources[index]

        if isinstance(reading, (RangingReading, RangingAndRssiReading)):
            std = reading.distance_std if reading.distance_std is not None else fallback_distance_std
            add(index, r_index, reading.distance, std)

        if isinstance(reading, (RssiReading, RangingAndRssiReading)) and located.has_power:
            distance, std = _rssi_distance(located, reading, fallback_distance_std)
            add(index, r_index, distance, std)

    source_idx = np.array(source_idx, dtype=int)
    reading_idx = np.array(reading_idx, dtype=int)

    scores = None
    if source_quality_scores is not None or fingerprint_reading_quality_scores is not None:
        scores = np.zeros(len(distances))
        if source_quality_scores is not None:
            scores += np.asarray(source_quality_scores, dtype=float)[source_idx]
        if fingerprint_reading_quality_scores is not None:
            scores += np.asarray(fingerprint_reading_quality_scores, dtype=float)[reading_idx]
        if evenly_distribute_readings:
            scores = evenly_distributed_scores(source_idx, scores)

    return LaterationInputs(
        positions=np.array(positions, dtype=float).reshape(len(positions), dims),
        distances=np.array(distances, dtype=float),
        distance_stds=np.array(stds, dtype=float),
        source_indices=source_idx,
        reading_indices=reading_idx,
        quality_scores=scores,
    )
