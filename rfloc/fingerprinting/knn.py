"""K-nearest fingerprint search in signal space.

Given a calibration set of located fingerprints and a query fingerprint, the
finder returns the calibration entries whose readings are closest to the
query's readings. Positions are never used to rank candidates.

Signal distance (squared):
    D²(q, f) = Σ_{r ∈ q, source(r) ∈ f} (value_q(r) - value_f(r))²

The compared value is RSSI when both readings carry RSSI, otherwise the
distance when both carry a distance. Readings present in only one of the
fingerprints do not contribute. If either fingerprint is empty, or no
comparable source is shared, D² = +inf.

Both a module-level form (calibration set passed per call) and an instance
form (RadioSourceKNearestFinder, bound to a fixed calibration set) are
provided; they share the same code path and return identical results.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from rfloc.errors import InvalidConfigurationError

from .types import Fingerprint, LocatedFingerprint, RadioSource, Reading


def _comparable_value(query: Reading, candidate: Reading) -> Optional[Tuple[float, float]]:
    if query.has_rssi and candidate.has_rssi:
        return query.rssi, candidate.rssi
    if query.has_distance and candidate.has_distance:
        return query.distance, candidate.distance
    return None


def squared_signal_distance(a: Fingerprint, b: Fingerprint) -> float:
    """
    Squared signal-space distance between two fingerprints.

    Args:
        a: Query fingerprint.
        b: Candidate fingerprint.

    Returns:
        Sum of squared value differences over shared sources, or +inf when
        either fingerprint is empty or nothing is comparable.

    Examples:
        >>> ap = RadioSource("ap1")
        >>> a = Fingerprint((RssiReading(ap, -50.0),))
        >>> b = Fingerprint((RssiReading(ap, -53.0),))
        >>> squared_signal_distance(a, b)
        9.0
    """
    if len(a) == 0 or len(b) == 0:
        return float("inf")

    # First reading per source in the candidate
    lookup: Dict[RadioSource, Reading] = {}
    for reading in b.readings:
        lookup.setdefault(reading.radio_source, reading)

    total = 0.0
    matched = False
    for reading in a.readings:
        other = lookup.get(reading.radio_source)
        if other is None:
            continue
        values = _comparable_value(reading, other)
        if values is None:
            continue
        diff = values[0] - values[1]
        total += diff * diff
        matched = True

    return total if matched else float("inf")


def _validate(query: Fingerprint, fingerprints: Sequence[LocatedFingerprint]) -> None:
    if fingerprints is None or len(fingerprints) == 0:
        raise InvalidConfigurationError("Calibration fingerprints must not be empty")
    if query is None:
        raise InvalidConfigurationError("Query fingerprint must not be None")


def find_k_nearest_to_with_distances(
    query: Fingerprint,
    fingerprints: Sequence[LocatedFingerprint],
    k: int,
) -> Tuple[List[LocatedFingerprint], np.ndarray]:
    """
    Find the k calibration fingerprints closest to a query in signal space.

    Args:
        query: Query fingerprint.
        fingerprints: Calibration set (M located fingerprints).
        k: Number of neighbours, 1 <= k <= M.

    Returns:
        Tuple of:
            - neighbours: k located fingerprints sorted by ascending distance.
              Ties keep calibration order.
            - squared_distances: Corresponding squared signal distances (k,).

    Raises:
        InvalidConfigurationError: If the calibration set is None or empty,
            the query is None, or k is not an integer in range.
    """
    _validate(query, fingerprints)
    M = len(fingerprints)
    if isinstance(k, bool) or not isinstance(k, (int, np.integer)):
        raise InvalidConfigurationError(f"k must be an integer, got {k!r}")
    if k < 1 or k > M:
        raise InvalidConfigurationError(f"k must be in [1, {M}], got k={k}")

    distances = np.array([squared_signal_distance(query, f) for f in fingerprints])

    # Stable sort so equal distances keep calibration order
    order = np.argsort(distances, kind="stable")[:k]

    return [fingerprints[i] for i in order], distances[order]


def find_k_nearest_to(
    query: Fingerprint,
    fingerprints: Sequence[LocatedFingerprint],
    k: int,
) -> List[LocatedFingerprint]:
    """Find the k calibration fingerprints closest to a query in signal space."""
    neighbours, _ = find_k_nearest_to_with_distances(query, fingerprints, k)
    return neighbours


def find_nearest_to(
    query: Fingerprint, fingerprints: Sequence[LocatedFingerprint]
) -> LocatedFingerprint:
    """Closest calibration fingerprint, same as find_k_nearest_to(..., 1)[0]."""
    return find_k_nearest_to(query, fingerprints, 1)[0]


class RadioSourceKNearestFinder:
    """
    K-nearest fingerprint finder bound to a calibration set.

    Example:
        >>> finder = RadioSourceKNearestFinder(calibration)
        >>> best = finder.find_nearest_to(query)
        >>> neighbours, d2 = finder.find_k_nearest_to_with_distances(query, k=3)
    """

    def __init__(self, fingerprints: Sequence[LocatedFingerprint]):
        if fingerprints is None or len(fingerprints) == 0:
            raise InvalidConfigurationError("Calibration fingerprints must not be empty")
        self._fingerprints = tuple(fingerprints)

    @property
    def fingerprints(self) -> Tuple[LocatedFingerprint, ...]:
        return self._fingerprints

    def find_nearest_to(self, query: Fingerprint) -> LocatedFingerprint:
        return find_nearest_to(query, self._fingerprints)

    def find_k_nearest_to(self, query: Fingerprint, k: int) -> List[LocatedFingerprint]:
        return find_k_nearest_to(query, self._fingerprints, k)

    def find_k_nearest_to_with_distances(
        self, query: Fingerprint, k: int
    ) -> Tuple[List[LocatedFingerprint], np.ndarray]:
        return find_k_nearest_to_with_distances(query, self._fingerprints, k)

    def __len__(self) -> int:
        return len(self._fingerprints)


def weighted_knn_position(
    neighbours: Sequence[LocatedFingerprint],
    squared_distances: np.ndarray,
    eps: float = 1e-6,
) -> np.ndarray:
    """
    Inverse-distance weighted position of KNN neighbours.

        x̂ = Σ w_i x_i / Σ w_i,   w_i = 1 / (D_i + ε)

    Neighbours at infinite signal distance get zero weight. If all of them
    are incomparable, the plain average of their positions is returned.

    Args:
        neighbours: Located fingerprints returned by the finder.
        squared_distances: Their squared signal distances.
        eps: Small constant to avoid division by zero.

    Returns:
        Estimated position, shape (d,).
    """
    if len(neighbours) == 0:
        raise InvalidConfigurationError("At least one neighbour is required")

    positions = np.array([n.position for n in neighbours])
    distances = np.sqrt(np.asarray(squared_distances, dtype=float))

    weights = np.where(np.isfinite(distances), 1.0 / (distances + eps), 0.0)
    if np.sum(weights) <= 0.0:
        weights = np.ones(len(neighbours))

    return np.sum(weights[:, np.newaxis] * positions, axis=0) / np.sum(weights)


def knn_localize(
    query: Fingerprint,
    fingerprints: Sequence[LocatedFingerprint],
    k: int = 3,
) -> np.ndarray:
    """
    Fingerprinting position estimate: k-nearest search plus weighted average.

    Examples:
        >>> x_hat = knn_localize(query, calibration, k=3)
    """
    neighbours, d2 = find_k_nearest_to_with_distances(query, fingerprints, k)
    return weighted_knn_position(neighbours, d2)
