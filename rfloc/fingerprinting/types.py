"""Value types for radio sources, readings and fingerprints.

This module defines the immutable data model shared by the KNN finder and the
position estimators:

    - RadioSource: identity of a WiFi access point or BLE beacon
    - RadioSourceWithPower: a source plus its transmitted power model
    - LocatedRadioSource: a source with a known position (and covariance)
    - RssiReading / RangingReading / RangingAndRssiReading: measurements
      referencing a source
    - Fingerprint: ordered collection of readings
    - LocatedFingerprint: fingerprint taken at a known position (calibration)

All types validate their fields in ``__post_init__`` and raise ``TypeError``
for wrong kinds or ``ValueError`` for out-of-range values.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from rfloc.rf.path_loss import WIFI_2_4_GHZ


class RadioSourceKind(Enum):
    """Kind of radio source."""

    WIFI_ACCESS_POINT = "wifi_access_point"
    BEACON = "beacon"


class ReadingType(Enum):
    """Kind of measured quantity carried by a reading."""

    RSSI = "rssi"
    RANGING = "ranging"
    RANGING_AND_RSSI = "ranging_and_rssi"


def _check_std(name: str, value: Optional[float]) -> None:
    if value is not None and not value > 0:
        raise ValueError(f"{name} must be positive when provided, got {value}")


@dataclass(frozen=True)
class RadioSource:
    """
    Identity of a radio source.

    Two sources are equal when they share the same id and kind; the carrier
    frequency is descriptive and does not take part in equality or hashing.

    Attributes:
        id: Opaque identifier (BSSID for access points, UUID/major/minor
            string for beacons).
        frequency: Carrier frequency in Hz, > 0.
        kind: WiFi access point or beacon.
    """

    id: str
    frequency: float = field(default=WIFI_2_4_GHZ, compare=False)
    kind: RadioSourceKind = RadioSourceKind.WIFI_ACCESS_POINT

    def __post_init__(self) -> None:
        if self.id is None:
            raise TypeError("id must not be None")
        if not isinstance(self.kind, RadioSourceKind):
            raise TypeError(f"kind must be a RadioSourceKind, got {type(self.kind)}")
        if not self.frequency > 0:
            raise ValueError(f"frequency must be positive, got {self.frequency}")

    @property
    def radio_source(self) -> "RadioSource":
        return self


@dataclass(frozen=True)
class RadioSourceWithPower:
    """
    Radio source with an assumed transmitted power and path-loss exponent.

    Attributes:
        source: Underlying source identity.
        transmitted_power: Assumed transmitted power in dBm.
        transmitted_power_std: Standard deviation of the transmitted power
            (dBm), or None if unknown.
        path_loss_exponent: Path-loss exponent. Defaults to 2.0 (free space).
        path_loss_exponent_std: Standard deviation of the path-loss exponent,
            or None if unknown.
    """

    source: RadioSource
    transmitted_power: float
    transmitted_power_std: Optional[float] = None
    path_loss_exponent: float = 2.0
    path_loss_exponent_std: Optional[float] = None

    def __post_init__(self) -> None:
        if not isinstance(self.source, RadioSource):
            raise TypeError("source must be a RadioSource")
        _check_std("transmitted_power_std", self.transmitted_power_std)
        _check_std("path_loss_exponent_std", self.path_loss_exponent_std)
        if not self.path_loss_exponent > 0:
            raise ValueError(
                f"path_loss_exponent must be positive, got {self.path_loss_exponent}"
            )

    @property
    def radio_source(self) -> RadioSource:
        return self.source

    @property
    def id(self) -> str:
        return self.source.id

    @property
    def frequency(self) -> float:
        return self.source.frequency

    @property
    def kind(self) -> RadioSourceKind:
        return self.source.kind


SourceLike = Union[RadioSource, RadioSourceWithPower]


@dataclass(frozen=True, eq=False)
class LocatedRadioSource:
    """
    Radio source placed at a known position.

    Attributes:
        source: RadioSource or RadioSourceWithPower.
        position: Source position, shape (d,) with d = 2 or 3.
        position_covariance: Optional (d, d) symmetric positive semi-definite
            covariance of the position.
    """

    source: SourceLike
    position: np.ndarray
    position_covariance: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        if not isinstance(self.source, (RadioSource, RadioSourceWithPower)):
            raise TypeError("source must be a RadioSource or RadioSourceWithPower")
        if self.position is None:
            raise TypeError("position must not be None")
        position = np.asarray(self.position, dtype=float)
        if position.ndim != 1 or position.shape[0] not in (2, 3):
            raise ValueError(f"position must have shape (2,) or (3,), got {position.shape}")
        object.__setattr__(self, "position", position)
        if self.position_covariance is not None:
            cov = _validate_covariance(self.position_covariance, position.shape[0])
            object.__setattr__(self, "position_covariance", cov)

    @property
    def radio_source(self) -> RadioSource:
        return self.source.radio_source

    @property
    def id(self) -> str:
        return self.source.id

    @property
    def dimensions(self) -> int:
        return self.position.shape[0]

    @property
    def has_power(self) -> bool:
        """True if the source carries a transmitted power model."""
        return isinstance(self.source, RadioSourceWithPower)

    def __repr__(self) -> str:
        return f"LocatedRadioSource(id={self.id!r}, position={self.position.tolist()})"


def _validate_covariance(covariance, dim: int) -> np.ndarray:
    cov = np.asarray(covariance, dtype=float)
    if cov.shape != (dim, dim):
        raise ValueError(f"position_covariance must have shape ({dim}, {dim}), got {cov.shape}")
    if not np.allclose(cov, cov.T):
        raise ValueError("position_covariance must be symmetric")
    return cov


def _check_source(source) -> None:
    if source is None:
        raise TypeError("source must not be None")
    if not isinstance(source, (RadioSource, RadioSourceWithPower, LocatedRadioSource)):
        raise TypeError(f"source must be a radio source, got {type(source)}")


@dataclass(frozen=True)
class RssiReading:
    """
    RSSI measured from a source.

    Attributes:
        source: Referenced radio source.
        rssi: Received signal strength in dBm.
        rssi_std: Standard deviation of the RSSI (dBm), or None.
    """

    source: SourceLike
    rssi: float
    rssi_std: Optional[float] = None

    def __post_init__(self) -> None:
        _check_source(self.source)
        _check_std("rssi_std", self.rssi_std)

    @property
    def type(self) -> ReadingType:
        return ReadingType.RSSI

    @property
    def radio_source(self) -> RadioSource:
        return self.source.radio_source

    @property
    def has_rssi(self) -> bool:
        return True

    @property
    def has_distance(self) -> bool:
        return False


@dataclass(frozen=True)
class RangingReading:
    """
    Distance measured to a source (e.g. WiFi RTT).

    Attributes:
        source: Referenced radio source.
        distance: Measured distance in meters, >= 0.
        distance_std: Standard deviation of the distance, or None.
    """

    source: SourceLike
    distance: float
    distance_std: Optional[float] = None

    def __post_init__(self) -> None:
        _check_source(self.source)
        if not self.distance >= 0:
            raise ValueError(f"distance must be non-negative, got {self.distance}")
        _check_std("distance_std", self.distance_std)

    @property
    def type(self) -> ReadingType:
        return ReadingType.RANGING

    @property
    def radio_source(self) -> RadioSource:
        return self.source.radio_source

    @property
    def has_rssi(self) -> bool:
        return False

    @property
    def has_distance(self) -> bool:
        return True


@dataclass(frozen=True)
class RangingAndRssiReading:
    """Distance and RSSI measured together from the same source."""

    source: SourceLike
    distance: float
    rssi: float
    distance_std: Optional[float] = None
    rssi_std: Optional[float] = None

    def __post_init__(self) -> None:
        _check_source(self.source)
        if not self.distance >= 0:
            raise ValueError(f"distance must be non-negative, got {self.distance}")
        _check_std("distance_std", self.distance_std)
        _check_std("rssi_std", self.rssi_std)

    @property
    def type(self) -> ReadingType:
        return ReadingType.RANGING_AND_RSSI

    @property
    def radio_source(self) -> RadioSource:
        return self.source.radio_source

    @property
    def has_rssi(self) -> bool:
        return True

    @property
    def has_distance(self) -> bool:
        return True


Reading = Union[RssiReading, RangingReading, RangingAndRssiReading]


@dataclass(frozen=True, eq=False)
class Fingerprint:
    """
    Ordered collection of readings taken at one observation point.

    The order of readings is only used for stable tie-breaking. A fingerprint
    may be empty.
    """

    readings: Tuple[Reading, ...] = ()

    def __post_init__(self) -> None:
        if self.readings is None:
            raise TypeError("readings must not be None")
        readings = tuple(self.readings)
        for reading in readings:
            if not isinstance(reading, (RssiReading, RangingReading, RangingAndRssiReading)):
                raise TypeError(f"Unsupported reading type: {type(reading)}")
        object.__setattr__(self, "readings", readings)

    def __len__(self) -> int:
        return len(self.readings)

    def __iter__(self) -> Iterator[Reading]:
        return iter(self.readings)

    @property
    def sources(self) -> List[RadioSource]:
        """Distinct sources referenced by the readings, in first-seen order."""
        seen = []
        for reading in self.readings:
            if reading.radio_source not in seen:
                seen.append(reading.radio_source)
        return seen

    def readings_for(self, source: SourceLike) -> List[Reading]:
        """Readings referencing the given source."""
        key = source.radio_source
        return [r for r in self.readings if r.radio_source == key]


@dataclass(frozen=True, eq=False)
class LocatedFingerprint(Fingerprint):
    """
    Fingerprint taken at a known position; the unit of a calibration set.

    Attributes:
        readings: Readings of the fingerprint.
        position: Position where the fingerprint was taken, shape (d,).
        position_covariance: Optional (d, d) position covariance.
    """

    position: Optional[np.ndarray] = None
    position_covariance: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.position is None:
            raise TypeError("position must not be None")
        position = np.asarray(self.position, dtype=float)
        if position.ndim != 1:
            raise ValueError(f"position must be 1D, got shape {position.shape}")
        object.__setattr__(self, "position", position)
        if self.position_covariance is not None:
            cov = _validate_covariance(self.position_covariance, position.shape[0])
            object.__setattr__(self, "position_covariance", cov)

    def __repr__(self) -> str:
        return (
            f"LocatedFingerprint(n_readings={len(self.readings)}, "
            f"position={self.position.tolist()})"
        )


def as_fingerprint(readings: Sequence[Reading]) -> Fingerprint:
    """Wrap a sequence of readings into a Fingerprint (no-op for fingerprints)."""
    if isinstance(readings, Fingerprint):
        return readings
    return Fingerprint(tuple(readings))
