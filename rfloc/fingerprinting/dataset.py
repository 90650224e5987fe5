"""Dataset utilities for loading and saving calibration fingerprints.

A calibration dataset is stored as a directory:

    data_dir/
    ├── fingerprints.json   # radio sources table + located fingerprints
    └── sources.json        # optional located radio sources (with power)

Readings reference sources by their index in the ``sources`` table so a
source shared by many fingerprints is written once.
"""

import json
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .types import (
    LocatedFingerprint,
    LocatedRadioSource,
    RadioSource,
    RadioSourceKind,
    RadioSourceWithPower,
    RangingAndRssiReading,
    RangingReading,
    ReadingType,
    RssiReading,
)

FINGERPRINTS_FILE = "fingerprints.json"
SOURCES_FILE = "sources.json"


def _source_to_dict(source: RadioSource) -> dict:
    return {"id": source.id, "frequency": source.frequency, "kind": source.kind.value}


def _source_from_dict(data: dict) -> RadioSource:
    return RadioSource(
        id=data["id"],
        frequency=float(data["frequency"]),
        kind=RadioSourceKind(data["kind"]),
    )


def _optional_array(value) -> Optional[list]:
    return None if value is None else np.asarray(value).tolist()


def _reading_to_dict(reading, index: int) -> dict:
    data = {"type": reading.type.value, "source": index}
    if reading.has_rssi:
        data["rssi"] = reading.rssi
        data["rssi_std"] = reading.rssi_std
    if reading.has_distance:
        data["distance"] = reading.distance
        data["distance_std"] = reading.distance_std
    return data


def _reading_from_dict(data: dict, sources: List[RadioSource]):
    source = sources[data["source"]]
    reading_type = ReadingType(data["type"])
    if reading_type is ReadingType.RSSI:
        return RssiReading(source, data["rssi"], data.get("rssi_std"))
    if reading_type is ReadingType.RANGING:
        return RangingReading(source, data["distance"], data.get("distance_std"))
    return RangingAndRssiReading(
        source,
        data["distance"],
        data["rssi"],
        distance_std=data.get("distance_std"),
        rssi_std=data.get("rssi_std"),
    )


def save_calibration_dataset(
    fingerprints: Sequence[LocatedFingerprint],
    data_dir: Union[str, Path],
    sources: Optional[Sequence[LocatedRadioSource]] = None,
) -> None:
    """
    Save located fingerprints (and optionally located sources) to disk.

    Args:
        fingerprints: Calibration fingerprints.
        data_dir: Destination directory (created if it doesn't exist).
        sources: Optional located radio sources to store in sources.json.

    Examples:
        >>> save_calibration_dataset(fingerprints, 'data/sim/rssi_grid', sources)
    """
    data_dir = Path(data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)

    table: List[RadioSource] = []
    index: Dict[RadioSource, int] = {}
    records = []
    for fingerprint in fingerprints:
        readings = []
        for reading in fingerprint.readings:
            key = reading.radio_source
            if key not in index:
                index[key] = len(table)
                table.append(key)
            readings.append(_reading_to_dict(reading, index[key]))
        records.append(
            {
                "position": fingerprint.position.tolist(),
                "position_covariance": _optional_array(fingerprint.position_covariance),
                "readings": readings,
            }
        )

    with open(data_dir / FINGERPRINTS_FILE, "w", encoding="utf-8") as f:
        json.dump(
            {"sources": [_source_to_dict(s) for s in table], "fingerprints": records},
            f,
            indent=2,
        )

    if sources is not None:
        save_radio_sources(sources, data_dir)


def load_calibration_dataset(data_dir: Union[str, Path]) -> List[LocatedFingerprint]:
    """
    Load located fingerprints saved by save_calibration_dataset.

    Args:
        data_dir: Directory containing fingerprints.json.

    Returns:
        List of LocatedFingerprint in file order.

    Raises:
        FileNotFoundError: If fingerprints.json is missing.
        ValueError: If the file content is malformed.
    """
    path = Path(data_dir) / FINGERPRINTS_FILE
    if not path.exists():
        raise FileNotFoundError(f"Required file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        content = json.load(f)

    try:
        table = [_source_from_dict(s) for s in content["sources"]]
        return [
            LocatedFingerprint(
                readings=tuple(_reading_from_dict(r, table) for r in record["readings"]),
                position=np.array(record["position"], dtype=float),
                position_covariance=record.get("position_covariance"),
            )
            for record in content["fingerprints"]
        ]
    except (KeyError, IndexError, TypeError) as e:
        raise ValueError(f"Malformed calibration dataset {path}: {e}") from e


def save_radio_sources(
    sources: Sequence[LocatedRadioSource], data_dir: Union[str, Path]
) -> None:
    """Save located radio sources (with optional power model) to sources.json."""
    data_dir = Path(data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)

    records = []
    for located in sources:
        record = {
            "source": _source_to_dict(located.radio_source),
            "position": located.position.tolist(),
            "position_covariance": _optional_array(located.position_covariance),
        }
        if located.has_power:
            power = located.source
            record["power"] = {
                "transmitted_power": power.transmitted_power,
                "transmitted_power_std": power.transmitted_power_std,
                "path_loss_exponent": power.path_loss_exponent,
                "path_loss_exponent_std": power.path_loss_exponent_std,
            }
        records.append(record)

    with open(data_dir / SOURCES_FILE, "w", encoding="utf-8") as f:
        json.dump({"sources": records}, f, indent=2)


def load_radio_sources(data_dir: Union[str, Path]) -> List[LocatedRadioSource]:
    """Load located radio sources saved by save_radio_sources."""
    path = Path(data_dir) / SOURCES_FILE
    if not path.exists():
        raise FileNotFoundError(f"Required file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        content = json.load(f)

    result = []
    try:
        for record in content["sources"]:
            source = _source_from_dict(record["source"])
            if "power" in record:
                source = RadioSourceWithPower(source, **record["power"])
            result.append(
                LocatedRadioSource(
                    source=source,
                    position=np.array(record["position"], dtype=float),
                    position_covariance=record.get("position_covariance"),
                )
            )
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed sources file {path}: {e}") from e
    return result


def summarize_dataset(fingerprints: Sequence[LocatedFingerprint]) -> Tuple[int, int, int]:
    """Return (n_fingerprints, n_distinct_sources, n_readings) of a dataset."""
    distinct = set()
    n_readings = 0
    for fingerprint in fingerprints:
        n_readings += len(fingerprint)
        distinct.update(r.radio_source for r in fingerprint.readings)
    return len(fingerprints), len(distinct), n_readings
