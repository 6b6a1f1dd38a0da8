"""Immutable per-block measurement snapshot and its schema check."""
from __future__ import annotations

import math
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

SCHEMA_VERSION = 1


@dataclass(frozen=True)
class ProbeIdentity:
    name: str = "Broadcast Meter"
    location: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass(frozen=True)
class Timestamp:
    capture_time: float
    wall_clock: float
    sequence: int


@dataclass(frozen=True)
class LufsMetrics:
    momentary: float
    short_term: float
    integrated: float
    range: Optional[float]


@dataclass(frozen=True)
class TruePeakMetrics:
    left: float
    right: float
    max: float
    hold_left: float = float("-inf")
    hold_right: float = float("-inf")


@dataclass(frozen=True)
class PPMMetrics:
    left: float
    right: float
    hold_left: float = float("-inf")
    hold_right: float = float("-inf")


@dataclass(frozen=True)
class StereoMetrics:
    correlation: float
    balance: float
    width: float


@dataclass(frozen=True)
class Readiness:
    momentary: bool = False
    short_term: bool = False
    integrated: bool = False
    range: bool = False


@dataclass(frozen=True)
class MetricsSnapshot:
    schema_version: int
    probe: Any
    timestamp: Timestamp
    lufs: LufsMetrics
    true_peak: TruePeakMetrics
    ppm: PPMMetrics
    stereo: StereoMetrics
    is_active: bool
    readiness: Readiness = field(default_factory=Readiness)

    def measurements(self) -> Dict[str, Any]:
        """Every section except the probe, as plain dicts."""
        return {
            "schema_version": self.schema_version,
            "timestamp": asdict(self.timestamp),
            "lufs": asdict(self.lufs),
            "true_peak": asdict(self.true_peak),
            "ppm": asdict(self.ppm),
            "stereo": asdict(self.stereo),
            "is_active": self.is_active,
            "readiness": asdict(self.readiness),
        }

    def as_dict(self) -> Dict[str, Any]:
        # The probe belongs to the caller and is passed through, never copied.
        data = self.measurements()
        probe = self.probe
        data["probe"] = asdict(probe) if isinstance(probe, ProbeIdentity) else probe
        return data


def _probe_id(probe) -> Optional[str]:
    if probe is None:
        return None
    if isinstance(probe, dict):
        return probe.get("id")
    return getattr(probe, "id", None)


def _is_level(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value)


def validate_snapshot(snapshot, expected_version: int = SCHEMA_VERSION) -> Tuple[bool, List[str]]:
    """Check a snapshot (or its dict form) before it is displayed or sent.

    Returns (valid, errors). -inf is a legal level (silence); NaN is not.
    """
    if isinstance(snapshot, MetricsSnapshot):
        probe = snapshot.probe
        data = snapshot.measurements()
    elif isinstance(snapshot, dict):
        data = snapshot
        probe = snapshot.get("probe")
    else:
        return False, ["snapshot must be a MetricsSnapshot or dict"]

    errors = []

    version = data.get("schema_version")
    if version != expected_version:
        errors.append(f"schema version mismatch: expected {expected_version}, got {version!r}")

    if not _probe_id(probe):
        errors.append("missing probe id")

    timestamp = data.get("timestamp") or {}
    if not _is_level(timestamp.get("wall_clock")):
        errors.append("missing or non-numeric timestamp.wall_clock")

    required = {
        "lufs": ("momentary", "short_term", "integrated"),
        "true_peak": ("left", "right", "max"),
        "ppm": ("left", "right"),
        "stereo": ("correlation", "balance", "width"),
    }
    for section, keys in required.items():
        values = data.get(section)
        if not isinstance(values, dict):
            errors.append(f"missing section {section}")
            continue
        for key in keys:
            if not _is_level(values.get(key)):
                errors.append(f"non-numeric {section}.{key}: {values.get(key)!r}")

    lra = (data.get("lufs") or {}).get("range")
    if lra is not None and not _is_level(lra):
        errors.append(f"non-numeric lufs.range: {lra!r}")

    return (not errors), errors
