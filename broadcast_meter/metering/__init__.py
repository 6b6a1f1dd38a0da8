from broadcast_meter.metering.engine import ConfigurationError, MeterEngine
from broadcast_meter.metering.snapshot import (
    SCHEMA_VERSION,
    MetricsSnapshot,
    ProbeIdentity,
    validate_snapshot,
)

__all__ = [
    "ConfigurationError",
    "MeterEngine",
    "MetricsSnapshot",
    "ProbeIdentity",
    "SCHEMA_VERSION",
    "validate_snapshot",
]
