"""vizier: machine-readable perception of the local host and session."""

__version__ = "0.1.0"

from .capability import (
    LayeredProfiler,
    LayeredSnapshotter,
    Profiler,
    Snapshotter,
    create_profiler,
    create_snapshotter,
)
from .compact import compact
from .config import ObserverConfig, WakeConfig
from .diff import DiffEnvelope, apply_patch, create_diff_envelope, diff
from .errors import ClockError, EncodingError, PatchError, VizierError
from .models import SCHEMA_VERSION, Observation, WakeObservation, canonical
from .watch import watch

__all__ = [
    "SCHEMA_VERSION",
    "Observation",
    "WakeObservation",
    "DiffEnvelope",
    "Snapshotter",
    "Profiler",
    "LayeredSnapshotter",
    "LayeredProfiler",
    "ObserverConfig",
    "WakeConfig",
    "create_snapshotter",
    "create_profiler",
    "canonical",
    "compact",
    "diff",
    "apply_patch",
    "create_diff_envelope",
    "watch",
    "VizierError",
    "ClockError",
    "EncodingError",
    "PatchError",
]
