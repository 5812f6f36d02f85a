"""Snapshotter/Profiler capabilities and their platform layering."""

from __future__ import annotations

import logging
import sys
from typing import Any, Callable, List, Mapping, Optional, Protocol, Sequence, TypeVar, runtime_checkable

from .config import ObserverConfig, WakeConfig
from .models import Observation, WakeObservation

logger = logging.getLogger(__name__)

R = TypeVar("R")

Overrides = Mapping[str, Any]
EnrichmentStep = Callable[[Any], Optional[Overrides]]
"""Given the partially built record, return dotted-path overrides or ``None``."""


@runtime_checkable
class Snapshotter(Protocol):
    """Produces momentary :class:`Observation` records; called repeatedly."""

    def snapshot(self) -> Observation:
        ...


@runtime_checkable
class Profiler(Protocol):
    """Produces a one-shot :class:`WakeObservation` profile."""

    def profile(self) -> WakeObservation:
        ...


def step_name(step: EnrichmentStep) -> str:
    return getattr(step, "__name__", None) or type(step).__name__


def set_path(record: Any, dotted: str, value: Any) -> None:
    """Assign ``value`` to the attribute addressed by ``a.b.c``."""

    *parents, leaf = dotted.split(".")
    target = record
    for name in parents:
        target = getattr(target, name)
    if not hasattr(target, leaf):
        raise AttributeError(f"{type(target).__name__} has no field {leaf!r}")
    setattr(target, leaf, value)


def apply_steps(record: R, steps: Sequence[EnrichmentStep]) -> R:
    """Run ``steps`` in order over ``record``.

    A step that raises, or returns an override for an unknown field,
    contributes nothing; later steps still run.
    """

    for step in steps:
        try:
            overrides = step(record)
        except Exception as exc:
            logger.debug("Enrichment step %s failed: %s", step_name(step), exc)
            continue
        if not overrides:
            continue
        for dotted, value in overrides.items():
            try:
                set_path(record, dotted, value)
            except AttributeError as exc:
                logger.debug("Enrichment step %s produced bad override: %s", step_name(step), exc)
    return record


class LayeredSnapshotter:
    """A baseline snapshotter followed by an ordered list of enrichment steps."""

    def __init__(self, baseline: Snapshotter, steps: Sequence[EnrichmentStep], *, platform: str = "baseline") -> None:
        self.baseline = baseline
        self.steps: List[EnrichmentStep] = list(steps)
        self.platform = platform

    def snapshot(self) -> Observation:
        return apply_steps(self.baseline.snapshot(), self.steps)

    def close(self) -> None:
        close = getattr(self.baseline, "close", None)
        if close is not None:
            close()


class LayeredProfiler:
    """A baseline profiler followed by an ordered list of enrichment steps."""

    def __init__(self, baseline: Profiler, steps: Sequence[EnrichmentStep], *, platform: str = "baseline") -> None:
        self.baseline = baseline
        self.steps: List[EnrichmentStep] = list(steps)
        self.platform = platform

    def profile(self) -> WakeObservation:
        return apply_steps(self.baseline.profile(), self.steps)


def detect_platform(name: Optional[str] = None) -> str:
    """Map ``sys.platform`` onto ``linux``/``macos``/``windows``/``baseline``."""

    name = name or sys.platform
    if name.startswith("linux"):
        return "linux"
    if name == "darwin":
        return "macos"
    if name.startswith(("win", "cygwin")):
        return "windows"
    return "baseline"


def _platform_module(platform: str):
    if platform == "linux":
        from .platforms import linux as module
    elif platform == "macos":
        from .platforms import macos as module
    elif platform == "windows":
        from .platforms import windows as module
    else:
        return None
    return module


def create_snapshotter(config: Optional[ObserverConfig] = None, *, platform: Optional[str] = None) -> LayeredSnapshotter:
    from .baseline import BaselineSnapshotter

    config = config or ObserverConfig()
    platform = platform or detect_platform()
    module = _platform_module(platform)
    steps = module.snapshot_steps(config) if module is not None else []
    return LayeredSnapshotter(BaselineSnapshotter(config), steps, platform=platform)


def create_profiler(config: Optional[WakeConfig] = None, *, platform: Optional[str] = None) -> LayeredProfiler:
    from .baseline import BaselineProfiler

    config = config or WakeConfig()
    platform = platform or detect_platform()
    module = _platform_module(platform)
    steps = module.profile_steps(config) if module is not None else []
    return LayeredProfiler(BaselineProfiler(config), steps, platform=platform)
