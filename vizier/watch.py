"""Periodic observation loop emitting full records or chained diffs."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from .capability import Snapshotter
from .diff import create_diff_envelope

logger = logging.getLogger(__name__)

Emit = Callable[[Any], None]


def watch(
    snapshotter: Snapshotter,
    emit: Emit,
    *,
    interval_ms: int = 1000,
    diff: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Observe forever.

    In full mode every tick emits an :class:`~vizier.models.Observation`. In
    diff mode the first tick emits the full observation and each later tick a
    :class:`~vizier.diff.DiffEnvelope` against the previous tick. Ticks that
    overrun the interval are not skipped. The loop only ends when ``emit``,
    ``sleep`` or the snapshotter raises.
    """

    interval = max(0, interval_ms) / 1000
    if not diff:
        while True:
            emit(snapshotter.snapshot())
            sleep(interval)

    previous = snapshotter.snapshot()
    emit(previous)
    while True:
        sleep(interval)
        current = snapshotter.snapshot()
        envelope = create_diff_envelope(previous, current)
        logger.debug("Emitting %d patch operations", len(envelope.patch))
        emit(envelope)
        previous = current
