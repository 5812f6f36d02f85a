"""Bridge between a background filesystem watch and snapshot calls."""

from __future__ import annotations

import logging
import queue
from pathlib import Path
from typing import List, Optional

from .models import FSEvent
from .probes import current_ts

logger = logging.getLogger(__name__)

try:  # pragma: no cover - optional dependency
    from watchdog.events import FileSystemEventHandler  # type: ignore
    from watchdog.observers import Observer as WatchdogObserver  # type: ignore
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    FileSystemEventHandler = object  # type: ignore
    WatchdogObserver = None  # type: ignore

_KIND_BY_EVENT_TYPE = {
    "created": "Create",
    "deleted": "Delete",
    "moved": "Rename",
}


def classify(event_type: str) -> str:
    """Map a backend event type onto Create/Delete/Rename/Modify."""

    return _KIND_BY_EVENT_TYPE.get(event_type, "Modify")


def _decode(path) -> str:
    if isinstance(path, bytes):
        return path.decode("utf-8", errors="surrogateescape")
    return str(path)


def event_paths(event) -> List[str]:
    paths = [_decode(event.src_path)]
    dest = getattr(event, "dest_path", "")
    if dest:
        paths.append(_decode(dest))
    return paths


def map_event(event, ts: Optional[float] = None) -> List[FSEvent]:
    """One :class:`FSEvent` per path touched by a raw backend event."""

    kind = classify(event.event_type)
    stamp = current_ts() if ts is None else ts
    return [FSEvent(path=path, kind=kind, ts=stamp) for path in event_paths(event)]


class _QueueingHandler(FileSystemEventHandler):  # type: ignore[misc]
    def __init__(self, sink: "queue.SimpleQueue") -> None:
        super().__init__()
        self._sink = sink

    def on_any_event(self, event) -> None:
        self._sink.put(event)


class FsEventBridge:
    """Recursive watch on ``root`` whose events are drained without blocking.

    The watcher thread is the only producer; :meth:`drain` is the only
    consumer.
    """

    def __init__(self, root: Path, observer) -> None:
        self.root = root
        self._observer = observer
        self._queue: "queue.SimpleQueue" = queue.SimpleQueue()
        self._handler = _QueueingHandler(self._queue)

    @classmethod
    def start(cls, root: Optional[Path]) -> Optional["FsEventBridge"]:
        """Attach a watch to ``root``; ``None`` when the watch cannot be set up."""

        if root is None:
            return None
        if WatchdogObserver is None:
            logger.debug("watchdog is unavailable; filesystem events disabled")
            return None
        if not root.is_dir():
            logger.debug("Watch root %s is not a directory", root)
            return None
        observer = WatchdogObserver()
        bridge = cls(root, observer)
        try:
            observer.schedule(bridge._handler, str(root), recursive=True)
            observer.daemon = True
            observer.start()
        except Exception as exc:  # pragma: no cover - backend specific
            logger.debug("Failed to watch %s: %s", root, exc)
            return None
        return bridge

    def drain(self) -> List[FSEvent]:
        """Return every queued event in arrival order."""

        events: List[FSEvent] = []
        ts = current_ts()
        while True:
            try:
                raw = self._queue.get_nowait()
            except queue.Empty:
                break
            events.extend(map_event(raw, ts))
        return events

    def stop(self) -> None:
        try:
            self._observer.stop()
            self._observer.join(timeout=1.0)
        except RuntimeError:
            pass
