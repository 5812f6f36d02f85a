"""Tests for the filesystem event bridge."""

import time
from pathlib import Path
from types import SimpleNamespace
from typing import List

import pytest

from vizier.baseline import BaselineSnapshotter
from vizier.config import ObserverConfig
from vizier.fs_events import FsEventBridge, classify, map_event
from vizier.models import FSEvent

pytest.importorskip("watchdog")


def collect_until(snapshotter: BaselineSnapshotter, predicate, timeout: float = 5.0) -> List[FSEvent]:
    events: List[FSEvent] = []
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        events.extend(snapshotter.snapshot().fs_events)
        if predicate(events):
            break
        time.sleep(0.05)
    return events


def test_classify_falls_back_to_modify() -> None:
    assert classify("created") == "Create"
    assert classify("deleted") == "Delete"
    assert classify("moved") == "Rename"
    assert classify("modified") == "Modify"
    assert classify("closed") == "Modify"


def test_moved_events_report_both_paths() -> None:
    raw = SimpleNamespace(event_type="moved", src_path="/w/a", dest_path="/w/b")
    events = map_event(raw, ts=12.5)
    assert events == [FSEvent(path="/w/a", kind="Rename", ts=12.5), FSEvent(path="/w/b", kind="Rename", ts=12.5)]


def test_missing_root_disables_bridge(tmp_path: Path) -> None:
    assert FsEventBridge.start(tmp_path / "nope") is None
    snapshotter = BaselineSnapshotter(ObserverConfig(watch_path=tmp_path / "nope"))
    assert not snapshotter.watching
    assert snapshotter.snapshot().fs_events == []
    assert snapshotter.snapshot().fs_events == []


def test_first_snapshot_suppresses_warmup_events(tmp_path: Path) -> None:
    snapshotter = BaselineSnapshotter(ObserverConfig(watch_path=tmp_path))
    try:
        for index in range(5):
            (tmp_path / f"pre-{index}.txt").write_text("x")
        time.sleep(0.2)
        assert snapshotter.watching
        assert snapshotter.snapshot().fs_events == []
    finally:
        snapshotter.close()


def test_created_file_is_reported_once(tmp_path: Path) -> None:
    snapshotter = BaselineSnapshotter(ObserverConfig(watch_path=tmp_path))
    try:
        assert snapshotter.snapshot().fs_events == []
        target = tmp_path / "fresh.txt"
        target.touch()

        def created(events: List[FSEvent]) -> bool:
            return any(event.kind == "Create" and event.path == str(target) for event in events)

        events = collect_until(snapshotter, created)
        creates = [event for event in events if event.kind == "Create" and event.path == str(target)]
        assert len(creates) == 1
        assert creates[0].ts > 0
    finally:
        snapshotter.close()
