"""Enrichment steps shared by more than one platform."""

from __future__ import annotations

import logging
from typing import List, Optional

from ..models import Bounds, DisplayInfo, Observation, WakeObservation
from ..probes import command_stdout, parse_who_line

logger = logging.getLogger(__name__)

try:  # pragma: no cover - optional dependency
    import mss  # type: ignore
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    mss = None  # type: ignore


def displays_from_mss(observation: Observation) -> Optional[dict]:
    """Monitor geometry from ``mss``; index 0 (the virtual screen) is skipped."""

    if mss is None:
        return None
    with mss.mss() as sct:
        monitors = list(sct.monitors[1:])
    displays: List[DisplayInfo] = []
    for index, monitor in enumerate(monitors):
        bounds = Bounds(
            x=int(monitor.get("left", 0)),
            y=int(monitor.get("top", 0)),
            w=int(monitor.get("width", 0)),
            h=int(monitor.get("height", 0)),
        )
        displays.append(
            DisplayInfo(
                id=index,
                bounds=bounds,
                is_primary=bounds.x == 0 and bounds.y == 0,
                scale_factor=1.0,
            )
        )
    if not displays:
        return None
    return {"displays": displays}


def groups_from_id(wake: WakeObservation) -> Optional[dict]:
    output = command_stdout("id", ["-Gn"])
    if not output:
        return None
    return {"user.groups": output.split()}


def sessions_from_who(wake: WakeObservation) -> Optional[dict]:
    """Login sessions from ``who``; also pulls ``login_ts`` back to the earliest one."""

    output = command_stdout("who")
    if not output:
        return None
    sessions = [session for session in map(parse_who_line, output.splitlines()) if session is not None]
    if not sessions:
        return None
    earliest = min([wake.datetime.login_ts, *(session.login_ts for session in sessions)])
    return {"other_sessions": sessions, "datetime.login_ts": earliest}


def uptime_override(wake: WakeObservation, uptime: Optional[int]) -> Optional[dict]:
    if uptime is None:
        return None
    return {
        "datetime.uptime_seconds": uptime,
        "datetime.login_ts": wake.ts - uptime,
    }
