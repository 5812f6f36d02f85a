"""Best-effort probes of the host environment.

Every helper in this module turns failure into ``None`` (or an empty
container) so callers never see the underlying exception.
"""

from __future__ import annotations

import logging
import math
import os
import re
import shutil
import subprocess
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Optional

from .errors import ClockError
from .models import SessionInfo

logger = logging.getLogger(__name__)


def current_ts() -> float:
    """Wall-clock time in fractional seconds since the epoch."""

    try:
        ts = time.time()
    except OSError as exc:  # pragma: no cover - platform failure
        raise ClockError(f"system clock unreadable: {exc}") from exc
    if not math.isfinite(ts) or ts <= 0:
        raise ClockError(f"system clock returned invalid value {ts!r}")
    return ts


def command_stdout(binary: str, args: Iterable[str] = (), *, timeout: Optional[float] = None) -> Optional[str]:
    """Run ``binary`` and return its trimmed stdout, or ``None`` on any failure."""

    try:
        completed = subprocess.run(
            [binary, *args],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("Command %s unavailable: %s", binary, exc)
        return None
    if completed.returncode != 0:
        logger.debug("Command %s exited with %s", binary, completed.returncode)
        return None
    text = completed.stdout.decode("utf-8", errors="replace").strip()
    return text or None


def read_text(path: str | Path) -> Optional[str]:
    try:
        return Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None


def read_link(path: str | Path) -> Optional[str]:
    try:
        return os.readlink(path)
    except OSError:
        return None


def binary_in_path(name: str) -> bool:
    return shutil.which(name) is not None


def bytes_to_gb(value: int | float) -> float:
    return round(float(value) / 1024 / 1024 / 1024, 2)


def tilde_path(home: Path, path: Path) -> str:
    """Render ``path`` relative to ``home`` using ``~``."""

    try:
        suffix = path.relative_to(home)
    except ValueError:
        return str(path)
    if not suffix.parts:
        return "~"
    return f"~/{suffix.as_posix()}"


def parse_os_release(text: str) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        if not sep:
            continue
        values[key.strip()] = value.strip().strip('"').strip()
    return values


_ISO_WHO = re.compile(r"^(\d{4}-\d{2}-\d{2})\s+(\d{1,2}:\d{2})")
_PAREN_ORIGIN = re.compile(r"\(([^)]*)\)")


def parse_who_line(line: str, *, now: Optional[datetime] = None) -> Optional[SessionInfo]:
    """Parse one line of ``who`` output.

    Both ``2024-05-01 10:00`` and ``May  1 10:00`` timestamp styles are
    understood. The latter carries no year: the current year is assumed and,
    if that places the login in the future, the previous year is used.
    """

    cols = line.split()
    if len(cols) < 4:
        return None
    username, tty = cols[0], cols[1]
    now = now or datetime.now()
    rest = " ".join(cols[2:])
    iso = _ISO_WHO.match(rest)
    if iso:
        try:
            login = datetime.strptime(f"{iso.group(1)} {iso.group(2)}", "%Y-%m-%d %H:%M")
        except ValueError:
            return None
    else:
        if len(cols) < 5:
            return None
        month, day, clock = cols[2], cols[3], cols[4]

        def _with_year(year: int) -> Optional[datetime]:
            try:
                return datetime.strptime(f"{month} {day} {clock} {year}", "%b %d %H:%M %Y")
            except ValueError:
                return None

        login = _with_year(now.year)
        if login is None:
            return None
        if login > now:
            login = _with_year(now.year - 1)
            if login is None:
                return None
    match = _PAREN_ORIGIN.search(line)
    origin = match.group(1).strip() if match else "local"
    try:
        login_ts = login.astimezone().timestamp()
    except (OverflowError, OSError, ValueError):
        login_ts = 0.0
    return SessionInfo(username=username, tty=tty, origin=origin, login_ts=login_ts)
