"""Windows enrichment through Win32 ``user32`` / ``kernel32`` via ctypes."""

from __future__ import annotations

import logging
import platform
from pathlib import Path
from typing import List, Optional, Tuple

from ..config import ObserverConfig, WakeConfig
from ..models import Bounds, Observation, Point, WakeObservation, WindowInfo
from .common import displays_from_mss

logger = logging.getLogger(__name__)

try:  # pragma: no cover - optional dependency
    import psutil  # type: ignore
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    psutil = None  # type: ignore


class Win32Session:
    """Foreground window, cursor and input-idle queries for the current desktop."""

    def __init__(self) -> None:
        self._platform_checked = False
        self._supported = False
        self._init_platform()

    def _init_platform(self) -> None:
        from sys import platform as sys_platform

        if not sys_platform.startswith("win"):
            self._platform_checked = True
            return
        self._supported = True
        try:
            import ctypes
            from ctypes import wintypes

            self._ctypes = ctypes  # type: ignore[attr-defined]
            self._wintypes = wintypes  # type: ignore[attr-defined]
            user32 = ctypes.windll.user32
            self._get_foreground_window = user32.GetForegroundWindow
            self._get_window_text_length = user32.GetWindowTextLengthW
            self._get_window_text = user32.GetWindowTextW
            self._get_window_rect = user32.GetWindowRect
            self._get_window_thread_process_id = user32.GetWindowThreadProcessId
            self._is_iconic = user32.IsIconic
            self._get_cursor_pos = user32.GetCursorPos
            self._get_last_input_info = user32.GetLastInputInfo
            self._get_tick_count = ctypes.windll.kernel32.GetTickCount
        except Exception as exc:  # pragma: no cover - runtime safeguard
            logger.debug("Failed to initialise Win32 bindings: %s", exc)
            self._supported = False
        finally:
            self._platform_checked = True

    def is_supported(self) -> bool:
        if not self._platform_checked:
            self._init_platform()
        return self._supported

    def foreground_window(self) -> Optional[WindowInfo]:
        if not self.is_supported():
            return None
        hwnd = self._get_foreground_window()
        if not hwnd:
            return None
        pid = self._window_process_id(hwnd)
        left, top, right, bottom = self._window_rect(hwnd)
        return WindowInfo(
            id=hex(int(hwnd)),
            title=self._window_title(hwnd),
            app=self._process_name(pid),
            pid=pid,
            bounds=Bounds(x=left, y=top, w=max(0, right - left), h=max(0, bottom - top)),
            is_minimized=bool(self._is_iconic(hwnd)),
        )

    def cursor(self) -> Optional[Point]:
        if not self.is_supported():
            return None
        point = self._wintypes.POINT()
        if not self._get_cursor_pos(self._ctypes.byref(point)):
            return None
        return Point(x=point.x, y=point.y)

    def idle_ms(self) -> Optional[int]:
        if not self.is_supported():
            return None
        ctypes = self._ctypes

        class LASTINPUTINFO(ctypes.Structure):
            _fields_ = [("cbSize", ctypes.c_uint), ("dwTime", ctypes.c_uint)]

        info = LASTINPUTINFO()
        info.cbSize = ctypes.sizeof(LASTINPUTINFO)
        if not self._get_last_input_info(ctypes.byref(info)):
            return None
        # GetTickCount wraps after ~49.7 days.
        return (self._get_tick_count() - info.dwTime) & 0xFFFFFFFF

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _window_title(self, hwnd: int) -> str:
        length = self._get_window_text_length(hwnd)
        if length == 0:
            # Some windows (console, UWP) may return zero length even when text exists.
            length = 1024
        buffer = self._ctypes.create_unicode_buffer(length + 1)
        self._get_window_text(hwnd, buffer, length + 1)
        return buffer.value.strip()

    def _window_process_id(self, hwnd: int) -> int:
        pid = self._wintypes.DWORD()
        self._get_window_thread_process_id(hwnd, self._ctypes.byref(pid))
        return int(pid.value)

    def _window_rect(self, hwnd: int) -> Tuple[int, int, int, int]:
        rect = self._wintypes.RECT()
        if self._get_window_rect(hwnd, self._ctypes.byref(rect)) == 0:
            return (0, 0, 0, 0)
        return (rect.left, rect.top, rect.right, rect.bottom)

    @staticmethod
    def _process_name(pid: int) -> str:
        if pid <= 0 or psutil is None:
            return "unknown"
        try:
            proc = psutil.Process(pid)
            return proc.name() or Path(proc.exe()).name
        except (psutil.AccessDenied, psutil.NoSuchProcess, psutil.ZombieProcess):  # type: ignore[attr-defined]
            return "unknown"


def snapshot_steps(config: ObserverConfig) -> List:
    session = Win32Session()

    def foreground_window(observation: Observation) -> Optional[dict]:
        focus = session.foreground_window()
        if focus is None:
            return None
        return {"focus": focus, "windows": [focus]}

    def cursor_position(observation: Observation) -> Optional[dict]:
        cursor = session.cursor()
        return {"cursor": cursor} if cursor is not None else None

    def idle_from_last_input(observation: Observation) -> Optional[dict]:
        idle = session.idle_ms()
        return {"idle_ms": idle} if idle is not None else None

    return [displays_from_mss, foreground_window, cursor_position, idle_from_last_input]


def machine_identity(wake: WakeObservation) -> Optional[dict]:
    release, version, _, _ = platform.win32_ver()
    overrides: dict = {"machine.os": "Windows"}
    if release:
        overrides["machine.os_version"] = release
    if version:
        overrides["machine.kernel"] = version
    return overrides


def profile_steps(config: WakeConfig) -> List:
    return [machine_identity]
