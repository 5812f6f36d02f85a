"""OS-agnostic collection shared by every platform."""

from __future__ import annotations

import getpass
import logging
import os
import platform
import socket
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .config import ObserverConfig, WakeConfig
from .fs_events import FsEventBridge
from .models import (
    SCHEMA_VERSION,
    DateTimeInfo,
    DisplayInfo,
    FilesystemInfo,
    FSEvent,
    GpuInfo,
    HomeTreeEntry,
    InstalledApp,
    MachineInfo,
    MountInfo,
    NetworkIdentity,
    Observation,
    RecentActivity,
    RecentFileInfo,
    ResourceInfo,
    RunningProcessInfo,
    SessionInfo,
    TerminalCtx,
    UserInfo,
    WakeObservation,
    WindowInfo,
)
from .net import (
    detect_vpn_interface,
    fetch_public_ip,
    local_ips,
    psutil_connections,
    psutil_listening_ports,
    resolv_conf_nameservers,
)
from .probes import binary_in_path, bytes_to_gb, command_stdout, current_ts, read_text, tilde_path

logger = logging.getLogger(__name__)

try:  # pragma: no cover - optional dependency
    import psutil  # type: ignore
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    psutil = None  # type: ignore

HOME_TREE_LIMIT = 20
HOME_CHILDREN_LIMIT = 20
RECENT_FILES_DEPTH = 5
RECENT_FILES_SCAN_LIMIT = 5000
RECENT_FILES_LIMIT = 10
SHELL_HISTORY_LIMIT = 20
BOOT_GRACE_SECONDS = 120
BOOT_PROCESS_LIMIT = 20

APP_CATALOG = (
    ("Visual Studio Code", "code", "ide"),
    ("Firefox", "firefox", "browser"),
    ("Google Chrome", "google-chrome", "browser"),
    ("Alacritty", "alacritty", "terminal"),
    ("WezTerm", "wezterm", "terminal"),
    ("Docker", "docker", "infra"),
    ("Python", "python3", "runtime"),
    ("Node", "node", "runtime"),
    ("Git", "git", "other"),
)


class BaselineSnapshotter:
    """Collects the portable part of an :class:`Observation`.

    When a watch root is available a :class:`FsEventBridge` is attached at
    construction; the first :meth:`snapshot` discards whatever the watch
    queued during registration.
    """

    def __init__(self, config: Optional[ObserverConfig] = None) -> None:
        self.config = config or ObserverConfig()
        self._started = time.monotonic()
        self._bridge = FsEventBridge.start(self.config.resolve_watch_root())
        self._primed = False

    @property
    def watching(self) -> bool:
        return self._bridge is not None

    def snapshot(self) -> Observation:
        ts = current_ts()
        monotonic_ms = int((time.monotonic() - self._started) * 1000)
        shell = os.environ.get("SHELL")
        observation = Observation(
            schema_version=SCHEMA_VERSION,
            ts=ts,
            monotonic_ms=monotonic_ms,
            net_connections=psutil_connections(self.config.all_connections),
            fs_events=self._collect_fs_events(),
        )
        if shell:
            window = WindowInfo(
                id="local-shell",
                title=os.environ.get("TERM", "Terminal"),
                app=os.environ.get("TERM_PROGRAM", "Terminal"),
                pid=os.getpid(),
            )
            observation.windows = [window]
            observation.focus = WindowInfo(
                id=window.id,
                title=window.title,
                app=window.app,
                pid=window.pid,
            )
            observation.displays = [DisplayInfo(id=0, is_primary=True, scale_factor=1.0)]
            observation.terminal_ctx = current_terminal_context(shell)
        return observation

    def _collect_fs_events(self) -> List[FSEvent]:
        if self._bridge is None:
            return []
        events = self._bridge.drain()
        if not self._primed:
            self._primed = True
            return []
        return events

    def close(self) -> None:
        if self._bridge is not None:
            self._bridge.stop()
            self._bridge = None


def current_terminal_context(shell: Optional[str]) -> Optional[TerminalCtx]:
    try:
        cwd = os.getcwd()
    except OSError:
        return None
    return TerminalCtx(cwd=cwd, shell=shell or "unknown")


class BaselineProfiler:
    """Collects the portable part of a :class:`WakeObservation`."""

    def __init__(self, config: Optional[WakeConfig] = None) -> None:
        self.config = config or WakeConfig()

    def profile(self) -> WakeObservation:
        ts = current_ts()
        home = home_dir()
        hostname = socket.gethostname() or "unknown"
        vpn_active, vpn_interface = detect_vpn_interface()
        uptime = uptime_seconds(ts)
        public_ip = None
        if not self.config.no_public_ip:
            public_ip = fetch_public_ip(self.config.public_ip_url, self.config.public_ip_timeout)
        return WakeObservation(
            schema_version=SCHEMA_VERSION,
            ts=ts,
            machine=MachineInfo(
                hostname=hostname,
                os=platform.system() or "unknown",
                os_version=platform.version() or "unknown",
                kernel=platform.release() or "unknown",
                arch=platform.machine() or "unknown",
                is_container=Path("/.dockerenv").exists() or Path("/run/.containerenv").exists(),
            ),
            user=user_info(home),
            datetime=datetime_info(ts, uptime),
            filesystem=FilesystemInfo(
                home_tree=build_home_tree(home),
                recent_files=recent_files(home),
                mounts=mounts(),
            ),
            installed_apps=installed_apps(),
            network_identity=NetworkIdentity(
                local_ips=local_ips(),
                public_ip=public_ip,
                vpn_active=vpn_active,
                vpn_interface=vpn_interface,
                dns_servers=resolv_conf_nameservers(),
                hostname_fqdn=fqdn(hostname),
            ),
            listening_ports=psutil_listening_ports(),
            resources=resources(),
            recent_activity=RecentActivity(
                shell_history=shell_history(home, SHELL_HISTORY_LIMIT),
                running_since_boot=running_since_boot(ts),
            ),
            other_sessions=psutil_sessions(),
        )


# ----------------------------------------------------------------------
# Identity and time
# ----------------------------------------------------------------------


def home_dir() -> Path:
    try:
        return Path.home()
    except RuntimeError:
        return Path("~")


def fqdn(hostname: str) -> str:
    try:
        return socket.getfqdn() or hostname
    except OSError:
        return hostname


def user_info(home: Path) -> UserInfo:
    try:
        username = getpass.getuser()
    except (KeyError, OSError, ImportError):
        username = "unknown"
    full_name = ""
    getuid = getattr(os, "geteuid", None)
    uid = getuid() if getuid is not None else 0
    try:
        import pwd

        full_name = pwd.getpwuid(uid).pw_gecos.split(",")[0]
    except (ImportError, KeyError):
        pass
    return UserInfo(
        username=username,
        full_name=full_name or username,
        home_dir=str(home),
        shell=os.environ.get("SHELL", "unknown"),
        uid=uid,
    )


def uptime_seconds(now_ts: float) -> int:
    if psutil is None:
        return 0
    try:
        boot = psutil.boot_time()
    except OSError:
        return 0
    if boot <= 0 or boot > now_ts:
        return 0
    return int(now_ts - boot)


def format_utc_offset(seconds: int) -> str:
    sign = "-" if seconds < 0 else "+"
    minutes = abs(seconds) // 60
    return f"{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def datetime_info(ts: float, uptime: int) -> DateTimeInfo:
    now = datetime.fromtimestamp(ts).astimezone()
    offset = now.utcoffset()
    offset_seconds = int(offset.total_seconds()) if offset is not None else 0
    return DateTimeInfo(
        ts=ts,
        iso=now.isoformat(),
        timezone=format_utc_offset(offset_seconds),
        utc_offset_seconds=offset_seconds,
        uptime_seconds=uptime,
        login_ts=ts - uptime,
    )


# ----------------------------------------------------------------------
# Filesystem
# ----------------------------------------------------------------------


def build_home_tree(home: Path) -> List[HomeTreeEntry]:
    """First directories directly under ``home`` with a bounded child listing."""

    try:
        with os.scandir(home) as listing:
            entries = list(listing)
    except OSError:
        return []
    tree: List[HomeTreeEntry] = []
    for entry in entries[:HOME_TREE_LIMIT]:
        try:
            if not entry.is_dir(follow_symlinks=False):
                continue
        except OSError:
            continue
        names: List[str] = []
        count = 0
        try:
            with os.scandir(entry.path) as children:
                for child in children:
                    count += 1
                    if count <= HOME_CHILDREN_LIMIT:
                        names.append(child.name)
        except OSError:
            pass
        path = tilde_path(home, Path(entry.path))
        if count <= HOME_CHILDREN_LIMIT:
            tree.append(HomeTreeEntry(path=path, kind="dir", children=names))
        else:
            tree.append(HomeTreeEntry(path=path, kind="dir", entry_count=count))
    return tree


def recent_files(home: Path, now: Optional[float] = None) -> List[RecentFileInfo]:
    """Most recently modified files under ``home`` (bounded walk)."""

    now = time.time() if now is None else now
    found = []
    scanned = 0
    base_depth = len(home.parts)
    for root, dirs, files in os.walk(home, onerror=lambda exc: None):
        depth = len(Path(root).parts) - base_depth
        if depth >= RECENT_FILES_DEPTH - 1:
            dirs[:] = []
        for name in files:
            scanned += 1
            if scanned > RECENT_FILES_SCAN_LIMIT:
                break
            path = os.path.join(root, name)
            try:
                modified = os.stat(path, follow_symlinks=False).st_mtime
            except OSError:
                continue
            found.append((modified, path))
        if scanned > RECENT_FILES_SCAN_LIMIT:
            break
    found.sort(key=lambda item: item[0], reverse=True)
    return [
        RecentFileInfo(path=path, modified_ago_s=max(0, int(now - modified)))
        for modified, path in found[:RECENT_FILES_LIMIT]
    ]


def mounts() -> List[MountInfo]:
    if psutil is None:
        return []
    try:
        partitions = psutil.disk_partitions(all=False)
    except OSError:
        return []
    result: List[MountInfo] = []
    for part in partitions:
        try:
            usage = psutil.disk_usage(part.mountpoint)
        except OSError:
            continue
        result.append(
            MountInfo(
                path=part.mountpoint,
                fs_type=part.fstype,
                total_gb=bytes_to_gb(usage.total),
                free_gb=bytes_to_gb(usage.free),
            )
        )
    return result


# ----------------------------------------------------------------------
# Software, resources, activity
# ----------------------------------------------------------------------


def installed_apps() -> List[InstalledApp]:
    apps: List[InstalledApp] = []
    for name, app_id, kind in APP_CATALOG:
        if not (binary_in_path(app_id) or Path("/Applications", f"{name}.app").exists()):
            continue
        version = None
        if app_id == "python3":
            output = command_stdout("python3", ["--version"])
            version = output.splitlines()[0].strip() if output else None
        apps.append(InstalledApp(name=name, id=app_id, kind=kind, version=version))
    return apps


def resources() -> ResourceInfo:
    total = free = 0.0
    if psutil is not None:
        try:
            memory = psutil.virtual_memory()
            total, free = bytes_to_gb(memory.total), bytes_to_gb(memory.available)
        except OSError:
            pass
    return ResourceInfo(
        cpu_cores=os.cpu_count() or 1,
        cpu_model=platform.processor() or "unknown",
        ram_total_gb=total,
        ram_free_gb=free,
        gpus=[GpuInfo(name="unknown")],
    )


def parse_history_line(line: str) -> str:
    # zsh extended history: ": 1700000000:0;command"
    if line.startswith(": ") and ";" in line:
        return line.split(";", 1)[1].strip()
    return line.strip()


def shell_history(home: Path, limit: int) -> List[str]:
    for name in (".zsh_history", ".bash_history"):
        text = read_text(home / name)
        if text is None:
            continue
        lines = [parse_history_line(line) for line in text.splitlines()]
        lines = [line for line in lines if line]
        return lines[-limit:]
    return []


def running_since_boot(now_ts: float) -> List[RunningProcessInfo]:
    """Processes started within a short grace period after boot, oldest first."""

    if psutil is None:
        return []
    try:
        boot = psutil.boot_time()
    except OSError:
        return []
    if boot <= 0:
        return []
    processes: List[RunningProcessInfo] = []
    for proc in psutil.process_iter(["pid", "name", "create_time"]):
        info = proc.info
        created = info.get("create_time")
        if created is None or created > boot + BOOT_GRACE_SECONDS:
            continue
        processes.append(
            RunningProcessInfo(
                pid=info["pid"],
                app=info.get("name") or "unknown",
                started_ago_s=max(0, int(now_ts - created)),
            )
        )
    processes.sort(key=lambda proc: proc.started_ago_s, reverse=True)
    return processes[:BOOT_PROCESS_LIMIT]


def psutil_sessions() -> List[SessionInfo]:
    if psutil is None:
        return []
    try:
        users = psutil.users()
    except OSError:
        return []
    return [
        SessionInfo(
            username=user.name,
            tty=user.terminal or "",
            origin=user.host or "local",
            login_ts=float(user.started),
        )
        for user in users
    ]
