"""Record schemas produced by vizier observers."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import PurePath
from typing import Any, List, Optional

from .errors import EncodingError

SCHEMA_VERSION = 1


@dataclass(slots=True)
class Point:
    x: int = 0
    y: int = 0


@dataclass(slots=True)
class Bounds:
    x: int = 0
    y: int = 0
    w: int = 0
    h: int = 0


@dataclass(slots=True)
class WindowInfo:
    """A visible top-level window."""

    id: str
    title: str
    app: str
    pid: int
    bounds: Bounds = field(default_factory=Bounds)
    workspace: int = 0
    is_minimized: bool = False
    is_fullscreen: bool = False


@dataclass(slots=True)
class DisplayInfo:
    id: int
    bounds: Bounds = field(default_factory=Bounds)
    is_primary: bool = False
    scale_factor: float = 1.0


@dataclass(slots=True)
class TerminalCtx:
    cwd: str
    shell: str


@dataclass(slots=True)
class ConnInfo:
    """An established TCP connection."""

    proto: str
    local_port: int
    remote_addr: str
    remote_port: int
    pid: int
    app: str
    state: str = "ESTABLISHED"


@dataclass(slots=True)
class FSEvent:
    path: str
    kind: str
    ts: float


@dataclass(slots=True)
class Observation:
    """Momentary view of the active session."""

    schema_version: int
    ts: float
    monotonic_ms: int
    idle_ms: int = 0
    focus: Optional[WindowInfo] = None
    windows: List[WindowInfo] = field(default_factory=list)
    cursor: Point = field(default_factory=Point)
    displays: List[DisplayInfo] = field(default_factory=list)
    terminal_ctx: Optional[TerminalCtx] = None
    net_connections: List[ConnInfo] = field(default_factory=list)
    fs_events: List[FSEvent] = field(default_factory=list)


@dataclass(slots=True)
class MachineInfo:
    hostname: str
    os: str
    os_version: str
    kernel: str
    arch: str
    is_vm: bool = False
    is_container: bool = False
    hypervisor: Optional[str] = None
    chassis: str = "Unknown"


@dataclass(slots=True)
class UserInfo:
    username: str
    full_name: str
    home_dir: str
    shell: str
    uid: int
    groups: List[str] = field(default_factory=list)


@dataclass(slots=True)
class DateTimeInfo:
    ts: float
    iso: str
    timezone: str
    utc_offset_seconds: int
    uptime_seconds: int
    login_ts: float


@dataclass(slots=True)
class HomeTreeEntry:
    """A top-level directory under the home directory.

    Either ``children`` (names of the directory's entries) or ``entry_count``
    is set, never both.
    """

    path: str
    kind: str
    children: Optional[List[str]] = None
    entry_count: Optional[int] = None


@dataclass(slots=True)
class RecentFileInfo:
    path: str
    modified_ago_s: int


@dataclass(slots=True)
class MountInfo:
    path: str
    fs_type: str
    total_gb: float
    free_gb: float


@dataclass(slots=True)
class FilesystemInfo:
    home_tree: List[HomeTreeEntry] = field(default_factory=list)
    recent_files: List[RecentFileInfo] = field(default_factory=list)
    mounts: List[MountInfo] = field(default_factory=list)


@dataclass(slots=True)
class InstalledApp:
    name: str
    id: str
    kind: str
    version: Optional[str] = None


@dataclass(slots=True)
class NetworkIdentity:
    local_ips: List[str] = field(default_factory=list)
    public_ip: Optional[str] = None
    vpn_active: bool = False
    vpn_interface: Optional[str] = None
    default_gateway: Optional[str] = None
    dns_servers: List[str] = field(default_factory=list)
    hostname_fqdn: Optional[str] = None


@dataclass(slots=True)
class ListeningPort:
    port: int
    proto: str
    pid: int
    app: str
    addr: str


@dataclass(slots=True)
class GpuInfo:
    name: str
    vram_gb: Optional[float] = None
    driver: str = "unknown"


@dataclass(slots=True)
class ResourceInfo:
    cpu_cores: int
    cpu_model: str
    ram_total_gb: float
    ram_free_gb: float
    gpus: List[GpuInfo] = field(default_factory=list)


@dataclass(slots=True)
class RunningProcessInfo:
    pid: int
    app: str
    started_ago_s: int


@dataclass(slots=True)
class RecentActivity:
    shell_history: List[str] = field(default_factory=list)
    running_since_boot: List[RunningProcessInfo] = field(default_factory=list)


@dataclass(slots=True)
class SessionInfo:
    """Another login session on this host (``from`` is serialised as ``from``)."""

    username: str
    tty: str
    origin: str
    login_ts: float


@dataclass(slots=True)
class WakeObservation:
    """One-shot profile of the host and its user."""

    schema_version: int
    ts: float
    machine: MachineInfo
    user: UserInfo
    datetime: DateTimeInfo
    filesystem: FilesystemInfo = field(default_factory=FilesystemInfo)
    installed_apps: List[InstalledApp] = field(default_factory=list)
    network_identity: NetworkIdentity = field(default_factory=NetworkIdentity)
    listening_ports: List[ListeningPort] = field(default_factory=list)
    resources: ResourceInfo = field(default_factory=lambda: ResourceInfo(0, "unknown", 0.0, 0.0))
    recent_activity: RecentActivity = field(default_factory=RecentActivity)
    other_sessions: List[SessionInfo] = field(default_factory=list)


# Python keywords cannot be field names; map them back on the wire.
_WIRE_NAMES = {(SessionInfo, "origin"): "from"}


def canonical(value: Any) -> Any:
    """Reduce a record to its JSON tree.

    Fields holding ``None`` are dropped rather than emitted as ``null``; a
    non-finite float anywhere in the tree raises :class:`EncodingError`.
    """

    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise EncodingError(f"non-finite number in record: {value!r}")
        return value
    if is_dataclass(value) and not isinstance(value, type):
        tree = {}
        for f in fields(value):
            item = getattr(value, f.name)
            if item is None:
                continue
            key = _WIRE_NAMES.get((type(value), f.name), f.name)
            tree[key] = canonical(item)
        return tree
    if isinstance(value, dict):
        tree = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise EncodingError(f"non-string key in record: {key!r}")
            tree[key] = canonical(item)
        return tree
    if isinstance(value, (list, tuple)):
        return [canonical(item) for item in value]
    if isinstance(value, PurePath):
        return str(value)
    raise EncodingError(f"cannot encode value of type {type(value).__name__}")
