"""Privacy-bounded default profile derived from a full :class:`WakeObservation`.

:func:`compact` is pure and idempotent: it reads nothing but its argument and
``compact(compact(w)) == compact(w)``.
"""

from __future__ import annotations

import copy
import ipaddress
from typing import Iterable, List, Optional

from .models import HomeTreeEntry, ListeningPort, MountInfo, RecentFileInfo, SessionInfo, WakeObservation

MAX_GROUPS = 2
MAX_HOME_TREE = 6
MAX_RECENT_FILES = 5
MAX_MOUNTS = 3
MAX_LOCAL_IPS = 2
MAX_LISTENING_PORTS = 12
MAX_SHELL_HISTORY = 5
MAX_OTHER_SESSIONS = 3

ADMIN_GROUP = "admin"
SYSTEM_GROUP_PREFIXES = ("_", "com.apple.")
SYSTEM_GROUPS = frozenset(
    {
        "everyone",
        "staff",
        "localaccounts",
        "nogroup",
        "nobody",
        "daemon",
        "sys",
        "bin",
        "adm",
        "tty",
        "disk",
        "lp",
        "mail",
        "news",
        "uucp",
        "proxy",
        "backup",
        "list",
        "irc",
        "src",
        "shadow",
        "utmp",
        "video",
        "audio",
        "cdrom",
        "floppy",
        "dip",
        "plugdev",
        "netdev",
        "input",
        "render",
        "kvm",
        "sasl",
        "users",
        "systemd-journal",
        "lpadmin",
        "sambashare",
    }
)

PROJECT_DIRS = frozenset(
    {"code", "src", "dev", "projects", "repos", "workspace", "work", "git", "github", "sites"}
)
USER_DIRS = frozenset(
    {"desktop", "documents", "downloads", "pictures", "music", "movies", "videos", "public"}
)

NOISY_PATH_MARKERS = (
    "/.cache/",
    "/.config/",
    "/.local/share/",
    "/.local/state/",
    "/Library/Caches/",
    "/Library/Application Support/",
    "/Library/Containers/",
    "/Library/Preferences/",
    "/node_modules/",
    "/.npm/",
    "/.yarn/",
    "/.pnpm-store/",
    "/.cargo/registry/",
    "/.rustup/",
    "/.gradle/",
    "/.m2/",
    "/site-packages/",
    "/__pycache__/",
    "/.git/",
    "/.vscode/extensions/",
)

REMOVABLE_MOUNT_PREFIXES = ("/Volumes/", "/media/", "/run/media/", "/mnt/")

NOISE_APP_PREFIXES = (
    "rapportd",
    "controlce",
    "sharingd",
    "identitys",
    "airplayxp",
    "spotify",
    "dropbox",
    "discord",
    "slack",
    "steam",
    "adobe",
    "com.docke",
    "figma_age",
    "logioptio",
    "cupsd",
    "avahi-dae",
    "systemd-r",
    "chronyd",
    "dnsmasq",
    "rpcbind",
)
HIGH_PORT_ALLOWLIST = frozenset({35729, 50051, 54321})
EPHEMERAL_PORT_FLOOR = 32768

# Shell-integration prompt marker (OSC 633); whatever follows it is terminal noise.
PROMPT_COMPLETION_MARKER = "\x1b]633;"
# Sentinel echoed by injected completion hooks; such lines are never user input.
INTERNAL_COMPLETION_MARKER = "__VZ_CMD_DONE__"
PROMPT_VARIABLES = ("PS1=", "PS2=", "PS4=", "PROMPT=", "RPROMPT=", "PROMPT_COMMAND=")

LOCAL_ORIGINS = frozenset({"", "local", "-"})


def compact(wake: WakeObservation) -> WakeObservation:
    """Return the default (privacy-bounded) profile; ``wake`` is left untouched."""

    result = copy.deepcopy(wake)
    result.user.groups = compact_groups(result.user.groups)
    result.filesystem.home_tree = compact_home_tree(result.filesystem.home_tree)
    result.filesystem.recent_files = compact_recent_files(result.filesystem.recent_files)
    result.filesystem.mounts = compact_mounts(result.filesystem.mounts, result.user.home_dir)
    result.network_identity.local_ips = compact_local_ips(result.network_identity.local_ips)
    result.listening_ports = compact_listening_ports(result.listening_ports)
    result.recent_activity.shell_history = compact_shell_history(result.recent_activity.shell_history)
    result.recent_activity.running_since_boot = []
    result.other_sessions = compact_sessions(result.other_sessions)
    return result


def is_system_group(name: str) -> bool:
    return name in SYSTEM_GROUPS or name.startswith(SYSTEM_GROUP_PREFIXES)


def compact_groups(groups: Iterable[str]) -> List[str]:
    kept = [group for group in groups if not is_system_group(group)]
    if ADMIN_GROUP in kept:
        return [ADMIN_GROUP]
    return sorted(set(kept))[:MAX_GROUPS]


def _leaf_name(path: str) -> str:
    return path.rstrip("/").rsplit("/", 1)[-1]


def home_tree_rank(entry: HomeTreeEntry) -> int:
    name = _leaf_name(entry.path).lower()
    if name in PROJECT_DIRS:
        return 0
    if name in USER_DIRS:
        return 1
    return 2


def is_dotfile_entry(entry: HomeTreeEntry) -> bool:
    relative = entry.path[2:] if entry.path.startswith("~/") else entry.path.lstrip("/")
    return relative.startswith(".") or _leaf_name(entry.path).startswith(".")


def compact_home_tree(entries: Iterable[HomeTreeEntry]) -> List[HomeTreeEntry]:
    kept: List[HomeTreeEntry] = []
    for entry in entries:
        if is_dotfile_entry(entry):
            continue
        count = entry.entry_count
        if entry.children is not None:
            count = len(entry.children)
        kept.append(HomeTreeEntry(path=entry.path, kind=entry.kind, children=None, entry_count=count))
    kept.sort(key=home_tree_rank)
    return kept[:MAX_HOME_TREE]


def is_noisy_path(path: str) -> bool:
    return any(marker in path for marker in NOISY_PATH_MARKERS)


def compact_recent_files(files: List[RecentFileInfo]) -> List[RecentFileInfo]:
    kept = [item for item in files if not is_noisy_path(item.path)]
    if not kept:
        kept = list(files)
    return kept[:MAX_RECENT_FILES]


def home_mount_path(mounts: Iterable[MountInfo], home_dir: str) -> Optional[str]:
    """The deepest mount point that contains ``home_dir``."""

    best: Optional[str] = None
    for mount in mounts:
        prefix = mount.path.rstrip("/") + "/"
        if home_dir == mount.path or home_dir.startswith(prefix):
            if best is None or len(mount.path) > len(best):
                best = mount.path
    return best


def is_removable_mount(path: str) -> bool:
    return path.startswith(REMOVABLE_MOUNT_PREFIXES)


def compact_mounts(mounts: List[MountInfo], home_dir: str) -> List[MountInfo]:
    home_mount = home_mount_path(mounts, home_dir)
    seen = set()
    kept: List[MountInfo] = []
    for mount in mounts:
        if mount.path in seen:
            continue
        if mount.path == "/" or mount.path == home_mount or is_removable_mount(mount.path):
            seen.add(mount.path)
            kept.append(mount)
    kept.sort(key=lambda mount: mount.path)
    return kept[:MAX_MOUNTS]


def is_ipv4(text: str) -> bool:
    try:
        ipaddress.IPv4Address(text)
    except ValueError:
        return False
    return True


def compact_local_ips(ips: Iterable[str]) -> List[str]:
    return sorted({ip for ip in ips if is_ipv4(ip)})[:MAX_LOCAL_IPS]


def is_noise_app(app: str) -> bool:
    return app.lower().startswith(NOISE_APP_PREFIXES)


def compact_listening_ports(ports: Iterable[ListeningPort]) -> List[ListeningPort]:
    seen = set()
    kept: List[ListeningPort] = []
    for port in ports:
        if is_noise_app(port.app):
            continue
        if port.port not in HIGH_PORT_ALLOWLIST and port.port > EPHEMERAL_PORT_FLOOR:
            continue
        key = (port.port, port.app)
        if key in seen:
            continue
        seen.add(key)
        kept.append(port)
    kept.sort(key=lambda port: (port.port, port.app))
    return kept[:MAX_LISTENING_PORTS]


def normalize_history_line(line: str) -> Optional[str]:
    """Clean one history entry; ``None`` if it should be dropped."""

    line = line.strip()
    marker = line.find(PROMPT_COMPLETION_MARKER)
    if marker != -1:
        line = line[:marker].strip()
    if line.startswith(PROMPT_VARIABLES):
        return None
    if INTERNAL_COMPLETION_MARKER in line:
        return None
    return line or None


def compact_shell_history(history: Iterable[str]) -> List[str]:
    cleaned = [line for line in map(normalize_history_line, history) if line is not None]
    # Keep the most recent occurrence of each command.
    latest = {line: index for index, line in enumerate(cleaned)}
    unique = [line for index, line in enumerate(cleaned) if latest[line] == index]
    return unique[-MAX_SHELL_HISTORY:]


def compact_sessions(sessions: Iterable[SessionInfo]) -> List[SessionInfo]:
    remote = [session for session in sessions if session.origin.strip() not in LOCAL_ORIGINS]
    return remote[:MAX_OTHER_SESSIONS]
