"""macOS enrichment via stock command-line utilities."""

from __future__ import annotations

import json
import logging
from typing import List, Optional

from ..config import ObserverConfig, WakeConfig
from ..models import GpuInfo, Observation, WakeObservation, WindowInfo
from ..net import lsof_connections, lsof_listening_ports
from ..probes import command_stdout
from .common import displays_from_mss, groups_from_id, sessions_from_who, uptime_override

logger = logging.getLogger(__name__)

# 2000-01-01T00:00:00Z; anything earlier is a bogus boot time.
_MIN_BOOT_TS = 946_684_800

_FRONTMOST_SCRIPT = (
    'tell application "System Events"\n'
    "  set proc to first application process whose frontmost is true\n"
    "  set appName to name of proc\n"
    "  set appPid to unix id of proc\n"
    '  set winTitle to ""\n'
    "  try\n"
    "    set winTitle to name of front window of proc\n"
    "  end try\n"
    "end tell\n"
    'return appName & "\\n" & appPid & "\\n" & winTitle'
)


def parse_frontmost(output: str) -> Optional[WindowInfo]:
    lines = output.splitlines()
    if len(lines) < 2:
        return None
    app = lines[0].strip()
    try:
        pid = int(lines[1].strip())
    except ValueError:
        return None
    title = lines[2].strip() if len(lines) > 2 else ""
    return WindowInfo(id=f"pid-{pid}", title=title or app, app=app, pid=pid)


def frontmost_window(observation: Observation) -> Optional[dict]:
    output = command_stdout("osascript", ["-e", _FRONTMOST_SCRIPT], timeout=2.0)
    if not output:
        return None
    focus = parse_frontmost(output)
    if focus is None:
        return None
    return {"focus": focus, "windows": [focus]}


def parse_hid_idle_ms(output: str) -> Optional[int]:
    marker = '"HIDIdleTime" = '
    for line in output.splitlines():
        if marker in line:
            raw = line.split(marker, 1)[1].strip()
            return int(raw) // 1_000_000
    return None


def idle_from_ioreg(observation: Observation) -> Optional[dict]:
    output = command_stdout("ioreg", ["-c", "IOHIDSystem"])
    idle = parse_hid_idle_ms(output) if output else None
    return {"idle_ms": idle} if idle is not None else None


def connections_from_lsof(all_connections: bool):
    def lsof_established(observation: Observation) -> Optional[dict]:
        conns = lsof_connections(all_connections)
        return {"net_connections": conns} if conns else None

    return lsof_established


def snapshot_steps(config: ObserverConfig) -> List:
    return [
        displays_from_mss,
        frontmost_window,
        idle_from_ioreg,
        connections_from_lsof(config.all_connections),
    ]


# ----------------------------------------------------------------------
# Profile
# ----------------------------------------------------------------------


def machine_identity(wake: WakeObservation) -> Optional[dict]:
    overrides: dict = {"machine.os": "macOS"}
    version = command_stdout("sw_vers", ["-productVersion"])
    if version:
        overrides["machine.os_version"] = version
    kernel = command_stdout("uname", ["-r"])
    if kernel:
        overrides["machine.kernel"] = f"Darwin {kernel}"
    model = command_stdout("sysctl", ["-n", "hw.model"])
    if model:
        overrides["machine.chassis"] = "Laptop" if model.startswith("MacBook") else "Desktop"
    return overrides


def parse_netstat_gateway(output: str) -> Optional[str]:
    for line in output.splitlines():
        cols = line.strip().split()
        if len(cols) >= 2 and cols[0] == "default" and not cols[1].startswith("link#"):
            return cols[1]
    return None


def default_gateway(wake: WakeObservation) -> Optional[dict]:
    output = command_stdout("netstat", ["-nr"])
    gateway = parse_netstat_gateway(output) if output else None
    return {"network_identity.default_gateway": gateway} if gateway else None


def parse_scutil_dns(output: str) -> List[str]:
    servers = set()
    for line in output.splitlines():
        line = line.strip()
        if line.startswith("nameserver[") and ":" in line:
            servers.add(line.split(":", 1)[1].strip())
    return sorted(servers)


def dns_from_scutil(wake: WakeObservation) -> Optional[dict]:
    output = command_stdout("scutil", ["--dns"])
    servers = parse_scutil_dns(output) if output else []
    return {"network_identity.dns_servers": servers} if servers else None


def gpus_from_system_profiler(wake: WakeObservation) -> Optional[dict]:
    output = command_stdout("system_profiler", ["SPDisplaysDataType", "-json"])
    if not output:
        return None
    entries = json.loads(output).get("SPDisplaysDataType") or []
    gpus = [
        GpuInfo(name=str(entry.get("sppci_model") or "unknown"), driver="metal")
        for entry in entries
        if isinstance(entry, dict)
    ]
    return {"resources.gpus": gpus} if gpus else None


def cpu_model_from_sysctl(wake: WakeObservation) -> Optional[dict]:
    model = command_stdout("sysctl", ["-n", "machdep.cpu.brand_string"])
    return {"resources.cpu_model": model} if model else None


def parse_boottime(output: str, now_ts: float) -> Optional[int]:
    """Seconds since boot from ``{ sec = 1700000000, usec = 0 } ...``."""

    _, sep, tail = output.partition("sec = ")
    if not sep:
        return None
    boot = int(tail.split(",", 1)[0].strip())
    if boot < _MIN_BOOT_TS or boot > now_ts:
        return None
    return int(now_ts) - boot


def uptime_from_boottime(wake: WakeObservation) -> Optional[dict]:
    output = command_stdout("sysctl", ["-n", "kern.boottime"])
    if not output:
        return None
    return uptime_override(wake, parse_boottime(output, wake.ts))


def ports_from_lsof(wake: WakeObservation) -> Optional[dict]:
    ports = lsof_listening_ports()
    return {"listening_ports": ports} if ports else None


def profile_steps(config: WakeConfig) -> List:
    return [
        machine_identity,
        groups_from_id,
        default_gateway,
        dns_from_scutil,
        gpus_from_system_profiler,
        cpu_model_from_sysctl,
        uptime_from_boottime,
        ports_from_lsof,
        sessions_from_who,
    ]
