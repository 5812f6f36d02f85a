"""Linux enrichment: Hyprland IPC, procfs, DMI and iproute2."""

from __future__ import annotations

import json
import logging
import os
import socket
from pathlib import Path
from typing import Any, List, Optional

from ..config import ObserverConfig, WakeConfig
from ..models import Bounds, DisplayInfo, GpuInfo, Observation, TerminalCtx, WakeObservation, WindowInfo
from ..net import ss_connections, ss_listening_ports
from ..probes import command_stdout, parse_os_release, read_link, read_text
from .common import displays_from_mss, groups_from_id, sessions_from_who, uptime_override

logger = logging.getLogger(__name__)

TERMINAL_APPS = ("alacritty", "kitty", "wezterm", "gnome-terminal", "konsole", "xterm", "foot")
HYPERVISOR_MARKERS = {
    "kvm": "KVM",
    "qemu": "QEMU",
    "vmware": "VMware",
    "virtualbox": "VirtualBox",
    "xen": "Xen",
    "hyper-v": "Hyper-V",
    "virtual machine": "Hyper-V",
    "parallels": "Parallels",
}
DMI_ROOT = Path("/sys/class/dmi/id")


# ----------------------------------------------------------------------
# Hyprland
# ----------------------------------------------------------------------


def hyprland_socket_path() -> Optional[Path]:
    signature = os.environ.get("HYPRLAND_INSTANCE_SIGNATURE")
    runtime = os.environ.get("XDG_RUNTIME_DIR")
    if not signature or not runtime:
        return None
    path = Path(runtime) / "hypr" / signature / ".socket.sock"
    return path if path.exists() else None


def hypr_query(socket_path: Path, command: str) -> Optional[Any]:
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
        sock.settimeout(1.0)
        sock.connect(str(socket_path))
        sock.sendall(command.encode("utf-8"))
        sock.shutdown(socket.SHUT_WR)
        chunks = []
        while True:
            chunk = sock.recv(65536)
            if not chunk:
                break
            chunks.append(chunk)
    raw = b"".join(chunks).decode("utf-8", errors="replace").strip()
    if not raw:
        return None
    return json.loads(raw)


def _pair(value: Any, index: int) -> int:
    if isinstance(value, list) and len(value) > index and isinstance(value[index], (int, float)):
        return int(value[index])
    return 0


def hypr_window(value: dict) -> WindowInfo:
    workspace = value.get("workspace") or {}
    return WindowInfo(
        id=str(value.get("address") or "0x0"),
        title=str(value.get("title") or "unknown"),
        app=str(value.get("class") or "unknown"),
        pid=int(value.get("pid") or 0),
        bounds=Bounds(
            x=_pair(value.get("at"), 0),
            y=_pair(value.get("at"), 1),
            w=_pair(value.get("size"), 0),
            h=_pair(value.get("size"), 1),
        ),
        workspace=int(workspace.get("id") or 0) if isinstance(workspace, dict) else 0,
        is_minimized=False,
        is_fullscreen=int(value.get("fullscreen") or 0) > 0,
    )


def hypr_display(value: dict) -> DisplayInfo:
    return DisplayInfo(
        id=int(value.get("id") or 0),
        bounds=Bounds(
            x=int(value.get("x") or 0),
            y=int(value.get("y") or 0),
            w=int(value.get("width") or 0),
            h=int(value.get("height") or 0),
        ),
        is_primary=bool(value.get("focused", False)),
        scale_factor=float(value.get("scale") or 1.0),
    )


def is_terminal_app(app: str) -> bool:
    lowered = app.lower()
    return any(name in lowered for name in TERMINAL_APPS)


def hyprland_state(observation: Observation) -> Optional[dict]:
    """Displays, windows and focus from the Hyprland compositor."""

    socket_path = hyprland_socket_path()
    if socket_path is None:
        return None
    overrides: dict = {}
    monitors = hypr_query(socket_path, "j/monitors")
    if isinstance(monitors, list) and monitors:
        overrides["displays"] = [hypr_display(item) for item in monitors if isinstance(item, dict)]
    clients = hypr_query(socket_path, "j/clients")
    if isinstance(clients, list):
        windows = [
            hypr_window(item)
            for item in clients
            if isinstance(item, dict) and item.get("mapped", True) and not item.get("hidden", False)
        ]
        if windows:
            overrides["windows"] = windows
    active = hypr_query(socket_path, "j/activewindow")
    if isinstance(active, dict) and active:
        focus = hypr_window(active)
        overrides["focus"] = focus
        if is_terminal_app(focus.app):
            cwd = read_link(f"/proc/{focus.pid}/cwd")
            if cwd:
                overrides["terminal_ctx"] = TerminalCtx(cwd=cwd, shell="unknown")
    return overrides


def connections_from_ss(all_connections: bool):
    def ss_established(observation: Observation) -> Optional[dict]:
        conns = ss_connections(all_connections)
        return {"net_connections": conns} if conns else None

    return ss_established


def snapshot_steps(config: ObserverConfig) -> List:
    return [
        displays_from_mss,
        hyprland_state,
        connections_from_ss(config.all_connections),
    ]


# ----------------------------------------------------------------------
# Profile
# ----------------------------------------------------------------------


def machine_identity(wake: WakeObservation) -> Optional[dict]:
    overrides: dict = {"machine.os": "Linux"}
    release = parse_os_release(read_text("/etc/os-release") or "")
    version = release.get("VERSION_ID") or release.get("PRETTY_NAME")
    if version:
        overrides["machine.os_version"] = version
    kernel = command_stdout("uname", ["-r"])
    if kernel:
        overrides["machine.kernel"] = kernel
    return overrides


def container_detection(wake: WakeObservation) -> Optional[dict]:
    if wake.machine.is_container:
        return None
    cgroup = read_text("/proc/1/cgroup") or ""
    if any(marker in cgroup for marker in ("docker", "containerd", "kubepods")):
        return {"machine.is_container": True}
    return None


def hypervisor_from_dmi(wake: WakeObservation) -> Optional[dict]:
    text = " ".join(
        (read_text(DMI_ROOT / name) or "").strip().lower() for name in ("product_name", "sys_vendor")
    )
    for marker, name in HYPERVISOR_MARKERS.items():
        if marker in text:
            return {"machine.is_vm": True, "machine.hypervisor": name}
    return None


def chassis_label(code: int) -> str:
    if 8 <= code <= 14:
        return "Laptop"
    if code in (3, 4, 5, 6, 7, 15, 16):
        return "Desktop"
    return "Unknown"


def chassis_from_dmi(wake: WakeObservation) -> Optional[dict]:
    raw = read_text(DMI_ROOT / "chassis_type")
    if raw is None:
        return None
    return {"machine.chassis": chassis_label(int(raw.strip()))}


def default_gateway(wake: WakeObservation) -> Optional[dict]:
    output = command_stdout("ip", ["route", "show", "default"])
    if not output:
        return None
    for line in output.splitlines():
        cols = line.split()
        if "via" in cols and cols.index("via") + 1 < len(cols):
            return {"network_identity.default_gateway": cols[cols.index("via") + 1]}
    return None


def gpus_from_lspci(wake: WakeObservation) -> Optional[dict]:
    output = command_stdout("lspci")
    if not output:
        return None
    gpus = [
        GpuInfo(name=line.rsplit(":", 1)[-1].strip() or "unknown")
        for line in output.splitlines()
        if "VGA" in line or "3D controller" in line
    ]
    return {"resources.gpus": gpus} if gpus else None


def cpu_model_from_proc(wake: WakeObservation) -> Optional[dict]:
    for line in (read_text("/proc/cpuinfo") or "").splitlines():
        key, sep, value = line.partition(":")
        if sep and key.strip() == "model name" and value.strip():
            return {"resources.cpu_model": value.strip()}
    return None


def uptime_from_proc(wake: WakeObservation) -> Optional[dict]:
    text = read_text("/proc/uptime")
    if not text:
        return None
    return uptime_override(wake, int(float(text.split()[0])))


def ports_from_ss(wake: WakeObservation) -> Optional[dict]:
    ports = ss_listening_ports()
    return {"listening_ports": ports} if ports else None


def profile_steps(config: WakeConfig) -> List:
    return [
        machine_identity,
        container_detection,
        hypervisor_from_dmi,
        chassis_from_dmi,
        groups_from_id,
        default_gateway,
        gpus_from_lspci,
        cpu_model_from_proc,
        uptime_from_proc,
        ports_from_ss,
        sessions_from_who,
    ]
