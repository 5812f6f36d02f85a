"""Network probes: connections, listening ports and addressing."""

from __future__ import annotations

import http.client
import ipaddress
import logging
import socket
import urllib.error
import urllib.request
from typing import Iterable, List, Optional, Tuple

from .models import ConnInfo, ListeningPort
from .probes import command_stdout, read_text

logger = logging.getLogger(__name__)

try:  # pragma: no cover - optional dependency
    import psutil  # type: ignore
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    psutil = None  # type: ignore

VPN_INTERFACE_PREFIXES = ("tun", "wg", "utun")


def is_loopback_addr(addr: str) -> bool:
    return (
        addr == "localhost"
        or addr == "::1"
        or addr.startswith("127.")
        or addr.startswith("fe80::1%")
        or addr == "*"
    )


def parse_host_port(text: str) -> Optional[Tuple[str, int]]:
    """Split ``host:port`` (IPv6 hosts may be bracketed)."""

    host, sep, port = text.strip().rpartition(":")
    if not sep:
        return None
    try:
        port_number = int(port)
    except ValueError:
        return None
    if not 0 <= port_number <= 65535:
        return None
    return host.strip("[]"), port_number


def dedupe_connections(conns: Iterable[ConnInfo]) -> List[ConnInfo]:
    seen = set()
    result: List[ConnInfo] = []
    for conn in conns:
        key = (conn.app, conn.pid, conn.local_port, conn.remote_addr, conn.remote_port)
        if key in seen:
            continue
        seen.add(key)
        result.append(conn)
    return result


def dedupe_ports(ports: Iterable[ListeningPort]) -> List[ListeningPort]:
    seen = set()
    result: List[ListeningPort] = []
    for port in ports:
        key = (port.app, port.pid, port.addr, port.port)
        if key in seen:
            continue
        seen.add(key)
        result.append(port)
    return result


# ----------------------------------------------------------------------
# psutil (portable)
# ----------------------------------------------------------------------


def _process_name(pid: Optional[int]) -> str:
    if psutil is None or not pid:
        return "unknown"
    try:
        return psutil.Process(pid).name()
    except (psutil.AccessDenied, psutil.NoSuchProcess, psutil.ZombieProcess):  # type: ignore[attr-defined]
        return "unknown"


def _inet_connections() -> list:
    if psutil is None:
        return []
    try:
        return psutil.net_connections(kind="tcp")
    except (psutil.AccessDenied, OSError) as exc:  # type: ignore[attr-defined]
        logger.debug("psutil.net_connections unavailable: %s", exc)
        return []


def psutil_connections(all_connections: bool) -> List[ConnInfo]:
    result: List[ConnInfo] = []
    for conn in _inet_connections():
        if conn.status != "ESTABLISHED" or not conn.raddr:
            continue
        local_addr, local_port = conn.laddr[0], conn.laddr[1]
        remote_addr, remote_port = conn.raddr[0], conn.raddr[1]
        if not all_connections and (is_loopback_addr(local_addr) or is_loopback_addr(remote_addr)):
            continue
        result.append(
            ConnInfo(
                proto="tcp",
                local_port=local_port,
                remote_addr=remote_addr,
                remote_port=remote_port,
                pid=conn.pid or 0,
                app=_process_name(conn.pid),
            )
        )
    return dedupe_connections(result)


def psutil_listening_ports() -> List[ListeningPort]:
    result: List[ListeningPort] = []
    for conn in _inet_connections():
        if conn.status != "LISTEN" or not conn.laddr:
            continue
        result.append(
            ListeningPort(
                port=conn.laddr[1],
                proto="tcp",
                pid=conn.pid or 0,
                app=_process_name(conn.pid),
                addr=conn.laddr[0],
            )
        )
    return dedupe_ports(result)


# ----------------------------------------------------------------------
# ss (Linux)
# ----------------------------------------------------------------------


def parse_ss_process(text: str) -> Tuple[str, int]:
    """Extract ``(name, pid)`` from ``users:(("name",pid=1,fd=3))``."""

    parts = text.split('"')
    name = parts[1] if len(parts) > 1 else "unknown"
    pid = 0
    _, sep, tail = text.partition("pid=")
    if sep:
        try:
            pid = int(tail.split(",")[0].rstrip(")"))
        except ValueError:
            pid = 0
    return name, pid


def parse_ss_established_line(line: str, all_connections: bool) -> Optional[ConnInfo]:
    cols = line.split()
    if len(cols) < 5 or cols[0] != "ESTAB":
        return None
    local = parse_host_port(cols[3])
    remote = parse_host_port(cols[4])
    if local is None or remote is None:
        return None
    if not all_connections and (is_loopback_addr(local[0]) or is_loopback_addr(remote[0])):
        return None
    app, pid = parse_ss_process(cols[5] if len(cols) > 5 else "")
    return ConnInfo(
        proto="tcp",
        local_port=local[1],
        remote_addr=remote[0],
        remote_port=remote[1],
        pid=pid,
        app=app,
    )


def parse_ss_listen_line(line: str) -> Optional[ListeningPort]:
    cols = line.split()
    if len(cols) < 5:
        return None
    local = parse_host_port(cols[3])
    if local is None:
        return None
    app, pid = parse_ss_process(cols[5] if len(cols) > 5 else "")
    return ListeningPort(port=local[1], proto="tcp", pid=pid, app=app, addr=local[0])


def ss_connections(all_connections: bool) -> List[ConnInfo]:
    output = command_stdout("ss", ["-ntpH"])
    if not output:
        return []
    parsed = (parse_ss_established_line(line, all_connections) for line in output.splitlines())
    return dedupe_connections(conn for conn in parsed if conn is not None)


def ss_listening_ports() -> List[ListeningPort]:
    output = command_stdout("ss", ["-lntpH"])
    if not output:
        return []
    parsed = (parse_ss_listen_line(line) for line in output.splitlines())
    return dedupe_ports(port for port in parsed if port is not None)


# ----------------------------------------------------------------------
# lsof (macOS)
# ----------------------------------------------------------------------


def parse_lsof_established_line(line: str, all_connections: bool) -> Optional[ConnInfo]:
    cols = line.split()
    if len(cols) < 9:
        return None
    endpoint = next((col for col in cols if "->" in col), None)
    if endpoint is None:
        return None
    local_text, _, remote_text = endpoint.partition("->")
    local = parse_host_port(local_text)
    remote = parse_host_port(remote_text)
    if local is None or remote is None:
        return None
    if not all_connections and (is_loopback_addr(local[0]) or is_loopback_addr(remote[0])):
        return None
    try:
        pid = int(cols[1])
    except ValueError:
        return None
    return ConnInfo(
        proto="tcp",
        local_port=local[1],
        remote_addr=remote[0],
        remote_port=remote[1],
        pid=pid,
        app=cols[0],
    )


def parse_lsof_listen_line(line: str) -> Optional[ListeningPort]:
    cols = line.split()
    if len(cols) < 9:
        return None
    endpoint = next((col for col in reversed(cols) if ":" in col), None)
    if endpoint is None:
        return None
    local = parse_host_port(endpoint)
    if local is None:
        return None
    try:
        pid = int(cols[1])
    except ValueError:
        return None
    return ListeningPort(port=local[1], proto="tcp", pid=pid, app=cols[0], addr=local[0])


def lsof_connections(all_connections: bool) -> List[ConnInfo]:
    output = command_stdout("lsof", ["-nP", "-iTCP", "-sTCP:ESTABLISHED"])
    if not output:
        return []
    parsed = (parse_lsof_established_line(line, all_connections) for line in output.splitlines()[1:])
    return dedupe_connections(conn for conn in parsed if conn is not None)


def lsof_listening_ports() -> List[ListeningPort]:
    output = command_stdout("lsof", ["-nP", "-iTCP", "-sTCP:LISTEN"])
    if not output:
        return []
    parsed = (parse_lsof_listen_line(line) for line in output.splitlines()[1:])
    return dedupe_ports(port for port in parsed if port is not None)


# ----------------------------------------------------------------------
# Addressing
# ----------------------------------------------------------------------


def _interface_addresses() -> dict:
    if psutil is None:
        return {}
    try:
        return psutil.net_if_addrs()
    except OSError as exc:
        logger.debug("psutil.net_if_addrs unavailable: %s", exc)
        return {}


def local_ips() -> List[str]:
    """Non-loopback interface addresses, sorted and deduplicated."""

    ips = set()
    for addrs in _interface_addresses().values():
        for addr in addrs:
            if addr.family not in (socket.AF_INET, socket.AF_INET6):
                continue
            text = addr.address.split("%")[0]
            try:
                if ipaddress.ip_address(text).is_loopback:
                    continue
            except ValueError:
                continue
            ips.add(text)
    return sorted(ips)


def detect_vpn_interface() -> Tuple[bool, Optional[str]]:
    for name in sorted(_interface_addresses()):
        if name.startswith(VPN_INTERFACE_PREFIXES):
            return True, name
    return False, None


def resolv_conf_nameservers(path: str = "/etc/resolv.conf") -> List[str]:
    text = read_text(path) or ""
    servers: List[str] = []
    for line in text.splitlines():
        cols = line.strip().split()
        if len(cols) >= 2 and cols[0] == "nameserver":
            servers.append(cols[1])
    return servers


def fetch_public_ip(url: str, timeout: float) -> Optional[str]:
    """Ask an echo service for our public address; ``None`` on any failure."""

    try:
        with urllib.request.urlopen(url, timeout=timeout) as response:
            status = getattr(response, "status", 200)
            if status != 200:
                return None
            body = response.read(64)
    except (urllib.error.URLError, http.client.HTTPException, OSError, ValueError) as exc:
        logger.debug("Public IP probe failed: %s", exc)
        return None
    text = body.decode("ascii", errors="ignore").strip()
    try:
        ipaddress.ip_address(text)
    except ValueError:
        return None
    return text
