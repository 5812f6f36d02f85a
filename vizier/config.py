"""Runtime configuration for observers and profilers."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

_TRUTHY = {"1", "true", "yes", "on"}


def env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


@dataclass(slots=True)
class ObserverConfig:
    """Settings for a :class:`~vizier.capability.Snapshotter`."""

    watch_path: Optional[Path] = None
    all_connections: bool = False
    watch_enabled: bool = True

    @classmethod
    def from_env(cls) -> "ObserverConfig":
        watch_path = os.getenv("VIZIER_WATCH_PATH")
        return cls(
            watch_path=Path(watch_path).expanduser() if watch_path else None,
            all_connections=env_flag("VIZIER_ALL_CONNECTIONS"),
            watch_enabled=not env_flag("VIZIER_NO_WATCH"),
        )

    def resolve_watch_root(self) -> Optional[Path]:
        """Return the directory to watch, defaulting to the home directory."""

        if not self.watch_enabled:
            return None
        if self.watch_path is not None:
            return Path(self.watch_path)
        try:
            return Path.home()
        except RuntimeError:
            return None


PUBLIC_IP_TIMEOUT_MIN = 0.05
PUBLIC_IP_TIMEOUT_MAX = 1.0


def clamp_timeout(seconds: float) -> float:
    """Keep the public IP probe bound short whatever the environment says."""

    if math.isnan(seconds):
        return PUBLIC_IP_TIMEOUT_MAX
    return min(max(seconds, PUBLIC_IP_TIMEOUT_MIN), PUBLIC_IP_TIMEOUT_MAX)


@dataclass(slots=True)
class WakeConfig:
    """Settings for a :class:`~vizier.capability.Profiler`."""

    no_public_ip: bool = False
    public_ip_url: str = "https://api.ipify.org"
    public_ip_timeout: float = 0.5

    @classmethod
    def from_env(cls) -> "WakeConfig":
        timeout_raw = os.getenv("VIZIER_PUBLIC_IP_TIMEOUT", "0.5")
        try:
            timeout = float(timeout_raw)
        except ValueError:
            timeout = 0.5
        return cls(
            no_public_ip=env_flag("VIZIER_NO_PUBLIC_IP"),
            public_ip_url=os.getenv("VIZIER_PUBLIC_IP_URL", "https://api.ipify.org"),
            public_ip_timeout=clamp_timeout(timeout),
        )
