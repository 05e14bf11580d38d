"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional
from urllib.parse import urlparse
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``."""

    platform_id = (platform or sys.platform).lower()
    environ = dict(env or os.environ)
    home_dir = Path(home or Path.home())
    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = Path(environ.get("APPDATA") or home_dir / "Library" / "Application Support")
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return (base.expanduser() / sanitized)


APP_NAME = "LiftFire"


DATA_DIR = get_default_data_dir(APP_NAME)
LOG_DIR = DATA_DIR / "logs"

for _dir in (DATA_DIR, LOG_DIR):
    _dir.mkdir(parents=True, exist_ok=True)


DB_PATH = DATA_DIR / "liftfire.db"


@dataclass(frozen=True)
class SyncSettings:
    max_retries: int = 3
    batch_size: int = 10
    completed_retention_hours: int = 24
    text_max_length: int = 500
    error_max_length: int = 1000
    log_path: Path = LOG_DIR / "sync.log"


SYNC = SyncSettings()


@dataclass(frozen=True)
class SupabaseSettings:
    url: str = field(default_factory=lambda: os.environ.get("SUPABASE_URL", ""))
    key: str = field(default_factory=lambda: os.environ.get("SUPABASE_KEY", ""))

    @property
    def enabled(self) -> bool:
        return bool(self.url and self.key)


SUPABASE = SupabaseSettings()


def probe_target(url: str, default_port: int = 443) -> tuple[str, int]:
    """Host and port to probe for reachability of ``url``."""

    parsed = urlparse(url or "")
    host = parsed.hostname or ""
    port = parsed.port or (80 if parsed.scheme == "http" else default_port)
    return host, port


@dataclass(frozen=True)
class ConnectivitySettings:
    probe_host: str = ""
    probe_port: int = 443
    probe_timeout_sec: float = 3.0
    probe_interval_sec: float = 15.0

    def target(self, fallback_url: str = "") -> tuple[str, int]:
        if self.probe_host:
            return self.probe_host, self.probe_port
        return probe_target(fallback_url, self.probe_port)


CONNECTIVITY = ConnectivitySettings()


@dataclass(frozen=True)
class ToastColors:
    syncing_bg: str = "#1E40AF"
    synced_bg: str = "#15803D"
    failed_bg: str = "#B91C1C"
    text: str = "#FFFFFF"
    offline_text: str = "#6B7280"


@dataclass(frozen=True)
class UISettings:
    app_title: str = APP_NAME
    theme_mode: str = "system"
    color_scheme_seed: str = "#EA580C"
    toast_duration_ms: int = 3000
    colors: ToastColors = ToastColors()


UI = UISettings()


__all__ = [
    "APP_NAME",
    "DATA_DIR",
    "LOG_DIR",
    "DB_PATH",
    "SYNC",
    "SUPABASE",
    "CONNECTIVITY",
    "UI",
    "SyncSettings",
    "SupabaseSettings",
    "ConnectivitySettings",
    "get_default_data_dir",
    "probe_target",
]
