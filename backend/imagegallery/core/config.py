from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Mapping

from imagegallery.core.logging import get_logger

log = get_logger(__name__)

DEV_STORAGE_CONNECTION_STRING = "UseDevelopmentStorage=true"

_THROTTLING_MODES = {"rate", "window"}
_RETRY_MODES = {"exponential", "fixed"}

_DURATION_SUFFIX_RE = re.compile(r"^(?P<value>\d+(?:\.\d+)?)\s*(?P<unit>ms|s|m|h)$", re.IGNORECASE)
_TIMESPAN_RE = re.compile(
    r"^(?:(?P<days>\d+)\.)?(?P<hours>\d{1,2}):(?P<minutes>\d{1,2})(?::(?P<seconds>\d{1,2}(?:\.\d+)?))?$"
)
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


@dataclass(frozen=True, slots=True)
class Settings:
    app_env: str
    database_url: str
    db_auto_migrate: bool
    db_seed_demo: bool
    storage_connection_string: str
    storage_container: str
    storage_fault_injection: bool
    throttling_mode: str
    throttling_rate: float
    throttling_available_interval_s: float
    throttling_interval_s: float
    throttling_seed: int | None
    retry_max_retries: int
    retry_delay_s: float
    retry_max_delay_s: float
    retry_mode: str
    retry_network_timeout_s: float
    transfer_initial_size: int
    transfer_max_size: int
    transfer_max_concurrency: int
    gallery_page_size: int

    @property
    def is_prod(self) -> bool:
        return self.app_env in {"prod", "production"}


def _get(env: Mapping[str, str], key: str, default: str) -> str:
    value = env.get(key, default)
    return value.strip()


def _get_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = _get(env, key, "1" if default else "0").lower()
    if raw in {"1", "true", "yes", "y", "on"}:
        return True
    if raw in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _get_int(env: Mapping[str, str], key: str, default: int, *, lo: int, hi: int) -> int:
    try:
        value = int(_get(env, key, str(default)) or default)
    except Exception:
        value = default
    return max(lo, min(int(value), hi))


def parse_duration_seconds(text: str) -> float | None:
    """Parse ``"2.5"``, ``"500ms"``, ``"30s"``, ``"2m"``, ``"1h"`` or TimeSpan text like ``"00:00:30"``."""
    raw = (text or "").strip()
    if not raw:
        return None

    try:
        return float(raw)
    except ValueError:
        pass

    m = _DURATION_SUFFIX_RE.match(raw)
    if m:
        return float(m.group("value")) * _UNIT_SECONDS[m.group("unit").lower()]

    m = _TIMESPAN_RE.match(raw)
    if m:
        days = int(m.group("days") or 0)
        hours = int(m.group("hours"))
        minutes = int(m.group("minutes"))
        seconds = float(m.group("seconds") or 0.0)
        if hours > 23 or minutes > 59 or seconds >= 60:
            return None
        return float(days * 86400 + hours * 3600 + minutes * 60) + seconds

    return None


def _get_duration(env: Mapping[str, str], key: str, default_s: float, *, hi: float) -> float:
    raw = _get(env, key, "")
    value = parse_duration_seconds(raw)
    if value is None:
        if raw:
            log.warning("settings_invalid_duration key=%s value=%s", key, raw)
        value = default_s
    return float(max(0.0, min(float(value), hi)))


def _get_rate(env: Mapping[str, str], key: str, default: float) -> float:
    try:
        value = float(_get(env, key, str(default)) or default)
    except Exception:
        value = default
    if value != value:  # NaN
        value = default
    return float(max(0.0, min(float(value), 1.0)))


def _get_choice(env: Mapping[str, str], key: str, default: str, *, choices: set[str]) -> str:
    raw = _get(env, key, default).lower()
    return raw if raw in choices else default


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    if env is None:
        env = os.environ

    app_env = _get(env, "APP_ENV", "dev").lower()
    database_url = _get(env, "DATABASE_URL", "sqlite+aiosqlite:///./data/gallery.db")

    seed_raw = _get(env, "THROTTLING_SEED", "")
    try:
        throttling_seed: int | None = int(seed_raw) if seed_raw else None
    except Exception:
        throttling_seed = None

    settings = Settings(
        app_env=app_env,
        database_url=database_url,
        db_auto_migrate=_get_bool(env, "DB_AUTO_MIGRATE", True),
        db_seed_demo=_get_bool(env, "DB_SEED_DEMO", False),
        storage_connection_string=_get(env, "STORAGE_CONNECTION_STRING", DEV_STORAGE_CONNECTION_STRING),
        storage_container=_get(env, "STORAGE_CONTAINER", "images") or "images",
        storage_fault_injection=_get_bool(env, "STORAGE_FAULT_INJECTION", False),
        throttling_mode=_get_choice(env, "THROTTLING_MODE", "rate", choices=_THROTTLING_MODES),
        throttling_rate=_get_rate(env, "THROTTLING_RATE", 0.5),
        throttling_available_interval_s=_get_duration(env, "THROTTLING_AVAILABLE_INTERVAL", 30.0, hi=86400.0),
        throttling_interval_s=_get_duration(env, "THROTTLING_INTERVAL", 10.0, hi=86400.0),
        throttling_seed=throttling_seed,
        retry_max_retries=_get_int(env, "RETRY_MAX_RETRIES", 3, lo=0, hi=50),
        retry_delay_s=_get_duration(env, "RETRY_DELAY", 0.8, hi=600.0),
        retry_max_delay_s=_get_duration(env, "RETRY_MAX_DELAY", 60.0, hi=3600.0),
        retry_mode=_get_choice(env, "RETRY_MODE", "exponential", choices=_RETRY_MODES),
        retry_network_timeout_s=_get_duration(env, "RETRY_NETWORK_TIMEOUT", 100.0, hi=3600.0),
        transfer_initial_size=_get_int(env, "TRANSFER_INITIAL_SIZE", 256 * 1024 * 1024, lo=1, hi=5000 * 1024 * 1024),
        transfer_max_size=_get_int(env, "TRANSFER_MAX_SIZE", 4 * 1024 * 1024, lo=1, hi=4000 * 1024 * 1024),
        transfer_max_concurrency=_get_int(env, "TRANSFER_MAX_CONCURRENCY", 4, lo=1, hi=64),
        gallery_page_size=_get_int(env, "GALLERY_PAGE_SIZE", 8, lo=1, hi=200),
    )

    if settings.is_prod:
        missing: list[str] = []
        conn = settings.storage_connection_string
        if not conn or conn.lower() == DEV_STORAGE_CONNECTION_STRING.lower():
            missing.append("STORAGE_CONNECTION_STRING")
        if not settings.database_url:
            missing.append("DATABASE_URL")
        if missing:
            raise ValueError(f"Missing required env vars for prod: {', '.join(missing)}")

    return settings
