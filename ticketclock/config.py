"""Environment-driven settings for the ticket clock."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from clockcore.fetchers import HeaderTimeSource, JsonTimeSource, ProxyTimeSource, TimeSource

__all__ = [
    "DEFAULT_PLATFORM_OFFSETS",
    "DEFAULT_PLATFORM_URLS",
    "Settings",
    "parse_platform_offsets",
]

_log = logging.getLogger(__name__)

DEFAULT_PLATFORM_URLS: Dict[str, str] = {
    "melon": "https://ticket.melon.com",
    "interpark": "https://nol.interpark.com",
    "yes24": "https://ticket.yes24.com",
}

# Static corrections in seconds against the primary reference time.
DEFAULT_PLATFORM_OFFSETS: Dict[str, float] = {
    "melon": 0.2,
    "interpark": -0.1,
    "naver": 0.05,
    "yes24": 0.1,
}

WORLDTIMEAPI_URL = "https://worldtimeapi.org/api/timezone/Asia/Seoul"
TIMEAPI_URL = "https://timeapi.io/api/Time/current/zone?timeZone=Asia/Seoul"


def _coerce_float(value: Optional[str], default: float, name: str) -> float:
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        _log.warning("Invalid %s value: %r", name, value)
        return default


def _coerce_int(value: Optional[str], default: int, name: str) -> int:
    if not value:
        return default
    try:
        parsed = int(value)
    except ValueError:
        _log.warning("Invalid %s value: %r", name, value)
        return default
    return max(0, parsed)


def _coerce_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


def _coerce_zone(value: Optional[str], default: str) -> str:
    if not value:
        return default
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        _log.warning("Invalid display zone: %r", value)
        return default
    return value


def parse_platform_offsets(raw: Optional[str]) -> Dict[str, float]:
    """Parse ``melon=0.2,interpark=-0.1`` into a mapping of seconds."""

    offsets: Dict[str, float] = {}
    if not raw:
        return offsets
    for chunk in raw.replace(";", ",").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        key, sep, value = chunk.partition("=")
        key = key.strip().lower()
        if not sep or not key:
            _log.warning("Ignoring platform offset entry without '=': %r", chunk)
            continue
        try:
            offsets[key] = float(value)
        except ValueError:
            _log.warning("Invalid platform offset for %s: %r", key, value)
    return offsets


@dataclass(slots=True)
class Settings:
    proxy_url: str = "http://localhost:3000"
    host: str = "127.0.0.1"
    port: int = 3000
    sync_interval_s: float = 300.0
    platform_interval_s: float = 60.0
    stale_after_ms: int = 120_000
    tick_interval_s: float = 0.01
    display_tz: str = "Asia/Seoul"
    log_level: str = "INFO"
    detect_local_headers: bool = False
    platform_urls: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_PLATFORM_URLS))
    platform_offsets: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_PLATFORM_OFFSETS)
    )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        defaults = cls()
        offsets = dict(defaults.platform_offsets)
        offsets.update(parse_platform_offsets(env.get("TICKETCLOCK_PLATFORM_OFFSETS")))
        return cls(
            proxy_url=(env.get("TICKETCLOCK_PROXY_URL") or defaults.proxy_url).rstrip("/"),
            host=env.get("TICKETCLOCK_HOST") or defaults.host,
            port=_coerce_int(env.get("TICKETCLOCK_PORT") or env.get("PORT"), defaults.port, "port"),
            sync_interval_s=_coerce_float(
                env.get("TICKETCLOCK_SYNC_INTERVAL_S"), defaults.sync_interval_s, "sync interval"
            ),
            platform_interval_s=_coerce_float(
                env.get("TICKETCLOCK_PLATFORM_INTERVAL_S"),
                defaults.platform_interval_s,
                "platform interval",
            ),
            stale_after_ms=_coerce_int(
                env.get("TICKETCLOCK_STALE_AFTER_MS"), defaults.stale_after_ms, "stale window"
            ),
            tick_interval_s=_coerce_float(
                env.get("TICKETCLOCK_TICK_INTERVAL_S"), defaults.tick_interval_s, "tick interval"
            ),
            display_tz=_coerce_zone(env.get("TICKETCLOCK_DISPLAY_TZ"), defaults.display_tz),
            log_level=env.get("TICKETCLOCK_LOG_LEVEL") or defaults.log_level,
            detect_local_headers=_coerce_bool(env.get("TICKETCLOCK_DETECT_LOCAL_HEADERS")),
            platform_offsets=offsets,
        )

    def primary_sources(self) -> list[TimeSource]:
        """Primary reference sources in priority order."""

        return [
            JsonTimeSource("worldtimeapi", WORLDTIMEAPI_URL, zone="Asia/Seoul", timeout_s=5.0),
            JsonTimeSource("timeapi", TIMEAPI_URL, zone="Asia/Seoul", timeout_s=5.0),
            HeaderTimeSource("proxy-header", f"{self.proxy_url}/api/health", timeout_s=3.0),
        ]

    def platform_sources(self) -> list[TimeSource]:
        """One proxied source per platform the helper server can reach."""

        return [
            ProxyTimeSource(platform_id, self.proxy_url, timeout_s=8.0)
            for platform_id in self.platform_urls
        ]
