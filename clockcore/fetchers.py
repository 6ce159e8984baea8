"""Reference time fetchers: one network round trip, one corrected sample.

Each source records the local send/receive times around a single request,
extracts the reference instant from the response and returns
``reference + round_trip / 2``.  Every failure (status, payload, timeout,
connection) yields ``None``; callers never see an exception from
:meth:`TimeSource.fetch`.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Mapping, Optional
from zoneinfo import ZoneInfo

import requests

from .logging import get_logger
from .offsets import LocalClock, ReferenceSample, local_now_ms

__all__ = [
    "BROWSER_USER_AGENT",
    "HeaderTimeSource",
    "JsonTimeSource",
    "ProxyTimeSource",
    "TimeSource",
    "extract_json_time",
    "parse_http_date",
    "parse_iso_datetime",
]

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
)
KST_SHIFT_MS = 9 * 60 * 60 * 1000
_EPOCH_MS_THRESHOLD = 1e11
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")

SessionFactory = Callable[[], requests.Session]

log = get_logger("core.fetchers")


def parse_http_date(value: Optional[str]) -> int:
    """Parse an RFC 7231 ``Date`` header into epoch milliseconds (UTC)."""

    if not value:
        raise ValueError("empty date header")
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError) as exc:
        raise ValueError(f"invalid date header: {value!r}") from exc
    if parsed is None:
        raise ValueError(f"invalid date header: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    millis = int(parsed.timestamp() * 1000)
    if millis <= 0:
        raise ValueError(f"invalid date header: {value!r}")
    return millis


def parse_iso_datetime(value: Any, zone: str = "UTC") -> int:
    """Parse an ISO-8601 string; naive values are read in *zone*."""

    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"not a datetime string: {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(r"\1", text)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=ZoneInfo(zone))
    return int(parsed.timestamp() * 1000)


def _epoch_to_ms(value: Any) -> int:
    number = float(value)
    if number <= 0:
        raise ValueError(f"invalid epoch value: {value!r}")
    if number > _EPOCH_MS_THRESHOLD:
        return int(number)
    return int(number * 1000)


def extract_json_time(payload: Mapping[str, Any], zone: str = "UTC") -> Optional[int]:
    """Sniff the reference instant out of a JSON time API payload.

    Returns ``None`` when no known field is present.  A known field with an
    unusable value raises :class:`ValueError`.
    """

    if not isinstance(payload, Mapping):
        return None
    for key in ("unixtime", "epoch"):
        if payload.get(key):
            return _epoch_to_ms(payload[key])
    for key in ("dateTime", "datetime", "currentDateTime"):
        if payload.get(key):
            return parse_iso_datetime(payload[key], zone)
    if payload.get("utc_datetime"):
        return parse_iso_datetime(payload["utc_datetime"], "UTC")
    if payload.get("date") and payload.get("time_24"):
        return parse_iso_datetime(f"{payload['date']}T{payload['time_24']}", zone)
    return None


class TimeSource:
    """Base class for sources reached with a single HTTP request."""

    method = "GET"

    def __init__(
        self,
        source_id: str,
        url: str,
        *,
        timeout_s: float = 5.0,
        session_factory: Optional[SessionFactory] = None,
        monotonic: Callable[[], float] = time.perf_counter,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.source_id = source_id
        self.url = url
        self.timeout_s = timeout_s
        self._session_factory = session_factory or requests.Session
        self._monotonic = monotonic
        self._log = logger or log

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.source_id!r}, {self.url!r})"

    async def fetch(self, clock: LocalClock = local_now_ms) -> Optional[ReferenceSample]:
        """Run one round trip in a worker thread; ``None`` on any failure."""

        try:
            return await asyncio.to_thread(self.fetch_blocking, clock)
        except Exception as exc:
            self._log.debug("fetch source=%s status=failed error=%s", self.source_id, exc)
            return None

    def fetch_blocking(self, clock: LocalClock = local_now_ms) -> Optional[ReferenceSample]:
        session = self._session_factory()
        try:
            started = self._monotonic()
            response = session.request(
                self.method,
                self.url,
                timeout=self.timeout_s,
                headers={"User-Agent": BROWSER_USER_AGENT, "Cache-Control": "no-store"},
                allow_redirects=False,
            )
            round_trip_ms = (self._monotonic() - started) * 1000.0
            received_ms = int(clock())
        finally:
            session.close()

        if not 200 <= response.status_code < 300:
            self._log.debug(
                "fetch source=%s status=http_%s", self.source_id, response.status_code
            )
            return None
        reference_ms = self.extract(response)
        if reference_ms is None:
            self._log.debug("fetch source=%s status=no_time_field", self.source_id)
            return None
        return ReferenceSample(
            timestamp_ms=int(round(reference_ms + round_trip_ms / 2)),
            round_trip_ms=round_trip_ms,
            source_id=self.source_id,
            local_ms=received_ms,
        )

    def extract(self, response: requests.Response) -> Optional[float]:
        raise NotImplementedError


class JsonTimeSource(TimeSource):
    """Public JSON time API (worldtimeapi, timeapi.io and friends)."""

    def __init__(self, source_id: str, url: str, *, zone: str = "UTC", **kwargs: Any) -> None:
        super().__init__(source_id, url, **kwargs)
        self.zone = zone

    def extract(self, response: requests.Response) -> Optional[float]:
        return extract_json_time(response.json(), self.zone)


class HeaderTimeSource(TimeSource):
    """``HEAD`` request whose ``Date`` response header is the reference."""

    method = "HEAD"

    def __init__(self, source_id: str, url: str, *, timeout_s: float = 3.0, **kwargs: Any) -> None:
        super().__init__(source_id, url, timeout_s=timeout_s, **kwargs)

    def extract(self, response: requests.Response) -> Optional[float]:
        header = response.headers.get("Date")
        if not header:
            return None
        return parse_http_date(header)


class ProxyTimeSource(TimeSource):
    """Platform time relayed by the helper server.

    The helper reports ``serverTime`` shifted into the display zone; the shift
    (``serverTimeKST - serverTimeUTC``) is removed to get an epoch instant.
    """

    def __init__(
        self,
        source_id: str,
        base_url: str,
        platform_id: Optional[str] = None,
        *,
        timeout_s: float = 8.0,
        **kwargs: Any,
    ) -> None:
        self.platform_id = platform_id or source_id
        url = f"{base_url.rstrip('/')}/api/platform-time/{self.platform_id}"
        super().__init__(source_id, url, timeout_s=timeout_s, **kwargs)

    def extract(self, response: requests.Response) -> Optional[float]:
        payload = response.json()
        if not isinstance(payload, Mapping) or payload.get("serverTime") is None:
            return None
        server_time = float(payload["serverTime"])
        shifted = payload.get("serverTimeKST")
        utc = payload.get("serverTimeUTC")
        if isinstance(shifted, (int, float)) and isinstance(utc, (int, float)):
            shift_ms = float(shifted) - float(utc)
        else:
            shift_ms = float(KST_SHIFT_MS)
        return server_time - shift_ms
