"""Ticketing platform time read from upstream ``Date`` headers."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

import requests

from clockcore.fetchers import BROWSER_USER_AGENT, KST_SHIFT_MS, parse_http_date
from clockcore.offsets import LocalClock, local_now_ms

__all__ = [
    "PlatformTime",
    "PlatformTimeError",
    "PlatformTimeService",
    "UnknownPlatformError",
    "UpstreamResponse",
    "requests_head",
    "zone_shifted_ms",
]

log = logging.getLogger(__name__)

SINGLE_TIMEOUT_S = 8.0
BULK_TIMEOUT_S = 5.0
LOCAL_HEADER_WINDOW_MS = 60 * 60 * 1000


@dataclass(frozen=True, slots=True)
class UpstreamResponse:
    status_code: int
    date_header: Optional[str]
    header_names: tuple[str, ...] = ()


HeadFn = Callable[[str, float], UpstreamResponse]


def requests_head(url: str, timeout_s: float) -> UpstreamResponse:
    """Issue the upstream ``HEAD`` request; the timeout aborts the socket."""

    with requests.Session() as session:
        response = session.head(
            url,
            timeout=timeout_s,
            headers={"User-Agent": BROWSER_USER_AGENT},
            allow_redirects=False,
        )
    return UpstreamResponse(
        status_code=response.status_code,
        date_header=response.headers.get("Date"),
        header_names=tuple(response.headers.keys()),
    )


class UnknownPlatformError(KeyError):
    """The requested platform id is not configured."""


@dataclass(eq=False, slots=True)
class PlatformTimeError(RuntimeError):
    """Upstream fetch or parse failure for one platform."""

    platform_id: str
    error: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.platform_id}: {self.error} ({self.message})"

    def to_json(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "error": self.error,
            "platformId": self.platform_id,
            "message": self.message,
        }
        body.update(self.details)
        return body


@dataclass(frozen=True, slots=True)
class PlatformTime:
    platform_id: str
    server_time: float
    server_time_utc: int
    server_time_kst: int
    round_trip_ms: int
    date_header: str
    timestamp: int

    def to_json(self) -> Dict[str, Any]:
        return {
            "platformId": self.platform_id,
            "serverTime": self.server_time,
            "serverTimeUTC": self.server_time_utc,
            "serverTimeKST": self.server_time_kst,
            "roundTripTime": self.round_trip_ms,
            "dateHeader": self.date_header,
            "timestamp": self.timestamp,
        }


def zone_shifted_ms(utc_ms: int, now_ms: int, *, detect_local: bool = False) -> int:
    """Shift a UTC header instant by +9h.

    With *detect_local*, a header that already reads within an hour of the
    shifted local clock is taken as pre-shifted and returned unchanged.
    """

    if detect_local and abs(utc_ms - (now_ms + KST_SHIFT_MS)) < LOCAL_HEADER_WINDOW_MS:
        return utc_ms
    return utc_ms + KST_SHIFT_MS


class PlatformTimeService:
    """Measure platform time through one ``HEAD`` round trip per request."""

    def __init__(
        self,
        platform_urls: Mapping[str, str],
        *,
        head: Optional[HeadFn] = None,
        clock: Optional[LocalClock] = None,
        detect_local_headers: bool = False,
    ) -> None:
        self.platform_urls = dict(platform_urls)
        self._head = head or requests_head
        self._clock = clock or local_now_ms
        self.detect_local_headers = detect_local_headers

    def platform_ids(self) -> list[str]:
        return list(self.platform_urls)

    def now_ms(self) -> int:
        return int(self._clock())

    def fetch(
        self,
        platform_id: str,
        *,
        timeout_s: float = SINGLE_TIMEOUT_S,
        detect_local: Optional[bool] = None,
    ) -> PlatformTime:
        url = self.platform_urls.get(platform_id)
        if url is None:
            raise UnknownPlatformError(platform_id)

        started = self.now_ms()
        try:
            upstream = self._head(url, timeout_s)
        except Exception as exc:
            log.error("platform_time platform=%s status=fetch_failed error=%s", platform_id, exc)
            raise PlatformTimeError(
                platform_id, "Failed to fetch server time", str(exc), {"url": url}
            ) from exc
        finished = self.now_ms()
        round_trip = finished - started

        if not upstream.date_header:
            log.error(
                "platform_time platform=%s status=no_date_header http=%s",
                platform_id,
                upstream.status_code,
            )
            raise PlatformTimeError(
                platform_id,
                "Date header not found in response",
                f"upstream status {upstream.status_code}",
                {
                    "statusCode": upstream.status_code,
                    "availableHeaders": list(upstream.header_names),
                },
            )
        try:
            utc_ms = parse_http_date(upstream.date_header)
        except ValueError as exc:
            log.error(
                "platform_time platform=%s status=invalid_date header=%r",
                platform_id,
                upstream.date_header,
            )
            raise PlatformTimeError(
                platform_id,
                "Invalid date header format",
                str(exc),
                {"dateHeader": upstream.date_header},
            ) from exc

        if detect_local is None:
            detect_local = self.detect_local_headers
        shifted = zone_shifted_ms(utc_ms, finished, detect_local=detect_local)
        result = PlatformTime(
            platform_id=platform_id,
            server_time=shifted + round_trip / 2,
            server_time_utc=utc_ms,
            server_time_kst=shifted,
            round_trip_ms=round_trip,
            date_header=upstream.date_header,
            timestamp=self.now_ms(),
        )
        log.info(
            "platform_time platform=%s header=%r rtt_ms=%d skew_ms=%.1f",
            platform_id,
            upstream.date_header,
            round_trip,
            utc_ms + round_trip / 2 - finished,
        )
        return result

    def fetch_all(self, *, timeout_s: float = BULK_TIMEOUT_S) -> Dict[str, Any]:
        """Fetch every platform in parallel; one failure never hides another."""

        platform_ids = self.platform_ids()
        results: Dict[str, Dict[str, Any]] = {}
        if platform_ids:
            with ThreadPoolExecutor(max_workers=len(platform_ids)) as pool:
                futures = {
                    platform_id: pool.submit(
                        self.fetch, platform_id, timeout_s=timeout_s, detect_local=False
                    )
                    for platform_id in platform_ids
                }
                for platform_id, future in futures.items():
                    results[platform_id] = self._bulk_entry(platform_id, future)
        return {"timestamp": self.now_ms(), "results": results}

    @staticmethod
    def _bulk_entry(platform_id: str, future: Any) -> Dict[str, Any]:
        try:
            result: PlatformTime = future.result()
        except PlatformTimeError as exc:
            error = exc.message if exc.error == "Failed to fetch server time" else exc.error
            return {"platformId": platform_id, "success": False, "error": error}
        except Exception as exc:
            return {"platformId": platform_id, "success": False, "error": str(exc) or "Unknown error"}
        return {
            "platformId": platform_id,
            "success": True,
            "serverTime": result.server_time,
            "roundTripTime": result.round_trip_ms,
            "dateHeader": result.date_header,
        }
