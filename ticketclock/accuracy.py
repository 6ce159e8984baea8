"""Offset quality grading and a latency-based accuracy probe."""

from __future__ import annotations

import asyncio
import logging
import statistics
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Literal, Optional

import requests

__all__ = [
    "AccuracyProbeError",
    "AccuracyReport",
    "OffsetQuality",
    "describe_offset",
    "http_ping",
    "measure_accuracy",
]

log = logging.getLogger(__name__)

Grade = Literal["good", "warning", "bad"]


class AccuracyProbeError(RuntimeError):
    """Raised when the latency probe cannot complete."""


@dataclass(frozen=True, slots=True)
class OffsetQuality:
    label: str
    grade: Grade


def describe_offset(offset_ms: float) -> OffsetQuality:
    """Grade how far the device clock is from the reference clock."""

    seconds = abs(offset_ms) / 1000.0
    sign = "+" if offset_ms >= 0 else "-"
    if seconds < 0.01:
        return OffsetQuality("offset: within ±0.01s (very accurate)", "good")
    if seconds < 0.1:
        return OffsetQuality(f"offset: {sign}{seconds:.3f}s (accurate)", "good")
    if seconds < 0.5:
        return OffsetQuality(f"offset: {sign}{seconds:.3f}s (fair)", "warning")
    return OffsetQuality(f"offset: {sign}{seconds:.3f}s (resync recommended)", "bad")


@dataclass(frozen=True, slots=True)
class AccuracyReport:
    pings_ms: tuple[float, ...]
    avg_ping_ms: float
    min_ping_ms: float
    max_ping_ms: float
    estimated_error_ms: float
    error_grade: Grade
    ping_grade: Grade
    network_hint: str
    network_grade: Grade

    def summary(self) -> str:
        return (
            f"error ±{self.estimated_error_ms / 1000:.3f}s ({self.error_grade}), "
            f"ping {self.avg_ping_ms:.0f}ms ({self.min_ping_ms:.0f}-{self.max_ping_ms:.0f}ms), "
            f"network: {self.network_hint}"
        )


def _grade_error(error_ms: float) -> Grade:
    if error_ms < 100:
        return "good"
    if error_ms < 500:
        return "warning"
    return "bad"


def _grade_ping(ping_ms: float) -> Grade:
    if ping_ms < 50:
        return "good"
    if ping_ms < 100:
        return "warning"
    return "bad"


def _network_hint(ping_ms: float) -> tuple[str, Grade]:
    if ping_ms < 30:
        return "WiFi 5GHz (optimal)", "good"
    if ping_ms < 80:
        return "WiFi 5GHz / LTE (ok)", "warning"
    return "LTE / WiFi 2.4GHz (reconnect recommended)", "bad"


def http_ping(url: str, *, timeout_s: float = 3.0) -> Callable[[], Awaitable[float]]:
    """Build a ping callable that times one ``HEAD`` request in milliseconds."""

    def _blocking() -> float:
        with requests.Session() as session:
            started = time.perf_counter()
            session.head(url, timeout=timeout_s, headers={"Cache-Control": "no-store"})
            return (time.perf_counter() - started) * 1000.0

    async def _ping() -> float:
        return await asyncio.to_thread(_blocking)

    return _ping


async def measure_accuracy(
    ping: Callable[[], Awaitable[float]],
    offset_ms: float,
    *,
    samples: int = 5,
    pause_s: float = 0.1,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> AccuracyReport:
    """Ping *samples* times and estimate the error of the displayed time.

    The estimate is half the average ping plus the magnitude of the offset.
    """

    pause = sleep or asyncio.sleep
    pings: list[float] = []
    for index in range(max(1, samples)):
        try:
            pings.append(float(await ping()))
        except Exception as exc:
            log.warning("accuracy probe failed at ping %d: %s", index + 1, exc)
            raise AccuracyProbeError(str(exc)) from exc
        if index + 1 < samples:
            await pause(pause_s)

    avg_ping = statistics.fmean(pings)
    estimated_error = avg_ping / 2 + abs(offset_ms)
    hint, hint_grade = _network_hint(avg_ping)
    report = AccuracyReport(
        pings_ms=tuple(pings),
        avg_ping_ms=avg_ping,
        min_ping_ms=min(pings),
        max_ping_ms=max(pings),
        estimated_error_ms=estimated_error,
        error_grade=_grade_error(estimated_error),
        ping_grade=_grade_ping(avg_ping),
        network_hint=hint,
        network_grade=hint_grade,
    )
    log.info("accuracy avg_ping_ms=%.1f error_ms=%.1f", avg_ping, estimated_error)
    return report
