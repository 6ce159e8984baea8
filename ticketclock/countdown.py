"""Countdown toward a target instant on the corrected clock."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Literal, Optional, Union
from zoneinfo import ZoneInfo

from clockcore.offsets import OffsetStore
from clockcore.timers import RepeatingTimer, TimerSlot

__all__ = [
    "CountdownEngine",
    "CountdownFrame",
    "CountdownTarget",
    "InvalidTargetError",
    "classify_urgency",
    "format_remaining",
    "parse_target",
]

log = logging.getLogger(__name__)

State = Literal["idle", "running", "expired"]
Urgency = Literal["normal", "warning", "critical", "expired"]
TargetInput = Union[int, float, datetime, str]

WARNING_THRESHOLD_MS = 60_000
CRITICAL_THRESHOLD_MS = 10_000
EXPIRED_TEXT = "00:00:00.000"

_TARGET_RE = re.compile(
    r"^\s*(?P<date>\d{4}-\d{2}-\d{2})"
    r"(?:[T ](?P<time>\d{1,2}:\d{2}(?::\d{2}(?:\.\d{1,6})?)?))?\s*$"
)


class InvalidTargetError(ValueError):
    """Raised when a countdown target cannot be interpreted."""


@dataclass(frozen=True, slots=True)
class CountdownTarget:
    target_epoch_ms: int
    label: str = ""


@dataclass(frozen=True, slots=True)
class CountdownFrame:
    text: str
    urgency: Urgency
    remaining_ms: float
    expired: bool
    label: str = ""


def parse_target(value: TargetInput, zone: str = "Asia/Seoul") -> int:
    """Return the epoch milliseconds described by *value*.

    Strings take the form ``YYYY-MM-DD`` with an optional ``HH:MM[:SS]``
    separated by ``T`` or a space; the time defaults to midnight.  Naive
    values are read in *zone*.
    """

    if isinstance(value, bool):
        raise InvalidTargetError("Please enter a valid date and time.")
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value <= 0:
            raise InvalidTargetError("Please enter a valid date and time.")
        return int(value)
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, str):
        if not value.strip():
            raise InvalidTargetError("Please choose a target date.")
        match = _TARGET_RE.match(value)
        if match is None:
            raise InvalidTargetError("Please enter a valid date and time.")
        time_part = match.group("time") or "00:00"
        if len(time_part.split(":")[0]) == 1:
            time_part = "0" + time_part
        try:
            moment = datetime.fromisoformat(f"{match.group('date')}T{time_part}")
        except ValueError as exc:
            raise InvalidTargetError("Please enter a valid date and time.") from exc
    else:
        raise InvalidTargetError("Please enter a valid date and time.")
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=ZoneInfo(zone))
    return int(moment.timestamp() * 1000)


def classify_urgency(remaining_ms: float) -> Urgency:
    if remaining_ms <= 0:
        return "expired"
    if remaining_ms < CRITICAL_THRESHOLD_MS:
        return "critical"
    if remaining_ms < WARNING_THRESHOLD_MS:
        return "warning"
    return "normal"


def format_remaining(remaining_ms: float) -> str:
    """``HH:MM:SS.mmm``; hours keep counting past 24."""

    if remaining_ms <= 0:
        return EXPIRED_TEXT
    total = int(remaining_ms)
    hours, rest = divmod(total, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    seconds, millis = divmod(rest, 1000)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{millis:03d}"


class CountdownEngine:
    """Idle -> running -> expired countdown driven by an owned timer."""

    def __init__(
        self,
        store: OffsetStore,
        sink: Callable[[CountdownFrame], None],
        *,
        tick_interval_s: float = 0.01,
        zone: str = "Asia/Seoul",
    ) -> None:
        self.store = store
        self.tick_interval_s = tick_interval_s
        self.zone = zone
        self.state: State = "idle"
        self.target: Optional[CountdownTarget] = None
        self.renders = 0
        self._sink = sink
        self._timer = TimerSlot()

    @property
    def timer(self) -> Optional[RepeatingTimer]:
        return self._timer.timer

    @property
    def running(self) -> bool:
        return self._timer.active

    def remaining_ms(self) -> float:
        if self.target is None:
            return 0.0
        return self.target.target_epoch_ms - self.store.now_ms()

    def arm(self, target: TargetInput, label: str = "") -> CountdownTarget:
        """Validate *target* and make it current without scheduling a timer."""

        target_ms = parse_target(target, self.zone)
        self._timer.cancel()
        self.target = CountdownTarget(target_epoch_ms=target_ms, label=label)
        self.state = "running"
        log.info("countdown target_ms=%d label=%s", target_ms, label or "-")
        return self.target

    def start(self, target: TargetInput, label: str = "") -> CountdownTarget:
        """Arm a new target, render immediately and tick on the running loop."""

        armed = self.arm(target, label)
        self.tick()
        if self.state == "running":
            timer = RepeatingTimer(
                self.tick_interval_s, self.tick, name="countdown", immediate=False
            )
            self._timer.replace(timer)
        return armed

    def stop(self) -> None:
        self._timer.cancel()
        self.target = None
        self.state = "idle"

    def tick(self) -> Optional[CountdownFrame]:
        """Recompute and render; a no-op unless running."""

        if self.state != "running" or self.target is None:
            return None
        remaining = self.remaining_ms()
        if remaining <= 0:
            self.state = "expired"
            self._timer.cancel()
            frame = CountdownFrame(
                text=EXPIRED_TEXT,
                urgency="expired",
                remaining_ms=0.0,
                expired=True,
                label=self.target.label,
            )
            log.info("countdown status=expired label=%s", self.target.label or "-")
        else:
            frame = CountdownFrame(
                text=format_remaining(remaining),
                urgency=classify_urgency(remaining),
                remaining_ms=remaining,
                expired=False,
                label=self.target.label,
            )
        self.renders += 1
        self._sink(frame)
        return frame
