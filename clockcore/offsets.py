"""Clock offset data model and the shared offset store."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

__all__ = [
    "ClockOffset",
    "LocalClock",
    "OffsetStore",
    "ReferenceSample",
    "SyncStatus",
    "local_now_ms",
]


LocalClock = Callable[[], int]


def local_now_ms() -> int:
    """Return the local wall clock as epoch milliseconds."""

    return time.time_ns() // 1_000_000


@dataclass(frozen=True, slots=True)
class ReferenceSample:
    """One RTT-corrected reading of a reference clock.

    ``timestamp_ms`` estimates the reference time at the local instant
    ``local_ms`` (the moment the response arrived).
    """

    timestamp_ms: int
    round_trip_ms: float
    source_id: str
    local_ms: int

    @property
    def offset_ms(self) -> float:
        return float(self.timestamp_ms - self.local_ms)


@dataclass(frozen=True, slots=True)
class ClockOffset:
    """Signed difference ``reference - local`` in milliseconds."""

    value_ms: float = 0.0
    computed_at_local_ms: int = 0
    source_count: int = 0


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"


class OffsetStore:
    """Holds the primary offset; one writer, many readers.

    The offset is an immutable :class:`ClockOffset` that is swapped as a whole,
    so a reader sees either the previous or the new value.
    """

    def __init__(self, clock: Optional[LocalClock] = None) -> None:
        self._clock: LocalClock = clock or local_now_ms
        self._offset = ClockOffset()
        self._lock = threading.Lock()

    @property
    def offset(self) -> ClockOffset:
        with self._lock:
            return self._offset

    def offset_ms(self) -> float:
        return self.offset.value_ms

    def replace(self, offset: ClockOffset) -> ClockOffset:
        """Install *offset* and return the value it replaced."""

        with self._lock:
            previous = self._offset
            self._offset = offset
        return previous

    def local_ms(self) -> int:
        return int(self._clock())

    def now_ms(self) -> float:
        """Local clock corrected by the primary offset."""

        return self.local_ms() + self.offset_ms()
