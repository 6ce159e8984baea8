from __future__ import annotations

import asyncio
from typing import Optional

import pytest

from clockcore.offsets import OffsetStore, ReferenceSample


class ManualClock:
    """Local clock that only moves when told to."""

    def __init__(self, now_ms: int = 1_700_000_000_000) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, delta_ms: int) -> None:
        self.now_ms += delta_ms


class FakeSource:
    def __init__(
        self,
        source_id: str,
        offset_ms: Optional[float] = None,
        *,
        clock: Optional[ManualClock] = None,
        delay_s: float = 0.0,
        error: Optional[BaseException] = None,
        timeout_s: float = 1.0,
    ) -> None:
        self.source_id = source_id
        self.offset_ms = offset_ms
        self.clock = clock
        self.delay_s = delay_s
        self.error = error
        self.timeout_s = timeout_s
        self.calls = 0

    async def fetch(self, clock) -> Optional[ReferenceSample]:
        self.calls += 1
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        if self.offset_ms is None:
            return None
        local = int(clock())
        return ReferenceSample(
            timestamp_ms=int(local + self.offset_ms),
            round_trip_ms=20.0,
            source_id=self.source_id,
            local_ms=local,
        )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store(clock: ManualClock) -> OffsetStore:
    return OffsetStore(clock)


@pytest.fixture
def make_source():
    return FakeSource
