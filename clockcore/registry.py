"""Per-platform offsets kept next to the primary offset."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional

from .logging import get_logger
from .offsets import ClockOffset, OffsetStore
from .time_sync import SampleSource
from .timers import RepeatingTimer, TimerSlot

__all__ = ["OffsetRegistry", "SecondarySourceState", "SourceView"]


@dataclass(slots=True)
class SecondarySourceState:
    """Sync state of one secondary source."""

    source_id: str
    fallback_seconds: float = 0.0
    stale_after_ms: int = 120_000
    offset: Optional[ClockOffset] = None
    last_sync_local_ms: int = 0
    last_error: Optional[str] = None

    def is_fresh(self, now_local_ms: int) -> bool:
        if self.offset is None or not self.last_sync_local_ms:
            return False
        return (now_local_ms - self.last_sync_local_ms) <= self.stale_after_ms


@dataclass(frozen=True, slots=True)
class SourceView:
    source_id: str
    offset_ms: float
    fresh: bool
    fallback_seconds: float
    last_error: Optional[str] = None


class OffsetRegistry:
    """Independent offsets for secondary sources with a staleness policy.

    A source reports its own offset for ``stale_after_ms`` after a successful
    sync.  Afterwards, or before the first success, the primary offset plus
    the source's static ``fallback_seconds`` is used instead.
    """

    def __init__(
        self,
        store: OffsetStore,
        sources: Iterable[SampleSource],
        *,
        fallback_seconds: Optional[Mapping[str, float]] = None,
        stale_after_ms: int = 120_000,
        sync_interval_s: float = 60.0,
        extra_source_ids: Iterable[str] = (),
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store = store
        self.sync_interval_s = sync_interval_s
        self._sources: Dict[str, SampleSource] = {source.source_id: source for source in sources}
        fallbacks = dict(fallback_seconds or {})
        self._states: Dict[str, SecondarySourceState] = {}
        for source_id in [*self._sources, *extra_source_ids, *fallbacks]:
            if source_id in self._states:
                continue
            self._states[source_id] = SecondarySourceState(
                source_id=source_id,
                fallback_seconds=float(fallbacks.get(source_id, 0.0)),
                stale_after_ms=int(stale_after_ms),
            )
        self._timer = TimerSlot()
        self._log = logger or get_logger("core.registry")

    def source_ids(self) -> list[str]:
        return list(self._states)

    def get(self, source_id: str) -> SecondarySourceState:
        return self._states[source_id]

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._states

    def is_fresh(self, source_id: str, now_local_ms: Optional[int] = None) -> bool:
        now = self.store.local_ms() if now_local_ms is None else now_local_ms
        return self._states[source_id].is_fresh(now)

    def effective_offset_ms(self, source_id: str, now_local_ms: Optional[int] = None) -> float:
        """Offset a reader should apply for *source_id* right now."""

        state = self._states[source_id]
        now = self.store.local_ms() if now_local_ms is None else now_local_ms
        offset = state.offset
        if offset is not None and state.is_fresh(now):
            return offset.value_ms
        return self.store.offset_ms() + state.fallback_seconds * 1000.0

    def snapshot(self) -> list[SourceView]:
        now = self.store.local_ms()
        return [
            SourceView(
                source_id=source_id,
                offset_ms=self.effective_offset_ms(source_id, now),
                fresh=state.is_fresh(now),
                fallback_seconds=state.fallback_seconds,
                last_error=state.last_error,
            )
            for source_id, state in self._states.items()
        ]

    @property
    def running(self) -> bool:
        return self._timer.active

    def start(self) -> RepeatingTimer:
        timer = RepeatingTimer(self.sync_interval_s, self.sync_all, name="platform-resync")
        return self._timer.replace(timer)

    def stop(self) -> None:
        self._timer.cancel()

    async def sync_all(self) -> Dict[str, bool]:
        """Fetch every secondary source concurrently; failures stay isolated."""

        source_ids = list(self._sources)
        results = await asyncio.gather(
            *(self._sync_one(source_id) for source_id in source_ids),
            return_exceptions=True,
        )
        outcome: Dict[str, bool] = {}
        for source_id, result in zip(source_ids, results):
            if isinstance(result, BaseException):
                self._mark_failed(source_id, repr(result))
                outcome[source_id] = False
            else:
                outcome[source_id] = bool(result)
        self._log.info(
            "platform_sync ok=%s failed=%s",
            ",".join(sorted(k for k, v in outcome.items() if v)) or "-",
            ",".join(sorted(k for k, v in outcome.items() if not v)) or "-",
        )
        return outcome

    async def _sync_one(self, source_id: str) -> bool:
        source = self._sources[source_id]
        state = self._states[source_id]
        timeout = float(getattr(source, "timeout_s", 8.0)) + 0.5
        try:
            sample = await asyncio.wait_for(source.fetch(self.store.local_ms), timeout=timeout)
        except asyncio.TimeoutError:
            sample = None
        if sample is None:
            self._mark_failed(source_id, "no sample")
            return False
        state.offset = ClockOffset(
            value_ms=sample.offset_ms,
            computed_at_local_ms=sample.local_ms,
            source_count=1,
        )
        state.last_sync_local_ms = sample.local_ms
        state.last_error = None
        self._log.debug(
            "platform_sync source=%s offset_ms=%.1f rtt_ms=%.1f",
            source_id,
            sample.offset_ms,
            sample.round_trip_ms,
        )
        return True

    def _mark_failed(self, source_id: str, error: str) -> None:
        state = self._states[source_id]
        state.last_error = error
        self._log.debug("platform_sync source=%s status=failed error=%s", source_id, error)
