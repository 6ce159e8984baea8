"""Primary local-to-reference offset estimation."""

from __future__ import annotations

import asyncio
import logging
import statistics
from typing import Optional, Protocol, Sequence

from .logging import get_logger
from .offsets import ClockOffset, LocalClock, OffsetStore, ReferenceSample, SyncStatus
from .timers import RepeatingTimer, TimerSlot

__all__ = ["OffsetEstimator", "SampleSource"]


class SampleSource(Protocol):
    """Anything that can produce one corrected reference sample."""

    source_id: str
    timeout_s: float

    async def fetch(self, clock: LocalClock) -> Optional[ReferenceSample]: ...


class OffsetEstimator:
    """Maintain the primary offset from a prioritized list of sources.

    Sources are tried one after another and the walk stops once
    ``min_samples`` samples were collected.  The offset is the mean of
    ``timestamp_ms - local_ms`` over those samples and is written to the
    :class:`OffsetStore` in one assignment.
    """

    def __init__(
        self,
        store: OffsetStore,
        sources: Sequence[SampleSource],
        *,
        min_samples: int = 2,
        attempt_timeout_s: Optional[float] = None,
        resync_interval_s: float = 300.0,
        reset_on_failure: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store = store
        self.sources = list(sources)
        self.min_samples = max(1, int(min_samples))
        self.attempt_timeout_s = attempt_timeout_s
        self.resync_interval_s = resync_interval_s
        self.reset_on_failure = reset_on_failure
        self.status = SyncStatus.IDLE
        self.last_sync_local_ms = 0
        self._has_synced = False
        self._lock = asyncio.Lock()
        self._timer = TimerSlot()
        self._log = logger or get_logger("core.time_sync")

    @property
    def running(self) -> bool:
        return self._timer.active

    def start(self) -> RepeatingTimer:
        """Sync now and then every ``resync_interval_s`` seconds."""

        timer = RepeatingTimer(self.resync_interval_s, self.sync, name="primary-resync")
        return self._timer.replace(timer)

    def stop(self) -> None:
        self._timer.cancel()

    async def collect(self) -> list[ReferenceSample]:
        """Walk the source list until enough samples were gathered."""

        samples: list[ReferenceSample] = []
        for source in self.sources:
            if len(samples) >= self.min_samples:
                break
            timeout = self.attempt_timeout_s
            if timeout is None:
                timeout = float(getattr(source, "timeout_s", 5.0)) + 0.5
            try:
                sample = await asyncio.wait_for(source.fetch(self.store.local_ms), timeout=timeout)
            except asyncio.TimeoutError:
                self._log.debug("time_sync source=%s status=timeout", source.source_id)
                continue
            except Exception as exc:
                self._log.debug(
                    "time_sync source=%s status=failed error=%s", source.source_id, exc
                )
                continue
            if sample is None:
                self._log.debug("time_sync source=%s status=no_sample", source.source_id)
                continue
            samples.append(sample)
        return samples

    async def sync(self) -> float:
        """Perform one synchronisation cycle and return the offset in ms."""

        async with self._lock:
            return await self._sync_locked()

    async def _sync_locked(self) -> float:
        previous = self.status
        self.status = SyncStatus.SYNCING
        try:
            samples = await self.collect()
        except asyncio.CancelledError:
            self.status = previous
            raise
        if not samples:
            return self._apply_failure()

        offset_ms = statistics.fmean(sample.offset_ms for sample in samples)
        now = self.store.local_ms()
        self.store.replace(
            ClockOffset(value_ms=offset_ms, computed_at_local_ms=now, source_count=len(samples))
        )
        self.last_sync_local_ms = now
        self._has_synced = True
        self.status = SyncStatus.SYNCED
        self._log.info(
            "time_sync source=primary offset_ms=%.1f samples=%d sources=%s",
            offset_ms,
            len(samples),
            ",".join(sample.source_id for sample in samples),
        )
        return offset_ms

    def _apply_failure(self) -> float:
        self.status = SyncStatus.FAILED
        if not self._has_synced or self.reset_on_failure:
            self.store.replace(ClockOffset(computed_at_local_ms=self.store.local_ms()))
            self._log.warning("time_sync source=primary status=failed fallback=local_time")
            return 0.0
        kept = self.store.offset_ms()
        self._log.warning(
            "time_sync source=primary status=failed fallback=last_good offset_ms=%.1f", kept
        )
        return kept
