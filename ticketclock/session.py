"""Wire offsets, resync loops, display and countdown into one session."""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from clockcore.offsets import OffsetStore, SyncStatus
from clockcore.registry import OffsetRegistry
from clockcore.time_sync import OffsetEstimator, SampleSource

from .accuracy import describe_offset
from .config import Settings
from .countdown import CountdownEngine, CountdownFrame, CountdownTarget, InvalidTargetError, TargetInput
from .display import DisplayFrame, LiveDisplay

__all__ = ["ClockSession"]

log = logging.getLogger(__name__)

_STATUS_TEXT = {
    SyncStatus.IDLE: "waiting",
    SyncStatus.SYNCING: "syncing...",
    SyncStatus.SYNCED: "synced",
    SyncStatus.FAILED: "sync failed - using device time",
}


class ClockSession:
    """Everything one clock window or terminal needs, sharing one store."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        store: Optional[OffsetStore] = None,
        primary_sources: Optional[Sequence[SampleSource]] = None,
        platform_sources: Optional[Sequence[SampleSource]] = None,
        on_time: Optional[Callable[[DisplayFrame], None]] = None,
        on_countdown: Optional[Callable[[CountdownFrame], None]] = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.store = store or OffsetStore()
        self.on_time = on_time
        self.on_countdown = on_countdown
        self.estimator = OffsetEstimator(
            self.store,
            self.settings.primary_sources() if primary_sources is None else primary_sources,
            resync_interval_s=self.settings.sync_interval_s,
        )
        self.registry = OffsetRegistry(
            self.store,
            self.settings.platform_sources() if platform_sources is None else platform_sources,
            fallback_seconds=self.settings.platform_offsets,
            stale_after_ms=self.settings.stale_after_ms,
            sync_interval_s=self.settings.platform_interval_s,
        )
        self.display = LiveDisplay(
            self.store,
            self._emit_time,
            registry=self.registry,
            tick_interval_s=self.settings.tick_interval_s,
            zone=self.settings.display_tz,
        )
        self.countdown = CountdownEngine(
            self.store,
            self._emit_countdown,
            tick_interval_s=self.settings.tick_interval_s,
            zone=self.settings.display_tz,
        )

    def _emit_time(self, frame: DisplayFrame) -> None:
        if self.on_time is not None:
            self.on_time(frame)

    def _emit_countdown(self, frame: CountdownFrame) -> None:
        if self.on_countdown is not None:
            self.on_countdown(frame)

    def start(self) -> None:
        """Start resync loops and the display; needs a running event loop."""

        self.estimator.start()
        self.registry.start()
        self.display.start()

    def stop(self) -> None:
        self.countdown.stop()
        self.display.stop()
        self.registry.stop()
        self.estimator.stop()

    def start_countdown(self, target: TargetInput, label: str = "") -> Optional[str]:
        """Start a countdown; return a user-facing error message on bad input."""

        try:
            self.countdown.start(target, label)
        except InvalidTargetError as exc:
            log.info("countdown rejected target=%r reason=%s", target, exc)
            return str(exc)
        return None

    @property
    def countdown_target(self) -> Optional[CountdownTarget]:
        return self.countdown.target

    def status_text(self) -> str:
        status = _STATUS_TEXT[self.estimator.status]
        if self.estimator.status is SyncStatus.SYNCED:
            return f"{status} · {describe_offset(self.store.offset_ms()).label}"
        return status
