"""Live corrected-time display driver."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from clockcore.offsets import OffsetStore
from clockcore.registry import OffsetRegistry
from clockcore.timers import RepeatingTimer, TimerSlot

__all__ = ["DisplayFrame", "LiveDisplay", "format_clock"]

log = logging.getLogger(__name__)


def format_clock(epoch_ms: float, zone: str = "Asia/Seoul") -> str:
    """Format an epoch instant as ``HH:MM:SS.mmm`` in *zone*."""

    millis = int(epoch_ms)
    moment = datetime.fromtimestamp(millis // 1000, tz=timezone.utc).astimezone(ZoneInfo(zone))
    return f"{moment:%H:%M:%S}.{millis % 1000:03d}"


@dataclass(frozen=True, slots=True)
class DisplayFrame:
    source_id: Optional[str]
    text: str
    epoch_ms: float
    fallback: bool = False


class LiveDisplay:
    """Render ``local time + selected offset`` on a fixed short interval.

    ``source_id`` ``None`` selects the primary offset; any id known to the
    registry selects that platform.  The selection is read on every tick, so
    switching never restarts the timer.
    """

    def __init__(
        self,
        store: OffsetStore,
        sink: Callable[[DisplayFrame], None],
        *,
        registry: Optional[OffsetRegistry] = None,
        tick_interval_s: float = 0.01,
        zone: str = "Asia/Seoul",
    ) -> None:
        self.store = store
        self.registry = registry
        self.tick_interval_s = tick_interval_s
        self.zone = zone
        self.last_frame: Optional[DisplayFrame] = None
        self._sink = sink
        self._source_id: Optional[str] = None
        self._timer = TimerSlot()

    @property
    def source_id(self) -> Optional[str]:
        return self._source_id

    @property
    def running(self) -> bool:
        return self._timer.active

    def select_source(self, source_id: Optional[str]) -> None:
        """Switch the displayed source; takes effect on the next tick."""

        if source_id is not None and (self.registry is None or source_id not in self.registry):
            raise KeyError(source_id)
        self._source_id = source_id
        log.debug("display source=%s", source_id or "primary")

    def start(self) -> RepeatingTimer:
        timer = RepeatingTimer(self.tick_interval_s, self.render_once, name="live-display")
        return self._timer.replace(timer)

    def stop(self) -> None:
        self._timer.cancel()

    def render_once(self) -> DisplayFrame:
        local_ms = self.store.local_ms()
        source_id = self._source_id
        fallback = False
        if source_id is None or self.registry is None:
            offset_ms = self.store.offset_ms()
        else:
            offset_ms = self.registry.effective_offset_ms(source_id, local_ms)
            fallback = not self.registry.is_fresh(source_id, local_ms)
        epoch_ms = local_ms + offset_ms
        frame = DisplayFrame(
            source_id=source_id,
            text=format_clock(epoch_ms, self.zone),
            epoch_ms=epoch_ms,
            fallback=fallback,
        )
        self.last_frame = frame
        self._sink(frame)
        return frame
