"""Widget definitions for the ticket clock window."""

from __future__ import annotations

from typing import Optional

from kivy.properties import ListProperty, ObjectProperty, StringProperty
from kivy.uix.boxlayout import BoxLayout

from .countdown import CountdownFrame
from .display import DisplayFrame

URGENCY_COLORS = {
    "normal": [1, 1, 1, 1],
    "warning": [0.98, 0.75, 0.14, 1],
    "critical": [0.94, 0.27, 0.27, 1],
    "expired": [0.94, 0.27, 0.27, 1],
}


class ClockRoot(BoxLayout):
    """Root widget showing the corrected clock, platforms and countdown."""

    time_text = StringProperty("--:--:--.---")
    source_text = StringProperty("primary")
    status_text = StringProperty("waiting")
    countdown_text = StringProperty("")
    countdown_label = StringProperty("")
    countdown_color = ListProperty(URGENCY_COLORS["normal"])
    session = ObjectProperty(None, allownone=True)

    def show_time(self, frame: DisplayFrame) -> None:
        self.time_text = frame.text
        name = frame.source_id or "primary"
        self.source_text = f"{name} (fallback)" if frame.fallback else name

    def show_countdown(self, frame: CountdownFrame) -> None:
        self.countdown_text = frame.text
        self.countdown_color = URGENCY_COLORS[frame.urgency]
        if frame.expired:
            self.countdown_label = "It's ticketing time!"
        elif frame.label:
            self.countdown_label = f"until {frame.label}"

    def select_source(self, source_id: Optional[str]) -> None:
        if self.session is None:
            return
        try:
            self.session.display.select_source(source_id or None)
        except KeyError:
            self.status_text = f"unknown platform: {source_id}"

    def start_countdown(self, date_text: str, time_text: str = "") -> None:
        """Start a countdown from the date/time inputs."""

        if self.session is None:
            return
        date_text = (date_text or "").strip()
        time_text = (time_text or "").strip() or "00:00"
        target = f"{date_text} {time_text}" if date_text else ""
        error = self.session.start_countdown(target, label=target)
        if error:
            self.status_text = error

    def refresh_status(self, *_args) -> None:
        if self.session is not None:
            self.status_text = self.session.status_text()
