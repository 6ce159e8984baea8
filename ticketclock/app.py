"""Kivy application bootstrap for the ticket clock window."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from kivy.app import App
from kivy.config import Config

Config.set("graphics", "maxfps", "100")
Config.set("kivy", "exit_on_escape", "1")

from kivy.clock import Clock
from kivy.lang import Builder

from clockcore.logging import configure_logging

from .clock_view import ClockRoot
from .config import Settings
from .session import ClockSession

log = logging.getLogger(__name__)

KV = """
<ClockRoot>:
    orientation: "vertical"
    padding: 24
    spacing: 12
    Label:
        text: root.time_text
        font_size: "64sp"
    Label:
        text: root.source_text
        size_hint_y: None
        height: "28dp"
    BoxLayout:
        size_hint_y: None
        height: "40dp"
        spacing: 6
        Button:
            text: "Primary"
            on_release: root.select_source(None)
        Button:
            text: "Melon"
            on_release: root.select_source("melon")
        Button:
            text: "Interpark"
            on_release: root.select_source("interpark")
        Button:
            text: "Naver"
            on_release: root.select_source("naver")
        Button:
            text: "Yes24"
            on_release: root.select_source("yes24")
    BoxLayout:
        size_hint_y: None
        height: "40dp"
        spacing: 6
        TextInput:
            id: countdown_date
            hint_text: "YYYY-MM-DD"
            multiline: False
        TextInput:
            id: countdown_time
            hint_text: "HH:MM"
            multiline: False
        Button:
            text: "Start countdown"
            on_release: root.start_countdown(countdown_date.text, countdown_time.text)
    Label:
        text: root.countdown_text
        color: root.countdown_color
        font_size: "48sp"
    Label:
        text: root.countdown_label
        size_hint_y: None
        height: "28dp"
    Label:
        text: root.status_text
        size_hint_y: None
        height: "28dp"
"""

_KV_LOADED = False


class TicketClockApp(App):
    """Main Kivy application; owns the clock session for its lifetime."""

    title = "Ticket Clock"

    def __init__(self, *, settings: Optional[Settings] = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.settings = settings or Settings.from_env()
        self.session: Optional[ClockSession] = None
        self._status_event: Optional[Any] = None

    def build(self) -> ClockRoot:
        global _KV_LOADED
        if not _KV_LOADED:
            Builder.load_string(KV)
            _KV_LOADED = True
        root = ClockRoot()
        self.session = ClockSession(
            self.settings,
            on_time=root.show_time,
            on_countdown=root.show_countdown,
        )
        root.session = self.session
        return root

    def on_start(self) -> None:
        if self.session is None:
            return
        self.session.start()
        self._status_event = Clock.schedule_interval(self.root.refresh_status, 0.5)

    def on_stop(self) -> None:
        if self._status_event is not None:
            self._status_event.cancel()
            self._status_event = None
        if self.session is not None:
            self.session.stop()


def main(settings: Optional[Settings] = None) -> None:
    """Run the window on an asyncio loop so the clock timers share it."""

    settings = settings or Settings.from_env()
    listener = configure_logging(settings.log_level)
    app = TicketClockApp(settings=settings)
    try:
        asyncio.run(app.async_run(async_lib="asyncio"))
    finally:
        if listener is not None:
            listener.stop()
