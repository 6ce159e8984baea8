import asyncio
import io

import pytest

from ticketclock.config import Settings
from ticketclock.session import ClockSession

import ticket_clock


@pytest.fixture
def settings():
    return Settings.from_env({"TICKETCLOCK_TICK_INTERVAL_S": "0.005"})


def test_session_wires_sync_display_and_countdown(settings, store, clock, make_source):
    times, countdowns = [], []
    session = ClockSession(
        settings,
        store=store,
        primary_sources=[make_source("a", 100.0), make_source("b", 300.0)],
        platform_sources=[make_source("melon", 50.0)],
        on_time=times.append,
        on_countdown=countdowns.append,
    )

    async def scenario():
        session.start()
        await asyncio.sleep(0.05)
        error = session.start_countdown(clock.now_ms + 120_000, "open")
        await asyncio.sleep(0.03)
        session.stop()
        return error

    assert asyncio.run(scenario()) is None
    assert store.offset_ms() == pytest.approx(200.0)
    assert session.registry.is_fresh("melon")
    assert times and countdowns
    assert countdowns[-1].urgency == "normal"
    assert countdowns[-1].remaining_ms == pytest.approx(119_800.0)
    assert not session.display.running
    assert not session.countdown.running
    assert session.status_text().startswith("synced")


def test_session_rejects_bad_countdown_input(settings, store, make_source):
    session = ClockSession(settings, store=store, primary_sources=[], platform_sources=[])

    message = session.start_countdown("32nd of never")

    assert message == "Please enter a valid date and time."
    assert session.countdown.state == "idle"
    assert session.countdown_target is None


def test_countdown_starts_when_display_zone_was_misconfigured(store):
    settings = Settings.from_env({"TICKETCLOCK_DISPLAY_TZ": "Mars/Olympus"})
    session = ClockSession(settings, store=store, primary_sources=[], platform_sources=[])

    async def scenario():
        error = session.start_countdown("2030-01-01 10:00", "open")
        target = session.countdown_target
        session.stop()
        return error, target

    error, target = asyncio.run(scenario())
    assert error is None
    assert target.label == "open"
    assert session.start_countdown(float("inf")) == "Please enter a valid date and time."


def test_status_text_before_and_after_failed_sync(settings, store):
    session = ClockSession(settings, store=store, primary_sources=[], platform_sources=[])
    assert session.status_text() == "waiting"

    asyncio.run(session.estimator.sync())

    assert session.status_text() == "sync failed - using device time"
    assert store.offset_ms() == 0.0


def test_cli_sync_prints_offsets(monkeypatch, make_source):
    monkeypatch.setattr(
        Settings, "primary_sources", lambda self: [make_source("a", 40.0), make_source("b", 60.0)]
    )
    monkeypatch.setattr(Settings, "platform_sources", lambda self: [make_source("melon", 75.0)])
    out = io.StringIO()

    code = asyncio.run(ticket_clock.run_sync(Settings.from_env({}), out=out))

    text = out.getvalue()
    assert code == 0
    assert "primary: +50.0 ms (synced)" in text
    assert "melon: +75.0 ms (live)" in text
    assert "naver: +100.0 ms (fallback +0.05s)" in text


def test_cli_watch_exits_when_countdown_expires(monkeypatch, make_source):
    monkeypatch.setattr(Settings, "primary_sources", lambda self: [make_source("a", 0.0)])
    monkeypatch.setattr(Settings, "platform_sources", lambda self: [])
    out = io.StringIO()

    code = asyncio.run(
        ticket_clock.run_watch(
            Settings.from_env({}), countdown="2000-01-01 00:00", duration=1.0, out=out
        )
    )

    assert code == 0
    assert "T-00:00:00.000 (expired)" in out.getvalue()


def test_cli_watch_rejects_unknown_source(monkeypatch):
    monkeypatch.setattr(Settings, "primary_sources", lambda self: [])
    monkeypatch.setattr(Settings, "platform_sources", lambda self: [])
    out = io.StringIO()

    code = asyncio.run(ticket_clock.run_watch(Settings.from_env({}), source="ticketlink", out=out))

    assert code == 2
    assert "unknown platform: ticketlink" in out.getvalue()


def test_parse_args_defaults_to_gui():
    assert ticket_clock.parse_args([]).command is None
    args = ticket_clock.parse_args(["watch", "--source", "melon", "--duration", "2"])
    assert (args.command, args.source, args.duration) == ("watch", "melon", 2.0)
