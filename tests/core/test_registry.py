import asyncio

import pytest

from clockcore.offsets import ClockOffset
from clockcore.registry import OffsetRegistry


def _registry(store, sources, **kwargs):
    kwargs.setdefault("fallback_seconds", {"melon": 0.2, "interpark": -0.1, "naver": 0.05})
    return OffsetRegistry(store, sources, **kwargs)


def test_unsynced_source_uses_primary_plus_fallback(store, make_source):
    store.replace(ClockOffset(value_ms=500.0))
    registry = _registry(store, [make_source("melon", 1.0)])

    assert registry.effective_offset_ms("melon") == pytest.approx(700.0)
    assert registry.effective_offset_ms("naver") == pytest.approx(550.0)
    assert not registry.is_fresh("melon")


def test_fresh_source_uses_its_own_offset(store, make_source):
    registry = _registry(store, [make_source("melon", 1234.0)])

    outcome = asyncio.run(registry.sync_all())

    assert outcome == {"melon": True}
    assert registry.is_fresh("melon")
    assert registry.effective_offset_ms("melon") == pytest.approx(1234.0)


def test_stale_source_falls_back_instead_of_stale_offset(store, clock, make_source):
    store.replace(ClockOffset(value_ms=-30.0))
    registry = _registry(store, [make_source("interpark", 4000.0)], stale_after_ms=120_000)
    asyncio.run(registry.sync_all())

    clock.advance(120_000)
    assert registry.effective_offset_ms("interpark") == pytest.approx(4000.0)

    clock.advance(1)
    assert not registry.is_fresh("interpark")
    assert registry.effective_offset_ms("interpark") == pytest.approx(-30.0 - 100.0)


def test_failures_are_isolated_per_source(store, make_source):
    melon = make_source("melon", 100.0)
    interpark = make_source("interpark", 1.0, error=RuntimeError("boom"))
    yes24 = make_source("yes24", None)
    registry = _registry(store, [melon, interpark, yes24])

    outcome = asyncio.run(registry.sync_all())

    assert outcome == {"melon": True, "interpark": False, "yes24": False}
    assert registry.get("melon").last_error is None
    assert "boom" in registry.get("interpark").last_error
    assert registry.get("yes24").last_error == "no sample"
    assert registry.effective_offset_ms("melon") == pytest.approx(100.0)


def test_failed_sync_keeps_previous_offset_until_stale(store, clock, make_source):
    melon = make_source("melon", 250.0)
    registry = _registry(store, [melon])
    asyncio.run(registry.sync_all())

    melon.offset_ms = None
    clock.advance(60_000)
    asyncio.run(registry.sync_all())

    assert registry.is_fresh("melon")
    assert registry.effective_offset_ms("melon") == pytest.approx(250.0)


def test_sources_sync_in_parallel(store, make_source):
    sources = [make_source(name, 10.0, delay_s=0.1) for name in ("melon", "interpark", "yes24")]
    registry = _registry(store, sources)

    async def scenario():
        loop = asyncio.get_running_loop()
        started = loop.time()
        await registry.sync_all()
        return loop.time() - started

    assert asyncio.run(scenario()) < 0.25
    assert all(source.calls == 1 for source in sources)


def test_unknown_source_raises(store):
    registry = _registry(store, [])
    with pytest.raises(KeyError):
        registry.effective_offset_ms("ticketlink")


def test_snapshot_lists_every_known_source(store, make_source):
    registry = _registry(store, [make_source("melon", 5.0)])
    asyncio.run(registry.sync_all())

    views = {view.source_id: view for view in registry.snapshot()}

    assert set(views) == {"melon", "interpark", "naver"}
    assert views["melon"].fresh is True
    assert views["naver"].fresh is False
    assert views["naver"].offset_ms == pytest.approx(50.0)
