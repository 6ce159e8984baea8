import pytest

from clockcore.offsets import ClockOffset, OffsetStore, ReferenceSample, local_now_ms


def test_store_defaults_to_zero_offset(store, clock):
    assert store.offset == ClockOffset()
    assert store.now_ms() == clock.now_ms


def test_replace_swaps_whole_value(store, clock):
    new = ClockOffset(value_ms=-125.5, computed_at_local_ms=clock.now_ms, source_count=2)

    previous = store.replace(new)

    assert previous.value_ms == 0.0
    assert store.offset is new
    assert store.now_ms() == pytest.approx(clock.now_ms - 125.5)


def test_sample_offset_is_reference_minus_local():
    sample = ReferenceSample(timestamp_ms=1_000_250, round_trip_ms=40.0, source_id="x", local_ms=1_000_000)
    assert sample.offset_ms == 250.0
    with pytest.raises(AttributeError):
        sample.timestamp_ms = 0  # type: ignore[misc]


def test_default_clock_is_wall_clock():
    store = OffsetStore()
    assert abs(store.local_ms() - local_now_ms()) < 1000
