import asyncio

from clockcore.timers import RepeatingTimer, TimerSlot


def test_repeating_timer_ticks_until_cancelled():
    calls = []

    async def scenario():
        timer = RepeatingTimer(0.005, lambda: calls.append(1)).start()
        await asyncio.sleep(0.05)
        timer.cancel()
        await timer.wait()
        return timer

    timer = asyncio.run(scenario())
    assert len(calls) >= 2
    assert timer.ticks == len(calls)
    assert not timer.active


def test_cancel_from_inside_callback_stops_after_current_tick():
    calls = []
    holder = {}

    def _tick():
        calls.append(1)
        if len(calls) == 3:
            holder["timer"].cancel()

    async def scenario():
        holder["timer"] = RepeatingTimer(0.001, _tick).start()
        await asyncio.sleep(0.05)
        await holder["timer"].wait()

    asyncio.run(scenario())
    assert len(calls) == 3


def test_callback_errors_are_logged_and_timer_survives(caplog):
    calls = []

    def _tick():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("render failed")

    async def scenario():
        timer = RepeatingTimer(0.001, _tick, name="flaky").start()
        await asyncio.sleep(0.03)
        timer.cancel()

    caplog.set_level("ERROR")
    asyncio.run(scenario())
    assert len(calls) >= 2
    assert any("timer=flaky" in record.message for record in caplog.records)


def test_async_callbacks_are_awaited_without_overlap():
    running = []
    overlaps = []

    async def _work():
        if running:
            overlaps.append(1)
        running.append(1)
        await asyncio.sleep(0.01)
        running.pop()

    async def scenario():
        timer = RepeatingTimer(0.0, _work).start()
        await asyncio.sleep(0.05)
        timer.cancel()

    asyncio.run(scenario())
    assert overlaps == []


def test_timer_slot_replace_cancels_previous():
    async def scenario():
        slot = TimerSlot()
        first = slot.replace(RepeatingTimer(0.01, lambda: None))
        second = slot.replace(RepeatingTimer(0.01, lambda: None))
        await asyncio.sleep(0.02)
        state = (first.active, second.active, slot.timer is second)
        slot.cancel()
        await second.wait()
        return state, slot.active

    (first_active, second_active, holds_second), active_after = asyncio.run(scenario())
    assert (first_active, second_active, holds_second) == (False, True, True)
    assert active_after is False
