"""Tests for the debounce flush scheduler."""

from __future__ import annotations

import asyncio

import pytest

from questcanvas.sync.scheduler import FlushScheduler


class _Counter:
    def __init__(self) -> None:
        self.calls = 0

    def __call__(self) -> None:
        self.calls += 1


def test_negative_delay_rejected() -> None:
    with pytest.raises(ValueError, match="delay must be >= 0"):
        FlushScheduler(-0.1, _Counter())


def test_schedule_without_loop_marks_pending() -> None:
    counter = _Counter()
    scheduler = FlushScheduler(0.01, counter)

    scheduler.schedule()

    assert scheduler.pending
    assert counter.calls == 0
    assert scheduler.fire_now() is True
    assert counter.calls == 1
    assert not scheduler.pending


def test_fire_now_without_pending_is_noop() -> None:
    counter = _Counter()
    scheduler = FlushScheduler(0.01, counter)

    assert scheduler.fire_now() is False
    assert counter.calls == 0


def test_cancel_reports_pending() -> None:
    scheduler = FlushScheduler(0.01, _Counter())

    assert scheduler.cancel() is False
    scheduler.schedule()
    assert scheduler.cancel() is True
    assert not scheduler.pending


@pytest.mark.asyncio()
async def test_burst_fires_once() -> None:
    counter = _Counter()
    scheduler = FlushScheduler(0.1, counter)

    for _ in range(5):
        scheduler.schedule()
        await asyncio.sleep(0.005)
    assert counter.calls == 0

    await asyncio.sleep(0.25)

    assert counter.calls == 1
    assert not scheduler.pending


@pytest.mark.asyncio()
async def test_cancelled_timer_never_fires() -> None:
    counter = _Counter()
    scheduler = FlushScheduler(0.01, counter)

    scheduler.schedule()
    scheduler.cancel()
    await asyncio.sleep(0.03)

    assert counter.calls == 0


@pytest.mark.asyncio()
async def test_fire_now_cancels_timer() -> None:
    counter = _Counter()
    scheduler = FlushScheduler(0.01, counter)

    scheduler.schedule()
    scheduler.fire_now()
    await asyncio.sleep(0.03)

    assert counter.calls == 1


@pytest.mark.asyncio()
async def test_callback_sees_state_at_fire_time() -> None:
    state = {"value": 0}
    seen: list[int] = []
    scheduler = FlushScheduler(0.01, lambda: seen.append(state["value"]))

    scheduler.schedule()
    state["value"] = 7
    await asyncio.sleep(0.03)

    assert seen == [7]
