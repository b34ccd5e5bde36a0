import asyncio

import pytest
from starlette.websockets import WebSocketState

from chargeflow.ws.session_hub import SessionHub

from conftest import FakeChannel


def _in_progress(ticket_id="t1"):
    return {"id": ticket_id, "startedAt": "2025-01-06T08:00:00+00:00", "chargingStatus": "IN_PROGRESS"}


class CountingTick:
    def __init__(self, finish_after=None):
        self.calls = 0
        self.finish_after = finish_after
        self.called = asyncio.Event()

    async def __call__(self):
        self.calls += 1
        self.called.set()
        return self.finish_after is not None and self.calls >= self.finish_after


@pytest.mark.asyncio
async def test_broadcast_reaches_every_open_subscriber():
    hub = SessionHub(tick_interval_ms=10)
    first, second = FakeChannel(), FakeChannel()
    hub.subscribe("u1:st-1", first)
    hub.subscribe("u1:st-1", second)
    hub.subscribe("u2:st-1", FakeChannel())

    delivered = await hub.broadcast("u1:st-1", {"type": "progress", "ticket": {"progressPercent": 10}})

    assert delivered == 2
    assert first.frames == [{"type": "progress", "ticket": {"progressPercent": 10}}]
    assert second.frames == first.frames


@pytest.mark.asyncio
async def test_broadcast_prunes_closed_and_failing_channels():
    hub = SessionHub(tick_interval_ms=10)
    closed = FakeChannel()
    closed.client_state = WebSocketState.DISCONNECTED
    failing = FakeChannel(fail=True)
    hub.subscribe("u1:st-1", closed)
    hub.subscribe("u1:st-1", failing)

    assert await hub.broadcast("u1:st-1", {"type": "progress"}) == 0
    assert hub.subscriber_count("u1:st-1") == 0
    assert "u1:st-1" not in hub.subscribers


@pytest.mark.asyncio
async def test_broadcast_without_subscribers():
    hub = SessionHub(tick_interval_ms=10)
    assert await hub.broadcast("nobody:st-1", {"type": "progress"}) == 0


def test_unsubscribe_drops_empty_keys():
    hub = SessionHub(tick_interval_ms=10)
    channel = FakeChannel()
    hub.subscribe("u1:st-1", channel)

    hub.unsubscribe("u1:st-1", channel)
    hub.unsubscribe("u1:st-1", channel)

    assert hub.subscribers == {}


@pytest.mark.asyncio
async def test_ensure_timer_twice_starts_one_timer():
    hub = SessionHub(tick_interval_ms=60_000)
    tick = CountingTick()

    assert hub.ensure_timer(_in_progress(), tick) is True
    assert hub.ensure_timer(_in_progress(), tick) is False
    await asyncio.wait_for(tick.called.wait(), timeout=1)

    assert tick.calls == 1
    assert list(hub.timers) == ["t1"]
    await hub.shutdown()


@pytest.mark.asyncio
@pytest.mark.parametrize("ticket", [
    None,
    {"id": "t1", "startedAt": None, "chargingStatus": "IN_PROGRESS"},
    {"id": "t1", "startedAt": "2025-01-06T08:00:00+00:00", "chargingStatus": "NOT_STARTED"},
])
async def test_ensure_timer_ignores_tickets_not_in_progress(ticket):
    hub = SessionHub(tick_interval_ms=10)
    assert hub.ensure_timer(ticket, CountingTick()) is False
    assert hub.timers == {}


@pytest.mark.asyncio
async def test_timer_ends_when_tick_reports_done():
    hub = SessionHub(tick_interval_ms=1)
    tick = CountingTick(finish_after=3)

    hub.ensure_timer(_in_progress(), tick)
    await asyncio.wait_for(hub.timers["t1"], timeout=1)

    assert tick.calls == 3
    assert not hub.has_timer("t1")


@pytest.mark.asyncio
async def test_failing_tick_is_retried():
    hub = SessionHub(tick_interval_ms=1)
    calls = []

    async def flaky_tick():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("database is locked")
        return True

    hub.ensure_timer(_in_progress(), flaky_tick)
    await asyncio.wait_for(hub.timers["t1"], timeout=1)

    assert len(calls) == 2


@pytest.mark.asyncio
async def test_clear_timer_cancels_the_task():
    hub = SessionHub(tick_interval_ms=60_000)
    tick = CountingTick()
    hub.ensure_timer(_in_progress(), tick)
    task = hub.timers["t1"]
    await asyncio.wait_for(tick.called.wait(), timeout=1)

    hub.clear_timer("t1")
    await asyncio.gather(task, return_exceptions=True)

    assert task.cancelled()
    assert not hub.has_timer("t1")


@pytest.mark.asyncio
async def test_shutdown_cancels_all_timers_and_closes_the_hub():
    hub = SessionHub(tick_interval_ms=60_000)
    hub.ensure_timer(_in_progress("t1"), CountingTick())
    hub.ensure_timer(_in_progress("t2"), CountingTick())
    tasks = list(hub.timers.values())

    await hub.shutdown()

    assert hub.timers == {}
    assert all(task.done() for task in tasks)
    assert hub.ensure_timer(_in_progress("t3"), CountingTick()) is False
