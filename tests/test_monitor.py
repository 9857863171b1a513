"""
Tests for the event bus and the monitor service wiring.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from nutwatch.core.bus import TOPIC_SHUTDOWN_WARNING, TOPIC_UPS_UPDATE, EventBus
from nutwatch.core.monitor import MonitorService
from nutwatch.history.models import HistoryEntry
from nutwatch.shutdown.guard import ShutdownPolicy


@pytest.mark.asyncio
async def test_bus_delivers_to_all_subscribers():
    bus = EventBus()
    received = []

    async def first(data):
        received.append(("first", data))

    async def second(data):
        received.append(("second", data))

    bus.subscribe("topic", first)
    bus.subscribe("topic", second)
    await bus.publish("topic", 42)
    await bus.publish("other", 1)
    await bus.drain()

    assert sorted(received) == [("first", 42), ("second", 42)]


@pytest.mark.asyncio
async def test_bus_contains_subscriber_failures():
    bus = EventBus()
    received = []

    async def broken(data):
        raise RuntimeError("subscriber bug")

    async def healthy(data):
        received.append(data)

    bus.subscribe("topic", broken)
    bus.subscribe("topic", healthy)
    await bus.publish("topic", "x")
    await bus.drain()
    assert received == ["x"]


def make_service(target, store, **kwargs):
    service = MonitorService(
        target,
        "ups",
        store=store,
        host_control=AsyncMock(),
        policy=ShutdownPolicy(enabled=True, battery_threshold=20, runtime_threshold=0, countdown_seconds=60),
        prune_delay=0,
        **kwargs,
    )
    service.poller.interval = 0.05
    return service


@pytest.mark.asyncio
async def test_monitor_polls_records_and_prunes(nut_server, target, history_store, clock):
    history_store.insert(HistoryEntry(timestamp=int(clock.now) - 90 * 86400, status="OL"))
    service = make_service(target, history_store, retention_days=30)
    updates = []

    async def on_update(payload):
        updates.append(payload)

    service.bus.subscribe(TOPIC_UPS_UPDATE, on_update)
    await service.start()
    await asyncio.sleep(0.3)
    await service.stop()

    assert updates
    assert updates[-1]["battery_charge"] == 100
    # The prune removed the stale entry; the first live reading was stored.
    stored = history_store.query_range(10**6)
    assert [e.status for e in stored] == ["OL"]
    assert not service.poller.is_connected


@pytest.mark.asyncio
async def test_monitor_arms_countdown_on_critical_battery(nut_server, target, history_store):
    nut_server.set_var("battery.charge", "10")
    nut_server.set_var("ups.status", "OB DISCHRG")
    service = make_service(target, history_store)
    warnings = []

    async def on_warning(remaining):
        warnings.append(remaining)

    service.bus.subscribe(TOPIC_SHUTDOWN_WARNING, on_warning)
    await service.start()
    await asyncio.sleep(0.2)
    assert service.guard.armed
    await service.abort_shutdown()
    assert not service.guard.armed
    await service.stop()

    assert warnings[0] == 60


@pytest.mark.asyncio
async def test_monitor_starts_without_server(nut_server, target, history_store):
    await nut_server.stop()
    service = make_service(target, history_store)

    await service.start()
    assert service.poller.target == target
    assert not service.poller.is_connected
    await service.stop()


@pytest.mark.asyncio
async def test_abort_request_is_retained_until_stop(nut_server, target, history_store):
    nut_server.set_var("battery.charge", "10")
    service = make_service(target, history_store)

    await service.start()
    await asyncio.sleep(0.2)
    assert service.guard.armed

    task = service.request_abort()
    assert task in service._requests
    await service.stop()

    assert task.done()
    assert not service._requests
    service.guard.host_control.abort.assert_awaited()
