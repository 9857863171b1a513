"""
Tests for the NUT polling watchdog.
"""

import asyncio
import time
from unittest.mock import AsyncMock, patch

import pytest

from nutwatch.core.bus import TOPIC_POWER_EVENT, TOPIC_UPS_UPDATE, EventBus
from nutwatch.nut.client import NUTError
from nutwatch.nut.events import EVENT_LOW_BATTERY, EVENT_POWER_LOST, EVENT_POWER_RESTORED
from nutwatch.nut.models import NUTTarget, UPSData
from nutwatch.nut.poller import NUTPoller, PollerState, TickResult

from tests.fake_nut_server import FakeNUTServer


@pytest.fixture
def guard():
    return AsyncMock()


@pytest.fixture
def recorder():
    return AsyncMock()


@pytest.fixture
def poller(guard, recorder):
    return NUTPoller("ups", guard=guard, recorder=recorder, interval=1.0, fetch_timeout=0.5)


@pytest.mark.asyncio
async def test_poller_initialization(poller):
    assert poller.ups_name == "ups"
    assert poller.state == PollerState.IDLE
    assert poller._task is None
    assert poller.last_data is None
    assert not poller.is_connected


@pytest.mark.asyncio
async def test_tick_without_session_reports_not_connected(poller, guard, recorder):
    assert await poller.tick() == TickResult.NOT_CONNECTED
    assert poller.state == PollerState.DEGRADED
    guard.evaluate.assert_not_called()
    recorder.observe.assert_not_called()


@pytest.mark.asyncio
async def test_tick_fans_out_reading(nut_server, target, poller, guard, recorder):
    updates = []

    async def on_update(payload):
        updates.append(payload)

    poller.bus.subscribe(TOPIC_UPS_UPDATE, on_update)
    await poller.connect(target)

    assert await poller.tick() == TickResult.OK
    assert poller.state == PollerState.HEALTHY
    await poller.bus.drain()
    assert poller.last_data.status == "OL"

    guard.evaluate.assert_awaited_once()
    data, elapsed = guard.evaluate.await_args.args
    assert isinstance(data, UPSData)
    assert elapsed == poller.interval
    recorder.observe.assert_awaited_once_with(data)
    assert updates[0]["status"] == "OL"
    await poller.disconnect()


@pytest.mark.asyncio
async def test_failure_triggers_one_reconnect_and_retry(nut_server, target, poller, recorder):
    await poller.connect(target)
    nut_server.drop_next = 1

    assert await poller.tick() == TickResult.RECOVERED
    assert nut_server.connections == 2
    recorder.observe.assert_awaited_once()
    await poller.disconnect()


@pytest.mark.asyncio
async def test_retry_failure_keeps_session(nut_server, target, poller, recorder):
    await poller.connect(target)
    del nut_server.devices["ups"]

    assert await poller.tick() == TickResult.FAILED
    assert poller.state == PollerState.DEGRADED
    assert poller.is_connected
    # Exactly one reconnect and one retry.
    assert nut_server.received.count("LIST VAR ups") == 2
    recorder.observe.assert_not_called()
    await poller.disconnect()


@pytest.mark.asyncio
async def test_timeout_tears_down_and_next_tick_reconnects(nut_server, target, poller):
    await poller.connect(target)
    first_client = poller._client
    nut_server.stall_on.add("LIST VAR")

    assert await poller.tick() == TickResult.TIMEOUT
    assert not poller.is_connected
    assert not first_client.connected

    nut_server.stall_on.clear()
    assert await poller.tick() == TickResult.OK
    assert poller.is_connected
    assert poller._client is not first_client
    assert nut_server.connections == 2
    await poller.disconnect()


@pytest.mark.asyncio
async def test_timeout_does_not_hold_lock(nut_server, target, poller):
    await poller.connect(target)
    nut_server.stall_on.add("LIST VAR")

    await asyncio.wait_for(poller.tick(), timeout=2)
    assert not poller._lock.locked()
    await asyncio.wait_for(poller.disconnect(), timeout=1)


@pytest.mark.asyncio
async def test_unreachable_server_is_not_connected(nut_server, target, poller):
    poller.watch(target)
    await nut_server.stop()
    assert await poller.tick() == TickResult.NOT_CONNECTED
    assert not poller.is_connected


@pytest.mark.asyncio
async def test_disconnect_stops_reconnecting(nut_server, target, poller):
    await poller.connect(target)
    await poller.disconnect()
    assert poller.target is None
    assert await poller.tick() == TickResult.NOT_CONNECTED
    assert nut_server.connections == 1


@pytest.mark.asyncio
async def test_consumer_failure_does_not_break_tick(nut_server, target, poller, guard, recorder):
    guard.evaluate.side_effect = RuntimeError("boom")
    await poller.connect(target)

    assert await poller.tick() == TickResult.OK
    recorder.observe.assert_awaited_once()
    await poller.disconnect()


@pytest.mark.asyncio
@patch('asyncio.sleep', new_callable=AsyncMock)
async def test_poll_loop_single_run(mock_sleep, nut_server, target, poller, recorder):
    await poller.connect(target)

    async def stop_loop(*args, **kwargs):
        poller._should_stop.set()

    mock_sleep.side_effect = stop_loop

    await poller._poll_loop()

    mock_sleep.assert_awaited_once()
    assert 0 <= mock_sleep.await_args.args[0] <= poller.interval
    recorder.observe.assert_awaited_once()
    assert poller.last_data.battery_charge == 100
    await poller.disconnect()


@pytest.mark.asyncio
async def test_poll_loop_survives_unexpected_errors(poller):
    calls = 0

    async def flaky_tick():
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("unexpected")
        poller._should_stop.set()
        return TickResult.OK

    poller.tick = flaky_tick
    poller.interval = 0
    await asyncio.wait_for(poller._poll_loop(), timeout=1)
    assert calls == 2


@pytest.mark.asyncio
async def test_poller_start_stop(nut_server, target, recorder):
    poller = NUTPoller("ups", recorder=recorder, bus=EventBus(), interval=0.05, fetch_timeout=0.5)
    await poller.connect(target)
    await poller.start()
    await asyncio.sleep(0.2)
    await poller.stop()

    assert poller._task.done()
    assert recorder.observe.await_count >= 1
    await poller.disconnect()


@pytest.mark.asyncio
async def test_stuck_subscriber_does_not_block_tick(nut_server, target, poller, guard, recorder):
    release = asyncio.Event()

    async def stuck(_):
        await release.wait()

    poller.bus.subscribe(TOPIC_UPS_UPDATE, stuck)
    await poller.connect(target)

    assert await asyncio.wait_for(poller.tick(), timeout=2) == TickResult.OK
    assert await asyncio.wait_for(poller.tick(), timeout=2) == TickResult.OK
    assert guard.evaluate.await_count == 2
    assert recorder.observe.await_count == 2
    assert poller.bus.pending == 2

    release.set()
    await poller.bus.drain()
    await poller.disconnect()


@pytest.mark.asyncio
async def test_failed_switch_does_not_revive_previous_target(nut_server, target, poller):
    await poller.connect(target)

    other = FakeNUTServer()
    await other.start()
    unreachable = NUTTarget(host="127.0.0.1", port=other.port)
    await other.stop()

    with pytest.raises(NUTError):
        await poller.connect(unreachable)
    assert poller.target is None
    assert not poller.is_connected

    assert await poller.tick() == TickResult.NOT_CONNECTED
    assert nut_server.connections == 1


@pytest.mark.asyncio
async def test_power_transitions_are_published(nut_server, target, poller):
    events = []

    async def on_event(payload):
        events.append(payload["event"])

    poller.bus.subscribe(TOPIC_POWER_EVENT, on_event)
    await poller.connect(target)

    await poller.tick()
    for status in ("OB DISCHRG", "OB DISCHRG LB", "OL CHRG LB", "OL CHRG"):
        nut_server.set_var("ups.status", status)
        await poller.tick()
    await poller.bus.drain()

    assert events == [EVENT_POWER_LOST, EVENT_LOW_BATTERY, EVENT_POWER_RESTORED]
    await poller.disconnect()


@pytest.mark.asyncio
async def test_poll_loop_keeps_a_fixed_rate(poller):
    async def slow_tick():
        time.sleep(0.2)
        return TickResult.OK

    async def stop_loop(*args, **kwargs):
        poller._should_stop.set()

    poller.tick = slow_tick
    poller.interval = 1.0
    with patch('asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
        mock_sleep.side_effect = stop_loop
        await poller._poll_loop()

    delay = mock_sleep.await_args.args[0]
    assert 0.5 < delay <= 0.8


@pytest.mark.asyncio
async def test_poll_loop_does_not_pause_after_overlong_tick(poller):
    async def slow_tick():
        time.sleep(0.1)
        return TickResult.TIMEOUT

    async def stop_loop(*args, **kwargs):
        poller._should_stop.set()

    poller.tick = slow_tick
    poller.interval = 0.05
    with patch('asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
        mock_sleep.side_effect = stop_loop
        await poller._poll_loop()

    mock_sleep.assert_awaited_once_with(0.0)
