"""
Background polling service for NUT integration.

This module contains the NUTPoller class, which owns the session to the NUT
server, polls it on a fixed interval and hands every reading to the
shutdown guard and the history recorder.

A tick never blocks for longer than its bounded network steps: a fetch that
times out tears the socket down so the next tick starts from a fresh
connection instead of waiting on a wedged peer.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

from ..config import settings
from ..core.bus import TOPIC_POWER_EVENT, TOPIC_UPS_UPDATE, EventBus
from .client import NUTClient, NUTError
from .events import detect_events, event_payload
from .models import NUTTarget, UPSData

if TYPE_CHECKING:
    from ..history.recorder import HistoryRecorder
    from ..shutdown.guard import ShutdownGuard

logger = logging.getLogger(__name__)


class PollerState(Enum):
    IDLE = "idle"
    POLLING = "polling"
    HEALTHY = "healthy"
    DEGRADED = "degraded"


class TickResult(Enum):
    OK = "ok"
    RECOVERED = "recovered"  # succeeded after one reconnect and retry
    NOT_CONNECTED = "not_connected"
    FAILED = "failed"
    TIMEOUT = "timeout"


class NUTPoller:
    """
    A service that polls a NUT server for UPS data.
    """

    def __init__(
        self,
        ups_name: str = settings.UPS_NAME,
        *,
        bus: Optional[EventBus] = None,
        guard: Optional["ShutdownGuard"] = None,
        recorder: Optional["HistoryRecorder"] = None,
        interval: float = settings.POLL_INTERVAL,
        fetch_timeout: float = settings.FETCH_TIMEOUT,
        client_factory: Callable[[NUTTarget], NUTClient] = NUTClient,
    ):
        """
        Initialize the NUT poller.

        Args:
            ups_name: The name of the UPS to poll.
            bus: Where ``ups-update`` events are published.
            guard: Receives every reading for the shutdown countdown.
            recorder: Receives every reading for history logging.
            interval: Seconds between ticks.
            fetch_timeout: Upper bound for each network step of a tick.
            client_factory: Builds a client for a target.
        """
        self.ups_name = ups_name
        self.bus = bus or EventBus()
        self.guard = guard
        self.recorder = recorder
        self.interval = interval
        self.fetch_timeout = fetch_timeout
        self.client_factory = client_factory

        self.state = PollerState.IDLE
        self.last_data: Optional[UPSData] = None
        self.last_heartbeat: float = 0.0

        self._target: Optional[NUTTarget] = None
        self._client: Optional[NUTClient] = None
        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self._should_stop = asyncio.Event()
        self._last_delivery: Optional[float] = None

    @property
    def target(self) -> Optional[NUTTarget]:
        return self._target

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self, target: NUTTarget) -> None:
        """
        Open a session to ``target``, replacing any existing one.

        Raises:
            NUTError: If the connection or authentication fails.
        """
        client = self.client_factory(target)
        async with self._lock:
            # Forget the old target first so a failed switch never falls back to it.
            self._target = None
            if self._client is not None:
                await self._client.disconnect()
                self._client = None
            await client.connect()
            self._client = client
            self._target = target
        logger.info("Watching UPS '%s' on %s", self.ups_name, target)

    def watch(self, target: NUTTarget) -> None:
        """Remember ``target`` without connecting; the next tick connects to it."""
        self._target = target

    async def disconnect(self) -> None:
        """Close the session. The poller will not reconnect on its own."""
        async with self._lock:
            self._target = None
            client, self._client = self._client, None
            if client is not None:
                await client.disconnect()
        self.state = PollerState.IDLE

    async def start(self):
        """Start the poller as a background task."""
        if self._task and not self._task.done():
            logger.warning("Poller is already running.")
            return

        logger.info("Starting NUT poller for UPS '%s'", self.ups_name)
        self._should_stop.clear()
        self._task = asyncio.create_task(self._poll_loop())

    async def stop(self):
        """Stop the poller."""
        if not self._task or self._task.done():
            logger.warning("Poller is not running.")
            return

        logger.info("Stopping NUT poller for UPS '%s'", self.ups_name)
        self._should_stop.set()
        try:
            await asyncio.wait_for(self._task, timeout=self.fetch_timeout * 3 + self.interval)
        except asyncio.CancelledError:
            pass
        except asyncio.TimeoutError:
            logger.error("Poller task did not stop gracefully within timeout.")
            self._task.cancel()
        logger.info("NUT poller stopped.")

    async def _poll_loop(self):
        """The main polling loop."""
        while not self._should_stop.is_set():
            started = time.monotonic()
            try:
                await self.tick()
            except Exception:
                logger.exception("An unexpected error occurred in the polling loop.")

            # Fixed rate: a slow tick shortens the following pause.
            delay = max(0.0, self.interval - (time.monotonic() - started))
            try:
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                break

    async def tick(self) -> TickResult:
        """Run one poll: fetch under the session lock, then fan out."""
        async with self._lock:
            self.state = PollerState.POLLING
            result, data = await self._fetch_locked()
            self.state = PollerState.HEALTHY if data is not None else PollerState.DEGRADED

        if data is not None:
            await self._deliver(data)
        return result

    async def _bounded(self, coro):
        return await asyncio.wait_for(coro, timeout=self.fetch_timeout)

    async def _fetch_locked(self) -> tuple[TickResult, Optional[UPSData]]:
        if self._client is None:
            if self._target is None:
                logger.debug("Not connected; skipping poll of '%s'", self.ups_name)
                return TickResult.NOT_CONNECTED, None
            client = self.client_factory(self._target)
            try:
                await self._bounded(client.connect())
            except (NUTError, asyncio.TimeoutError) as e:
                client.abort()
                logger.error("Not connected: reconnect to %s failed: %s", self._target, e)
                return TickResult.NOT_CONNECTED, None
            logger.info("Reconnected to NUT server %s", self._target)
            self._client = client

        try:
            return TickResult.OK, await self._bounded(self._client.fetch_telemetry(self.ups_name))
        except asyncio.TimeoutError:
            return self._teardown("fetch"), None
        except NUTError as e:
            logger.warning("Polling '%s' failed: %s; reconnecting once", self.ups_name, e)

        try:
            await self._bounded(self._client.reconnect())
            data = await self._bounded(self._client.fetch_telemetry(self.ups_name))
        except asyncio.TimeoutError:
            return self._teardown("reconnect"), None
        except NUTError as e:
            logger.error("Polling '%s' failed after reconnect: %s", self.ups_name, e)
            return TickResult.FAILED, None
        logger.info("Polling '%s' recovered after reconnect", self.ups_name)
        return TickResult.RECOVERED, data

    def _teardown(self, step: str) -> TickResult:
        logger.error(
            "Timeout during %s for UPS '%s' after %ss; dropping session",
            step, self.ups_name, self.fetch_timeout,
        )
        if self._client is not None:
            self._client.abort()
        self._client = None
        return TickResult.TIMEOUT

    async def _deliver(self, data: UPSData) -> None:
        now = time.monotonic()
        elapsed = self.interval if self._last_delivery is None else now - self._last_delivery
        self._last_delivery = now
        previous, self.last_data = self.last_data, data
        self.last_heartbeat = time.time()

        await self.bus.publish(TOPIC_UPS_UPDATE, data.model_dump())
        for event in detect_events(previous, data):
            logger.warning("UPS '%s': %s (%s -> %s)", self.ups_name, event, previous.status, data.status)
            await self.bus.publish(TOPIC_POWER_EVENT, event_payload(event, previous, data))

        if self.guard is not None:
            try:
                await self.guard.evaluate(data, elapsed)
            except Exception:
                logger.exception("Shutdown guard failed to evaluate reading")

        if self.recorder is not None:
            try:
                await self.recorder.observe(data)
            except Exception:
                logger.exception("History recorder failed to process reading")
