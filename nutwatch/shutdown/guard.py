"""
Power-loss shutdown countdown.

The ShutdownGuard watches battery charge and runtime on every reading. When
either drops below its threshold it arms a countdown and publishes warnings;
when the countdown runs out it asks the HostControl to perform the configured
action. Any reading that is no longer critical disarms it immediately.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

from ..config import settings
from ..core.bus import TOPIC_SHUTDOWN_CANCELLED, TOPIC_SHUTDOWN_WARNING, EventBus
from ..nut.models import UPSData
from .host_control import HostAction, HostControl

logger = logging.getLogger(__name__)


@dataclass
class ShutdownPolicy:
    """Configuration for the automatic shutdown."""

    enabled: bool = False
    battery_threshold: float = 20.0  # percent
    runtime_threshold: float = 300.0  # seconds
    countdown_seconds: int = 60
    action: HostAction = HostAction.POWEROFF

    @classmethod
    def from_settings(cls) -> "ShutdownPolicy":
        return cls(
            enabled=settings.SHUTDOWN_ENABLED,
            battery_threshold=settings.SHUTDOWN_BATTERY_THRESHOLD,
            runtime_threshold=settings.SHUTDOWN_RUNTIME_THRESHOLD,
            countdown_seconds=settings.SHUTDOWN_COUNTDOWN,
            action=HostAction(settings.SHUTDOWN_ACTION),
        )

    def is_critical(self, data: UPSData) -> bool:
        charge = data.battery_charge if data.battery_charge is not None else 100.0
        runtime = data.battery_runtime if data.battery_runtime is not None else math.inf
        return charge < self.battery_threshold or runtime < self.runtime_threshold


@dataclass
class ShutdownTracker:
    """Countdown state. ``remaining`` only means something while armed."""

    armed: bool = False
    remaining: int = 0
    chosen_action: Optional[HostAction] = None


class ShutdownGuard:
    """
    Arms, escalates and aborts the automatic host shutdown.
    """

    def __init__(
        self,
        host_control: HostControl,
        policy: Optional[ShutdownPolicy] = None,
        bus: Optional[EventBus] = None,
    ):
        self.host_control = host_control
        self.policy = policy or ShutdownPolicy.from_settings()
        self.bus = bus or EventBus()
        self.tracker = ShutdownTracker()
        self._lock = asyncio.Lock()
        self._dispatched: Set[asyncio.Task] = set()

    @property
    def armed(self) -> bool:
        return self.tracker.armed

    @property
    def remaining(self) -> Optional[int]:
        return self.tracker.remaining if self.tracker.armed else None

    async def evaluate(self, data: UPSData, elapsed: float) -> None:
        """
        Advance the countdown with one reading.

        Args:
            data: The latest telemetry.
            elapsed: Seconds since the previous reading was evaluated.
        """
        events: List[Tuple[str, Optional[int]]] = []

        async with self._lock:
            tracker = self.tracker
            if not self.policy.enabled:
                if tracker.armed:
                    logger.info("Automatic shutdown disabled while armed; cancelling countdown")
                    self._disarm()
                    events.append((TOPIC_SHUTDOWN_CANCELLED, None))
            elif self.policy.is_critical(data):
                if not tracker.armed:
                    tracker.armed = True
                    tracker.remaining = self.policy.countdown_seconds
                    tracker.chosen_action = self.policy.action
                    logger.critical(
                        "Battery critical (charge=%s runtime=%s); %s in %ss",
                        data.battery_charge, data.battery_runtime,
                        tracker.chosen_action.value, tracker.remaining,
                    )
                    events.append((TOPIC_SHUTDOWN_WARNING, tracker.remaining))
                else:
                    events.append((TOPIC_SHUTDOWN_WARNING, tracker.remaining))
                    if tracker.remaining <= 0:
                        action = tracker.chosen_action or self.policy.action
                        logger.critical("Shutdown countdown expired; executing %s", action.value)
                        self._disarm()
                        self._dispatch(self._execute(action))
                    else:
                        step = max(1, int(round(elapsed)))
                        tracker.remaining = max(0, tracker.remaining - step)
            elif tracker.armed:
                logger.warning(
                    "Battery no longer critical (charge=%s runtime=%s); shutdown cancelled",
                    data.battery_charge, data.battery_runtime,
                )
                self._disarm()
                events.append((TOPIC_SHUTDOWN_CANCELLED, None))

        for topic, payload in events:
            await self.bus.publish(topic, payload)

    async def abort(self) -> None:
        """Disarm on operator request, regardless of the UPS state."""
        async with self._lock:
            was_armed = self.tracker.armed
            self._disarm()
            self._dispatch(self._abort_host())
        logger.warning("Shutdown aborted by request (was armed: %s)", was_armed)
        if was_armed:
            await self.bus.publish(TOPIC_SHUTDOWN_CANCELLED, None)

    def _disarm(self) -> None:
        self.tracker.armed = False
        self.tracker.remaining = 0
        self.tracker.chosen_action = None

    def _dispatch(self, coro) -> None:
        # Detached so a slow platform call never holds the tracker lock.
        task = asyncio.create_task(coro)
        self._dispatched.add(task)
        task.add_done_callback(self._dispatched.discard)

    async def _execute(self, action: HostAction) -> None:
        try:
            result = await self.host_control.execute(action, 0)
        except Exception:
            logger.exception("Host action %s raised", action.value)
            return
        if result.success:
            logger.critical("Host action %s initiated: %s", action.value, result.command)
        else:
            logger.error("Host action %s failed: %s", action.value, result.to_dict())

    async def _abort_host(self) -> None:
        try:
            result = await self.host_control.abort()
        except Exception:
            logger.exception("Host abort raised")
            return
        if not result.success:
            logger.info("Host abort reported %s: %s", result.status.value, result.error_message)

    async def wait_dispatched(self) -> None:
        """Wait for detached host actions to finish."""
        if self._dispatched:
            await asyncio.gather(*list(self._dispatched), return_exceptions=True)
