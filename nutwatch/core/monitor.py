"""
Monitor service for nutwatch.

Wires the poller, the shutdown guard and the history recorder together from
the application settings and runs the one-shot history prune after startup.
"""

import asyncio
import logging
from typing import Optional, Set

from ..config import settings
from ..history.recorder import HistoryRecorder
from ..history.store import HistoryStore
from ..nut.client import NUTAuthError, NUTError
from ..nut.models import NUTTarget
from ..nut.poller import NUTPoller
from ..shutdown.guard import ShutdownGuard, ShutdownPolicy
from ..shutdown.host_control import HostControl, SystemHostControl
from .bus import EventBus

logger = logging.getLogger(__name__)


class MonitorService:
    """
    Runs the watchdog for one UPS.
    """

    def __init__(
        self,
        target: Optional[NUTTarget] = None,
        ups_name: str = settings.UPS_NAME,
        *,
        store: Optional[HistoryStore] = None,
        host_control: Optional[HostControl] = None,
        policy: Optional[ShutdownPolicy] = None,
        bus: Optional[EventBus] = None,
        retention_days: int = settings.HISTORY_RETENTION_DAYS,
        prune_delay: float = settings.PRUNE_DELAY,
    ):
        self.target = target or NUTTarget.from_settings()
        self.bus = bus or EventBus()
        self.store = store or HistoryStore(settings.DB_PATH)
        self.recorder = HistoryRecorder(self.store)
        self.guard = ShutdownGuard(
            host_control or SystemHostControl(dry_run=settings.SHUTDOWN_DRY_RUN),
            policy or ShutdownPolicy.from_settings(),
            self.bus,
        )
        self.poller = NUTPoller(ups_name, bus=self.bus, guard=self.guard, recorder=self.recorder)
        self.retention_days = retention_days
        self.prune_delay = prune_delay
        self._prune_task: asyncio.Task | None = None
        self._requests: Set[asyncio.Task] = set()

    async def start(self) -> None:
        """Connect, start polling and schedule the history prune."""
        logger.info(
            "Starting monitor for UPS '%s' on %s (shutdown enabled=%s)",
            self.poller.ups_name, self.target, self.guard.policy.enabled,
        )
        try:
            await self.poller.connect(self.target)
        except NUTAuthError:
            raise
        except NUTError as e:
            logger.error("Initial connection to %s failed: %s", self.target, e)
            self.poller.watch(self.target)
        await self.poller.start()
        self._prune_task = asyncio.create_task(self._prune_after_startup())

    async def stop(self) -> None:
        logger.info("Stopping monitor...")
        if self._prune_task and not self._prune_task.done():
            self._prune_task.cancel()
            try:
                await self._prune_task
            except asyncio.CancelledError:
                pass
        await self.poller.stop()
        await self.poller.disconnect()
        if self._requests:
            await asyncio.gather(*list(self._requests), return_exceptions=True)
        await self.guard.wait_dispatched()
        logger.info("Monitor stopped")

    async def abort_shutdown(self) -> None:
        await self.guard.abort()

    def request_abort(self) -> asyncio.Task:
        """Schedule abort_shutdown from synchronous code such as a signal handler."""
        task = asyncio.create_task(self.abort_shutdown())
        self._requests.add(task)
        task.add_done_callback(self._requests.discard)
        return task

    async def _prune_after_startup(self) -> None:
        await asyncio.sleep(self.prune_delay)
        try:
            deleted = await self.recorder.prune(self.retention_days)
            logger.info("Startup prune removed %d history entries", deleted)
        except Exception:
            logger.exception("Failed to prune old history")
