"""
Adaptive history logging.

Polling happens every second or so, but storing every reading would grow the
database without telling anyone anything new. The recorder compares each
reading with the last *stored* one and only keeps it when something changed
noticeably, plus a heartbeat so long quiet periods stay visible in charts.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

import anyio

from ..nut.models import UPSData
from .models import HistoryEntry
from .store import HistoryStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordingThresholds:
    voltage_velocity: float = 0.5  # volts per second
    load_delta: float = 5.0  # percentage points
    charge_delta: float = 2.0  # percentage points
    heartbeat_seconds: float = 600.0


def _delta(new: Optional[float], old: Optional[float]) -> Optional[float]:
    if new is None or old is None:
        return None
    return abs(new - old)


def should_persist(
    entry: HistoryEntry,
    observed_at: float,
    baseline: Optional[HistoryEntry],
    baseline_at: Optional[float],
    thresholds: RecordingThresholds = RecordingThresholds(),
) -> Optional[str]:
    """
    Decide whether ``entry`` is worth storing.

    Returns:
        The reason to persist, or None to discard the sample.
    """
    if baseline is None or baseline_at is None:
        return "first"
    if entry.status != baseline.status:
        return "status"

    elapsed = observed_at - baseline_at
    for new, old in (
        (entry.input_voltage, baseline.input_voltage),
        (entry.output_voltage, baseline.output_voltage),
    ):
        change = _delta(new, old)
        if change is None:
            continue
        velocity = change / elapsed if elapsed > 0 else change
        if velocity > thresholds.voltage_velocity:
            return "voltage"

    load_change = _delta(entry.load_percent, baseline.load_percent)
    if load_change is not None and load_change > thresholds.load_delta:
        return "load"
    charge_change = _delta(entry.battery_charge, baseline.battery_charge)
    if charge_change is not None and charge_change > thresholds.charge_delta:
        return "charge"

    if elapsed >= thresholds.heartbeat_seconds:
        return "heartbeat"
    return None


class HistoryRecorder:
    """
    Feeds telemetry into a HistoryStore, keeping only interesting samples.
    """

    def __init__(self, store: HistoryStore, thresholds: RecordingThresholds = RecordingThresholds()):
        self.store = store
        self.thresholds = thresholds
        self._baseline: Optional[HistoryEntry] = None
        self._baseline_at: Optional[float] = None

    @property
    def baseline(self) -> Optional[HistoryEntry]:
        return self._baseline

    async def observe(self, data: UPSData, now: Optional[float] = None) -> bool:
        """
        Consider one reading for storage.

        Storage failures are logged and reported as ``False``.

        Returns:
            True if the reading was stored.
        """
        observed_at = time.time() if now is None else now
        entry = HistoryEntry.from_ups_data(data, int(observed_at))

        reason = should_persist(entry, observed_at, self._baseline, self._baseline_at, self.thresholds)
        if reason is None:
            return False

        try:
            stored = await anyio.to_thread.run_sync(self.store.insert, entry)
        except Exception:
            logger.exception("Failed to store history entry")
            return False

        logger.debug("History sample stored (%s)", reason)
        self._baseline = stored
        self._baseline_at = observed_at
        return True

    async def compact(self) -> int:
        return await anyio.to_thread.run_sync(self.store.compact)

    async def prune(self, days: float) -> int:
        return await anyio.to_thread.run_sync(self.store.delete_older_than, days)
