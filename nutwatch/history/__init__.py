"""
UPS history: adaptive sampling, storage and retention.
"""

from nutwatch.history.models import HistoryEntry, HistoryStats
from nutwatch.history.recorder import HistoryRecorder, RecordingThresholds, should_persist
from nutwatch.history.store import HistoryStore

__all__ = [
    "HistoryEntry",
    "HistoryRecorder",
    "HistoryStats",
    "HistoryStore",
    "RecordingThresholds",
    "should_persist",
]
