"""
SQLAlchemy-backed storage engine for UPS history.

All methods are synchronous and serialised by a lock on the store, so a
compaction or prune never interleaves with an insert on the same database.
Async callers run them in a worker thread (see HistoryRecorder).
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from ..config import settings
from ..database.engine import create_history_engine, create_session_factory, ensure_schema
from ..database.models import HistorySample
from ..nut.status import is_nominal, is_outage
from .models import HistoryEntry, HistoryStats

logger = logging.getLogger(__name__)

COMPACTION_BUCKET_SECONDS = 300
_DELETE_CHUNK = 500


class HistoryStore:
    """
    Append-only UPS history with retention helpers.
    """

    def __init__(self, db_path: str = settings.DB_PATH, clock: Callable[[], float] = time.time):
        self.db_path = db_path
        self.clock = clock
        self.engine = create_history_engine(db_path)
        self._session_factory = create_session_factory(self.engine)
        self._lock = threading.Lock()
        ensure_schema(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Exclusive session; commits on success, rolls back on error."""
        with self._lock:
            session = self._session_factory()
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                logger.exception("DB session rolled back due to error")
                raise
            finally:
                session.close()

    def close(self) -> None:
        self.engine.dispose()

    def _window_start(self, hours: float) -> int:
        return int(self.clock() - hours * 3600)

    def insert(self, entry: HistoryEntry) -> HistoryEntry:
        """Persist an entry and return it with its assigned id."""
        row = HistorySample(**entry.model_dump(exclude={"id"}))
        with self.session() as session:
            session.add(row)
            session.flush()
            stored = HistoryEntry.model_validate(row)
        logger.debug("Stored history entry id=%s status=%r", stored.id, stored.status)
        return stored

    def query_range(self, hours: float) -> List[HistoryEntry]:
        """Entries from the last ``hours`` hours, oldest first."""
        start = self._window_start(hours)
        stmt = (
            select(HistorySample)
            .where(HistorySample.timestamp >= start)
            .order_by(HistorySample.timestamp, HistorySample.id)
        )
        with self.session() as session:
            return [HistoryEntry.model_validate(row) for row in session.scalars(stmt)]

    def delete_older_than(self, days: float) -> int:
        """Permanently delete entries older than ``days`` days."""
        cutoff = int(self.clock() - days * 86400)
        with self.session() as session:
            result = session.execute(delete(HistorySample).where(HistorySample.timestamp < cutoff))
            deleted = result.rowcount or 0
        if deleted:
            logger.info("Deleted %d history entries older than %s days.", deleted, days)
        return deleted

    def compact(self) -> int:
        """
        Downsample nominal entries to one per 300 second bucket.

        The lowest id in each bucket is kept. Entries with any other status
        are never touched.

        Returns:
            The number of deleted rows.
        """
        with self.session() as session:
            rows = session.execute(
                select(HistorySample.id, HistorySample.timestamp, HistorySample.status)
                .order_by(HistorySample.id)
            ).all()

            kept_buckets = set()
            doomed: List[int] = []
            for row_id, timestamp, status in rows:
                if not is_nominal(status):
                    continue
                bucket = timestamp // COMPACTION_BUCKET_SECONDS
                if bucket in kept_buckets:
                    doomed.append(row_id)
                else:
                    kept_buckets.add(bucket)

            for i in range(0, len(doomed), _DELETE_CHUNK):
                chunk = doomed[i:i + _DELETE_CHUNK]
                session.execute(delete(HistorySample).where(HistorySample.id.in_(chunk)))

        logger.info("History compaction removed %d entries.", len(doomed))
        return len(doomed)

    def aggregate(self, hours: float) -> HistoryStats:
        """Min/max/average figures and outage count over the last ``hours`` hours."""
        start = self._window_start(hours)
        in_window = HistorySample.timestamp >= start
        with self.session() as session:
            row = session.execute(
                select(
                    func.min(HistorySample.input_voltage),
                    func.max(HistorySample.input_voltage),
                    func.avg(HistorySample.input_voltage),
                    func.min(HistorySample.output_voltage),
                    func.max(HistorySample.output_voltage),
                    func.avg(HistorySample.output_voltage),
                    func.max(HistorySample.load_percent),
                    func.avg(HistorySample.load_percent),
                    func.min(HistorySample.battery_charge),
                    func.avg(HistorySample.battery_charge),
                    func.count(HistorySample.id),
                ).where(in_window)
            ).one()
            status_counts: Dict[str, int] = dict(
                session.execute(
                    select(HistorySample.status, func.count(HistorySample.id))
                    .where(in_window)
                    .group_by(HistorySample.status)
                ).all()
            )

        return HistoryStats(
            min_input_voltage=row[0],
            max_input_voltage=row[1],
            avg_input_voltage=row[2],
            min_output_voltage=row[3],
            max_output_voltage=row[4],
            avg_output_voltage=row[5],
            max_load=row[6],
            avg_load=row[7],
            min_battery=row[8],
            avg_battery=row[9],
            data_points=row[10],
            outages=sum(count for status, count in status_counts.items() if is_outage(status)),
        )
