"""Snapshot store: idempotent daily metric upserts keyed by (date, key)."""
import logging
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from yumyum.core.errors import StorageConflictError
from yumyum.models.metric import Metric, MetricKey, MetricRecord

logger = logging.getLogger(__name__)

_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def dedupe_records(records: Iterable[MetricRecord]) -> List[MetricRecord]:
    """Collapse duplicates on (date, key); the last-seen record wins.

    Output keeps the position of each pair's first appearance.
    """
    latest = {}
    for record in records:
        latest[record.identity] = record
    return list(latest.values())


class SnapshotStore:
    """Persistence for ``metrics`` rows."""

    def __init__(self, engine: Engine):
        self.engine = engine
        dialect = engine.dialect.name
        if dialect not in _INSERTS:
            raise ValueError(f"Unsupported database dialect for upsert: {dialect}")
        self._insert = _INSERTS[dialect]

    def upsert(self, records: Iterable[MetricRecord]) -> int:
        """
        Insert or replace snapshots in one atomic statement.

        Args:
            records: Candidate records; duplicates on (date, key) are collapsed first

        Returns:
            Number of rows written

        Raises:
            StorageConflictError: if the database rejects the write
        """
        batch = dedupe_records(records)
        if not batch:
            return 0

        now = datetime.utcnow()
        table = Metric.__table__
        stmt = self._insert(table).values([record.to_row(now) for record in batch])
        stmt = stmt.on_conflict_do_update(
            index_elements=["date", "key"],
            set_={
                "value": stmt.excluded["value"],
                "metadata": stmt.excluded["metadata"],
            },
        )

        try:
            with self.engine.begin() as conn:
                conn.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(f"Snapshot upsert failed for {len(batch)} records: {e}")
            raise StorageConflictError(f"upsert failed: {e.__class__.__name__}: {e}", source="store") from e

        logger.info(f"Upserted {len(batch)} snapshots: {[r.key.value for r in batch]}")
        return len(batch)

    def get(self, on: date, key: MetricKey) -> Optional[MetricRecord]:
        key = MetricKey(key)
        with Session(self.engine) as session:
            row = session.exec(
                select(Metric).where(Metric.date == on, Metric.key == key.value)
            ).first()
            return MetricRecord.from_row(row) if row else None

    def history(
        self,
        key: MetricKey,
        lookback_days: Optional[int] = None,
        today: Optional[date] = None,
    ) -> List[MetricRecord]:
        """Snapshots for one key, newest first, optionally bounded to a lookback window."""
        key = MetricKey(key)
        query = select(Metric).where(Metric.key == key.value)
        if lookback_days is not None:
            since = (today or datetime.utcnow().date()) - timedelta(days=lookback_days)
            query = query.where(Metric.date >= since)
        query = query.order_by(Metric.date.desc())

        with Session(self.engine) as session:
            return [MetricRecord.from_row(row) for row in session.exec(query).all()]

    def latest(self, key: MetricKey) -> Optional[MetricRecord]:
        rows = self.history(key)
        return rows[0] if rows else None

    def count(self) -> int:
        with Session(self.engine) as session:
            return len(session.exec(select(Metric.id)).all())
