"""Daily metric aggregation: fan out to every source, gate, dedupe, upsert."""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from yumyum.core.errors import StorageConflictError
from yumyum.core.logging import setup_logging
from yumyum.db.store import SnapshotStore, dedupe_records
from yumyum.models.metric import MetricRecord
from yumyum.services.sources.base import AdapterResult, RunProfile, SourceAdapter

logger = logging.getLogger(__name__)

MAX_BACKFILL_DAYS = 30


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


@dataclass
class RunReport:
    profile: RunProfile
    attempted: int = 0
    metrics_stored: int = 0
    errors: List[str] = field(default_factory=list)
    storage_failed: bool = False
    # Records each adapter contributed after the freshness gate
    details: Dict[str, int] = field(default_factory=dict)
    finished_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def success(self) -> bool:
        return not self.errors


class AggregationPipeline:
    """Runs the adapters selected by a profile and persists their records."""

    def __init__(
        self,
        adapters: Sequence[SourceAdapter],
        store: SnapshotStore,
        today: Callable[[], date] = utc_today,
        on_close: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.adapters = list(adapters)
        self.store = store
        self._today = today
        self._on_close = on_close

    def select(self, profile: RunProfile) -> List[SourceAdapter]:
        return [adapter for adapter in self.adapters if profile in adapter.profiles]

    def apply_freshness_gate(self, adapter: SourceAdapter, records: List[MetricRecord], today: date) -> List[MetricRecord]:
        """Scraped rows dated other than today are stale page content; skip them."""
        if not adapter.freshness_gated:
            return records
        accepted = []
        for record in records:
            if record.date == today:
                accepted.append(record)
            else:
                logger.info(
                    f"[{adapter.name}] skipping {record.key.value} dated {record.date} (today is {today})"
                )
        return accepted

    async def run(self, profile: RunProfile = RunProfile.SCHEDULED, days: Optional[int] = None) -> RunReport:
        """
        Fetch, gate, dedupe and upsert one batch.

        ``days`` is required for ``RunProfile.BACKFILL`` and ignored otherwise.
        Backfill records keep their own dates, so the freshness gate is skipped.

        Raises:
            ValueError: a backfill without ``days`` in 1..MAX_BACKFILL_DAYS
        """
        backfill = profile == RunProfile.BACKFILL
        if backfill and (days is None or not 1 <= days <= MAX_BACKFILL_DAYS):
            raise ValueError(f"days must be between 1 and {MAX_BACKFILL_DAYS}")

        today = self._today()
        adapters = self.select(profile)
        report = RunReport(profile=profile)
        logger.info(f"Starting {profile.value} run for {today} with {len(adapters)} adapters")

        results: List[AdapterResult] = await asyncio.gather(
            *[adapter.fetch(today, days=days if backfill else None) for adapter in adapters]
        )

        candidates: List[MetricRecord] = []
        for adapter, result in zip(adapters, results):
            report.errors.extend(failure.describe() for failure in result.failures)
            records = result.records if backfill else self.apply_freshness_gate(adapter, result.records, today)
            report.details[adapter.name] = len(records)
            candidates.extend(records)

        batch = dedupe_records(candidates)
        report.attempted = len(batch)
        if len(batch) < len(candidates):
            logger.info(f"Deduped {len(candidates)} -> {len(batch)} records")

        try:
            report.metrics_stored = self.store.upsert(batch)
        except StorageConflictError as e:
            logger.error(f"Run {profile.value} could not persist {len(batch)} records: {e}")
            report.storage_failed = True
            report.metrics_stored = len(batch)
            report.errors.append(f"{e.source or 'store'}: {e.message}")

        report.finished_at = datetime.now(timezone.utc)
        logger.info(
            f"Finished {profile.value} run: {report.metrics_stored}/{report.attempted} stored, "
            f"{len(report.errors)} errors"
        )
        return report

    async def close(self) -> None:
        if self._on_close is not None:
            await self._on_close()


def build_pipeline() -> AggregationPipeline:
    """Wire the production adapters, fetcher, renderer and store."""
    from yumyum.db.session import engine
    from yumyum.services.http.fetcher import BoundedFetcher
    from yumyum.services.scraping.browser import PlaywrightRenderer
    from yumyum.services.sources.registry import build_adapters

    fetcher = BoundedFetcher()
    adapters = build_adapters(fetcher, PlaywrightRenderer())
    return AggregationPipeline(adapters, SnapshotStore(engine), on_close=fetcher.close)


async def main():
    """Run the scheduled profile once."""
    setup_logging()
    from yumyum.db.session import create_db_and_tables

    create_db_and_tables()
    pipeline = build_pipeline()
    try:
        report = await pipeline.run(RunProfile.SCHEDULED)
    finally:
        await pipeline.close()

    for error in report.errors:
        logger.warning(f"Run error: {error}")
    return report


if __name__ == "__main__":
    asyncio.run(main())
