import asyncio
from datetime import date, timedelta

import httpx
import pytest
from sqlalchemy import create_engine as sa_create_engine

from yumyum.db.store import SnapshotStore
from yumyum.models.metric import MetricKey
from yumyum.pipelines.aggregate import MAX_BACKFILL_DAYS, AggregationPipeline
from yumyum.services.sources.alternative import FearGreedAdapter
from yumyum.services.sources.base import DAILY_PROFILES, RunProfile, SourceAdapter
from yumyum.services.sources.coingecko import CoinGeckoAdapter
from yumyum.services.sources.farside import FarsideEtfFlowAdapter

TODAY = date(2026, 1, 14)
JAN_14_MS = 1_768_348_800_000


class StaticAdapter(SourceAdapter):
    """Emits fixed values for today."""

    def __init__(self, name, values, profiles=frozenset({RunProfile.SCHEDULED})):
        super().__init__()
        self.name = name
        self.values = values
        self.keys = tuple(values)
        self.profiles = profiles

    async def collect(self, today, result):
        for key, value in self.values.items():
            result.add(today, key, value, {"source": self.name})


def farside_pages(flow_page, btc_rows, eth_rows=(), sol_rows=()):
    return {
        "https://farside.co.uk/btc/": flow_page(("IBIT", "FBTC"), btc_rows),
        "https://farside.co.uk/eth/": flow_page(("ETHA", "FETH"), eth_rows),
        "https://farside.co.uk/sol/": flow_page(("BSOL", "GSOL"), sol_rows),
    }


class TestAggregationPipeline:

    @pytest.mark.asyncio
    async def test_etf_flows_end_to_end(self, store, fake_renderer, flow_page):
        """Test a full run from rendered flow pages to stored rows."""
        renderer = fake_renderer(farside_pages(
            flow_page,
            btc_rows=[("13 Jan 2026", ("1.0", "1.0")), ("14 Jan 2026", ("50.0", "-"))],
            eth_rows=[("14 Jan 2026", ("(20.0)", "-"))],
            sol_rows=[("14 Jan 2026", ("-", "-"))],
        ))
        pipeline = AggregationPipeline([FarsideEtfFlowAdapter(renderer, days=1)], store, today=lambda: TODAY)

        report = await pipeline.run(RunProfile.SCHEDULED)

        assert report.errors == []
        assert report.success
        assert report.metrics_stored == 2
        assert store.get(TODAY, MetricKey.ETF_FLOW_BTC).value == 50.0
        assert store.get(TODAY, MetricKey.ETF_FLOW_ETH).value == -20.0
        assert store.get(TODAY, MetricKey.ETF_FLOW_SOL) is None

    @pytest.mark.asyncio
    async def test_second_run_is_idempotent(self, store, fake_renderer, flow_page):
        """Test that repeating a run leaves one row per date and key."""
        renderer = fake_renderer(farside_pages(
            flow_page,
            btc_rows=[("14 Jan 2026", ("50.0", "-"))],
            eth_rows=[("14 Jan 2026", ("(20.0)", "-"))],
            sol_rows=[("14 Jan 2026", ("3.0", "-"))],
        ))
        pipeline = AggregationPipeline([FarsideEtfFlowAdapter(renderer, days=1)], store, today=lambda: TODAY)

        first = await pipeline.run()
        second = await pipeline.run()

        assert first.metrics_stored == second.metrics_stored == second.attempted == 3
        assert store.count() == 3

    @pytest.mark.asyncio
    async def test_freshness_gate(self, store, fake_renderer, flow_page):
        """Test that flow rows not dated today are skipped."""
        renderer = fake_renderer(farside_pages(
            flow_page,
            btc_rows=[("13 Jan 2026", ("9.0", "1.0"))],
            eth_rows=[("14 Jan 2026", ("4.0", "1.0"))],
            sol_rows=[("14 Jan 2026", ("-", "2.0"))],
        ))
        pipeline = AggregationPipeline([FarsideEtfFlowAdapter(renderer, days=1)], store, today=lambda: TODAY)

        report = await pipeline.run()

        assert report.errors == []
        assert store.get(TODAY - timedelta(days=1), MetricKey.ETF_FLOW_BTC) is None
        assert store.get(TODAY, MetricKey.ETF_FLOW_BTC) is None
        assert store.get(TODAY, MetricKey.ETF_FLOW_ETH).value == 5.0
        assert store.get(TODAY, MetricKey.ETF_FLOW_SOL).value == 2.0

    @pytest.mark.asyncio
    async def test_freshness_gate_only_for_scraped_sources(self, store):
        """Test that API sources keep their own dates."""
        class Backdated(StaticAdapter):
            async def collect(self, today, result):
                result.add(today - timedelta(days=1), MetricKey.ETH_TVL, 60.0)

        pipeline = AggregationPipeline(
            [Backdated("backdated", {MetricKey.ETH_TVL: 60.0})], store, today=lambda: TODAY
        )

        report = await pipeline.run()

        assert report.metrics_stored == 1
        assert store.get(TODAY - timedelta(days=1), MetricKey.ETH_TVL).value == 60.0

    @pytest.mark.asyncio
    async def test_slow_adapter_does_not_block_others(self, store, mock_fetcher):
        """Test that a timed-out source does not stop the rest of the run."""
        async def slow(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json={})

        timing_out = FearGreedAdapter(mock_fetcher(slow, timeout=0.05, retries=0))
        healthy = StaticAdapter("static", {MetricKey.BTC_PRICE: 60000.0})
        pipeline = AggregationPipeline([timing_out, healthy], store, today=lambda: TODAY)

        report = await pipeline.run()

        assert len(report.errors) == 1
        assert report.errors[0].startswith("alternative: timed out")
        assert not report.success
        assert report.metrics_stored == 1
        assert store.get(TODAY, MetricKey.BTC_PRICE).value == 60000.0

    @pytest.mark.asyncio
    async def test_duplicate_keys_last_adapter_wins(self, store):
        """Test that the later adapter's value wins for a shared key."""
        pipeline = AggregationPipeline(
            [
                StaticAdapter("first", {MetricKey.BTC_PRICE: 1.0}),
                StaticAdapter("second", {MetricKey.BTC_PRICE: 2.0}),
            ],
            store,
            today=lambda: TODAY,
        )

        report = await pipeline.run()

        assert report.attempted == 1
        stored = store.get(TODAY, MetricKey.BTC_PRICE)
        assert stored.value == 2.0
        assert stored.metadata["source"] == "second"

    @pytest.mark.asyncio
    async def test_on_demand_runs_scrapers_only(self, store):
        """Test that on-demand runs only touch page-backed sources."""
        api = StaticAdapter("api", {MetricKey.BTC_PRICE: 1.0})
        scraper = StaticAdapter("scraper", {MetricKey.DAT_HOLDINGS_ETH: 6e6}, profiles=DAILY_PROFILES)
        pipeline = AggregationPipeline([api, scraper], store, today=lambda: TODAY)

        report = await pipeline.run(RunProfile.ON_DEMAND)

        assert report.metrics_stored == 1
        assert store.get(TODAY, MetricKey.BTC_PRICE) is None
        assert store.get(TODAY, MetricKey.DAT_HOLDINGS_ETH).value == 6e6

    @pytest.mark.asyncio
    async def test_storage_failure_reported(self):
        """Test that a failed upsert is reported on the run."""
        broken = SnapshotStore(sa_create_engine("sqlite://"))
        pipeline = AggregationPipeline(
            [StaticAdapter("static", {MetricKey.BTC_PRICE: 1.0, MetricKey.ETH_PRICE: 2.0})],
            broken,
            today=lambda: TODAY,
        )

        report = await pipeline.run()

        assert report.storage_failed
        assert not report.success
        assert report.metrics_stored == 2
        assert report.errors[-1].startswith("store: ")

    @pytest.mark.asyncio
    async def test_close_hook(self, store):
        """Test that closing the pipeline calls its close hook."""
        closed = []

        async def on_close():
            closed.append(True)

        pipeline = AggregationPipeline([], store, on_close=on_close)
        report = await pipeline.run()
        await pipeline.close()

        assert report.metrics_stored == 0
        assert closed == [True]


class TestBackfill:

    @pytest.mark.asyncio
    async def test_backfill_keeps_page_dates(self, store, fake_renderer, flow_page):
        """Test that backfill stores older flow rows the daily gate would drop."""
        renderer = fake_renderer(farside_pages(
            flow_page,
            btc_rows=[("12 Jan 2026", ("4.0", "1.0")), ("13 Jan 2026", ("9.0", "1.0"))],
        ))
        daily_only = StaticAdapter("daily", {MetricKey.FEAR_GREED: 50.0})
        pipeline = AggregationPipeline(
            [FarsideEtfFlowAdapter(renderer, days=1), daily_only], store, today=lambda: TODAY
        )

        report = await pipeline.run(RunProfile.BACKFILL, days=7)

        assert store.get(TODAY - timedelta(days=2), MetricKey.ETF_FLOW_BTC).value == 5.0
        assert store.get(TODAY - timedelta(days=1), MetricKey.ETF_FLOW_BTC).value == 10.0
        assert store.get(TODAY, MetricKey.FEAR_GREED) is None
        assert report.metrics_stored == 2
        assert report.details == {"farside": 2}

    @pytest.mark.asyncio
    async def test_overlapping_dates_deduped(self, store, mock_fetcher):
        """Test that two samples for one date collapse to the later one before the upsert."""
        def handler(request):
            coin = request.url.path.split("/")[-2]
            base = {"bitcoin": 60000.0, "ethereum": 3000.0, "solana": 150.0}[coin]
            return httpx.Response(200, json={"prices": [
                [JAN_14_MS - 86_400_000, base - 100],
                [JAN_14_MS, base],
                [JAN_14_MS + 3_600_000, base + 100],
            ]})

        pipeline = AggregationPipeline(
            [CoinGeckoAdapter(mock_fetcher(handler))], store, today=lambda: TODAY
        )

        report = await pipeline.run(RunProfile.BACKFILL, days=1)

        assert report.errors == []
        assert report.details == {"coingecko": 9}
        assert report.attempted == report.metrics_stored == 6
        assert store.get(TODAY, MetricKey.BTC_PRICE).value == 60100.0
        assert store.get(TODAY - timedelta(days=1), MetricKey.ETH_PRICE).value == 2900.0
        assert store.count() == 6

    @pytest.mark.asyncio
    @pytest.mark.parametrize("days", [None, 0, MAX_BACKFILL_DAYS + 1])
    async def test_backfill_days_validated(self, store, days):
        """Test that a backfill outside 1..30 days is refused before any fetch."""
        calls = []

        class Recording(StaticAdapter):
            async def collect_history(self, today, days, result):
                calls.append(days)

        pipeline = AggregationPipeline(
            [Recording("history", {}, profiles=frozenset({RunProfile.BACKFILL}))], store
        )

        with pytest.raises(ValueError, match="between 1 and 30"):
            await pipeline.run(RunProfile.BACKFILL, days=days)
        assert calls == []

    @pytest.mark.asyncio
    async def test_days_ignored_for_daily_runs(self, store):
        """Test that a scheduled run collects today's values even when days is passed."""
        pipeline = AggregationPipeline(
            [StaticAdapter("static", {MetricKey.BTC_PRICE: 1.0})], store, today=lambda: TODAY
        )

        report = await pipeline.run(RunProfile.SCHEDULED, days=5)

        assert report.metrics_stored == 1
        assert store.get(TODAY, MetricKey.BTC_PRICE).value == 1.0
