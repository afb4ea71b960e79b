import logging
from datetime import date, datetime, timezone
from typing import Dict, Optional

from yumyum.core.config import get_settings
from yumyum.core.errors import PipelineError, UpstreamFormatError
from yumyum.models.metric import MetricKey
from yumyum.services.scraping.browser import PageRenderer
from yumyum.services.scraping.tables import TableHeuristics, latest_rows, scrape_table
from yumyum.services.sources.base import DAILY_PROFILES, AdapterResult, RunProfile, SourceAdapter

logger = logging.getLogger(__name__)

# Page path -> (metric, tickers that identify the header row)
FARSIDE_PAGES: Dict[str, tuple] = {
    "btc": (
        MetricKey.ETF_FLOW_BTC,
        ("IBIT", "FBTC", "BITB", "ARKB", "BTCO", "EZBC", "BRRR", "HODL", "BTCW", "GBTC"),
    ),
    "eth": (
        MetricKey.ETF_FLOW_ETH,
        ("ETHA", "FETH", "ETHW", "CETH", "ETHV", "QETH", "EZET", "ETHE"),
    ),
    "sol": (
        MetricKey.ETF_FLOW_SOL,
        ("BSOL", "VSOL", "FSOL", "TSOL", "SOEZ", "GSOL"),
    ),
}


class FarsideEtfFlowAdapter(SourceAdapter):
    """
    Daily spot-ETF net flows (USD millions) scraped from farside.co.uk.

    Records carry the date printed on the page, not the run date, so the
    orchestrator's freshness gate decides whether they are today's. Backfill
    runs skip the gate and keep the last N listed trading days.
    """

    name = "farside"
    keys = tuple(key for key, _ in FARSIDE_PAGES.values())
    profiles = DAILY_PROFILES | {RunProfile.BACKFILL}
    freshness_gated = True

    def __init__(self, renderer: PageRenderer, fetcher=None, days: Optional[int] = None):
        super().__init__(fetcher)
        settings = get_settings()
        self.renderer = renderer
        self.base_url = settings.FARSIDE_BASE
        self.days = days if days is not None else settings.ETF_FLOW_DAYS

    async def collect(self, today: date, result: AdapterResult) -> None:
        await self._collect_pages(result, self.days)

    async def collect_history(self, today: date, days: int, result: AdapterResult) -> None:
        await self._collect_pages(result, days)

    async def _collect_pages(self, result: AdapterResult, days: int) -> None:
        # One browser at a time; each page fails on its own
        for asset, (key, tickers) in FARSIDE_PAGES.items():
            try:
                await self._collect_asset(result, asset, key, tickers, days)
            except PipelineError as e:
                result.fail(e, source=f"farside-{asset}")
            except Exception as e:
                logger.exception(f"Unexpected error scraping farside {asset}")
                result.fail(UpstreamFormatError(f"{e.__class__.__name__}: {e}"), source=f"farside-{asset}")

    async def _collect_asset(self, result: AdapterResult, asset: str, key: MetricKey, tickers: tuple, days: int) -> None:
        url = f"{self.base_url}/{asset}/"
        rows = await scrape_table(url, TableHeuristics(tickers=tickers), self.renderer)
        if not rows:
            logger.warning(f"No flow rows with data on {url}")
            return

        scraped_at = datetime.now(timezone.utc).isoformat()
        for row in latest_rows(rows, days):
            result.add(row.date, key, row.total, {
                "flows": row.flows,
                "unit": "usd_millions",
                "scraped_at": scraped_at,
            })
