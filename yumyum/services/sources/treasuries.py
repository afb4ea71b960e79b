import logging
from datetime import date

from yumyum.core.config import get_settings
from yumyum.core.errors import PipelineError, UpstreamFormatError
from yumyum.models.metric import MetricKey
from yumyum.services.scraping.browser import PageRenderer
from yumyum.services.scraping.llama_pages import parse_dat_page, parse_etf_holdings
from yumyum.services.sources.base import DAILY_PROFILES, AdapterResult, SourceAdapter

logger = logging.getLogger(__name__)

DAT_CHAINS = {
    "ethereum": MetricKey.DAT_HOLDINGS_ETH,
    "solana": MetricKey.DAT_HOLDINGS_SOL,
}

# Largest holders kept in metadata
TOP_COMPANIES = 10


class DatHoldingsAdapter(SourceAdapter):
    """Corporate treasury holdings (token amount) per chain from DeFiLlama."""

    name = "dat"
    keys = tuple(DAT_CHAINS.values())
    profiles = DAILY_PROFILES

    def __init__(self, renderer: PageRenderer, fetcher=None):
        super().__init__(fetcher)
        self.renderer = renderer
        self.base_url = get_settings().DEFILLAMA_WEB_BASE

    async def collect(self, today: date, result: AdapterResult) -> None:
        for chain, key in DAT_CHAINS.items():
            try:
                html = await self.renderer.render(f"{self.base_url}/digital-asset-treasuries/{chain}")
                snapshot = parse_dat_page(html)
            except PipelineError as e:
                result.fail(e, source=f"dat-{chain}")
                continue
            except Exception as e:
                logger.exception(f"Unexpected error scraping treasuries for {chain}")
                result.fail(UpstreamFormatError(f"{e.__class__.__name__}: {e}"), source=f"dat-{chain}")
                continue

            result.add(today, key, snapshot.total_holdings, {
                "total_usd": snapshot.total_usd,
                "supply_pct": snapshot.supply_pct,
                "company_count": len(snapshot.companies),
                "companies": [c.to_dict() for c in snapshot.companies[:TOP_COMPANIES]],
            })


class DefiLlamaEtfHoldingsAdapter(SourceAdapter):
    """Total AUM of Solana spot ETFs from the DeFiLlama ETF page data."""

    name = "defillama-etf"
    keys = (MetricKey.ETF_HOLDINGS_SOL,)
    profiles = DAILY_PROFILES

    def __init__(self, renderer: PageRenderer, fetcher=None, asset: str = "solana"):
        super().__init__(fetcher)
        self.renderer = renderer
        self.asset = asset
        self.base_url = get_settings().DEFILLAMA_WEB_BASE

    async def collect(self, today: date, result: AdapterResult) -> None:
        html = await self.renderer.render(f"{self.base_url}/etfs")
        holdings = parse_etf_holdings(html, self.asset)
        total_aum = sum(h.aum or 0 for h in holdings)

        if not total_aum:
            logger.warning(f"No {self.asset} ETF AUM on page ({len(holdings)} funds)")
            return

        result.add(today, MetricKey.ETF_HOLDINGS_SOL, total_aum, {
            "total_flows": sum(h.flows or 0 for h in holdings),
            "holdings": [h.to_dict() for h in holdings],
        })
