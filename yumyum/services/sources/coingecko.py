import logging
from datetime import date
from typing import Dict, Optional

from yumyum.core.config import get_settings
from yumyum.core.errors import PipelineError, UpstreamFormatError
from yumyum.models.metric import MetricKey
from yumyum.services.sources.base import (
    AdapterResult,
    RunProfile,
    SourceAdapter,
    epoch_to_date,
    safe_ratio,
    to_float,
)

logger = logging.getLogger(__name__)

PRICE_KEYS = {
    "bitcoin": MetricKey.BTC_PRICE,
    "ethereum": MetricKey.ETH_PRICE,
    "solana": MetricKey.SOL_PRICE,
}


class CoinGeckoAdapter(SourceAdapter):
    """Spot prices, BTC dominance and the ETH/BTC ratio from CoinGecko."""

    name = "coingecko"
    keys = (
        MetricKey.BTC_PRICE,
        MetricKey.ETH_PRICE,
        MetricKey.SOL_PRICE,
        MetricKey.BTC_DOMINANCE,
        MetricKey.ETH_BTC_RATIO,
    )
    profiles = frozenset({RunProfile.SCHEDULED, RunProfile.BACKFILL})

    def __init__(self, fetcher=None):
        super().__init__(fetcher)
        self.base_url = get_settings().COINGECKO_BASE

    async def collect(self, today: date, result: AdapterResult) -> None:
        prices = await self._collect_prices(today, result)

        # Only when both legs are present; otherwise nothing is written
        ratio = safe_ratio(prices.get("ethereum"), prices.get("bitcoin"))
        result.add(today, MetricKey.ETH_BTC_RATIO, ratio)

        await self._collect_dominance(today, result)

    async def _collect_prices(self, today: date, result: AdapterResult) -> Dict[str, Optional[float]]:
        prices: Dict[str, Optional[float]] = {}
        params = {
            "ids": ",".join(PRICE_KEYS),
            "vs_currencies": "usd",
            "include_24hr_change": "true",
        }

        try:
            data = await self.get_json(f"{self.base_url}/simple/price", params=params)
        except PipelineError as e:
            result.fail(e, source="coingecko-price")
            return prices

        if not isinstance(data, dict):
            result.fail(UpstreamFormatError("price payload is not an object"), source="coingecko-price")
            return prices

        for coin_id, key in PRICE_KEYS.items():
            info = data.get(coin_id) or {}
            price = to_float(info.get("usd"))
            prices[coin_id] = price
            if price is None:
                result.fail(UpstreamFormatError(f"no USD price for {coin_id}"), source="coingecko-price")
                continue
            result.add(today, key, price, {"change_pct": to_float(info.get("usd_24h_change"))})
            logger.info(f"Fetched price for {coin_id}: ${price}")

        return prices

    async def _collect_dominance(self, today: date, result: AdapterResult) -> None:
        try:
            data = await self.get_json(f"{self.base_url}/global")
        except PipelineError as e:
            result.fail(e, source="coingecko-global")
            return

        try:
            dominance = to_float(data["data"]["market_cap_percentage"]["btc"])
        except (KeyError, TypeError):
            result.fail(UpstreamFormatError("unexpected /global payload"), source="coingecko-global")
            return

        result.add(today, MetricKey.BTC_DOMINANCE, dominance)

    async def collect_history(self, today: date, days: int, result: AdapterResult) -> None:
        """Daily closes per coin from ``/coins/{id}/market_chart``; each coin fails on its own."""
        params = {"vs_currency": "usd", "days": str(days), "interval": "daily"}
        for coin_id, key in PRICE_KEYS.items():
            try:
                data = await self.get_json(f"{self.base_url}/coins/{coin_id}/market_chart", params=params)
                points = data["prices"]
            except PipelineError as e:
                result.fail(e, source=f"coingecko-history-{coin_id}")
                continue
            except (KeyError, TypeError):
                result.fail(UpstreamFormatError("unexpected market_chart payload"), source=f"coingecko-history-{coin_id}")
                continue

            # The last point is the current price and can share a date with the
            # previous close; the orchestrator's dedupe keeps the later one
            for point in points:
                try:
                    timestamp_ms, price = to_float(point[0]), to_float(point[1])
                except (IndexError, TypeError):
                    continue
                if timestamp_ms is None:
                    continue
                result.add(epoch_to_date(timestamp_ms / 1000), key, price, {"source": "coingecko"})

            logger.info(f"Fetched {len(points)} historical prices for {coin_id}")
