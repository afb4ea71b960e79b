import asyncio
import logging
from datetime import date
from typing import Optional

from yumyum.core.config import get_settings
from yumyum.core.errors import PipelineError, UpstreamFormatError
from yumyum.models.metric import MetricKey
from yumyum.services.sources.base import AdapterResult, SourceAdapter, to_float

logger = logging.getLogger(__name__)

FUNDING_SYMBOLS = {
    "BTCUSDT": MetricKey.FUNDING_RATE_BTC,
    "ETHUSDT": MetricKey.FUNDING_RATE_ETH,
    "SOLUSDT": MetricKey.FUNDING_RATE_SOL,
}


class BinanceFundingAdapter(SourceAdapter):
    """Latest perpetual funding rates with long/short account split."""

    name = "binance"
    keys = tuple(FUNDING_SYMBOLS.values())

    def __init__(self, fetcher=None):
        super().__init__(fetcher)
        self.base_url = get_settings().BINANCE_FUTURES_BASE

    async def collect(self, today: date, result: AdapterResult) -> None:
        await asyncio.gather(*[
            self._collect_symbol(today, result, symbol, key)
            for symbol, key in FUNDING_SYMBOLS.items()
        ])

    async def _collect_symbol(self, today: date, result: AdapterResult, symbol: str, key: MetricKey) -> None:
        try:
            rows = await self.get_json(
                f"{self.base_url}/fapi/v1/fundingRate",
                params={"symbol": symbol, "limit": 1},
            )
        except PipelineError as e:
            result.fail(e, source=f"binance-{symbol}")
            return

        rate = to_float(rows[0].get("fundingRate")) if isinstance(rows, list) and rows else None
        if rate is None:
            result.fail(UpstreamFormatError(f"no funding rate for {symbol}"), source=f"binance-{symbol}")
            return

        metadata = {"symbol": symbol, "long_ratio": await self._long_ratio(symbol)}
        result.add(today, key, rate, metadata)

    async def _long_ratio(self, symbol: str) -> Optional[float]:
        """Share of accounts net long; optional context, failures only logged."""
        try:
            rows = await self.get_json(
                f"{self.base_url}/futures/data/globalLongShortAccountRatio",
                params={"symbol": symbol, "period": "5m", "limit": 1},
            )
        except PipelineError as e:
            logger.warning(f"Long/short ratio unavailable for {symbol}: {e}")
            return None

        ratio = to_float(rows[0].get("longShortRatio")) if isinstance(rows, list) and rows else None
        if ratio is None:
            return None
        return ratio / (1 + ratio)
