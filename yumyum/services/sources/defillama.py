import logging
from datetime import date, timedelta
from typing import Any, Callable, List, Optional

from yumyum.core.config import get_settings
from yumyum.core.errors import PipelineError, UpstreamFormatError
from yumyum.models.metric import MetricKey
from yumyum.services.sources.base import (
    AdapterResult,
    RunProfile,
    SourceAdapter,
    epoch_to_date,
    seven_day_change,
    to_float,
)

logger = logging.getLogger(__name__)

BILLION = 1e9


def _series(data: Any, extract: Callable[[dict], Any]) -> List[Optional[float]]:
    if not isinstance(data, list) or not data:
        raise UpstreamFormatError("expected a non-empty chart series")
    values = []
    for entry in data:
        try:
            values.append(to_float(extract(entry)))
        except (KeyError, TypeError):
            values.append(None)
    return values


class DefiLlamaAdapter(SourceAdapter):
    """Stablecoin float and Ethereum TVL from the DeFiLlama APIs."""

    name = "defillama"
    keys = (MetricKey.STABLECOIN_TOTAL, MetricKey.ETH_TVL)
    profiles = frozenset({RunProfile.SCHEDULED, RunProfile.BACKFILL})

    def __init__(self, fetcher=None):
        super().__init__(fetcher)
        settings = get_settings()
        self.api_base = settings.DEFILLAMA_BASE
        self.stablecoins_base = settings.STABLECOINS_BASE

    async def collect(self, today: date, result: AdapterResult) -> None:
        try:
            data = await self.get_json(f"{self.stablecoins_base}/stablecoincharts/all")
            values = _series(data, lambda e: e["totalCirculating"]["peggedUSD"])
            self._add_latest(today, result, MetricKey.STABLECOIN_TOTAL, values)
        except PipelineError as e:
            result.fail(e, source="defillama-stable")

        try:
            data = await self.get_json(f"{self.api_base}/v2/historicalChainTvl/Ethereum")
            values = _series(data, lambda e: e["tvl"])
            self._add_latest(today, result, MetricKey.ETH_TVL, values)
        except PipelineError as e:
            result.fail(e, source="defillama-tvl")

    @staticmethod
    def _add_latest(today: date, result: AdapterResult, key: MetricKey, values: List[Optional[float]]) -> None:
        latest = values[-1]
        if latest is None:
            raise UpstreamFormatError(f"latest {key.value} sample is not numeric")
        result.add(today, key, latest / BILLION, {"change_7d": seven_day_change(values)})

    async def collect_history(self, today: date, days: int, result: AdapterResult) -> None:
        """Ethereum TVL for every sample dated within the last ``days`` days."""
        try:
            data = await self.get_json(f"{self.api_base}/v2/historicalChainTvl/Ethereum")
        except PipelineError as e:
            result.fail(e, source="defillama-tvl")
            return
        if not isinstance(data, list):
            result.fail(UpstreamFormatError("expected a chart series"), source="defillama-tvl")
            return

        cutoff = today - timedelta(days=days)
        kept = 0
        for entry in data:
            if not isinstance(entry, dict):
                continue
            timestamp, tvl = to_float(entry.get("date")), to_float(entry.get("tvl"))
            if timestamp is None or tvl is None:
                continue
            on = epoch_to_date(timestamp)
            if on < cutoff:
                continue
            result.add(on, MetricKey.ETH_TVL, tvl / BILLION, {"raw": tvl, "source": "defillama"})
            kept += 1

        logger.info(f"Kept {kept} ETH TVL samples since {cutoff}")
