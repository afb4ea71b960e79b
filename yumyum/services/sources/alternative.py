from datetime import date

from yumyum.core.config import get_settings
from yumyum.core.errors import UpstreamFormatError
from yumyum.models.metric import MetricKey
from yumyum.services.sources.base import AdapterResult, SourceAdapter, seven_day_change, to_float


class FearGreedAdapter(SourceAdapter):
    """Crypto Fear & Greed index from alternative.me."""

    name = "alternative"
    keys = (MetricKey.FEAR_GREED,)

    def __init__(self, fetcher=None):
        super().__init__(fetcher)
        self.base_url = get_settings().ALTERNATIVE_BASE

    async def collect(self, today: date, result: AdapterResult) -> None:
        data = await self.get_json(f"{self.base_url}/fng/", params={"limit": 8})

        entries = data.get("data") if isinstance(data, dict) else None
        if not entries:
            raise UpstreamFormatError("empty fear & greed series")

        # Newest first upstream
        values = [to_float(entry.get("value")) for entry in reversed(entries)]
        current = values[-1]
        if current is None:
            raise UpstreamFormatError("fear & greed value is not numeric")

        result.add(today, MetricKey.FEAR_GREED, current, {
            "label": entries[0].get("value_classification"),
            "change_7d": seven_day_change(values),
        })
