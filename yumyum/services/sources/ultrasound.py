from datetime import date

from yumyum.core.config import get_settings
from yumyum.core.errors import PipelineError, UpstreamFormatError
from yumyum.models.metric import MetricKey
from yumyum.services.sources.base import AdapterResult, SourceAdapter, to_float


class UltrasoundAdapter(SourceAdapter):
    """ETH burn and supply growth from ultrasound.money."""

    name = "ultrasound"
    keys = (MetricKey.ETH_BURN, MetricKey.ETH_SUPPLY_GROWTH)

    def __init__(self, fetcher=None):
        super().__init__(fetcher)
        self.base_url = get_settings().ULTRASOUND_BASE

    async def collect(self, today: date, result: AdapterResult) -> None:
        try:
            sums = await self.get_json(f"{self.base_url}/burn-sums")
            burn = to_float(sums["d1"]["sum"]["eth"])
            week = sums.get("d7") or {}
            result.add(today, MetricKey.ETH_BURN, burn, {
                "burn_7d": to_float((week.get("sum") or {}).get("eth")),
            })
        except PipelineError as e:
            result.fail(e, source="ultrasound-burn")
        except (KeyError, TypeError, AttributeError):
            result.fail(UpstreamFormatError("unexpected burn-sums payload"), source="ultrasound-burn")

        try:
            rates = await self.get_json(f"{self.base_url}/gauge-rates")
            growth = to_float(rates["d1"]["supply_growth_rate_yearly"])
            result.add(today, MetricKey.ETH_SUPPLY_GROWTH, growth, {
                "issuance_rate_yearly": to_float(rates["d1"].get("issuance_rate_yearly")),
            })
        except PipelineError as e:
            result.fail(e, source="ultrasound-gauge")
        except (KeyError, TypeError, AttributeError):
            result.fail(UpstreamFormatError("unexpected gauge-rates payload"), source="ultrasound-gauge")
