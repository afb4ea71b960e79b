from datetime import date

from yumyum.core.config import get_settings
from yumyum.core.errors import UpstreamFormatError
from yumyum.models.metric import MetricKey
from yumyum.services.sources.base import AdapterResult, SourceAdapter, apr_to_apy, to_float

WEI_PER_ETH = 1e18

# beaconcha.in throttles anonymous callers aggressively
BEACONCHAIN_RETRIES = 3


class BeaconchainAdapter(SourceAdapter):
    """Consensus-layer staking yield and daily issuance from the ETH.STORE index."""

    name = "beaconchain"
    keys = (MetricKey.ETH_STAKING_APY, MetricKey.ETH_ISSUANCE)

    def __init__(self, fetcher=None):
        super().__init__(fetcher)
        self.base_url = get_settings().BEACONCHAIN_BASE

    async def collect(self, today: date, result: AdapterResult) -> None:
        payload = await self.get_json(
            f"{self.base_url}/ethstore/latest",
            retries=BEACONCHAIN_RETRIES,
        )

        if not isinstance(payload, dict) or payload.get("status") != "OK":
            raise UpstreamFormatError("ethstore status is not OK")

        data = payload.get("data") or {}
        apr = to_float(data.get("apr"))
        if apr is None:
            raise UpstreamFormatError("ethstore apr missing")

        result.add(today, MetricKey.ETH_STAKING_APY, apr_to_apy(apr, 365), {
            "apr": apr,
            "day": data.get("day"),
        })

        rewards_wei = to_float(data.get("consensus_rewards_sum_wei"))
        if rewards_wei is not None:
            result.add(today, MetricKey.ETH_ISSUANCE, rewards_wei / WEI_PER_ETH)
