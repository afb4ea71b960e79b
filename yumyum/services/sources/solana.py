import logging
from datetime import date
from typing import Any, List, Optional

from yumyum.core.config import get_settings
from yumyum.core.errors import PipelineError, UpstreamFormatError
from yumyum.models.metric import MetricKey
from yumyum.services.sources.base import (
    AdapterResult,
    SourceAdapter,
    apr_to_apy,
    safe_ratio,
    to_float,
)

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 1e9

# Roughly 2-day epochs
EPOCHS_PER_YEAR = 150


class SolanaAdapter(SourceAdapter):
    """Stake share, inflation and staking yield straight from a Solana RPC node."""

    name = "solana"
    keys = (MetricKey.SOL_STAKED_PCT, MetricKey.SOL_INFLATION, MetricKey.SOL_STAKING_APY)

    def __init__(self, fetcher=None):
        super().__init__(fetcher)
        self.rpc_url = get_settings().SOLANA_RPC_URL
        self._request_id = 0

    async def rpc(self, method: str, params: Optional[List[Any]] = None) -> Any:
        self._request_id += 1
        body = {"jsonrpc": "2.0", "id": self._request_id, "method": method}
        if params is not None:
            body["params"] = params

        payload = await self.get_json(self.rpc_url, method="POST", json=body)
        if not isinstance(payload, dict):
            raise UpstreamFormatError(f"{method}: response is not an object", source=self.name)
        if payload.get("error"):
            message = payload["error"].get("message", "unknown error")
            raise UpstreamFormatError(f"{method}: {message}", source=self.name)
        return payload.get("result")

    async def collect(self, today: date, result: AdapterResult) -> None:
        supply = await self.rpc("getSupply", [{"excludeNonCirculatingAccountsList": True}])
        try:
            total_supply = supply["value"]["total"] / LAMPORTS_PER_SOL
            circulating = supply["value"]["circulating"] / LAMPORTS_PER_SOL
        except (KeyError, TypeError):
            raise UpstreamFormatError("getSupply: unexpected payload", source=self.name)

        accounts = await self.rpc("getVoteAccounts")
        try:
            validators = accounts["current"] + accounts["delinquent"]
            staked = sum(v["activatedStake"] for v in validators) / LAMPORTS_PER_SOL
        except (KeyError, TypeError):
            raise UpstreamFormatError("getVoteAccounts: unexpected payload", source=self.name)

        staked_pct = safe_ratio(staked, circulating)
        result.add(
            today,
            MetricKey.SOL_STAKED_PCT,
            staked_pct * 100 if staked_pct is not None else None,
            {"staked_sol": staked, "circulating_sol": circulating, "validators": len(validators)},
        )

        try:
            inflation_info = await self.rpc("getInflationRate")
        except PipelineError as e:
            result.fail(e, source="solana-inflation")
            return

        inflation = to_float((inflation_info or {}).get("total"))
        if inflation is None:
            result.fail(UpstreamFormatError("getInflationRate: total missing"), source="solana-inflation")
            return

        result.add(today, MetricKey.SOL_INFLATION, inflation, {"epoch": inflation_info.get("epoch")})

        # Issuance is paid to stakers only, so the yield scales with total/staked
        multiplier = safe_ratio(total_supply, staked)
        if multiplier is None:
            return
        apr = inflation * multiplier
        result.add(today, MetricKey.SOL_STAKING_APY, apr_to_apy(apr, EPOCHS_PER_YEAR), {"apr": apr})
