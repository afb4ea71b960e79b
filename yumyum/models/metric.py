import datetime as dt
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel as PydanticModel, Field as PydanticField
from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field

from yumyum.models.base import BaseModel

# Bump whenever a member is added to or removed from MetricKey.
METRIC_SCHEMA_VERSION = 4


class MetricKey(str, Enum):
    """Closed vocabulary of stored metrics, shared by writers and readers."""

    # Prices / market
    BTC_PRICE = "btc_price"
    ETH_PRICE = "eth_price"
    SOL_PRICE = "sol_price"
    BTC_DOMINANCE = "btc_dominance"
    ETH_BTC_RATIO = "eth_btc_ratio"
    FEAR_GREED = "fear_greed"

    # Aggregators
    STABLECOIN_TOTAL = "stablecoin_total"
    ETH_TVL = "eth_tvl"

    # ETH supply
    ETH_BURN = "eth_burn"
    ETH_SUPPLY_GROWTH = "eth_supply_growth"
    ETH_ISSUANCE = "eth_issuance"
    ETH_STAKING_APY = "eth_staking_apy"

    # SOL supply
    SOL_STAKED_PCT = "sol_staked_pct"
    SOL_INFLATION = "sol_inflation"
    SOL_STAKING_APY = "sol_staking_apy"

    # Derivatives
    FUNDING_RATE_BTC = "funding_rate_btc"
    FUNDING_RATE_ETH = "funding_rate_eth"
    FUNDING_RATE_SOL = "funding_rate_sol"

    # Scraped
    ETF_FLOW_BTC = "etf_flow_btc"
    ETF_FLOW_ETH = "etf_flow_eth"
    ETF_FLOW_SOL = "etf_flow_sol"
    DAT_HOLDINGS_ETH = "dat_holdings_eth"
    DAT_HOLDINGS_SOL = "dat_holdings_sol"
    ETF_HOLDINGS_SOL = "etf_holdings_sol"


class Metric(BaseModel, table=True):
    """One daily snapshot row. Unique per (date, key)."""
    __tablename__ = "metrics"
    __table_args__ = (UniqueConstraint("date", "key", name="uq_metrics_date_key"),)

    date: dt.date = Field(index=True)
    key: str = Field(index=True, max_length=64)
    value: Optional[float] = Field(default=None)
    meta: Dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column("metadata", JSON, nullable=False, default=dict),
    )


class MetricRecord(PydanticModel):
    """In-memory unit of persistence produced by source adapters."""
    date: dt.date
    key: MetricKey
    value: Optional[float] = None
    metadata: Dict[str, Any] = PydanticField(default_factory=dict)

    @property
    def identity(self) -> tuple:
        return (self.date, self.key)

    def to_row(self, created_at: Optional[dt.datetime] = None) -> Dict[str, Any]:
        """Column-name keyed dict for a core INSERT."""
        return {
            "date": self.date,
            "key": self.key.value,
            "value": self.value,
            "metadata": self.metadata,
            "created_at": created_at or dt.datetime.utcnow(),
        }

    @classmethod
    def from_row(cls, row: Metric) -> "MetricRecord":
        return cls(date=row.date, key=MetricKey(row.key), value=row.value, metadata=row.meta or {})
