import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, FrozenSet, List, Optional, Sequence, Tuple, Union

from yumyum.core.errors import PipelineError, UpstreamFormatError
from yumyum.models.metric import MetricKey, MetricRecord
from yumyum.services.http.fetcher import BoundedFetcher, FetchResult

logger = logging.getLogger(__name__)


class RunProfile(str, Enum):
    """Which trigger started an aggregation run."""
    SCHEDULED = "scheduled"
    ON_DEMAND = "on_demand"
    BACKFILL = "backfill"


# Profiles that write today's snapshot; BACKFILL is opted into per adapter
DAILY_PROFILES = frozenset({RunProfile.SCHEDULED, RunProfile.ON_DEMAND})


@dataclass
class FetchFailure:
    source: str
    message: str
    kind: str = "PipelineError"

    def describe(self) -> str:
        return f"{self.source}: {self.message}"


@dataclass
class AdapterResult:
    """Records and failures from one adapter call; both may be populated."""
    source: str
    records: List[MetricRecord] = field(default_factory=list)
    failures: List[FetchFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def add(
        self,
        on: date,
        key: MetricKey,
        value: Optional[float],
        metadata: Optional[dict] = None,
        allow_null: bool = False,
    ) -> None:
        """Append a record; null values are skipped unless ``allow_null``."""
        if value is None and not allow_null:
            return
        self.records.append(
            MetricRecord(date=on, key=key, value=value, metadata=metadata or {})
        )

    def fail(self, error: Union[PipelineError, str], source: Optional[str] = None) -> None:
        if isinstance(error, PipelineError):
            failure = FetchFailure(source or self.source, error.message, error.kind)
        else:
            failure = FetchFailure(source or self.source, str(error))
        logger.warning(f"[{self.source}] {failure.describe()} ({failure.kind})")
        self.failures.append(failure)


class SourceAdapter(ABC):
    """One external data provider.

    Subclasses implement ``collect``; callers use ``fetch``, which never raises.
    """

    name: str = "source"
    keys: Tuple[MetricKey, ...] = ()
    profiles: FrozenSet[RunProfile] = frozenset({RunProfile.SCHEDULED})
    freshness_gated: bool = False

    def __init__(self, fetcher: Optional[BoundedFetcher] = None):
        self.fetcher = fetcher

    @abstractmethod
    async def collect(self, today: date, result: AdapterResult) -> None:
        """Populate ``result``; may raise PipelineError for whole-source failures."""
        pass

    async def collect_history(self, today: date, days: int, result: AdapterResult) -> None:
        """Populate ``result`` with the last ``days`` days of records.

        Only adapters listing ``RunProfile.BACKFILL`` in ``profiles`` override this.
        """
        raise NotImplementedError(f"{self.name} has no history source")

    async def fetch(self, today: date, days: Optional[int] = None) -> AdapterResult:
        """Collect today's records, or ``days`` of history when ``days`` is given."""
        result = AdapterResult(source=self.name)
        try:
            if days is None:
                await self.collect(today, result)
            else:
                await self.collect_history(today, days, result)
        except PipelineError as e:
            result.fail(e)
        except Exception as e:
            logger.exception(f"[{self.name}] unexpected adapter error")
            result.fail(UpstreamFormatError(f"{e.__class__.__name__}: {e}"))

        undeclared = [r for r in result.records if r.key not in self.keys]
        if undeclared:
            for record in undeclared:
                result.fail(f"undeclared metric key {record.key.value}")
            result.records = [r for r in result.records if r.key in self.keys]

        logger.info(
            f"[{self.name}] {len(result.records)} records, {len(result.failures)} failures"
        )
        return result

    async def get_json(self, url: str, **kwargs: Any) -> Any:
        """Fetch JSON through the shared fetcher, raising its error as a PipelineError."""
        outcome: FetchResult = await self.fetcher.fetch_json(url, source=self.name, **kwargs)
        if outcome.error is not None:
            raise outcome.error
        return outcome.data


# ----------------------------------------------------------------------
# Numeric contracts shared by adapters
# ----------------------------------------------------------------------

def apr_to_apy(apr: Optional[float], periods: int) -> Optional[float]:
    """Compound a simple annual rate ``periods`` times a year."""
    if apr is None:
        return None
    return (1 + apr / periods) ** periods - 1


def seven_day_change(series: Sequence[Optional[float]]) -> Optional[float]:
    """Percent change across an 8-point window (latest vs. 8 samples back, inclusive)."""
    window = list(series)[-8:]
    if len(window) < 8:
        return None
    first, latest = window[0], window[-1]
    if first is None or latest is None or first == 0:
        return None
    return (latest - first) / first * 100


def safe_ratio(numerator: Optional[float], denominator: Optional[float]) -> Optional[float]:
    if numerator is None or denominator is None or denominator == 0:
        return None
    return numerator / denominator


def to_float(value: Any) -> Optional[float]:
    """Coerce numeric-looking upstream values; anything else becomes None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def epoch_to_date(seconds: float) -> date:
    return datetime.fromtimestamp(seconds, tz=timezone.utc).date()
