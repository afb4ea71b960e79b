from datetime import datetime
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field

from yumyum.pipelines.aggregate import RunReport


class RunResponse(BaseModel):
    """Outcome of one aggregation run, as returned by the trigger endpoints."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    metrics_stored: int = Field(alias="metricsStored")
    errors: List[str] = []
    timestamp: datetime

    @classmethod
    def from_report(cls, report: RunReport) -> "RunResponse":
        return cls(
            success=report.success,
            metrics_stored=report.metrics_stored,
            errors=report.errors,
            timestamp=report.finished_at,
        )


class BackfillResponse(RunResponse):
    """Run outcome plus the record count each source contributed."""
    details: Dict[str, int] = {}

    @classmethod
    def from_report(cls, report: RunReport) -> "BackfillResponse":
        return cls(
            success=report.success,
            metrics_stored=report.metrics_stored,
            errors=report.errors,
            timestamp=report.finished_at,
            details=report.details,
        )
