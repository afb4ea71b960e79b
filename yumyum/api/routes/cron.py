import logging

from fastapi import APIRouter, Depends, Response, status

from yumyum.api.deps import get_pipeline, require_cron_secret
from yumyum.pipelines.aggregate import AggregationPipeline
from yumyum.schemas.pipeline import RunResponse
from yumyum.services.sources.base import RunProfile

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/cron", response_model=RunResponse)
async def scheduled_run(
    response: Response,
    _: None = Depends(require_cron_secret),
    pipeline: AggregationPipeline = Depends(get_pipeline),
):
    """Daily scheduler trigger: every adapter, once."""
    report = await pipeline.run(RunProfile.SCHEDULED)
    if report.storage_failed:
        response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    logger.info(f"Scheduled run stored {report.metrics_stored} metrics with {len(report.errors)} errors")
    return RunResponse.from_report(report)
