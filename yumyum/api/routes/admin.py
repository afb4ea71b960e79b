import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from yumyum.api.deps import get_pipeline, require_admin_session
from yumyum.pipelines.aggregate import MAX_BACKFILL_DAYS, AggregationPipeline
from yumyum.schemas.pipeline import BackfillResponse, RunResponse
from yumyum.services.sources.base import RunProfile

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/fetch", response_model=RunResponse)
async def trigger_fetch(
    response: Response,
    owner_id: int = Depends(require_admin_session),
    pipeline: AggregationPipeline = Depends(get_pipeline),
):
    """Re-scrape the page-backed sources on demand (admin only)."""
    logger.info(f"On-demand run requested by owner {owner_id}")

    report = await pipeline.run(RunProfile.ON_DEMAND)
    if report.storage_failed:
        response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    return RunResponse.from_report(report)


@router.post("/backfill", response_model=BackfillResponse)
async def trigger_backfill(
    response: Response,
    days: int = Query(7),
    owner_id: int = Depends(require_admin_session),
    pipeline: AggregationPipeline = Depends(get_pipeline),
):
    """Write up to 30 days of history from the sources that publish it (admin only)."""
    if not 1 <= days <= MAX_BACKFILL_DAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"days must be between 1 and {MAX_BACKFILL_DAYS}",
        )

    logger.info(f"Backfill of {days} days requested by owner {owner_id}")

    report = await pipeline.run(RunProfile.BACKFILL, days=days)
    if report.storage_failed:
        response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    return BackfillResponse.from_report(report)
