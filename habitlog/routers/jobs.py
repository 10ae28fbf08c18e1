"""
Scheduled jobs router.

Called by an external scheduler (cron, Railway/Render cron jobs) with the
shared secret in `X-Job-Token`. Both jobs run with the unscoped service
gateway.

POST /jobs/auto-habit-check          — backfill yesterday's daily habits
POST /jobs/recalculate-statistics    — nightly statistics recompute
"""
import logging
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query

from habitlog.context import AppContext
from habitlog.core.dates import format_day
from habitlog.core.errors import GatewayError, RecomputeError
from habitlog.models.habit_log import LogStatus
from habitlog.routers.deps import get_context, require_job_token
from habitlog.schemas.common import ERROR_RESPONSES
from habitlog.schemas.statistics import BackfillResponse, ScheduledRecomputeResponse
from habitlog.services.backfill import auto_habit_check
from habitlog.services.cache import HABITS_KEY, STATISTICS_KEY
from habitlog.services.gateway import RECOMPUTE_STATISTICS

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/jobs",
    tags=["jobs"],
    dependencies=[Depends(require_job_token)],
    responses=ERROR_RESPONSES,
)


@router.post(
    "/auto-habit-check",
    response_model=BackfillResponse,
    summary="Fill in missing logs for daily habits",
)
async def run_auto_habit_check(
    target: Optional[date] = Query(
        default=None,
        alias="date",
        description="Day to fill in. Defaults to yesterday.",
    ),
    ctx: AppContext = Depends(get_context),
):
    gateway = ctx.service_gateway()
    try:
        result = await auto_habit_check(
            gateway,
            target_date=target or ctx.today() - timedelta(days=1),
            status=LogStatus(ctx.config.AUTO_CHECK_STATUS),
        )
    finally:
        await gateway.close()
    if result.logs_created:
        ctx.cache.invalidate(STATISTICS_KEY)
    return BackfillResponse(
        message=result.message,
        date=format_day(result.target_date),
        habits_processed=result.habits_processed,
        logs_created=result.logs_created,
        skipped=result.skipped,
    )


@router.post(
    "/recalculate-statistics",
    response_model=ScheduledRecomputeResponse,
    summary="Recompute statistics for every user",
)
async def run_statistics_recompute(ctx: AppContext = Depends(get_context)):
    gateway = ctx.service_gateway()
    try:
        processed = await gateway.invoke(RECOMPUTE_STATISTICS)
    except GatewayError as exc:
        logger.error("Scheduled statistics recompute failed: %s", exc.message)
        raise RecomputeError.from_gateway(exc) from exc
    finally:
        await gateway.close()
    ctx.cache.invalidate(STATISTICS_KEY)
    ctx.cache.invalidate(HABITS_KEY)
    logger.info("Scheduled statistics recompute processed %d habits", processed)
    return ScheduledRecomputeResponse(habits_processed=processed)
