"""
Statistics router.

GET  /statistics              — precomputed statistics, best rate first
POST /statistics/recalculate  — trigger a manual recompute (once per day)
"""
from fastapi import APIRouter, Depends

from habitlog.context import AppContext
from habitlog.routers.deps import get_context, get_gateway, get_user_id
from habitlog.routers.serializers import statistics_to_response
from habitlog.schemas.common import ERROR_RESPONSES
from habitlog.schemas.statistics import RecalculateResponse, StatisticsListResponse
from habitlog.services.sql_gateway import SqlGateway
from habitlog.services.statistics import StatisticsRecomputeController, fetch_statistics

router = APIRouter(prefix="/statistics", tags=["statistics"], responses=ERROR_RESPONSES)


@router.get("", response_model=StatisticsListResponse, summary="List habit statistics")
async def list_statistics(
    ctx: AppContext = Depends(get_context),
    user_id: str = Depends(get_user_id),
    gateway: SqlGateway = Depends(get_gateway),
):
    """
    Archived habits are excluded. Habits never recomputed appear with zero
    counts and `calculated_at: null`.
    """
    stats = await fetch_statistics(gateway, ctx.cache, user_id)
    return StatisticsListResponse(
        total=len(stats), items=[statistics_to_response(s) for s in stats]
    )


@router.post(
    "/recalculate",
    response_model=RecalculateResponse,
    summary="Recalculate statistics now",
)
async def recalculate(
    ctx: AppContext = Depends(get_context),
    gateway: SqlGateway = Depends(get_gateway),
):
    """
    Recomputes every active habit of the caller. A second manual run on the
    same day fails with `STATISTICS_RECOMPUTE_FAILED` and the backend's
    message; nothing is retried automatically.
    """
    outcome = await StatisticsRecomputeController(gateway, ctx.cache).recalculate()
    if not outcome.ok:
        raise outcome.error
    return RecalculateResponse(message=outcome.message)
