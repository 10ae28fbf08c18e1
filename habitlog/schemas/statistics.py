"""
Statistics and job schemas.

GET  /statistics                 → StatisticsListResponse
POST /statistics/recalculate     → RecalculateResponse
POST /jobs/auto-habit-check      → BackfillResponse
POST /jobs/recalculate-statistics → ScheduledRecomputeResponse
"""
from typing import Optional

from pydantic import BaseModel, Field


class HabitStatisticsResponse(BaseModel):
    habit_id: str
    name: str
    achieved_days: int
    total_days: int
    achievement_rate: float = Field(description="Percent, 0–100.", examples=[71.43])
    calculated_at: Optional[str]


class StatisticsListResponse(BaseModel):
    total: int
    items: list[HabitStatisticsResponse]


class RecalculateResponse(BaseModel):
    message: str


class BackfillResponse(BaseModel):
    message: str
    date: str
    habits_processed: int
    logs_created: int
    skipped: list[str]


class ScheduledRecomputeResponse(BaseModel):
    habits_processed: int
