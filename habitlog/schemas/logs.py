"""
Habit log schemas.

GET /habits/{id}/logs          → LogWindowResponse (dense, one item per day)
GET /habits/{id}/logs/month    → LogWindowResponse
PUT /habits/{id}/logs/{day}    → LogUpdateRequest → LogEntryResponse
"""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from habitlog.models.habit_log import LogStatus


class LogEntryResponse(BaseModel):
    id: Optional[str] = Field(description="Null for days with no stored log.")
    habit_id: str
    date: str
    status: Literal["unchecked", "achieved", "not_achieved"]
    notes: str


class LogWindowResponse(BaseModel):
    habit_id: str
    start: str
    end: str
    items: list[LogEntryResponse] = Field(description="Exactly one item per day, oldest first.")


class LogUpdateRequest(BaseModel):
    id: Optional[str] = Field(
        default=None,
        description="Stored log id; omit to create the day's first log.",
    )
    status: LogStatus
    notes: Optional[str] = ""


class LiveSnapshot(BaseModel):
    """Message pushed on the live websocket after every view change."""
    type: Literal["window"] = "window"
    habit_id: Optional[str]
    anchor: Optional[str]
    state: str
    is_loading: bool
    items: list[LogEntryResponse]
    updating: list[str]
    error: Optional[dict] = None
