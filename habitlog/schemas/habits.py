"""
Habit schemas.

GET  /habits              → HabitListResponse
POST /habits              → HabitCreateRequest → HabitResponse
GET  /habits/templates    → list[HabitTemplateResponse]
"""
from __future__ import annotations

from datetime import date
from typing import Annotated, Optional

from pydantic import BaseModel, Field, model_validator

from habitlog.models.habit import FrequencyType


class HabitCreateRequest(BaseModel):
    name: Optional[str] = Field(
        default=None, min_length=1, max_length=128,
        description="Required unless template_id is given.",
        examples=["Morning run"],
    )
    template_id: Optional[str] = Field(
        default=None,
        description="Template to copy name, icon and frequency type from.",
    )
    icon: Optional[str] = Field(default=None, max_length=64)
    color: Optional[str] = Field(default=None, max_length=32, examples=["#6366f1"])
    frequency_type: Optional[FrequencyType] = None
    frequency_value: int = Field(default=1, ge=1)
    frequency_days: Optional[list[Annotated[int, Field(ge=1, le=7)]]] = Field(
        default=None, description="ISO weekdays (1 = Monday) for weekly habits."
    )
    frequency_month_day: Optional[int] = Field(default=None, ge=1, le=31)
    start_date: Optional[date] = Field(
        default=None, description="Defaults to today.", examples=["2026-10-19"],
    )

    @model_validator(mode="after")
    def name_or_template(self) -> "HabitCreateRequest":
        if not self.name and not self.template_id:
            raise ValueError("either name or template_id is required")
        return self


class HabitResponse(BaseModel):
    id: str
    name: str
    icon: Optional[str]
    color: Optional[str]
    frequency_type: str
    frequency_value: int
    frequency_days: list[int]
    frequency_month_day: Optional[int]
    start_date: str
    is_archived: bool
    template_id: Optional[str]


class HabitListResponse(BaseModel):
    total: int
    items: list[HabitResponse]


class HabitTemplateResponse(BaseModel):
    id: str
    name: str
    icon: Optional[str]
    default_frequency_type: str
