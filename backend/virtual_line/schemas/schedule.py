# backend/virtual_line/schemas/schedule.py
"""
Pydantic schemas for schedule API (preview / publish / append).
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..services.slots.config import SlotKind, normalize_date, normalize_time


class ScheduleParams(BaseModel):
    """Schedule parameters for a site/day."""
    site_id: int
    date: str = Field(description="Date in YYYY-MM-DD format")
    open_time: str = Field(description="Time in HH:MM format")
    close_time: str = Field(description="Time in HH:MM format")
    loads_target: int = Field(ge=1)
    interval: Optional[int] = Field(None, ge=0, description="Minutes; 0/None derives it from loads_target")
    disabled_count: int = Field(0, ge=0)

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        return normalize_date(v)

    @field_validator("open_time", "close_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return normalize_time(v)


class SchedulePublish(ScheduleParams):
    workins_per_hour: int = Field(0, ge=0)


class SchedulePreviewSlot(BaseModel):
    time: str
    disabled: bool

    model_config = {"from_attributes": True}


class SchedulePreviewResponse(BaseModel):
    interval: int
    slots: list[SchedulePreviewSlot]
    disabled_count: int


class SchedulePublishResponse(BaseModel):
    interval: int
    generated_count: int
    disabled_count: int
    workin_count: int = 0
    holds_cleared: int = 0

    model_config = {"from_attributes": True}


class AppendTimesRequest(BaseModel):
    site_id: int
    date: str
    start_time: str
    end_time: str
    interval: Optional[int] = Field(None, ge=0)
    loads_target: Optional[int] = Field(None, ge=0)
    kind: SlotKind = SlotKind.REGULAR

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        return normalize_date(v)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return normalize_time(v)


class AppendTimesResponse(BaseModel):
    interval: int
    inserted_times: list[str]
    reactivated_times: list[str]

    model_config = {"from_attributes": True}


class DayScheduleRead(BaseModel):
    site_id: int
    date: str
    loads_target: int
    open_time: str
    close_time: str
    slot_interval: int
    workins_per_hour: int
    disabled_count: int
    updated_at: str

    model_config = {"from_attributes": True}


class SiteRead(BaseModel):
    site_id: int
    min_interval: int
