# backend/virtual_line/schemas/slots.py
"""
Pydantic schemas for slots API.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..services.slots.config import SlotKind, normalize_date, normalize_time
from .reservations import ReservationRead


class OpenSlotsResponse(BaseModel):
    """Times a driver can hold right now."""
    site_id: int
    date: str
    kind: SlotKind
    times: list[str]


class SlotRead(BaseModel):
    """One slot in the admin day view."""
    time: str
    kind: SlotKind
    disabled: bool
    held: bool
    hold_expires_at: Optional[str] = None
    reservation: Optional[ReservationRead] = None

    model_config = {"from_attributes": True}


class DaySlotsResponse(BaseModel):
    site_id: int
    date: str
    slots: list[SlotRead]


class HoldRequest(BaseModel):
    site_id: int
    date: str = Field(description="Date in YYYY-MM-DD format")
    time: str = Field(description="Time in HH:MM format")
    kind: SlotKind = SlotKind.REGULAR

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        return normalize_date(v)

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return normalize_time(v)


class HoldResponse(BaseModel):
    token: str
    expires_at: datetime
    site_id: int
    date: str
    time: str
    kind: SlotKind

    model_config = {"from_attributes": True}

    @field_validator("expires_at")
    @classmethod
    def mark_utc(cls, v: datetime) -> datetime:
        # the store keeps naive UTC
        return v.replace(tzinfo=timezone.utc) if v.tzinfo is None else v


class ReleaseRequest(BaseModel):
    token: str


class ReleaseResponse(BaseModel):
    released: bool


class SetDisabledRequest(BaseModel):
    site_id: int
    date: str
    times: list[str]
    disabled: bool = True
    kind: SlotKind = SlotKind.REGULAR

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        return normalize_date(v)

    @field_validator("times")
    @classmethod
    def validate_times(cls, v: list[str]) -> list[str]:
        return [normalize_time(t) for t in v]


class SetDisabledResponse(BaseModel):
    matched: int
