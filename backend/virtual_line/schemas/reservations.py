# backend/virtual_line/schemas/reservations.py

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..services.slots.config import SlotKind, normalize_date, normalize_time


class ReservationDetails(BaseModel):
    """Driver/load details. Every field optional; unset fields are not patched."""
    driver_name: Optional[str] = None
    license_plate: Optional[str] = None
    vendor_name: Optional[str] = None
    farm_or_ticket: Optional[str] = None
    est_amount: Optional[float] = Field(None, ge=0)
    est_unit: Optional[str] = None
    driver_phone: Optional[str] = None

    def as_patch(self) -> dict:
        return self.model_dump(exclude_unset=True)


class ConfirmRequest(BaseModel):
    token: str
    details: ReservationDetails = Field(default_factory=ReservationDetails)


class DirectReserveRequest(BaseModel):
    site_id: int
    date: str
    time: str
    kind: SlotKind = SlotKind.REGULAR
    create_if_missing: bool = False
    details: ReservationDetails = Field(default_factory=ReservationDetails)

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        return normalize_date(v)

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return normalize_time(v)


class ReservationCreated(BaseModel):
    reservation_id: int
    queue_code: str
    site_id: int
    date: str
    slot_time: str
    kind: SlotKind
    notification: str

    model_config = {"from_attributes": True}


class EditRequest(BaseModel):
    patch: ReservationDetails
    notify: bool = False


class EditResponse(BaseModel):
    updated_count: int
    notification: str

    model_config = {"from_attributes": True}


class CancelRequest(BaseModel):
    notify: bool = False


class CancelResponse(BaseModel):
    reservation_id: int
    queue_code: str
    notification: str

    model_config = {"from_attributes": True}


class ReassignRequest(BaseModel):
    new_time: str
    notify: bool = False

    @field_validator("new_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return normalize_time(v)


class ReassignResponse(BaseModel):
    reservation_id: int
    queue_code: str
    slot_time: str
    changed: bool
    notification: str

    model_config = {"from_attributes": True}


class MassCancelRequest(BaseModel):
    ids: list[int]
    notify: bool = False


class MassCancelTimesRequest(BaseModel):
    site_id: int
    date: str
    times: list[str]
    kind: SlotKind = SlotKind.REGULAR
    notify: bool = False

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        return normalize_date(v)


class MassCancelResponse(BaseModel):
    canceled: list[int]
    failed: list[int]


class MassCancelTimesResponse(BaseModel):
    canceled: list[str]
    failed: list[str]


class LookupRequest(BaseModel):
    phone: str = Field(description="Full phone number or its last 4 digits")
    queue_code: str
    site_id: Optional[int] = None
    date: Optional[str] = None


class SelfEditRequest(LookupRequest):
    patch: ReservationDetails


class ReservationRead(BaseModel):
    id: int
    site_id: int
    date: str
    slot_time: str
    kind: SlotKind
    queue_code: str
    status: str
    driver_name: Optional[str] = None
    license_plate: Optional[str] = None
    vendor_name: Optional[str] = None
    farm_or_ticket: Optional[str] = None
    est_amount: Optional[float] = None
    est_unit: Optional[str] = None
    driver_phone: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    model_config = {"from_attributes": True}
