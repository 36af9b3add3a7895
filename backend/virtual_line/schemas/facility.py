# backend/virtual_line/schemas/facility.py

from typing import Optional

from pydantic import BaseModel


class FacilityRead(BaseModel):
    facility_phone: Optional[str] = None
    support_phone: Optional[str] = None
    updated_at: Optional[str] = None

    model_config = {"from_attributes": True}


class FacilityUpdate(BaseModel):
    """None leaves a number unchanged, "" clears it."""
    facility_phone: Optional[str] = None
    support_phone: Optional[str] = None
