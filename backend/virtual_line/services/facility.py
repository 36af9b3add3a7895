"""
Facility contact numbers (single row, id=1).

Shown to drivers and appended to confirmation texts when set.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..database import transaction
from ..exceptions import ValidationError
from ..models.generated import FacilityInfo
from ..utils.phone import normalize_phone
from .slots.config import to_store_ts, utc_now

logger = logging.getLogger(__name__)

FACILITY_ROW_ID = 1


@dataclass(frozen=True)
class FacilityContacts:
    facility_phone: Optional[str] = None
    support_phone: Optional[str] = None
    updated_at: Optional[str] = None


def load_facility_contacts(db: Session) -> FacilityContacts:
    """Read inside the caller's transaction (no commit)."""
    row = db.get(FacilityInfo, FACILITY_ROW_ID)
    if row is None:
        return FacilityContacts()
    return FacilityContacts(
        facility_phone=row.facility_phone,
        support_phone=row.support_phone,
        updated_at=row.updated_at,
    )


def get_facility_contacts(db: Session) -> FacilityContacts:
    with transaction(db):
        contacts = load_facility_contacts(db)
    return contacts


def update_facility_contacts(
    db: Session,
    facility_phone: Optional[str] = None,
    support_phone: Optional[str] = None,
    now: datetime | None = None,
) -> FacilityContacts:
    """Set contact numbers. None leaves a number unchanged, "" clears it."""
    now = now or utc_now()
    updates = {}
    for field, value in (("facility_phone", facility_phone), ("support_phone", support_phone)):
        if value is None:
            continue
        if value == "":
            updates[field] = None
            continue
        phone = normalize_phone(value)
        if not phone:
            raise ValidationError(f"Invalid {field.replace('_', ' ')}: {value!r}")
        updates[field] = phone

    with transaction(db):
        row = db.get(FacilityInfo, FACILITY_ROW_ID)
        if row is None:
            row = FacilityInfo(id=FACILITY_ROW_ID)
            db.add(row)
        for field, value in updates.items():
            setattr(row, field, value)
        row.updated_at = to_store_ts(now)
        db.flush()
        contacts = load_facility_contacts(db)

    logger.info(f"Facility contacts updated: {sorted(updates)}")
    return contacts
