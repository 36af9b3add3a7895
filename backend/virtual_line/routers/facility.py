# backend/virtual_line/routers/facility.py

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.facility import FacilityRead, FacilityUpdate
from ..schemas.schedule import SiteRead
from ..services.facility import get_facility_contacts, update_facility_contacts
from ..services.slots import ScheduleConfig
from .deps import get_config, require_role

router = APIRouter(tags=["facility"])


@router.get("/facility", response_model=FacilityRead)
def read_facility(db: Session = Depends(get_db)):
    return get_facility_contacts(db)


@router.put(
    "/facility",
    response_model=FacilityRead,
    dependencies=[Depends(require_role("admin"))],
)
def write_facility(body: FacilityUpdate, db: Session = Depends(get_db)):
    return update_facility_contacts(db, body.facility_phone, body.support_phone)


@router.get("/sites", response_model=list[SiteRead])
def list_sites(config: ScheduleConfig = Depends(get_config)):
    return [
        SiteRead(site_id=site_id, min_interval=minutes)
        for site_id, minutes in sorted(config.site_min_intervals.items())
    ]
