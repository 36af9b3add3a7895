# backend/virtual_line/routers/slots.py
"""
Slots API endpoints.

Driver:  GET /slots/open, POST /slots/hold, POST /slots/release
Staff:   GET /slots/all, POST /slots/disabled
"""

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query

from ..schemas.slots import (
    DaySlotsResponse,
    HoldRequest,
    HoldResponse,
    OpenSlotsResponse,
    ReleaseRequest,
    ReleaseResponse,
    SetDisabledRequest,
    SetDisabledResponse,
    SlotRead,
)
from ..services.slots import HoldManager, SlotKind, SlotStore
from .deps import STAFF_ROLES, get_hold_manager, get_slot_store, require_role

router = APIRouter(prefix="/slots", tags=["slots"])


@router.get("/open", response_model=OpenSlotsResponse)
def list_open_slots(
    site_id: int,
    target_date: str = Query(..., alias="date"),
    kind: SlotKind = SlotKind.REGULAR,
    store: SlotStore = Depends(get_slot_store),
):
    """Times a driver can hold right now (expired holds swept first)."""
    times = store.list_open(site_id, target_date, kind)
    return OpenSlotsResponse(site_id=site_id, date=target_date, kind=kind, times=times)


@router.get(
    "/all",
    response_model=DaySlotsResponse,
    dependencies=[Depends(require_role(*STAFF_ROLES))],
)
def list_all_slots(
    site_id: int,
    target_date: str = Query(..., alias="date"),
    store: SlotStore = Depends(get_slot_store),
):
    """Every slot of the day with hold and reservation state."""
    views = store.list_all(site_id, target_date)
    return DaySlotsResponse(
        site_id=site_id,
        date=target_date,
        slots=[SlotRead.model_validate(asdict(v)) for v in views],
    )


@router.post("/hold", response_model=HoldResponse)
def hold_slot(body: HoldRequest, holds: HoldManager = Depends(get_hold_manager)):
    return holds.hold(body.site_id, body.date, body.time, body.kind)


@router.post("/release", response_model=ReleaseResponse)
def release_hold(body: ReleaseRequest, holds: HoldManager = Depends(get_hold_manager)):
    return ReleaseResponse(released=holds.release(body.token))


@router.post(
    "/disabled",
    response_model=SetDisabledResponse,
    dependencies=[Depends(require_role("admin"))],
)
def set_disabled(body: SetDisabledRequest, store: SlotStore = Depends(get_slot_store)):
    matched = store.set_disabled(body.site_id, body.date, body.times, body.disabled, body.kind)
    return SetDisabledResponse(matched=matched)
