# backend/virtual_line/routers/reservations.py
"""
Reservations API endpoints.

Driver:
    POST /reservations/confirm       - hold token + details -> reservation
    POST /reservations/lookup        - phone (or last 4) + queue code
    POST /reservations/self/edit     - lookup, then patch details

Staff (admin / probe):
    POST   /reservations/direct
    GET    /reservations/{id}
    PATCH  /reservations/{id}
    POST   /reservations/{id}/cancel
    POST   /reservations/{id}/reassign
    POST   /reservations/mass-cancel
    POST   /reservations/mass-cancel-times
"""

import logging

from fastapi import APIRouter, Depends

from ..schemas.reservations import (
    CancelRequest,
    CancelResponse,
    ConfirmRequest,
    DirectReserveRequest,
    EditRequest,
    EditResponse,
    LookupRequest,
    MassCancelRequest,
    MassCancelResponse,
    MassCancelTimesRequest,
    MassCancelTimesResponse,
    ReassignRequest,
    ReassignResponse,
    ReservationCreated,
    ReservationRead,
    SelfEditRequest,
)
from ..services.reservations import ReservationManager
from .deps import STAFF_ROLES, get_reservation_manager, require_role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reservations", tags=["reservations"])

staff_only = [Depends(require_role(*STAFF_ROLES))]


# ── Driver ───────────────────────────────────────────────────────────────

@router.post("/confirm", response_model=ReservationCreated)
def confirm_reservation(
    body: ConfirmRequest,
    manager: ReservationManager = Depends(get_reservation_manager),
):
    return manager.confirm(body.token, body.details.as_patch())


@router.post("/lookup", response_model=ReservationRead)
def lookup_reservation(
    body: LookupRequest,
    manager: ReservationManager = Depends(get_reservation_manager),
):
    return manager.lookup(body.phone, body.queue_code, body.site_id, body.date)


@router.post("/self/edit", response_model=EditResponse)
def self_edit_reservation(
    body: SelfEditRequest,
    manager: ReservationManager = Depends(get_reservation_manager),
):
    """Both factors must match one live reservation before the patch applies."""
    found = manager.lookup(body.phone, body.queue_code, body.site_id, body.date)
    return manager.edit(found.id, body.patch.as_patch())


# ── Staff ────────────────────────────────────────────────────────────────

@router.post("/direct", response_model=ReservationCreated, dependencies=staff_only)
def direct_reserve(
    body: DirectReserveRequest,
    manager: ReservationManager = Depends(get_reservation_manager),
):
    return manager.direct_reserve(
        body.site_id,
        body.date,
        body.time,
        body.details.as_patch(),
        kind=body.kind,
        create_if_missing=body.create_if_missing,
    )


@router.post("/mass-cancel", response_model=MassCancelResponse, dependencies=staff_only)
def mass_cancel(
    body: MassCancelRequest,
    manager: ReservationManager = Depends(get_reservation_manager),
):
    return manager.mass_cancel(body.ids, notify=body.notify)


@router.post("/mass-cancel-times", response_model=MassCancelTimesResponse, dependencies=staff_only)
def mass_cancel_times(
    body: MassCancelTimesRequest,
    manager: ReservationManager = Depends(get_reservation_manager),
):
    return manager.mass_cancel_times(
        body.site_id, body.date, body.times, kind=body.kind, notify=body.notify
    )


@router.get("/{reservation_id}", response_model=ReservationRead, dependencies=staff_only)
def get_reservation(
    reservation_id: int,
    manager: ReservationManager = Depends(get_reservation_manager),
):
    return manager.get(reservation_id)


@router.patch("/{reservation_id}", response_model=EditResponse, dependencies=staff_only)
def edit_reservation(
    reservation_id: int,
    body: EditRequest,
    manager: ReservationManager = Depends(get_reservation_manager),
):
    return manager.edit(reservation_id, body.patch.as_patch(), notify=body.notify)


@router.post("/{reservation_id}/cancel", response_model=CancelResponse, dependencies=staff_only)
def cancel_reservation(
    reservation_id: int,
    body: CancelRequest | None = None,
    manager: ReservationManager = Depends(get_reservation_manager),
):
    notify = body.notify if body else False
    return manager.cancel(reservation_id, notify=notify)


@router.post("/{reservation_id}/reassign", response_model=ReassignResponse, dependencies=staff_only)
def reassign_reservation(
    reservation_id: int,
    body: ReassignRequest,
    manager: ReservationManager = Depends(get_reservation_manager),
):
    return manager.reassign(reservation_id, body.new_time, notify=body.notify)
