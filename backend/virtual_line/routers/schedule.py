# backend/virtual_line/routers/schedule.py
"""
Schedule API endpoints (admin).

POST /schedule/preview  - what publish would generate, no writes
POST /schedule/publish  - (re)materialize a day's slots
POST /schedule/append   - add a dense run of times without touching others
GET  /schedule/settings - parameters of the last publish
"""

from fastapi import APIRouter, Depends, Query

from ..exceptions import NotFoundError
from ..schemas.schedule import (
    AppendTimesRequest,
    AppendTimesResponse,
    DayScheduleRead,
    SchedulePreviewResponse,
    SchedulePreviewSlot,
    SchedulePublish,
    SchedulePublishResponse,
    ScheduleParams,
)
from ..services.slots import SlotStore
from .deps import get_slot_store, require_role

router = APIRouter(
    prefix="/schedule",
    tags=["schedule"],
    dependencies=[Depends(require_role("admin"))],
)


@router.post("/preview", response_model=SchedulePreviewResponse)
def preview_schedule(body: ScheduleParams, store: SlotStore = Depends(get_slot_store)):
    schedule = store.preview(
        body.site_id,
        body.date,
        body.open_time,
        body.close_time,
        body.loads_target,
        body.interval,
        body.disabled_count,
    )
    return SchedulePreviewResponse(
        interval=schedule.interval,
        slots=[SchedulePreviewSlot(time=s.time, disabled=s.disabled) for s in schedule.slots],
        disabled_count=schedule.disabled_count,
    )


@router.post("/publish", response_model=SchedulePublishResponse)
def publish_schedule(body: SchedulePublish, store: SlotStore = Depends(get_slot_store)):
    return store.publish(
        body.site_id,
        body.date,
        body.open_time,
        body.close_time,
        body.loads_target,
        interval=body.interval,
        disabled_count=body.disabled_count,
        workins_per_hour=body.workins_per_hour,
    )


@router.post("/append", response_model=AppendTimesResponse)
def append_times(body: AppendTimesRequest, store: SlotStore = Depends(get_slot_store)):
    return store.append_times(
        body.site_id,
        body.date,
        body.start_time,
        body.end_time,
        interval=body.interval,
        loads_target=body.loads_target,
        kind=body.kind,
    )


@router.get("/settings", response_model=DayScheduleRead)
def get_day_settings(
    site_id: int,
    target_date: str = Query(..., alias="date"),
    store: SlotStore = Depends(get_slot_store),
):
    day = store.get_day_settings(site_id, target_date)
    if day is None:
        raise NotFoundError(f"No schedule published for site {site_id} on {target_date}")
    return day
