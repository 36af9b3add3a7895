# backend/virtual_line/services/slots/store.py
"""
Slot Store: the set of slot rows for a site/day.

Key: (site_id, date, slot_time, is_workin), unique in time_slots.

Write paths:
✓ publish — regenerate the day; reserved rows untouched, others upserted,
  rows no longer in the schedule soft-disabled, every hold cleared
✓ append_times — insert or re-enable a dense run, nothing else touched
✓ set_disabled — bulk flag flip
✓ ensure_slot — idempotent single-row upsert (composable inside a caller's
  transaction; used by ad hoc reservations and reassign)

Read paths sweep expired holds first and never cache across requests.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ...database import transaction
from ...exceptions import ValidationError
from ...models.generated import SiteSettings, SlotReservations, TimeSlots
from ..events import emit_slots_changed
from .calculator import (
    GeneratedSchedule,
    compute_interval,
    generate_dense_times,
    generate_schedule,
    generate_workin_times,
)
from .config import (
    ScheduleConfig,
    SlotKind,
    get_schedule_config,
    normalize_date,
    normalize_time,
    time_str_to_minutes,
    to_store_ts,
    utc_now,
)
from .holds import expire_holds, get_slot, hold_is_active, slot_is_free

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PublishResult:
    interval: int
    generated_count: int
    disabled_count: int
    workin_count: int = 0
    holds_cleared: int = 0


@dataclass(frozen=True)
class AppendResult:
    interval: int
    inserted_times: list[str]
    reactivated_times: list[str]


@dataclass(frozen=True)
class DaySchedule:
    site_id: int
    date: str
    loads_target: int
    open_time: str
    close_time: str
    slot_interval: int
    workins_per_hour: int
    disabled_count: int
    updated_at: str

    @classmethod
    def from_row(cls, row: SiteSettings) -> "DaySchedule":
        return cls(
            site_id=row.site_id,
            date=row.date,
            loads_target=row.loads_target,
            open_time=row.open_time,
            close_time=row.close_time,
            slot_interval=row.slot_interval,
            workins_per_hour=row.workins_per_hour,
            disabled_count=row.disabled_count,
            updated_at=row.updated_at,
        )


@dataclass(frozen=True)
class ReservationView:
    """Detached copy of a slot_reservations row."""
    id: int
    site_id: int
    date: str
    slot_time: str
    kind: SlotKind
    queue_code: str
    status: str
    driver_name: Optional[str]
    license_plate: Optional[str]
    vendor_name: Optional[str]
    farm_or_ticket: Optional[str]
    est_amount: Optional[float]
    est_unit: Optional[str]
    driver_phone: Optional[str]
    created_at: Optional[str]
    updated_at: Optional[str]

    @classmethod
    def from_row(cls, row: SlotReservations) -> "ReservationView":
        return cls(
            id=row.id,
            site_id=row.site_id,
            date=row.date,
            slot_time=row.slot_time,
            kind=SlotKind.from_flag(row.is_workin),
            queue_code=row.queue_code,
            status=row.status,
            driver_name=row.driver_name,
            license_plate=row.license_plate,
            vendor_name=row.vendor_name,
            farm_or_ticket=row.farm_or_ticket,
            est_amount=row.est_amount,
            est_unit=row.est_unit,
            driver_phone=row.driver_phone,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


@dataclass(frozen=True)
class SlotView:
    """One row of the admin day view."""
    time: str
    kind: SlotKind
    disabled: bool
    held: bool
    hold_expires_at: Optional[str]
    reservation: Optional[ReservationView]


class SlotStore:
    """Slot rows for a site/day, backed by time_slots."""

    def __init__(self, db: Session, config: ScheduleConfig | None = None):
        self.db = db
        self.config = config or get_schedule_config()

    # ── Schedule ─────────────────────────────────────────────────────────

    def preview(
        self,
        site_id: int,
        date: str,
        open_time: str,
        close_time: str,
        loads_target: int,
        interval: int | None = None,
        disabled_count: int = 0,
    ) -> GeneratedSchedule:
        """What publish would generate. No writes."""
        normalize_date(date)
        return generate_schedule(
            open_time,
            close_time,
            loads_target,
            self.config.min_interval_for(site_id),
            interval,
            disabled_count,
        )

    def publish(
        self,
        site_id: int,
        date: str,
        open_time: str,
        close_time: str,
        loads_target: int,
        interval: int | None = None,
        disabled_count: int = 0,
        workins_per_hour: int = 0,
        now: datetime | None = None,
    ) -> PublishResult:
        """
        (Re)materialize a day's slots from schedule parameters.

        All-or-nothing: inputs are validated before the transaction opens and
        any store error rolls the whole publish back.
        """
        now = now or utc_now()
        date = normalize_date(date)
        open_time = normalize_time(open_time)
        close_time = normalize_time(close_time)
        min_interval = self.config.min_interval_for(site_id)

        schedule = generate_schedule(
            open_time, close_time, loads_target, min_interval, interval, disabled_count
        )
        workin_times = generate_workin_times(
            open_time, close_time, workins_per_hour, min_interval
        )

        with transaction(self.db):
            self._upsert_day_settings(
                site_id, date, open_time, close_time, loads_target,
                schedule.interval, workins_per_hour, schedule.disabled_count, now,
            )
            cleared = self._clear_day_holds(site_id, date)
            self._sync_kind(
                site_id, date, SlotKind.REGULAR,
                {s.time: s.disabled for s in schedule.slots},
            )
            self._sync_kind(
                site_id, date, SlotKind.WORKIN,
                {t: False for t in workin_times},
            )

        logger.info(
            f"Schedule published: site={site_id} {date} {open_time}-{close_time} "
            f"interval={schedule.interval} slots={len(schedule.slots)} "
            f"disabled={schedule.disabled_count} workins={len(workin_times)} "
            f"holds_cleared={cleared}"
        )
        emit_slots_changed(site_id, date)

        return PublishResult(
            interval=schedule.interval,
            generated_count=len(schedule.slots),
            disabled_count=schedule.disabled_count,
            workin_count=len(workin_times),
            holds_cleared=cleared,
        )

    def append_times(
        self,
        site_id: int,
        date: str,
        start_time: str,
        end_time: str,
        interval: int | None = None,
        loads_target: int | None = None,
        kind: SlotKind = SlotKind.REGULAR,
    ) -> AppendResult:
        """
        Insert (or re-enable) a dense run of times without touching other rows.

        Step is interval if given, otherwise derived from loads_target the
        same way publish derives it; never below the site floor.
        """
        date = normalize_date(date)
        start_time = normalize_time(start_time)
        end_time = normalize_time(end_time)
        min_interval = self.config.min_interval_for(site_id)

        if not interval and not loads_target:
            raise ValidationError("Either interval or loads_target is required")
        if (interval is not None and interval < 0) or (loads_target is not None and loads_target < 0):
            raise ValidationError("interval and loads_target must be positive")

        step = compute_interval(
            time_str_to_minutes(start_time),
            time_str_to_minutes(end_time),
            loads_target or 1,
            min_interval,
            interval,
        )
        times = generate_dense_times(start_time, end_time, step)

        with transaction(self.db):
            existing = self._day_rows(site_id, date, kind)
            reactivated = [
                t for t in times if t in existing and existing[t].disabled
            ]
            if reactivated:
                self.db.execute(
                    update(TimeSlots)
                    .where(
                        TimeSlots.site_id == site_id,
                        TimeSlots.date == date,
                        TimeSlots.is_workin == kind.is_workin,
                        TimeSlots.slot_time.in_(reactivated),
                    )
                    .values(disabled=0)
                )
            inserted = [t for t in times if t not in existing]
            for t in inserted:
                self.db.add(self._new_row(site_id, date, t, kind))
            self.db.flush()

        logger.info(
            f"Times appended: site={site_id} {date} {start_time}-{end_time} "
            f"step={step} inserted={len(inserted)} reactivated={len(reactivated)}"
        )
        if inserted or reactivated:
            emit_slots_changed(site_id, date)

        return AppendResult(
            interval=step,
            inserted_times=inserted,
            reactivated_times=reactivated,
        )

    def get_day_settings(self, site_id: int, date: str) -> Optional[DaySchedule]:
        """Parameters of the last publish for the day, if any."""
        self.config.min_interval_for(site_id)
        with transaction(self.db):
            row = self.db.get(SiteSettings, (site_id, normalize_date(date)))
            day = DaySchedule.from_row(row) if row else None
        return day

    # ── Slots ────────────────────────────────────────────────────────────

    def ensure_slot(
        self,
        site_id: int,
        date: str,
        time: str,
        kind: SlotKind = SlotKind.REGULAR,
    ) -> TimeSlots:
        """
        Return the slot row, creating it when absent. Does not commit.

        Runs inside the caller's transaction so provisioning and whatever the
        caller does with the slot land together or not at all.
        """
        self.config.min_interval_for(site_id)
        date = normalize_date(date)
        time = normalize_time(time)

        slot = get_slot(self.db, site_id, date, time, kind)
        if slot is None:
            slot = self._new_row(site_id, date, time, kind)
            self.db.add(slot)
            self.db.flush()
            logger.info(f"Slot provisioned ad hoc: site={site_id} {date} {time} ({kind.value})")
        return slot

    def list_open(
        self,
        site_id: int,
        date: str,
        kind: SlotKind = SlotKind.REGULAR,
        now: datetime | None = None,
    ) -> list[str]:
        """Sorted "HH:MM" times a driver can hold right now."""
        now = now or utc_now()
        date = normalize_date(date)
        self.config.min_interval_for(site_id)

        with transaction(self.db):
            expire_holds(self.db, now)
            rows = (
                self.db.query(TimeSlots.slot_time)
                .filter(
                    TimeSlots.site_id == site_id,
                    TimeSlots.date == date,
                    TimeSlots.is_workin == kind.is_workin,
                    *slot_is_free(now),
                )
                .order_by(TimeSlots.slot_time)
                .all()
            )
        return [r.slot_time for r in rows]

    def list_all(
        self,
        site_id: int,
        date: str,
        now: datetime | None = None,
    ) -> list[SlotView]:
        """Every slot row of the day with its hold/reservation state."""
        now = now or utc_now()
        date = normalize_date(date)
        self.config.min_interval_for(site_id)

        with transaction(self.db):
            expire_holds(self.db, now)
            slots = (
                self.db.query(TimeSlots)
                .filter(TimeSlots.site_id == site_id, TimeSlots.date == date)
                .order_by(TimeSlots.is_workin, TimeSlots.slot_time)
                .all()
            )
            views = [
                SlotView(
                    time=s.slot_time,
                    kind=SlotKind.from_flag(s.is_workin),
                    disabled=bool(s.disabled),
                    held=hold_is_active(s, now),
                    hold_expires_at=s.hold_expires_at if hold_is_active(s, now) else None,
                    reservation=ReservationView.from_row(s.reservation) if s.reservation else None,
                )
                for s in slots
            ]
        return views

    def set_disabled(
        self,
        site_id: int,
        date: str,
        times: list[str],
        disabled: bool,
        kind: SlotKind = SlotKind.REGULAR,
    ) -> int:
        """
        Bulk enable/disable. Idempotent; times with no row are ignored.

        Returns:
            Number of rows matched.
        """
        date = normalize_date(date)
        self.config.min_interval_for(site_id)
        normalized = sorted({normalize_time(t) for t in times})
        if not normalized:
            return 0

        with transaction(self.db):
            result = self.db.execute(
                update(TimeSlots)
                .where(
                    TimeSlots.site_id == site_id,
                    TimeSlots.date == date,
                    TimeSlots.is_workin == kind.is_workin,
                    TimeSlots.slot_time.in_(normalized),
                )
                .values(disabled=1 if disabled else 0)
            )
            matched = result.rowcount

        logger.info(
            f"Slots {'disabled' if disabled else 'enabled'}: "
            f"site={site_id} {date} matched={matched}/{len(normalized)}"
        )
        if matched:
            emit_slots_changed(site_id, date)
        return matched

    # ── Helpers ──────────────────────────────────────────────────────────

    def _day_rows(self, site_id: int, date: str, kind: SlotKind) -> dict[str, TimeSlots]:
        rows = (
            self.db.query(TimeSlots)
            .filter(
                TimeSlots.site_id == site_id,
                TimeSlots.date == date,
                TimeSlots.is_workin == kind.is_workin,
            )
            .all()
        )
        return {r.slot_time: r for r in rows}

    @staticmethod
    def _new_row(site_id: int, date: str, time: str, kind: SlotKind, disabled: bool = False) -> TimeSlots:
        return TimeSlots(
            site_id=site_id,
            date=date,
            slot_time=time,
            is_workin=kind.is_workin,
            disabled=1 if disabled else 0,
        )

    def _upsert_day_settings(
        self,
        site_id: int,
        date: str,
        open_time: str,
        close_time: str,
        loads_target: int,
        interval: int,
        workins_per_hour: int,
        disabled_count: int,
        now: datetime,
    ) -> None:
        row = self.db.get(SiteSettings, (site_id, date))
        if row is None:
            row = SiteSettings(site_id=site_id, date=date)
            self.db.add(row)
        row.loads_target = loads_target
        row.open_time = open_time
        row.close_time = close_time
        row.slot_interval = interval
        row.workins_per_hour = workins_per_hour
        row.disabled_count = disabled_count
        row.updated_at = to_store_ts(now)
        self.db.flush()

    def _clear_day_holds(self, site_id: int, date: str) -> int:
        """A republish invalidates every in-flight claim for the day."""
        result = self.db.execute(
            update(TimeSlots)
            .where(
                TimeSlots.site_id == site_id,
                TimeSlots.date == date,
                TimeSlots.hold_token.is_not(None),
            )
            .values(hold_token=None, hold_expires_at=None)
        )
        return result.rowcount

    def _sync_kind(
        self,
        site_id: int,
        date: str,
        kind: SlotKind,
        wanted: dict[str, bool],
    ) -> None:
        """
        Make the non-reserved rows of one kind match `wanted` (time -> disabled).

        Reserved rows are never touched. Rows not in `wanted` are
        soft-disabled, not deleted.
        """
        base = [
            TimeSlots.site_id == site_id,
            TimeSlots.date == date,
            TimeSlots.is_workin == kind.is_workin,
            TimeSlots.reservation_id.is_(None),
        ]
        enabled = [t for t, off in wanted.items() if not off]
        disabled = [t for t, off in wanted.items() if off]

        self.db.execute(
            update(TimeSlots)
            .where(*base, TimeSlots.slot_time.not_in(list(wanted)))
            .values(disabled=1)
        )
        if enabled:
            self.db.execute(
                update(TimeSlots)
                .where(*base, TimeSlots.slot_time.in_(enabled))
                .values(disabled=0)
            )
        if disabled:
            self.db.execute(
                update(TimeSlots)
                .where(*base, TimeSlots.slot_time.in_(disabled))
                .values(disabled=1)
            )

        existing = self._day_rows(site_id, date, kind)
        for t, off in wanted.items():
            if t not in existing:
                self.db.add(self._new_row(site_id, date, t, kind, disabled=off))
        self.db.flush()
