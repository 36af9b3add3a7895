# backend/virtual_line/services/reservations.py
"""
Reservation Manager: attaches driver details to a slot.

Entry points:
✓ confirm — consume a live hold (driver path)
✓ direct_reserve — claim an open slot without a hold (staff / phone-in path)
✓ edit, cancel, reassign, mass_cancel, mass_cancel_times
✓ lookup — phone (or last 4 digits) + queue code, doubles as the
  self-service authorization check

Every slot/reservation transition is one transaction whose conditional
UPDATE row count decides the outcome. Notifications and events go out
after commit and never fail or roll back the mutation.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..database import transaction
from ..exceptions import (
    ConflictError,
    GoneError,
    NotFoundError,
    UnavailableError,
    ValidationError,
)
from ..models.generated import SlotReservations, TimeSlots
from ..utils.phone import digits_only, normalize_phone
from .events import emit_event, emit_slots_changed
from .facility import load_facility_contacts
from .notifier import Notifier, get_notifier
from .slots.config import (
    ScheduleConfig,
    SlotKind,
    get_schedule_config,
    normalize_date,
    normalize_time,
    to_store_ts,
    utc_now,
)
from .slots.holds import conflict_reason, expire_holds, get_slot, slot_is_free
from .slots.store import ReservationView, SlotStore

logger = logging.getLogger(__name__)

STATUS_RESERVED = "reserved"
STATUS_CANCELED = "canceled"

DETAIL_FIELDS = (
    "driver_name",
    "license_plate",
    "vendor_name",
    "farm_or_ticket",
    "est_amount",
    "est_unit",
    "driver_phone",
)


# ── Results ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ReservationResult:
    reservation_id: int
    queue_code: str
    site_id: int
    date: str
    slot_time: str
    kind: SlotKind
    notification: str = "skipped"


@dataclass(frozen=True)
class EditResult:
    updated_count: int
    notification: str = "skipped"


@dataclass(frozen=True)
class CancelResult:
    reservation_id: int
    queue_code: str
    notification: str = "skipped"


@dataclass(frozen=True)
class ReassignResult:
    reservation_id: int
    queue_code: str
    slot_time: str
    changed: bool
    notification: str = "skipped"


@dataclass
class MassCancelResult:
    canceled: list = field(default_factory=list)
    failed: list = field(default_factory=list)


# ── Helpers ──────────────────────────────────────────────────────────────

def generate_queue_code() -> str:
    """Four-digit staff-facing code. Not unique; lookup takes the newest match."""
    return str(secrets.randbelow(9000) + 1000)


def clean_details(details: Optional[dict[str, Any]]) -> dict[str, Any]:
    """
    Validate a details dict / edit patch.

    Only keys present are returned, so the result doubles as a partial patch.
    Blank strings become NULL; phones are normalized to +1XXXXXXXXXX.
    """
    details = details or {}
    unknown = set(details) - set(DETAIL_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown reservation fields: {sorted(unknown)}")

    cleaned: dict[str, Any] = {}
    for key, value in details.items():
        if isinstance(value, str):
            value = value.strip() or None

        if key == "driver_phone" and value is not None:
            phone = normalize_phone(value)
            if not phone:
                raise ValidationError(f"Invalid phone number: {value!r}")
            value = phone
        elif key == "est_amount" and value is not None:
            try:
                value = float(value)
            except (TypeError, ValueError):
                raise ValidationError(f"est_amount must be a number, got {value!r}")
            if value < 0:
                raise ValidationError("est_amount must not be negative")

        cleaned[key] = value
    return cleaned


def _live_reservation(db: Session, reservation_id: int) -> SlotReservations:
    row = db.get(SlotReservations, reservation_id)
    if row is None or row.status != STATUS_RESERVED:
        raise NotFoundError(f"Reservation {reservation_id} not found")
    return row


def _confirmation_text(result: ReservationResult, facility_phone: Optional[str]) -> str:
    text = (
        f"Reservation confirmed for {result.date} at {result.slot_time}. "
        f"Queue code: {result.queue_code}."
    )
    if facility_phone:
        text += f" Questions? Call {facility_phone}."
    return text


class ReservationManager:
    """Reservation lifecycle on top of the slot store."""

    def __init__(
        self,
        db: Session,
        config: ScheduleConfig | None = None,
        notifier: Notifier | None = None,
    ):
        self.db = db
        self.config = config or get_schedule_config()
        self.notifier = notifier or get_notifier()
        self.store = SlotStore(db, self.config)

    # ── Create ───────────────────────────────────────────────────────────

    def confirm(
        self,
        token: str,
        details: Optional[dict[str, Any]] = None,
        now: datetime | None = None,
    ) -> ReservationResult:
        """
        Turn a live hold into a reservation.

        Raises:
            GoneError: token unknown, expired, released or already confirmed
            ValidationError: bad details (hold is left in place)
        """
        now = now or utc_now()
        details = clean_details(details)
        if not token:
            raise GoneError("Hold token is required")

        with transaction(self.db):
            expire_holds(self.db, now)

            slot = (
                self.db.query(TimeSlots)
                .filter(TimeSlots.hold_token == token)
                .first()
            )
            if slot is None:
                raise GoneError("Hold expired or not found")

            reservation = self._new_reservation(slot, details, now)

            # Claim only if the hold is still ours and unexpired at this instant
            claimed = self.db.execute(
                update(TimeSlots)
                .where(
                    TimeSlots.id == slot.id,
                    TimeSlots.hold_token == token,
                    TimeSlots.hold_expires_at > to_store_ts(now),
                    TimeSlots.reservation_id.is_(None),
                )
                .values(
                    reservation_id=reservation.id,
                    reserved_at=to_store_ts(now),
                    hold_token=None,
                    hold_expires_at=None,
                )
            )
            if claimed.rowcount != 1:
                raise GoneError("Hold expired or not found")

            result = self._result(reservation)
            facility_phone = load_facility_contacts(self.db).facility_phone

        logger.info(
            f"Reservation confirmed: id={result.reservation_id} site={result.site_id} "
            f"{result.date} {result.slot_time} code={result.queue_code}"
        )
        return self._after_create(result, details.get("driver_phone"), facility_phone)

    def direct_reserve(
        self,
        site_id: int,
        date: str,
        time: str,
        details: Optional[dict[str, Any]] = None,
        kind: SlotKind = SlotKind.REGULAR,
        create_if_missing: bool = False,
        now: datetime | None = None,
    ) -> ReservationResult:
        """
        Reserve an open slot without a hold.

        With create_if_missing the slot row is provisioned first (ad hoc
        time), in the same transaction as the claim.

        Raises:
            NotFoundError: no such slot and create_if_missing is off
            ConflictError: slot disabled, reserved or actively held
        """
        now = now or utc_now()
        date = normalize_date(date)
        time = normalize_time(time)
        self.config.min_interval_for(site_id)
        details = clean_details(details)

        with transaction(self.db):
            expire_holds(self.db, now)

            if create_if_missing:
                slot = self.store.ensure_slot(site_id, date, time, kind)
            else:
                slot = get_slot(self.db, site_id, date, time, kind)
                if slot is None:
                    raise NotFoundError(f"No slot at site {site_id} {date} {time} ({kind.value})")

            reservation = self._new_reservation(slot, details, now)

            claimed = self.db.execute(
                update(TimeSlots)
                .where(TimeSlots.id == slot.id, *slot_is_free(now))
                .values(
                    reservation_id=reservation.id,
                    reserved_at=to_store_ts(now),
                    hold_token=None,
                    hold_expires_at=None,
                )
            )
            if claimed.rowcount != 1:
                self.db.refresh(slot)
                raise ConflictError(conflict_reason(slot, now))

            result = self._result(reservation)
            facility_phone = load_facility_contacts(self.db).facility_phone

        logger.info(
            f"Reservation created directly: id={result.reservation_id} site={site_id} "
            f"{date} {time} ({kind.value}) code={result.queue_code}"
        )
        return self._after_create(result, details.get("driver_phone"), facility_phone)

    # ── Mutate ───────────────────────────────────────────────────────────

    def edit(
        self,
        reservation_id: int,
        patch: Optional[dict[str, Any]],
        notify: bool = False,
        now: datetime | None = None,
    ) -> EditResult:
        """Partial update of driver details. Queue code and slot stay put."""
        now = now or utc_now()
        patch = clean_details(patch)

        with transaction(self.db):
            row = _live_reservation(self.db, reservation_id)
            if not patch:
                return EditResult(updated_count=0)

            for key, value in patch.items():
                setattr(row, key, value)
            row.updated_at = to_store_ts(now)
            phone, date, slot_time = row.driver_phone, row.date, row.slot_time
            site_id, code = row.site_id, row.queue_code

        logger.info(f"Reservation edited: id={reservation_id} fields={sorted(patch)}")
        emit_event("reservation_updated", {"reservation_id": reservation_id, "site_id": site_id, "date": date})

        notification = "skipped"
        if notify:
            notification = self.notifier.dispatch(
                phone,
                f"Your reservation for {date} at {slot_time} was updated. Queue code: {code}.",
            )
        return EditResult(updated_count=1, notification=notification)

    def cancel(
        self,
        reservation_id: int,
        notify: bool = False,
        now: datetime | None = None,
    ) -> CancelResult:
        """
        Cancel a reservation and free its slot in one transaction.

        Raises:
            NotFoundError: unknown or already canceled
        """
        now = now or utc_now()

        with transaction(self.db):
            row = _live_reservation(self.db, reservation_id)
            ts = to_store_ts(now)

            self.db.execute(
                update(TimeSlots)
                .where(TimeSlots.reservation_id == reservation_id)
                .values(reservation_id=None, reserved_at=None)
            )
            flipped = self.db.execute(
                update(SlotReservations)
                .where(
                    SlotReservations.id == reservation_id,
                    SlotReservations.status == STATUS_RESERVED,
                )
                .values(status=STATUS_CANCELED, canceled_at=ts, updated_at=ts)
            )
            if flipped.rowcount != 1:
                raise NotFoundError(f"Reservation {reservation_id} not found")

            site_id, date, slot_time = row.site_id, row.date, row.slot_time
            code, phone = row.queue_code, row.driver_phone

        logger.info(f"Reservation canceled: id={reservation_id} site={site_id} {date} {slot_time}")
        emit_slots_changed(site_id, date)
        emit_event("reservation_canceled", {"reservation_id": reservation_id, "site_id": site_id, "date": date})

        notification = "skipped"
        if notify:
            notification = self.notifier.dispatch(
                phone,
                f"Your reservation for {date} at {slot_time} (code {code}) was canceled.",
            )
        return CancelResult(reservation_id=reservation_id, queue_code=code, notification=notification)

    def reassign(
        self,
        reservation_id: int,
        new_time: str,
        notify: bool = False,
        now: datetime | None = None,
    ) -> ReassignResult:
        """
        Move a reservation to another time on the same site/day/kind.

        The target slot is provisioned if the schedule lacks it; a disabled or
        republish-dropped target is still accepted. Old slot freed and new slot
        occupied in one transaction; queue code unchanged.

        Raises:
            NotFoundError: unknown or canceled reservation
            ConflictError: target reserved or actively held
        """
        now = now or utc_now()
        new_time = normalize_time(new_time)

        with transaction(self.db):
            expire_holds(self.db, now)
            row = _live_reservation(self.db, reservation_id)
            kind = SlotKind.from_flag(row.is_workin)
            site_id, date, code = row.site_id, row.date, row.queue_code

            if row.slot_time == new_time:
                return ReassignResult(
                    reservation_id=reservation_id,
                    queue_code=code,
                    slot_time=new_time,
                    changed=False,
                )

            target = self.store.ensure_slot(site_id, date, new_time, kind)
            old_time = row.slot_time

            # time_slots.reservation_id is unique: release before claiming
            self.db.execute(
                update(TimeSlots)
                .where(TimeSlots.reservation_id == reservation_id)
                .values(reservation_id=None, reserved_at=None)
            )
            claimed = self.db.execute(
                update(TimeSlots)
                .where(TimeSlots.id == target.id, *slot_is_free(now, include_disabled=True))
                .values(
                    reservation_id=reservation_id,
                    reserved_at=to_store_ts(now),
                    hold_token=None,
                    hold_expires_at=None,
                )
            )
            if claimed.rowcount != 1:
                self.db.refresh(target)
                # Raising rolls the release back with it
                raise ConflictError(conflict_reason(target, now))

            row.slot_time = new_time
            row.updated_at = to_store_ts(now)
            phone = row.driver_phone

        logger.info(
            f"Reservation reassigned: id={reservation_id} site={site_id} {date} "
            f"{old_time} -> {new_time}"
        )
        emit_slots_changed(site_id, date)
        emit_event("reservation_reassigned", {"reservation_id": reservation_id, "site_id": site_id, "date": date})

        notification = "skipped"
        if notify:
            notification = self.notifier.dispatch(
                phone,
                f"Your reservation on {date} moved to {new_time}. Queue code: {code}.",
            )
        return ReassignResult(
            reservation_id=reservation_id,
            queue_code=code,
            slot_time=new_time,
            changed=True,
            notification=notification,
        )

    # ── Bulk ─────────────────────────────────────────────────────────────

    def mass_cancel(
        self,
        reservation_ids: list[int],
        notify: bool = False,
        now: datetime | None = None,
    ) -> MassCancelResult:
        """Cancel each id independently; report exactly which succeeded."""
        result = MassCancelResult()
        for reservation_id in dict.fromkeys(reservation_ids):
            try:
                self.cancel(reservation_id, notify=notify, now=now)
            except (NotFoundError, UnavailableError) as e:
                logger.warning(f"Mass cancel: id={reservation_id} failed: {e.detail}")
                result.failed.append(reservation_id)
            else:
                result.canceled.append(reservation_id)
        return result

    def mass_cancel_times(
        self,
        site_id: int,
        date: str,
        times: list[str],
        kind: SlotKind = SlotKind.REGULAR,
        notify: bool = False,
        now: datetime | None = None,
    ) -> MassCancelResult:
        """Cancel whatever reservation holds each time; times with none fail."""
        date = normalize_date(date)
        self.config.min_interval_for(site_id)
        normalized = list(dict.fromkeys(normalize_time(t) for t in times))

        with transaction(self.db):
            slots = (
                self.db.query(TimeSlots.slot_time, TimeSlots.reservation_id)
                .filter(
                    TimeSlots.site_id == site_id,
                    TimeSlots.date == date,
                    TimeSlots.is_workin == kind.is_workin,
                    TimeSlots.slot_time.in_(normalized),
                )
                .all()
            )
        owners = {s.slot_time: s.reservation_id for s in slots}

        result = MassCancelResult()
        for t in normalized:
            reservation_id = owners.get(t)
            if reservation_id is None:
                result.failed.append(t)
                continue
            try:
                self.cancel(reservation_id, notify=notify, now=now)
            except (NotFoundError, UnavailableError) as e:
                logger.warning(f"Mass cancel: {date} {t} failed: {e.detail}")
                result.failed.append(t)
            else:
                result.canceled.append(t)
        return result

    # ── Read ─────────────────────────────────────────────────────────────

    def get(self, reservation_id: int) -> ReservationView:
        with transaction(self.db):
            view = ReservationView.from_row(_live_reservation(self.db, reservation_id))
        return view

    def lookup(
        self,
        phone_or_suffix: str,
        queue_code: str,
        site_id: int | None = None,
        date: str | None = None,
    ) -> ReservationView:
        """
        Most recent live reservation matching phone and queue code.

        phone_or_suffix is a full US number or its last 4 digits.

        Raises:
            ValidationError: malformed phone or queue code
            NotFoundError: no match
        """
        queue_code = (queue_code or "").strip()
        if not (len(queue_code) == 4 and queue_code.isdigit()):
            raise ValidationError("Queue code must be 4 digits")

        digits = digits_only(phone_or_suffix or "")
        filters = [
            SlotReservations.queue_code == queue_code,
            SlotReservations.status == STATUS_RESERVED,
        ]
        if len(digits) == 4:
            filters.append(SlotReservations.driver_phone.like(f"%{digits}"))
        else:
            phone = normalize_phone(phone_or_suffix)
            if not phone:
                raise ValidationError("Phone must be a full number or its last 4 digits")
            filters.append(SlotReservations.driver_phone == phone)

        if site_id is not None:
            filters.append(SlotReservations.site_id == site_id)
        if date is not None:
            filters.append(SlotReservations.date == normalize_date(date))

        with transaction(self.db):
            row = (
                self.db.query(SlotReservations)
                .filter(*filters)
                .order_by(SlotReservations.id.desc())
                .first()
            )
            if row is None:
                raise NotFoundError("No reservation matches that phone and queue code")
            view = ReservationView.from_row(row)
        return view

    # ── Internals ────────────────────────────────────────────────────────

    def _new_reservation(
        self,
        slot: TimeSlots,
        details: dict[str, Any],
        now: datetime,
    ) -> SlotReservations:
        ts = to_store_ts(now)
        reservation = SlotReservations(
            site_id=slot.site_id,
            date=slot.date,
            slot_time=slot.slot_time,
            is_workin=slot.is_workin,
            queue_code=generate_queue_code(),
            status=STATUS_RESERVED,
            created_at=ts,
            updated_at=ts,
            **details,
        )
        self.db.add(reservation)
        self.db.flush()
        return reservation

    @staticmethod
    def _result(reservation: SlotReservations) -> ReservationResult:
        return ReservationResult(
            reservation_id=reservation.id,
            queue_code=reservation.queue_code,
            site_id=reservation.site_id,
            date=reservation.date,
            slot_time=reservation.slot_time,
            kind=SlotKind.from_flag(reservation.is_workin),
        )

    def _after_create(
        self,
        result: ReservationResult,
        phone: Optional[str],
        facility_phone: Optional[str],
    ) -> ReservationResult:
        emit_slots_changed(result.site_id, result.date)
        emit_event(
            "reservation_created",
            {
                "reservation_id": result.reservation_id,
                "site_id": result.site_id,
                "date": result.date,
                "slot_time": result.slot_time,
            },
        )
        notification = self.notifier.dispatch(phone, _confirmation_text(result, facility_phone))
        return ReservationResult(
            reservation_id=result.reservation_id,
            queue_code=result.queue_code,
            site_id=result.site_id,
            date=result.date,
            slot_time=result.slot_time,
            kind=result.kind,
            notification=notification,
        )
