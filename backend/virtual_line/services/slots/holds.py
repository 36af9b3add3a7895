# backend/virtual_line/services/slots/holds.py
"""
Hold Manager: short-lived exclusive claims on open slots.

Per-slot state:
    OPEN → HELD → CONFIRMED            (Reservation Manager takes over)
                → EXPIRED → OPEN       (TTL passed; swept lazily)
                → RELEASED → OPEN      (explicit release)

A hold is two columns on time_slots (hold_token, hold_expires_at).
Expiry is checked on read and cleared by expire_holds(), which every
hold/list/confirm path runs first. There is no background timer.

Grant is one conditional UPDATE: the WHERE clause re-checks "open" so two
concurrent hold() calls on one slot produce exactly one winner.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from ...database import transaction
from ...exceptions import ConflictError, NotFoundError
from ...models.generated import TimeSlots
from ..events import emit_slots_changed
from .config import (
    ScheduleConfig,
    SlotKind,
    get_schedule_config,
    normalize_date,
    normalize_time,
    to_store_ts,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HoldGrant:
    token: str
    expires_at: datetime
    site_id: int
    date: str
    time: str
    kind: SlotKind


def expire_holds(db: Session, now: datetime) -> int:
    """
    Clear every hold whose expiry has passed. Does not commit.

    Returns:
        Number of holds cleared.
    """
    result = db.execute(
        update(TimeSlots)
        .where(
            TimeSlots.hold_expires_at.is_not(None),
            TimeSlots.hold_expires_at <= to_store_ts(now),
        )
        .values(hold_token=None, hold_expires_at=None)
    )
    return result.rowcount


def get_slot(
    db: Session,
    site_id: int,
    date: str,
    time: str,
    kind: SlotKind = SlotKind.REGULAR,
) -> TimeSlots | None:
    """Slot row by its unique key (expects normalized date/time)."""
    return (
        db.query(TimeSlots)
        .filter(
            TimeSlots.site_id == site_id,
            TimeSlots.date == date,
            TimeSlots.slot_time == time,
            TimeSlots.is_workin == kind.is_workin,
        )
        .first()
    )


def hold_is_active(slot: TimeSlots, now: datetime) -> bool:
    return bool(
        slot.hold_token
        and slot.hold_expires_at
        and slot.hold_expires_at > to_store_ts(now)
    )


def slot_is_free(now: datetime, include_disabled: bool = False):
    """
    SQL criteria for "nobody owns this slot": no reservation and no live hold.

    include_disabled=False also requires the slot to be enabled (driver paths).
    """
    criteria = [
        TimeSlots.reservation_id.is_(None),
        or_(
            TimeSlots.hold_token.is_(None),
            TimeSlots.hold_expires_at <= to_store_ts(now),
        ),
    ]
    if not include_disabled:
        criteria.append(TimeSlots.disabled == 0)
    return criteria


def conflict_reason(slot: TimeSlots, now: datetime) -> str:
    """Human-readable reason a slot cannot be claimed."""
    when = f"{slot.date} {slot.slot_time}"
    if slot.reservation_id is not None:
        return f"Slot {when} is already reserved"
    if hold_is_active(slot, now):
        return f"Slot {when} is held until {slot.hold_expires_at}"
    if slot.disabled:
        return f"Slot {when} is disabled"
    return f"Slot {when} is not available"


class HoldManager:
    """Grants, sweeps and releases holds."""

    def __init__(self, db: Session, config: ScheduleConfig | None = None):
        self.db = db
        self.config = config or get_schedule_config()

    def hold(
        self,
        site_id: int,
        date: str,
        time: str,
        kind: SlotKind = SlotKind.REGULAR,
        now: datetime | None = None,
    ) -> HoldGrant:
        """
        Claim an open slot for hold_ttl_seconds.

        Raises:
            NotFoundError: unknown site or no such slot
            ConflictError: slot disabled, reserved or already held
        """
        # Whole seconds, so the stored expiry is exactly now + TTL
        now = (now or utc_now()).replace(microsecond=0)
        date = normalize_date(date)
        time = normalize_time(time)
        self.config.min_interval_for(site_id)

        token = uuid4().hex
        expires_at = now + self.config.hold_ttl

        with transaction(self.db):
            expire_holds(self.db, now)

            slot = get_slot(self.db, site_id, date, time, kind)
            if slot is None:
                raise NotFoundError(f"No slot at site {site_id} {date} {time} ({kind.value})")

            result = self.db.execute(
                update(TimeSlots)
                .where(TimeSlots.id == slot.id, *slot_is_free(now))
                .values(hold_token=token, hold_expires_at=to_store_ts(expires_at))
            )
            if result.rowcount != 1:
                self.db.refresh(slot)
                raise ConflictError(conflict_reason(slot, now))

        logger.info(f"Hold granted: site={site_id} {date} {time} until {expires_at}")
        emit_slots_changed(site_id, date)

        return HoldGrant(
            token=token,
            expires_at=expires_at,
            site_id=site_id,
            date=date,
            time=time,
            kind=kind,
        )

    def expire_sweep(self, now: datetime | None = None) -> int:
        """Clear expired holds in their own transaction."""
        now = now or utc_now()
        with transaction(self.db):
            cleared = expire_holds(self.db, now)
        if cleared:
            logger.info(f"Expired holds cleared: {cleared}")
        return cleared

    def release(self, token: str, now: datetime | None = None) -> bool:
        """
        Give a hold back early.

        No-op (returns False) when the token is unknown, already expired
        (swept or not), or consumed by confirm.
        """
        if not token:
            return False
        now = now or utc_now()
        live = (TimeSlots.hold_token == token, TimeSlots.hold_expires_at > to_store_ts(now))

        with transaction(self.db):
            slot = self.db.query(TimeSlots).filter(*live).first()
            if slot is None:
                return False
            site_id, date = slot.site_id, slot.date
            self.db.execute(
                update(TimeSlots)
                .where(TimeSlots.id == slot.id, *live)
                .values(hold_token=None, hold_expires_at=None)
            )

        logger.info(f"Hold released: site={site_id} {date}")
        emit_slots_changed(site_id, date)
        return True
