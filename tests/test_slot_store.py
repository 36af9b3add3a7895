"""
Slot Store tests: publish, append, listing and the disable flag.
"""

import json
from datetime import timedelta

import pytest

from conftest import DAY
from virtual_line.exceptions import NotFoundError, ValidationError
from virtual_line.models.generated import SiteSettings, TimeSlots
from virtual_line.services.reservations import ReservationManager
from virtual_line.services.slots import HoldManager, SlotKind


def _rows(db, kind=SlotKind.REGULAR):
    """Plain snapshot of the day's rows; releases the read transaction."""
    db.expire_all()
    rows = (
        db.query(
            TimeSlots.slot_time,
            TimeSlots.disabled,
            TimeSlots.hold_token,
            TimeSlots.reservation_id,
        )
        .filter(TimeSlots.date == DAY, TimeSlots.is_workin == kind.is_workin)
        .order_by(TimeSlots.slot_time)
        .all()
    )
    db.rollback()
    return rows


def test_publish_materializes_slots(store, now):
    """Publishing creates one row per generated time and records the day."""
    result = store.publish(1, DAY, "07:00", "09:00", 25, now=now)

    assert result.interval == 5
    assert result.generated_count == 25
    assert result.disabled_count == 0
    assert len(store.list_open(1, DAY, now=now)) == 25

    day = store.get_day_settings(1, DAY)
    assert day.loads_target == 25
    assert day.slot_interval == 5
    assert day.open_time == "07:00"


def test_publish_applies_disabled_policy(store, now):
    result = store.publish(1, DAY, "07:00", "07:45", 10, disabled_count=3, now=now)

    assert result.disabled_count == 3
    open_times = store.list_open(1, DAY, now=now)
    assert len(open_times) == 7
    assert "07:10" not in open_times


def test_publish_validation_writes_nothing(store, db, now):
    """Invalid parameters fail before any row is written."""
    with pytest.raises(ValidationError):
        store.publish(1, DAY, "09:00", "07:00", 10, now=now)
    with pytest.raises(ValidationError):
        store.publish(1, DAY, "07:00", "09:00", 0, now=now)
    with pytest.raises(ValidationError):
        store.publish(1, "06/02/2025", "07:00", "09:00", 10, now=now)

    assert _rows(db) == []
    assert db.query(SiteSettings).count() == 0


def test_unknown_site_rejected(store, now):
    with pytest.raises(NotFoundError):
        store.publish(99, DAY, "07:00", "09:00", 10, now=now)
    with pytest.raises(NotFoundError):
        store.list_open(99, DAY, now=now)


def test_republish_preserves_reservations_and_clears_holds(db, store, config, notifier, published_day, now):
    """Reserved rows survive, holds are void, stale rows are soft-disabled."""
    manager = ReservationManager(db, config, notifier)
    booked = manager.direct_reserve(1, DAY, "07:15", {"driver_name": "Ann"}, now=now)
    grant = HoldManager(db, config).hold(1, DAY, "07:20", now=now)

    result = store.publish(1, DAY, "07:30", "08:00", 7, now=now + timedelta(seconds=5))

    assert result.holds_cleared == 1
    rows = {r.slot_time: r for r in _rows(db)}
    assert rows["07:15"].reservation_id == booked.reservation_id
    assert rows["07:20"].hold_token is None
    assert rows["07:00"].disabled == 1
    assert rows["07:35"].disabled == 0
    assert store.list_open(1, DAY, now=now) == [
        "07:30", "07:35", "07:40", "07:45", "07:50", "07:55", "08:00",
    ]
    assert grant.token not in {r.hold_token for r in rows.values()}


def test_republish_reenables_previously_stale_rows(store, now):
    store.publish(1, DAY, "07:00", "07:20", 5, now=now)
    store.publish(1, DAY, "07:10", "07:20", 3, now=now)
    assert store.list_open(1, DAY, now=now) == ["07:10", "07:15", "07:20"]

    store.publish(1, DAY, "07:00", "07:20", 5, now=now)
    assert store.list_open(1, DAY, now=now) == ["07:00", "07:05", "07:10", "07:15", "07:20"]


def test_publish_generates_workins(store, now):
    result = store.publish(1, DAY, "07:00", "08:00", 13, workins_per_hour=2, now=now)

    assert result.workin_count == 3
    assert store.list_open(1, DAY, SlotKind.WORKIN, now=now) == ["07:00", "07:30", "08:00"]


def test_append_inserts_and_reactivates(store, published_day, now):
    """Append widens the day without touching existing rows."""
    store.set_disabled(1, DAY, ["07:55"], True)

    result = store.append_times(1, DAY, "07:55", "08:20", interval=5)

    assert result.inserted_times == ["08:05", "08:10", "08:15", "08:20"]
    assert result.reactivated_times == ["07:55"]
    assert len(store.list_open(1, DAY, now=now)) == 17


def test_append_needs_interval_or_target(store, published_day):
    with pytest.raises(ValidationError):
        store.append_times(1, DAY, "08:00", "09:00")


def test_append_step_never_below_floor(store):
    result = store.append_times(2, DAY, "10:00", "10:30", interval=5)

    assert result.interval == 10
    assert result.inserted_times == ["10:00", "10:10", "10:20", "10:30"]


def test_set_disabled_is_idempotent(store, published_day, now):
    assert store.set_disabled(1, DAY, ["07:00", "07:05", "23:59"], True) == 2
    assert store.set_disabled(1, DAY, ["07:00", "07:05"], True) == 2
    assert "07:00" not in store.list_open(1, DAY, now=now)

    store.set_disabled(1, DAY, ["07:00"], False)
    assert "07:00" in store.list_open(1, DAY, now=now)


def test_list_open_ignores_expired_holds(db, store, config, published_day, now):
    """An expired hold is absent even before anything else touches the row."""
    HoldManager(db, config).hold(1, DAY, "07:00", now=now)

    assert "07:00" not in store.list_open(1, DAY, now=now + timedelta(seconds=60))
    assert "07:00" in store.list_open(1, DAY, now=now + timedelta(seconds=120))


def test_list_all_shows_state(db, store, config, notifier, published_day, now):
    ReservationManager(db, config, notifier).direct_reserve(
        1, DAY, "07:05", {"driver_name": "Bo", "license_plate": "IA 123"}, now=now
    )
    HoldManager(db, config).hold(1, DAY, "07:10", now=now)
    store.set_disabled(1, DAY, ["07:15"], True)

    views = {v.time: v for v in store.list_all(1, DAY, now=now)}

    assert len(views) == 13
    assert views["07:05"].reservation.driver_name == "Bo"
    assert views["07:10"].held is True
    assert views["07:15"].disabled is True
    assert views["07:00"].reservation is None and not views["07:00"].held


def test_ensure_slot_is_idempotent(db, store):
    first = store.ensure_slot(1, DAY, "13:37")
    second = store.ensure_slot(1, DAY, "13:37")
    db.commit()

    assert first.id == second.id
    assert len(_rows(db)) == 1


def test_publish_emits_slots_changed(store, mock_redis, now):
    store.publish(1, DAY, "07:00", "07:30", 7, now=now)

    queue, payload = mock_redis.rpush.call_args.args
    event = json.loads(payload)
    assert queue == "events:broadcast"
    assert event["type"] == "slots_changed"
    assert event["site_id"] == 1 and event["date"] == DAY


def test_event_bus_failure_does_not_fail_publish(store, mock_redis, now):
    mock_redis.rpush.side_effect = ConnectionError("redis down")

    result = store.publish(1, DAY, "07:00", "07:30", 7, now=now)

    assert result.generated_count == 7
    assert len(store.list_open(1, DAY, now=now)) == 7
