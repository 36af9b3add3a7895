"""
HTTP surface tests (FastAPI TestClient).
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from conftest import DAY
from virtual_line.database import get_db
from virtual_line.main import app
from virtual_line.routers.deps import get_config, get_notifier_dep

ADMIN = {"X-Caller-Role": "admin", "X-Caller-Phone": "563-608-3369"}
DRIVER = {"X-Caller-Role": "driver", "X-Caller-Phone": "563-555-0142"}

PUBLISH = {
    "site_id": 1,
    "date": DAY,
    "open_time": "07:00",
    "close_time": "09:00",
    "loads_target": 25,
}


@pytest.fixture
def client(session_factory, config, notifier):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_config] = lambda: config
    app.dependency_overrides[get_notifier_dep] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def published(client):
    resp = client.post("/schedule/publish", json=PUBLISH, headers=ADMIN)
    assert resp.status_code == 200
    return resp.json()


def _reserve(client, time="07:00", phone="563-555-0142"):
    hold = client.post("/slots/hold", json={"site_id": 1, "date": DAY, "time": time})
    assert hold.status_code == 200
    resp = client.post(
        "/reservations/confirm",
        json={"token": hold.json()["token"], "details": {"driver_name": "Dale", "driver_phone": phone}},
    )
    assert resp.status_code == 200
    return resp.json()


def test_preview_does_not_write(client):
    resp = client.post("/schedule/preview", json={**PUBLISH, "disabled_count": 5}, headers=ADMIN)

    assert resp.status_code == 200
    body = resp.json()
    assert body["interval"] == 5
    assert len(body["slots"]) == 25
    assert body["disabled_count"] == 5
    assert client.get("/slots/open", params={"site_id": 1, "date": DAY}).json()["times"] == []


def test_publish_and_read_settings(client, published):
    assert published == {
        "interval": 5,
        "generated_count": 25,
        "disabled_count": 0,
        "workin_count": 0,
        "holds_cleared": 0,
    }
    settings = client.get("/schedule/settings", params={"site_id": 1, "date": DAY}, headers=ADMIN)
    assert settings.status_code == 200
    assert settings.json()["slot_interval"] == 5


def test_settings_missing_day(client):
    resp = client.get("/schedule/settings", params={"site_id": 1, "date": "2030-01-01"}, headers=ADMIN)

    assert resp.status_code == 404


def test_publish_requires_admin(client):
    assert client.post("/schedule/publish", json=PUBLISH).status_code == 403
    assert client.post("/schedule/publish", json=PUBLISH, headers=DRIVER).status_code == 403


def test_admin_allow_list(client):
    with patch("virtual_line.routers.deps.settings") as mock_settings:
        mock_settings.admin_phones = ["+15639205636"]
        resp = client.post("/schedule/publish", json=PUBLISH, headers=ADMIN)

    assert resp.status_code == 403


def test_publish_validation_error(client):
    resp = client.post("/schedule/publish", json={**PUBLISH, "close_time": "06:00"}, headers=ADMIN)

    assert resp.status_code == 422
    assert "after open time" in resp.json()["detail"]


def test_bad_time_format_is_422(client):
    resp = client.post("/schedule/publish", json={**PUBLISH, "open_time": "seven"}, headers=ADMIN)

    assert resp.status_code == 422


def test_unknown_site_is_404(client):
    resp = client.get("/slots/open", params={"site_id": 7, "date": DAY})

    assert resp.status_code == 404


def test_hold_confirm_flow(client, published, notifier):
    """Driver holds, confirms, and the slot leaves the open list."""
    created = _reserve(client, "07:05")

    assert created["slot_time"] == "07:05"
    assert created["notification"] == "queued"
    times = client.get("/slots/open", params={"site_id": 1, "date": DAY}).json()["times"]
    assert "07:05" not in times
    assert len(times) == 24
    assert notifier.sent[-1][0] == "+15635550142"


def test_double_hold_conflict(client, published):
    body = {"site_id": 1, "date": DAY, "time": "07:00"}
    assert client.post("/slots/hold", json=body).status_code == 200

    resp = client.post("/slots/hold", json=body)
    assert resp.status_code == 409


def test_hold_expiry_is_utc(client, published):
    resp = client.post("/slots/hold", json={"site_id": 1, "date": DAY, "time": "07:00"})

    expires_at = datetime.fromisoformat(resp.json()["expires_at"].replace("Z", "+00:00"))
    assert expires_at.utcoffset() == timedelta(0)
    assert timedelta(0) < expires_at - datetime.now(timezone.utc) <= timedelta(seconds=120)


def test_confirm_unknown_token_is_gone(client, published):
    resp = client.post("/reservations/confirm", json={"token": "stale"})

    assert resp.status_code == 410


def test_release(client, published):
    token = client.post("/slots/hold", json={"site_id": 1, "date": DAY, "time": "07:00"}).json()["token"]

    assert client.post("/slots/release", json={"token": token}).json() == {"released": True}
    assert client.post("/slots/release", json={"token": token}).json() == {"released": False}


def test_list_all_slots(client, published):
    created = _reserve(client, "07:10")

    resp = client.get("/slots/all", params={"site_id": 1, "date": DAY}, headers=ADMIN)

    assert resp.status_code == 200
    slots = {s["time"]: s for s in resp.json()["slots"]}
    assert slots["07:10"]["reservation"]["queue_code"] == created["queue_code"]
    assert slots["07:00"]["reservation"] is None


def test_disable_slots(client, published):
    resp = client.post(
        "/slots/disabled",
        json={"site_id": 1, "date": DAY, "times": ["07:00", "7:05"], "disabled": True},
        headers=ADMIN,
    )

    assert resp.json() == {"matched": 2}
    times = client.get("/slots/open", params={"site_id": 1, "date": DAY}).json()["times"]
    assert times[0] == "07:10"


def test_append_times(client, published):
    resp = client.post(
        "/schedule/append",
        json={"site_id": 1, "date": DAY, "start_time": "09:00", "end_time": "09:30", "interval": 10},
        headers=ADMIN,
    )

    assert resp.status_code == 200
    assert resp.json()["inserted_times"] == ["09:10", "09:20", "09:30"]


def test_direct_reserve_and_reassign(client, published):
    created = client.post(
        "/reservations/direct",
        json={"site_id": 1, "date": DAY, "time": "10:15", "create_if_missing": True},
        headers=ADMIN,
    ).json()

    resp = client.post(
        f"/reservations/{created['reservation_id']}/reassign",
        json={"new_time": "07:20"},
        headers=ADMIN,
    )

    assert resp.status_code == 200
    assert resp.json()["queue_code"] == created["queue_code"]
    assert resp.json()["slot_time"] == "07:20"


def test_reassign_conflict_is_409(client, published):
    first = _reserve(client, "07:00")
    _reserve(client, "07:05")

    resp = client.post(
        f"/reservations/{first['reservation_id']}/reassign",
        json={"new_time": "07:05"},
        headers=ADMIN,
    )

    assert resp.status_code == 409


def test_edit_and_get(client, published):
    created = _reserve(client)

    resp = client.patch(
        f"/reservations/{created['reservation_id']}",
        json={"patch": {"license_plate": "IA 9000"}},
        headers=ADMIN,
    )
    assert resp.json()["updated_count"] == 1

    read = client.get(f"/reservations/{created['reservation_id']}", headers=ADMIN).json()
    assert read["license_plate"] == "IA 9000"
    assert read["queue_code"] == created["queue_code"]


def test_cancel_and_unknown(client, published):
    created = _reserve(client)

    resp = client.post(f"/reservations/{created['reservation_id']}/cancel", headers=ADMIN)
    assert resp.status_code == 200
    assert resp.json()["queue_code"] == created["queue_code"]

    assert client.post("/reservations/9999/cancel", headers=ADMIN).status_code == 404


def test_mass_cancel(client, published):
    created = _reserve(client)

    resp = client.post(
        "/reservations/mass-cancel",
        json={"ids": [created["reservation_id"], 9999]},
        headers=ADMIN,
    )

    assert resp.json() == {"canceled": [created["reservation_id"]], "failed": [9999]}


def test_mass_cancel_times(client, published):
    _reserve(client, "07:00")

    resp = client.post(
        "/reservations/mass-cancel-times",
        json={"site_id": 1, "date": DAY, "times": ["07:00", "07:05"]},
        headers=ADMIN,
    )

    assert resp.json() == {"canceled": ["07:00"], "failed": ["07:05"]}


def test_lookup_and_self_edit(client, published):
    created = _reserve(client)

    found = client.post("/reservations/lookup", json={"phone": "0142", "queue_code": created["queue_code"]})
    assert found.status_code == 200
    assert found.json()["id"] == created["reservation_id"]

    edited = client.post(
        "/reservations/self/edit",
        json={"phone": "5635550142", "queue_code": created["queue_code"], "patch": {"est_amount": 800}},
    )
    assert edited.json()["updated_count"] == 1


def test_self_edit_needs_matching_code(client, published):
    created = _reserve(client)
    wrong = "1000" if created["queue_code"] != "1000" else "1001"

    resp = client.post(
        "/reservations/self/edit",
        json={"phone": "0142", "queue_code": wrong, "patch": {"driver_name": "Mallory"}},
    )

    assert resp.status_code == 404


def test_staff_routes_reject_drivers(client, published):
    assert client.get("/slots/all", params={"site_id": 1, "date": DAY}, headers=DRIVER).status_code == 403
    assert client.post("/reservations/1/cancel", headers=DRIVER).status_code == 403


def test_facility_round_trip(client):
    resp = client.put("/facility", json={"facility_phone": "563-555-0100"}, headers=ADMIN)
    assert resp.status_code == 200

    assert client.get("/facility").json()["facility_phone"] == "+15635550100"


def test_sites(client):
    assert client.get("/sites").json() == [
        {"site_id": 1, "min_interval": 5},
        {"site_id": 2, "min_interval": 10},
    ]


def test_health_survives_redis_outage(client, mock_redis):
    with patch("virtual_line.main.redis_client") as redis:
        redis.ping.side_effect = ConnectionError("down")
        resp = client.get("/health")

    assert resp.json() == {"status": "ok", "redis": False}
