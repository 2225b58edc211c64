"""HTTP-level tests through FastAPI's TestClient."""

import pytest
from fastapi.testclient import TestClient

from nailbook.database import get_db
from nailbook.main import app
from nailbook.redis_client import get_redis
from nailbook.services import google_sheets
from nailbook.services.google_sheets import SheetsNotConfigured

from conftest import DAY, make_day, queued_events


@pytest.fixture
def client(session_factory, fake_redis, events):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: fake_redis
    app.state.events = events
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestSlotsApi:
    def test_create_and_list(self, client, nail_tech):
        resp = client.post("/slots/", json={"nail_tech_id": nail_tech.id, "date": DAY, "time": "10:00"})
        assert resp.status_code == 201
        assert resp.json()["status"] == "available"

        resp = client.get("/slots/available", params={"nail_tech_id": nail_tech.id})
        assert [s["time"] for s in resp.json()] == ["10:00"]

    def test_bad_time_format(self, client, nail_tech):
        resp = client.post("/slots/", json={"nail_tech_id": nail_tech.id, "date": DAY, "time": "9am"})
        assert resp.status_code == 422

    def test_blocked_date_rejected(self, client, nail_tech):
        assert client.post("/blocked_dates/", json={"start_date": DAY}).status_code == 201
        resp = client.post("/slots/", json={"nail_tech_id": nail_tech.id, "date": DAY, "time": "10:00"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"

    def test_missing_slot(self, client):
        assert client.get("/slots/12345").status_code == 404


class TestBookingsApi:
    def test_create_then_conflict(self, client, db, nail_tech, fake_redis):
        day = make_day(db, nail_tech.id)
        resp = client.post("/bookings/", json={"slot_id": day["10:00"].id, "service_type": "mani_pedi"})
        assert resp.status_code == 201
        body = resp.json()
        assert body["booking"]["booking_code"] == "GN-00001"
        assert body["booking"]["linked_slot_ids"] == [day["10:30"].id]
        assert queued_events(fake_redis, "booking_created")

        resp = client.post("/bookings/", json={"slot_id": day["10:30"].id})
        assert resp.status_code == 409
        assert resp.json()["error"] == "slot_unavailable"

    def test_insufficient_consecutive(self, client, db, nail_tech):
        day = make_day(db, nail_tech.id)
        resp = client.post("/bookings/", json={"slot_id": day["13:00"].id, "service_type": "mani_pedi"})
        assert resp.status_code == 409
        assert resp.json()["error"] == "insufficient_consecutive_slots"

    def test_sync_release_and_listing(self, client, db, nail_tech):
        day = make_day(db, nail_tech.id)
        first = client.post("/bookings/", json={"slot_id": day["10:00"].id}).json()["booking"]
        second = client.post("/bookings/", json={"slot_id": day["13:00"].id}).json()["booking"]

        resp = client.post("/bookings/sync-form", json={
            "booking_code": first["booking_code"],
            "fields": {"Name": "Ana", "Email": "ana@example.com"},
            "row_reference": "2",
        })
        assert resp.json()["processed"] is True
        assert resp.json()["booking"]["status"] == "confirmed"

        eligible = client.get("/bookings/release").json()
        assert [e["booking"]["id"] for e in eligible] == [second["id"]]

        resp = client.post("/bookings/release", json={"booking_ids": [first["id"], second["id"]]})
        assert resp.json()["released"] == 1
        assert resp.json()["released_ids"] == [second["id"]]

        active = client.get("/bookings/").json()
        assert [b["booking"]["id"] for b in active] == [first["id"]]

    def test_unknown_code_sync_not_processed(self, client):
        resp = client.post("/bookings/sync-form", json={"booking_code": "GN-09999", "fields": {"Name": "A"}})
        assert resp.status_code == 200
        assert resp.json() == {"processed": False, "booking": None}

    def test_recover_unknown_code(self, client):
        resp = client.post("/bookings/recover", json={"booking_code": "GN-09999"})
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"

    def test_restore_slots_report(self, client):
        resp = client.post("/bookings/restore-slots")
        assert resp.json() == {"total_confirmed": 0, "missing": 0, "restored": [], "failed": []}

    def test_reschedule(self, client, db, nail_tech):
        day = make_day(db, nail_tech.id)
        booking = client.post("/bookings/", json={"slot_id": day["10:00"].id}).json()["booking"]

        resp = client.post(f"/bookings/{booking['id']}/reschedule", json={"slot_id": day["13:00"].id})
        assert resp.status_code == 200
        assert resp.json()["slot_id"] == day["13:00"].id

        other = client.post("/bookings/", json={"slot_id": day["10:00"].id}).json()["booking"]
        resp = client.post(f"/bookings/{other['id']}/reschedule", json={"slot_id": day["13:00"].id})
        assert resp.status_code == 409
        assert resp.json()["error"] == "slot_unavailable"

    def test_recover_from_form(self, client, db, nail_tech):
        day = make_day(db, nail_tech.id)
        payload = {
            "booking_code": "GN-00005",
            "slot_id": day["10:00"].id,
            "fields": {"Name": "Ana", "Email": "ana@example.com"},
            "row_reference": "9",
        }
        resp = client.post("/bookings/recover-from-form", json=payload)
        assert resp.status_code == 201
        assert resp.json()["booking_code"] == "GN-00005"
        assert resp.json()["status"] == "confirmed"

        resp = client.post("/bookings/recover-from-form", json=payload)
        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"


class TestCronApi:
    def test_sync_forms_reads_sheet(self, client, db, nail_tech, monkeypatch):
        day = make_day(db, nail_tech.id)
        booking = client.post("/bookings/", json={"slot_id": day["10:00"].id}).json()["booking"]
        rows = [
            ["Timestamp", "bookingId", "Name", "Email"],
            ["3/11/2030 9:05:00", booking["booking_code"], "Ana", "ana@example.com"],
        ]
        monkeypatch.setattr(google_sheets, "fetch_sheet_rows", lambda settings=None: rows)

        resp = client.get("/cron/sync-forms")
        assert resp.status_code == 200
        assert resp.json() == {"processed": 1, "skipped": 0, "failed": []}
        assert client.get(f"/bookings/{booking['id']}").json()["booking"]["status"] == "confirmed"

    def test_sync_forms_without_sheet_config(self, client, monkeypatch):
        def not_configured(settings=None):
            raise SheetsNotConfigured("GOOGLE_SHEETS_ID is not set")

        monkeypatch.setattr(google_sheets, "fetch_sheet_rows", not_configured)
        resp = client.get("/cron/sync-forms")
        assert resp.status_code == 503
