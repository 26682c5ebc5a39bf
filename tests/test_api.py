"""End-to-end tests for the HTTP surface."""

import sqlite3
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from shiftboard.db import create_tables
from shiftboard.main import app
from shiftboard.models.profile import ProfileCreate, Role, create_profile

# Set up in-memory test DB with cross-thread access and inject into app
test_conn = sqlite3.connect(":memory:", check_same_thread=False)
test_conn.row_factory = sqlite3.Row
test_conn.execute("PRAGMA foreign_keys = ON")
create_tables(test_conn)
app.state.db = test_conn

client = TestClient(app)


@pytest.fixture(autouse=True)
def _reset_db():
    """Clear all data between tests."""
    test_conn.executescript(
        """
        DELETE FROM notifications;
        DELETE FROM push_subscriptions;
        DELETE FROM shift_assignments;
        DELETE FROM recurring_assignments;
        DELETE FROM shift_instances;
        DELETE FROM shift_templates;
        DELETE FROM profiles;
        """
    )
    yield


def _as(profile):
    return {"X-User-Id": str(profile.id)}


def _seed_profile(name="Alice", role=Role.REGULAR):
    return create_profile(test_conn, ProfileCreate(full_name=name, role=role))


def _seed_template(admin, byday=("MO", "WE")):
    resp = client.post(
        "/api/templates",
        json={"title": "Front Desk", "start_time": "09:00", "end_time": "12:00", "byday": list(byday)},
        headers=_as(admin),
    )
    assert resp.status_code == 201
    return resp.json()


def _resolve(profile, template_id, shift_date="2026-01-05"):
    resp = client.post(
        "/api/shifts/resolve",
        json={"instance_id": -1, "template_id": template_id, "shift_date": shift_date},
        headers=_as(profile),
    )
    assert resp.status_code == 200
    return resp.json()["instance_id"]


class TestHealthAndAuth:
    def test_healthz(self):
        assert client.get("/healthz").json() == {"status": "ok"}

    def test_missing_user_is_401(self):
        assert client.get("/api/templates").status_code == 401

    def test_unknown_user_is_401(self):
        assert client.get("/api/templates", headers={"X-User-Id": "999"}).status_code == 401

    def test_regular_cannot_create_template(self):
        volunteer = _seed_profile()
        resp = client.post(
            "/api/templates",
            json={"title": "X", "start_time": "09:00", "end_time": "10:00", "byday": ["MO"]},
            headers=_as(volunteer),
        )
        assert resp.status_code == 403


class TestTemplates:
    def test_create_and_list(self):
        admin = _seed_profile("Ada", Role.ADMIN)
        body = _seed_template(admin)
        assert body["byday"] == ["MO", "WE"]
        assert body["repeats"] == "Every Monday and Wednesday"
        assert body["start_time"] == "09:00"
        assert body["capacity"] == 6

        listed = client.get("/api/templates", headers=_as(admin)).json()
        assert [t["id"] for t in listed] == [body["id"]]

    def test_legacy_rrule(self):
        admin = _seed_profile("Ada", Role.ADMIN)
        resp = client.post(
            "/api/templates",
            json={"title": "Tue", "start_time": "09:00", "end_time": "10:00", "rrule": "FREQ=WEEKLY;BYDAY=TU"},
            headers=_as(admin),
        )
        assert resp.status_code == 201
        assert resp.json()["byday"] == ["TU"]

    def test_bad_weekday_is_422(self):
        admin = _seed_profile("Ada", Role.ADMIN)
        resp = client.post(
            "/api/templates",
            json={"title": "X", "start_time": "09:00", "end_time": "10:00", "byday": ["XX"]},
            headers=_as(admin),
        )
        assert resp.status_code == 422

    def test_patch_metadata(self):
        admin = _seed_profile("Ada", Role.ADMIN)
        template = _seed_template(admin)
        resp = client.patch(
            f"/api/templates/{template['id']}", json={"title": "Reception"}, headers=_as(admin)
        )
        assert resp.status_code == 200
        assert resp.json()["title"] == "Reception"
        assert resp.json()["byday"] == ["MO", "WE"]

    def test_patch_missing_is_404(self):
        admin = _seed_profile("Ada", Role.ADMIN)
        resp = client.patch("/api/templates/999", json={"title": "X"}, headers=_as(admin))
        assert resp.status_code == 404


class TestWeekBoard:
    def test_week_has_six_slots_per_shift(self):
        admin = _seed_profile("Ada", Role.ADMIN)
        volunteer = _seed_profile()
        _seed_template(admin)

        resp = client.get("/api/shifts/week", params={"day": "2026-01-07"}, headers=_as(volunteer))

        assert resp.status_code == 200
        body = resp.json()
        assert body["week_start"] == "2026-01-05"
        assert body["week_end"] == "2026-01-11"
        assert [s["shift_date"] for s in body["shifts"]] == ["2026-01-05", "2026-01-07"]
        first = body["shifts"][0]
        assert first["instance_id"] > 0
        assert len(first["slots"]) == 6
        assert first["slots"][0]["label"] == "Needs Lead Coverage"
        assert first["slots"][0]["editable"] is False
        assert first["slots"][1]["label"] == "No Volunteer Assigned"

    def test_offset_moves_week(self):
        admin = _seed_profile("Ada", Role.ADMIN)
        resp = client.get(
            "/api/shifts/week", params={"day": "2026-01-07", "offset": 1}, headers=_as(admin)
        )
        assert resp.json()["week_start"] == "2026-01-12"

    def test_pending_request_shows_in_slot(self):
        admin = _seed_profile("Ada", Role.ADMIN)
        volunteer = _seed_profile()
        template = _seed_template(admin)
        instance_id = _resolve(volunteer, template["id"])
        client.post("/api/assignments/request", json={"instance_id": instance_id}, headers=_as(volunteer))

        body = client.get("/api/shifts/week", params={"day": "2026-01-05"}, headers=_as(admin)).json()
        monday = next(s for s in body["shifts"] if s["instance_id"] == instance_id)
        assert monday["slots"][1]["label"] == "Pending"
        assert monday["slots"][1]["state"] == "pending"

    def test_instance_notes(self):
        admin = _seed_profile("Ada", Role.ADMIN)
        template = _seed_template(admin)
        instance_id = _resolve(admin, template["id"])
        resp = client.put(
            f"/api/shifts/{instance_id}/notes", json={"notes": " Short staffed "}, headers=_as(admin)
        )
        assert resp.status_code == 200
        assert resp.json()["notes"] == "Short staffed"

    def test_resolve_without_template_is_404(self):
        volunteer = _seed_profile()
        resp = client.post("/api/shifts/resolve", json={"instance_id": -5}, headers=_as(volunteer))
        assert resp.status_code == 404


class TestAssignmentWorkflow:
    def test_request_approve_flow(self):
        admin = _seed_profile("Ada", Role.ADMIN)
        volunteer = _seed_profile()
        template = _seed_template(admin)
        instance_id = _resolve(volunteer, template["id"])

        resp = client.post(
            "/api/assignments/request", json={"instance_id": instance_id}, headers=_as(volunteer)
        )
        assert resp.status_code == 201
        assignment = resp.json()["assignment"]
        assert assignment["status"] == "pending"

        again = client.post(
            "/api/assignments/request", json={"instance_id": instance_id}, headers=_as(volunteer)
        )
        assert again.status_code == 409
        assert again.json()["detail"] == "You are already on this shift!"

        feed = client.get("/api/notifications/feed", headers=_as(admin)).json()
        assert [item["id"] for item in feed] == [assignment["id"]]

        approved = client.post(f"/api/assignments/{assignment['id']}/approve", headers=_as(admin))
        assert approved.status_code == 200
        assert approved.json()["assignment"]["status"] == "active"
        assert approved.json()["warning"] == "Volunteer has not enabled push notifications."

    def test_request_virtual_shift(self):
        admin = _seed_profile("Ada", Role.ADMIN)
        volunteer = _seed_profile()
        template = _seed_template(admin)
        resp = client.post(
            "/api/assignments/request",
            json={"instance_id": -123, "template_id": template["id"], "shift_date": "2026-01-07"},
            headers=_as(volunteer),
        )
        assert resp.status_code == 201
        assert resp.json()["assignment"]["shift_instance_id"] > 0

    def test_volunteer_cannot_approve(self):
        volunteer = _seed_profile()
        assert client.post("/api/assignments/1/approve", headers=_as(volunteer)).status_code == 403

    def test_deny_without_reason_is_422(self):
        admin = _seed_profile("Ada", Role.ADMIN)
        volunteer = _seed_profile()
        template = _seed_template(admin)
        instance_id = _resolve(volunteer, template["id"])
        pending = client.post(
            "/api/assignments/request", json={"instance_id": instance_id}, headers=_as(volunteer)
        ).json()["assignment"]

        resp = client.post(
            f"/api/assignments/{pending['id']}/deny", json={"reason": ""}, headers=_as(admin)
        )
        assert resp.status_code == 422
        assert resp.json()["detail"] == "Please add a denial reason."

    def test_assign_drop_and_my_shifts(self):
        admin = _seed_profile("Ada", Role.ADMIN)
        volunteer = _seed_profile()
        template = _seed_template(admin)
        instance_id = _resolve(admin, template["id"])

        assigned = client.post(
            "/api/assignments",
            json={"volunteer_id": volunteer.id, "instance_id": instance_id},
            headers=_as(admin),
        )
        assert assigned.status_code == 201
        assignment_id = assigned.json()["assignment"]["id"]

        no_reason = client.post(
            f"/api/assignments/{assignment_id}/drop", json={}, headers=_as(volunteer)
        )
        assert no_reason.status_code == 422

        dropped = client.post(
            f"/api/assignments/{assignment_id}/drop", json={"reason": "Sick"}, headers=_as(volunteer)
        )
        assert dropped.status_code == 200
        assert dropped.json()["assignment"]["dropped_reason"] == "Sick"

        feed = client.get("/api/notifications/feed", headers=_as(volunteer)).json()
        assert feed[0]["status"] == "dropped"

    def test_admin_remove(self):
        admin = _seed_profile("Ada", Role.ADMIN)
        volunteer = _seed_profile()
        template = _seed_template(admin)
        instance_id = _resolve(admin, template["id"])
        assignment_id = client.post(
            "/api/assignments",
            json={"volunteer_id": volunteer.id, "instance_id": instance_id},
            headers=_as(admin),
        ).json()["assignment"]["id"]

        resp = client.post(f"/api/assignments/{assignment_id}/remove", headers=_as(admin))
        assert resp.status_code == 200
        assert resp.json()["assignment"]["dropped_reason"] == "Removed by admin"

        again = client.post(f"/api/assignments/{assignment_id}/remove", headers=_as(admin))
        assert again.status_code == 409


class TestRecurring:
    def test_validation_message(self):
        admin = _seed_profile("Ada", Role.ADMIN)
        volunteer = _seed_profile()
        template = _seed_template(admin)
        resp = client.post(
            "/api/recurring",
            json={"volunteer_id": volunteer.id, "template_id": template["id"], "starts_on": "2026-01-05"},
            headers=_as(admin),
        )
        assert resp.status_code == 422
        assert resp.json()["detail"] == "Select at least one weekday."

    def test_save_list_delete(self):
        admin = _seed_profile("Ada", Role.ADMIN)
        volunteer = _seed_profile()
        template = _seed_template(admin)
        saved = client.post(
            "/api/recurring",
            json={
                "volunteer_id": volunteer.id,
                "template_id": template["id"],
                "starts_on": "2026-01-05",
                "ends_on": "2026-01-31",
                "byday": ["MO"],
            },
            headers=_as(admin),
        )
        assert saved.status_code == 201
        assert saved.json()["count"] == 4

        patterns = client.get(
            "/api/recurring", params={"volunteer_id": volunteer.id}, headers=_as(admin)
        ).json()
        assert len(patterns) == 1
        assert patterns[0]["repeats"] == "Every Monday"
        assert patterns[0]["template_title"] == "Front Desk"

        deleted = client.delete(f"/api/recurring/{patterns[0]['id']}", headers=_as(admin))
        assert deleted.status_code == 200
        assert deleted.json()["count"] == 4

    def test_delete_missing_is_404(self):
        admin = _seed_profile("Ada", Role.ADMIN)
        assert client.delete("/api/recurring/999", headers=_as(admin)).status_code == 404


class TestProfiles:
    def test_me(self):
        volunteer = _seed_profile()
        body = client.get("/api/profiles/me", headers=_as(volunteer)).json()
        assert body["display_name"] == "Alice"
        assert body["role"] == "Regular Volunteer"

    def test_self_edit_requires_all_fields(self):
        volunteer = _seed_profile()
        resp = client.put(
            "/api/profiles/me",
            json={"full_name": "Alice", "pronouns": "  ", "phone": "555"},
            headers=_as(volunteer),
        )
        assert resp.status_code == 422

    def test_self_edit_trims(self):
        volunteer = _seed_profile()
        resp = client.put(
            "/api/profiles/me",
            json={"full_name": " Alice B ", "pronouns": "she/her", "phone": " 555-0100 "},
            headers=_as(volunteer),
        )
        assert resp.status_code == 200
        assert resp.json()["full_name"] == "Alice B"
        assert resp.json()["phone"] == "555-0100"

    def test_push_subscription_opts_in(self):
        volunteer = _seed_profile()
        resp = client.post(
            "/api/profiles/me/push-subscriptions",
            json={"endpoint": "https://push.example/abc", "p256dh": "k", "auth": "a"},
            headers=_as(volunteer),
        )
        assert resp.status_code == 201
        me = client.get("/api/profiles/me", headers=_as(volunteer)).json()
        assert me["notification_pref"] == "push_and_email"

    @patch("shiftboard.notifications.push.httpx.post")
    def test_opted_in_volunteer_gets_push_on_approval(self, mock_post):
        mock_post.return_value = MagicMock(status_code=201)
        admin = _seed_profile("Ada", Role.ADMIN)
        volunteer = _seed_profile()
        client.post(
            "/api/profiles/me/push-subscriptions",
            json={"endpoint": "https://push.example/abc", "p256dh": "k", "auth": "a"},
            headers=_as(volunteer),
        )
        template = _seed_template(admin)
        instance_id = _resolve(volunteer, template["id"])
        pending = client.post(
            "/api/assignments/request", json={"instance_id": instance_id}, headers=_as(volunteer)
        ).json()["assignment"]

        approved = client.post(f"/api/assignments/{pending['id']}/approve", headers=_as(admin))

        assert approved.json()["warning"] is None
        payload = mock_post.call_args[1]["json"]["payload"]
        assert payload["title"] == "Shift approved"
        assert payload["body"] == "Your request for Front Desk was approved."

    def test_notification_pref_update(self):
        volunteer = _seed_profile()
        resp = client.put(
            "/api/profiles/me/notification-pref",
            json={"notification_pref": "push_and_email"},
            headers=_as(volunteer),
        )
        assert resp.status_code == 200
        assert resp.json()["notification_pref"] == "push_and_email"

    def test_admin_lists_volunteers(self):
        admin = _seed_profile("Ada", Role.ADMIN)
        _seed_profile("Lee", Role.LEAD)
        resp = client.get("/api/profiles", params={"role": "Lead"}, headers=_as(admin))
        assert [p["full_name"] for p in resp.json()] == ["Lee"]
