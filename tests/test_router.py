"""
Academy Router Tests - HTTP surface over the in-memory store
"""
import json

import pytest
from fastapi.testclient import TestClient

from app.academy import router as academy_router_module
from app.academy.dependencies import get_current_caller, get_engine
from app.config import AcademySettings
from app.server import app
from database.store import StoreError, set_store


@pytest.fixture
def client(store, engine, monkeypatch):
    set_store(store)
    app.dependency_overrides[get_engine] = lambda: engine
    monkeypatch.setattr(
        academy_router_module, "get_settings",
        lambda: AcademySettings(STRIPE_WEBHOOK_SECRET="")
    )
    yield TestClient(app)
    app.dependency_overrides.clear()
    set_store(None)


@pytest.fixture
def as_parent(parent_caller):
    app.dependency_overrides[get_current_caller] = lambda: parent_caller


@pytest.fixture
def as_admin(admin_caller):
    app.dependency_overrides[get_current_caller] = lambda: admin_caller


class TestSessions:

    def test_list_sorted(self, client, as_parent, make_session):
        later = make_session(title="Later")
        earlier = make_session(title="Earlier", start_time="2025-03-18T09:00:00+00:00",
                               end_time="2025-03-18T10:00:00+00:00")

        response = client.get("/api/academy/sessions")

        assert response.status_code == 200
        assert [s["id"] for s in response.json()] == [earlier["id"], later["id"]]

    def test_unknown_session(self, client, as_parent):
        response = client.get("/api/academy/sessions/missing")
        assert response.status_code == 404
        assert response.json()["detail"] == "Event not found."

    def test_storage_unavailable(self, client, as_parent, store, monkeypatch):
        def boom():
            raise StoreError("timeout")

        monkeypatch.setattr(store, "list_sessions", boom)
        response = client.get("/api/academy/sessions")
        assert response.status_code == 503

    def test_requires_auth(self, client, monkeypatch):
        monkeypatch.setenv("ACADEMY_TEST_MODE", "0")
        from app.config import get_settings
        get_settings.cache_clear()
        try:
            response = client.get("/api/academy/sessions")
        finally:
            get_settings.cache_clear()
        assert response.status_code == 401


class TestRegistration:

    def test_register_and_duplicate(self, client, as_parent, athlete, session, subscribe):
        subscribe(athlete)
        url = f"/api/academy/sessions/{session['id']}/register"

        first = client.post(url, json={"athlete_id": athlete["id"]})
        second = client.post(url, json={"athlete_id": athlete["id"]})

        assert first.status_code == 200
        body = first.json()
        assert body["success"] is True
        assert body["waitlisted"] is False
        assert body["session"]["booked_slots"] == 1
        assert second.status_code == 409
        assert second.json()["detail"] == "Athlete is already registered for this session."

    def test_register_without_membership(self, client, as_parent, athlete, session):
        response = client.post(
            f"/api/academy/sessions/{session['id']}/register",
            json={"athlete_id": athlete["id"]},
        )
        assert response.status_code == 403
        assert response.json()["detail"] == "Athlete does not have an active membership."

    def test_unregister_is_idempotent(self, client, as_parent, athlete, session):
        url = f"/api/academy/sessions/{session['id']}/register/{athlete['id']}"
        response = client.delete(url)
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["removed"] is False

    def test_eligibility(self, client, as_parent, athlete, make_session, subscribe):
        subscribe(athlete, package_id="p_pro")
        session = make_session(allowed_packages=["p_elite"])

        response = client.get(f"/api/academy/athletes/{athlete['id']}/eligibility/{session['id']}")

        assert response.status_code == 200
        body = response.json()
        assert body["allowed"] is False
        assert body["code"] == "PlanRestricted"
        assert body["plan_name"] == "Pro"

    def test_my_athletes(self, client, as_parent, athlete, subscribe):
        subscribe(athlete, package_id="p_rookie")
        response = client.get("/api/academy/athletes")
        assert response.status_code == 200
        assert response.json()[0]["usage_stats"] == {"used": 0, "limit": 2, "plan_name": "Rookie"}

    def test_add_athlete(self, client, as_parent, guardian):
        response = client.post("/api/academy/athletes", json={"first_name": "Noah", "last_name": "Cole"})
        assert response.status_code == 200
        assert response.json()["parent_id"] == guardian["id"]


class TestCheckInRoute:

    def test_staff_only(self, client, as_parent, session):
        response = client.post(f"/api/academy/sessions/{session['id']}/check-in", json={"code": "x"})
        assert response.status_code == 403

    def test_check_in(self, client, as_admin, store, athlete, session):
        store.add_registration(session["id"], athlete["id"])
        url = f"/api/academy/sessions/{session['id']}/check-in"

        first = client.post(url, json={"code": athlete["qr_code"]})
        second = client.post(url, json={"code": athlete["qr_code"]})

        assert first.json()["success"] is True
        assert second.status_code == 200
        assert second.json()["code"] == "AlreadyCheckedIn"

    def test_empty_scan(self, client, as_admin, session):
        response = client.post(f"/api/academy/sessions/{session['id']}/check-in", json={"code": ""})

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["code"] == "InvalidCode"


class TestAdminRoutes:

    def test_parent_forbidden(self, client, as_parent):
        assert client.get("/api/academy/admin/users").status_code == 403

    def test_test_query_param_is_not_a_login(self, client, monkeypatch):
        monkeypatch.setenv("ACADEMY_TEST_MODE", "0")
        from app.config import get_settings
        get_settings.cache_clear()
        try:
            response = client.get("/api/academy/admin/users?test=1")
        finally:
            get_settings.cache_clear()
        assert response.status_code == 401

    def test_create_and_delete_session(self, client, as_admin, store):
        response = client.post("/api/academy/admin/sessions", json={
            "title": "Combine Prep",
            "start_time": "2025-03-22T15:00:00Z",
            "end_time": "2025-03-22T16:30:00Z",
            "max_slots": 8,
        })
        assert response.status_code == 200
        session_id = response.json()["id"]

        deleted = client.delete(f"/api/academy/admin/sessions/{session_id}")
        assert deleted.status_code == 200
        assert store.get_session(session_id) is None

    def test_invalid_session_window(self, client, as_admin):
        response = client.post("/api/academy/admin/sessions", json={
            "title": "Backwards",
            "start_time": "2025-03-22T15:00:00Z",
            "end_time": "2025-03-22T14:00:00Z",
        })
        assert response.status_code == 422

    def test_roster_add(self, client, as_admin, athlete, session):
        response = client.post(f"/api/academy/admin/sessions/{session['id']}/roster/{athlete['id']}")
        assert response.status_code == 200
        assert response.json()["registered_athlete_ids"] == [athlete["id"]]

    def test_series_delete(self, client, as_admin, make_session):
        first = make_session(title="Tuesday Speed")
        make_session(title="Tuesday Speed")

        response = client.delete(f"/api/academy/admin/sessions/{first['id']}/series")

        assert response.json() == {"success": True, "deleted": 2}


class TestWebhook:

    def test_subscription_created(self, client, store, athlete):
        payload = {
            "id": "evt_1",
            "type": "customer.subscription.created",
            "data": {"object": {
                "id": "sub_9",
                "status": "active",
                "current_period_end": 1743465600,
                "items": {"data": [{"price": {"id": "p_elite"}}]},
                "metadata": {"childId": athlete["id"], "userId": athlete["parent_id"]},
            }},
        }

        response = client.post("/api/academy/billing/webhook", content=json.dumps(payload))

        assert response.status_code == 200
        assert response.json() == {"received": True, "handled": True,
                                   "event_type": "customer.subscription.created"}
        assert store.get_subscription("sub_9")["package_id"] == "p_elite"

    def test_bad_payload(self, client):
        response = client.post("/api/academy/billing/webhook", content=b"{broken")
        assert response.status_code == 400


class TestReferenceData:

    def test_plans(self, client):
        plans = client.get("/api/academy/plans").json()
        assert [p["name"] for p in plans] == ["Elite", "All-Pro", "Pro", "Rookie"]
        assert plans[0]["max_sessions"] == 12

    def test_age_brackets(self, client):
        brackets = client.get("/api/academy/age-brackets").json()
        assert brackets[0] == {"label": "All Ages", "min": 0, "max": 99}

    def test_athlete_subscription(self, client, as_parent, athlete, subscribe):
        assert client.get(f"/api/academy/athletes/{athlete['id']}/subscription").json() is None

        subscribe(athlete, package_id="p_pro")
        body = client.get(f"/api/academy/athletes/{athlete['id']}/subscription").json()
        assert body["plan_id"] == "p_pro"
        assert body["status"] == "active"

    def test_other_guardians_subscription(self, client, as_parent, make_athlete, other_guardian):
        stranger = make_athlete(parent_id=other_guardian["id"])
        response = client.get(f"/api/academy/athletes/{stranger['id']}/subscription")
        assert response.status_code == 403
