"""Tests for the HTTP surface."""

import pytest
from fastapi.testclient import TestClient

from memberdesk.app import create_app
from memberdesk.capabilities.authenticate import TENANT_CONFIRMED_REPLY, WELCOME_REPLY
from memberdesk.expiry import ExpiryPolicy, SessionSweeper
from memberdesk.models.room import AuthStatus, Credentials, RoomSession

from test_auth import FakeSettings

ADMIN = {"Authorization": "Bearer admin-key"}


@pytest.fixture
def sweeper(store):
    return SessionSweeper(store, ExpiryPolicy(), interval_seconds=3600)


@pytest.fixture
def client(agent, sweeper, monkeypatch):
    monkeypatch.setattr("memberdesk.auth.settings", FakeSettings(admin_api_key="admin-key"))
    with TestClient(create_app(agent=agent, sweeper=sweeper)) as test_client:
        yield test_client


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert "uptime" in data


class TestMessages:
    def test_turn_returns_replies(self, client):
        resp = client.post("/rooms/room-1/messages", json={"text": "hi"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["room_id"] == "room-1"
        assert data["capability"] == "authenticate"
        assert data["handled"] is True
        assert data["replies"] == [{"text": WELCOME_REPLY}]

    def test_conversation_carries_state(self, client):
        client.post("/rooms/room-1/messages", json={"text": "hi"})
        resp = client.post("/rooms/room-1/messages", json={"text": "I'm from CTLS"})
        assert resp.json()["replies"] == [{"text": TENANT_CONFIRMED_REPLY.format(name="CTLS")}]

    def test_unclaimed_message(self, client):
        data = client.post("/rooms/room-1/messages", json={"text": "12345"}).json()
        assert data["handled"] is False
        assert data["capability"] is None
        assert data["replies"] == []

    def test_rejects_bad_room_id(self, client):
        resp = client.post("/rooms/bad.room/messages", json={"text": "hi"})
        assert resp.status_code == 400

    @pytest.mark.parametrize("body", [{}, {"text": ""}, {"text": "x" * 4001}])
    def test_rejects_bad_body(self, client, body):
        assert client.post("/rooms/room-1/messages", json=body).status_code == 422


class TestTenants:
    def test_lists_cooperatives(self, client):
        data = client.get("/tenants").json()
        assert data["count"] == len(data["tenants"])
        assert {"name": "FUSION", "tenant_id": "fusion"} in data["tenants"]
        assert data["text"].startswith("# Available Cooperatives")
        assert "- IMMIGRATION\n" in data["text"]


class TestAdmin:
    async def _seed(self, store):
        await store.put("room-1", RoomSession(
            room_id="room-1",
            status=AuthStatus.NEED_OTP,
            tenant="fusion",
            tenant_display_name="FUSION",
            credentials=Credentials(email="jane.doe@coop.org", employee_number="FUS00005"),
            otp_expected="123456",
            auth_token="tok-abc",
        ))

    def test_requires_token(self, client):
        assert client.get("/admin/rooms/room-1").status_code == 401
        assert client.post("/admin/sweep").status_code == 401

    async def test_room_state_is_redacted(self, client, store):
        await self._seed(store)
        resp = client.get("/admin/rooms/room-1", headers=ADMIN)
        assert resp.status_code == 200

        body = resp.text
        assert "123456" not in body
        assert "tok-abc" not in body
        assert "jane.doe@coop.org" not in body

        data = resp.json()
        assert data["session"]["status"] == "NEED_OTP"
        assert data["session"]["otp_expected"] == "[REDACTED]"
        assert "Current status: NEED_OTP" in data["summary"]

    def test_unknown_room(self, client):
        assert client.get("/admin/rooms/nobody", headers=ADMIN).status_code == 404

    def test_store_unavailable(self, client, store, monkeypatch):
        async def broken(room_id):
            raise OSError("disk gone")

        monkeypatch.setattr(store, "_load", broken)
        assert client.get("/admin/rooms/room-1", headers=ADMIN).status_code == 503

    def test_sweep(self, client):
        resp = client.post("/admin/sweep", headers=ADMIN)
        assert resp.status_code == 200
        assert resp.json() == {"scanned": 0, "expired": 0, "purged": 0}
