"""Tests for the maintenance service API.

Uses FastAPI TestClient to exercise the routers end-to-end.
"""

from __future__ import annotations

import pytest

fastapi = pytest.importorskip("fastapi", reason="fastapi not installed")

from fastapi.testclient import TestClient  # noqa: E402

from entitlement_gate import __version__  # noqa: E402
from entitlement_gate.models import MaintenanceConfig, UserSnapshot  # noqa: E402
from entitlement_gate.server.app import create_app  # noqa: E402
from entitlement_gate.server.auth import TokenService  # noqa: E402
from entitlement_gate.server.config import ServerConfig  # noqa: E402
from entitlement_gate.server.store import MaintenanceStore, UserDirectory  # noqa: E402

SIGNING_KEY = "test-signing-key-with-enough-length-for-hs256"

USERS = {
    "u-free": UserSnapshot(plan="free"),
    "u-none": UserSnapshot(plan=None),
    "u-silver": UserSnapshot(plan="silver"),
    "u-gold": UserSnapshot(plan="gold"),
    "u-admin": UserSnapshot(plan="gold", role="admin"),
}


def _tokens() -> TokenService:
    return TokenService(SIGNING_KEY, ttl_seconds=300)


def _auth(user_id: str, role: str = "user") -> dict[str, str]:
    return {"Authorization": f"Bearer {_tokens().issue(user_id, role)}"}


def _admin() -> dict[str, str]:
    return _auth("u-admin", "admin")


def _make_client(settings: MaintenanceConfig | None = None) -> TestClient:
    app = create_app(
        ServerConfig(signing_key=SIGNING_KEY),
        users=UserDirectory(USERS),
        store=MaintenanceStore(settings),
    )
    return TestClient(app)


class TestAppFactory:
    def test_requires_signing_key(self) -> None:
        with pytest.raises(ValueError, match="signing_key"):
            create_app(ServerConfig())


class TestTokenService:
    def test_round_trip(self) -> None:
        svc = _tokens()
        claims = svc.validate(svc.issue("u1", "Admin"))
        assert claims is not None
        assert claims.sub == "u1"
        assert claims.role == "admin"

    def test_wrong_key_rejected(self) -> None:
        token = TokenService("another-signing-key-with-enough-length").issue("u1")
        assert _tokens().validate(token) is None

    def test_expired_rejected(self) -> None:
        token = TokenService(SIGNING_KEY, ttl_seconds=-10).issue("u1")
        assert _tokens().validate(token) is None

    def test_garbage_rejected(self) -> None:
        assert _tokens().validate("not-a-jwt") is None


class TestHealth:
    def test_health(self) -> None:
        resp = _make_client().get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["version"] == __version__
        assert data["maintenance_enabled"] is False
        assert data["users"] == len(USERS)


class TestPublicStatus:
    def test_defaults(self) -> None:
        resp = _make_client().get("/api/maintenance/status")
        assert resp.status_code == 200
        data = resp.json()
        assert data["isEnabled"] is False
        assert data["affectedTiers"] == ["all"]
        assert data["allowAdminAccess"] is True
        assert data["title"] == "System Maintenance"

    def test_reflects_settings(self) -> None:
        settings = MaintenanceConfig(is_enabled=True, affected_tiers=["gold", "silver"])
        data = _make_client(settings).get("/api/maintenance/status").json()
        assert data["isEnabled"] is True
        assert data["affectedTiers"] == ["gold", "silver"]


class TestCheck:
    def test_requires_auth(self) -> None:
        assert _make_client().get("/api/maintenance/check").status_code == 401

    def test_invalid_token(self) -> None:
        resp = _make_client().get(
            "/api/maintenance/check", headers={"Authorization": "Bearer nope"},
        )
        assert resp.status_code == 401

    def test_unknown_user(self) -> None:
        resp = _make_client().get("/api/maintenance/check", headers=_auth("ghost"))
        assert resp.status_code == 404

    def test_affected_tier(self) -> None:
        client = _make_client(MaintenanceConfig(is_enabled=True, affected_tiers=["free"]))
        free = client.get("/api/maintenance/check", headers=_auth("u-free")).json()
        planless = client.get("/api/maintenance/check", headers=_auth("u-none")).json()
        gold = client.get("/api/maintenance/check", headers=_auth("u-gold")).json()
        assert free["isAffected"] is True
        assert planless["isAffected"] is True
        assert gold["isAffected"] is False
        assert free["affectedTiers"] == ["free"]

    def test_admin_bypass(self) -> None:
        client = _make_client(MaintenanceConfig(is_enabled=True))
        data = client.get("/api/maintenance/check", headers=_admin()).json()
        assert data["isAffected"] is False
        assert data["reason"] == "Admin bypass"

    def test_disabled_affects_nobody(self) -> None:
        client = _make_client(MaintenanceConfig(is_enabled=False))
        data = client.get("/api/maintenance/check", headers=_auth("u-gold")).json()
        assert data["isAffected"] is False
        assert "reason" not in data


class TestAdminSettings:
    def test_non_admin_forbidden(self) -> None:
        client = _make_client()
        assert client.get("/api/maintenance/settings", headers=_auth("u-gold")).status_code == 403
        resp = client.put(
            "/api/maintenance/settings", json={"isEnabled": True}, headers=_auth("u-gold"),
        )
        assert resp.status_code == 403

    def test_get_settings(self) -> None:
        data = _make_client().get("/api/maintenance/settings", headers=_admin()).json()
        assert data["isEnabled"] is False
        assert data["enabledBy"] is None
        assert "updatedAt" in data

    def test_update_partial(self) -> None:
        client = _make_client()
        resp = client.put(
            "/api/maintenance/settings",
            json={"isEnabled": True, "affectedTiers": ["gold", "platinum"], "title": "Upgrade"},
            headers=_admin(),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Maintenance mode enabled"
        settings = body["settings"]
        assert settings["isEnabled"] is True
        assert settings["affectedTiers"] == ["gold"]
        assert settings["title"] == "Upgrade"
        assert settings["message"] == "We're currently performing maintenance. Please check back soon."
        assert settings["enabledBy"] == "u-admin"
        assert settings["enabledAt"] is not None

    def test_empty_tiers_means_all(self) -> None:
        client = _make_client()
        body = client.put(
            "/api/maintenance/settings", json={"affectedTiers": []}, headers=_admin(),
        ).json()
        assert body["settings"]["affectedTiers"] == ["all"]
        assert body["message"] == "Maintenance mode disabled"

    def test_end_time_can_be_cleared(self) -> None:
        client = _make_client()
        client.put(
            "/api/maintenance/settings",
            json={"estimatedEndTime": "2026-07-01T12:00:00Z"},
            headers=_admin(),
        )
        before = client.get("/api/maintenance/settings", headers=_admin()).json()
        assert before["estimatedEndTime"] is not None

        client.put(
            "/api/maintenance/settings", json={"estimatedEndTime": None}, headers=_admin(),
        )
        after = client.get("/api/maintenance/settings", headers=_admin()).json()
        assert after["estimatedEndTime"] is None

    def test_toggle(self) -> None:
        client = _make_client()
        first = client.post("/api/maintenance/toggle", headers=_admin()).json()
        second = client.post("/api/maintenance/toggle", headers=_admin()).json()
        assert first == {"message": "Maintenance mode enabled", "isEnabled": True}
        assert second == {"message": "Maintenance mode disabled", "isEnabled": False}

    def test_affected_count(self) -> None:
        client = _make_client(MaintenanceConfig(affected_tiers=["free"]))
        data = client.get("/api/maintenance/affected-count", headers=_admin()).json()
        # u-free and u-none; the admin is never counted
        assert data == {"affectedCount": 2}

    def test_affected_count_all(self) -> None:
        client = _make_client()
        data = client.get("/api/maintenance/affected-count", headers=_admin()).json()
        assert data == {"affectedCount": 4}


class TestStore:
    def test_update_validates(self) -> None:
        store = MaintenanceStore()
        updated = store.update({"affected_tiers": ["Silver"]}, actor="a")
        assert sorted(t.value for t in updated.affected_tiers) == ["silver"]
        assert store.enabled_by is None

    def test_toggle_records_actor(self) -> None:
        store = MaintenanceStore()
        store.toggle(actor="root")
        assert store.settings.is_enabled is True
        assert store.enabled_by == "root"
