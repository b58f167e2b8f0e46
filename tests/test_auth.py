"""Tests for the auth module: token creation, validation, and dev mode bypass."""

from syncrules.core.token_factory import create_token, decode_token
from syncrules.models.user import User
from tests.conftest import bearer


class TestTokenFactory:

    def test_create_and_decode(self):
        token = create_token("user-1", "test-secret", name="Ada", email="ada@example.com")
        payload = decode_token(token, "test-secret")
        assert payload is not None
        assert payload.sub == "user-1"
        assert payload.name == "Ada"
        assert payload.superuser is False

    def test_superuser_claim(self):
        payload = decode_token(create_token("root", "s", superuser=True), "s")
        assert payload.superuser is True

    def test_wrong_secret_returns_none(self):
        token = create_token("user-1", "correct-secret")
        assert decode_token(token, "wrong-secret") is None

    def test_expired_token_returns_none(self):
        token = create_token("user-1", "secret", expires_hours=-1)
        assert decode_token(token, "secret") is None

    def test_malformed_token_returns_none(self):
        assert decode_token("not.a.token", "secret") is None
        assert decode_token("", "secret") is None


class TestAuthDisabledMode:
    """When AUTH_ENABLED=false, requests act as a superuser named by X-User-Id."""

    def test_create_without_token_succeeds(self, client):
        resp = client.post("/api/v1/accounts", json={"name": "No Auth"}, headers={"X-User-Id": "dev"})
        assert resp.status_code == 201
        assert resp.json()["data"]["createdBy"] == "dev"

    def test_anonymous_without_header(self, client):
        resp = client.get("/api/v1/users/me")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["userId"] == "anonymous"
        assert data["isSuperuser"] is True


class TestAuthEnabledMode:

    def test_token_provisions_user(self, client, db, auth_enabled):
        resp = client.get("/api/v1/users/me", headers=bearer("new-user"))
        assert resp.status_code == 200
        assert resp.json()["data"]["userId"] == "new-user"
        assert db.get(User, "new-user") is not None

    def test_audit_log_requires_admin(self, client, auth_enabled):
        account = client.post("/api/v1/accounts", json={"name": "Acme"}, headers=bearer("owner")).json()["data"]

        resp = client.get("/api/v1/audit/logs", params={"accountId": account["id"]}, headers=bearer("owner"))
        assert resp.status_code == 200
        assert "account.created" in [e["action"] for e in resp.json()["data"]]

        resp = client.get("/api/v1/audit/logs", params={"accountId": account["id"]}, headers=bearer("stranger"))
        assert resp.status_code == 403
