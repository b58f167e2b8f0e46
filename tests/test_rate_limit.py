"""Tests for the rate limiting pure function and middleware integration."""

from syncrules.core.config import settings
from syncrules.middleware.request_context import CallerQuotas, check_rate_limit
from tests.conftest import OWNER, bearer


class TestCheckRateLimit:
    """Unit tests for the pure function, no middleware, no HTTP."""

    def test_allows_within_limit(self):
        bucket: dict = {}
        allowed, retry = check_rate_limit(bucket, "client-a", max_per_minute=60, now=0.0)
        assert allowed is True
        assert retry == 0.0

    def test_denies_after_exhaustion(self):
        bucket: dict = {}
        for _ in range(60):
            check_rate_limit(bucket, "client-a", max_per_minute=60, now=0.0)

        allowed, retry = check_rate_limit(bucket, "client-a", max_per_minute=60, now=0.0)
        assert allowed is False
        assert retry > 0

    def test_refills_over_time(self):
        bucket: dict = {}
        for _ in range(60):
            check_rate_limit(bucket, "client-a", max_per_minute=60, now=0.0)

        # 2 seconds later: about 2 tokens are back
        allowed, _ = check_rate_limit(bucket, "client-a", max_per_minute=60, now=2.0)
        assert allowed is True

    def test_separate_keys_independent(self):
        bucket: dict = {}
        for _ in range(60):
            check_rate_limit(bucket, "client-a", max_per_minute=60, now=0.0)

        allowed, _ = check_rate_limit(bucket, "client-b", max_per_minute=60, now=0.0)
        assert allowed is True

    def test_zero_limit_always_allows(self):
        bucket: dict = {}
        allowed, _ = check_rate_limit(bucket, "any", max_per_minute=0, now=0.0)
        assert allowed is True


class TestCallerQuotas:

    def test_idle_buckets_are_swept(self):
        quotas = CallerQuotas(idle_seconds=10.0, sweep_every=2)
        quotas.spend("user:a", 60, now=0.0)
        quotas.spend("user:b", 60, now=20.0)
        assert list(quotas.buckets) == ["user:b"]


class TestRateLimitMiddleware:

    def test_exhausted_client_gets_enveloped_429(self, client, monkeypatch):
        monkeypatch.setattr(settings, "rate_limit_per_minute", 1)
        assert client.get("/api/v1/accounts").status_code == 200

        resp = client.get("/api/v1/accounts")
        assert resp.status_code == 429
        assert resp.json()["success"] is False
        assert resp.json()["error"]["code"] == "RATE_LIMITED"
        assert "retry-after" in resp.headers

    def test_health_is_never_limited(self, client, monkeypatch):
        monkeypatch.setattr(settings, "rate_limit_per_minute", 1)
        for _ in range(3):
            assert client.get("/health").status_code == 200

    def test_users_have_their_own_quota(self, client, monkeypatch):
        monkeypatch.setattr(settings, "rate_limit_per_minute", 1)
        assert client.get("/api/v1/accounts", headers={"X-User-Id": "alice"}).status_code == 200
        resp = client.get("/api/v1/accounts", headers={"X-User-Id": "alice"})
        assert resp.status_code == 429
        assert resp.json()["error"]["details"]["caller"] == "user:alice"

        assert client.get("/api/v1/accounts", headers={"X-User-Id": "bob"}).status_code == 200

    def test_quota_is_per_account(self, client, monkeypatch):
        monkeypatch.setattr(settings, "rate_limit_per_minute", 1)
        first = {"X-User-Id": "alice", "X-Account-Id": "acc-1"}
        second = {"X-User-Id": "alice", "X-Account-Id": "acc-2"}

        assert client.get("/api/v1/accounts", headers=first).status_code == 200
        assert client.get("/api/v1/accounts", headers=first).status_code == 429
        assert client.get("/api/v1/accounts", headers=second).status_code == 200

    def test_bad_token_counts_against_address(self, client, auth_enabled, monkeypatch):
        monkeypatch.setattr(settings, "rate_limit_per_minute", 1)
        forged = {"Authorization": "Bearer not-a-token"}

        assert client.get("/api/v1/accounts", headers=forged).status_code == 401
        resp = client.get("/api/v1/accounts", headers=forged)
        assert resp.status_code == 429
        assert resp.json()["error"]["details"]["caller"].startswith("addr:")
        # A signed-in user from the same address is metered separately.
        assert client.get("/api/v1/accounts", headers=bearer(OWNER)).status_code == 200
