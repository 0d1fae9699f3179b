"""
Tests for the HTTP surface: the credential endpoint and health checks.

Settings, the counter store and the limiter are overridden in conftest,
so every test starts with empty counters at the start of a window.
"""

import time
from types import SimpleNamespace

import pytest

from src.api.dependencies import get_client_identity, get_rate_limiter, get_settings
from src.config.settings import Settings
from src.core.uploads.models import UploadCredential, UploadScope
from src.core.uploads.rate_limit import FixedWindowRateLimiter, RateLimitStoreError
from tests.helpers import PUBLIC_KEY

URL = "/auth/upload-credential"


def override_settings(app, settings: Settings, **changes) -> Settings:
    changed = settings.model_copy(update=changes)
    app.dependency_overrides[get_settings] = lambda: changed
    return changed


class DownStore:
    def increment(self, key, ttl_seconds):
        raise RateLimitStoreError("connection refused")

    def get(self, key):
        return 0

    def delete(self, key):
        pass

    def ping(self):
        return False


# ---------------------------------------------------------------------------
# Credential Endpoint
# ---------------------------------------------------------------------------

class TestUploadCredential:
    """Tests for GET /auth/upload-credential."""

    def test_returns_verifiable_credential(self, client, issuer):
        response = client.get(URL)

        assert response.status_code == 200
        body = response.json()
        assert set(body) == {"token", "expire", "signature"}

        credential = UploadCredential.from_dict(body)
        assert issuer.verify(credential, UploadScope(public_key=PUBLIC_KEY, resource_path="/"))

    def test_credential_is_bound_to_folder(self, client, issuer):
        body = client.get(URL, params={"folder": "/covers"}).json()
        credential = UploadCredential.from_dict(body)

        assert issuer.verify(credential, UploadScope(PUBLIC_KEY, "/covers"))
        assert not issuer.verify(credential, UploadScope(PUBLIC_KEY, "/"))

    def test_expiry_uses_configured_validity(self, client):
        before = int(time.time())
        body = client.get(URL).json()

        assert before + 1800 <= body["expire"] <= int(time.time()) + 1800

    def test_rate_limit_headers(self, client):
        response = client.get(URL)

        assert response.headers["X-RateLimit-Limit"] == "10"
        assert response.headers["X-RateLimit-Remaining"] == "9"

    def test_eleventh_request_in_window_is_rejected(self, client):
        for _ in range(10):
            assert client.get(URL).status_code == 200

        response = client.get(URL)

        assert response.status_code == 429
        body = response.json()
        assert "Too many upload requests" in body["error"]
        assert 0 < body["retry_after"] <= 10
        assert 1 <= int(response.headers["Retry-After"]) <= 10

    def test_next_window_is_permitted_again(self, client, clock):
        for _ in range(11):
            client.get(URL)

        clock.advance(10)

        assert client.get(URL).status_code == 200

    def test_rotating_user_header_does_not_reset_anonymous_limit(self, client):
        """Without an API key the user header is ignored; the address is counted."""
        statuses = [
            client.get(URL, headers={"X-User-Id": f"u{i}"}).status_code
            for i in range(50)
        ]

        assert statuses[:10] == [200] * 10
        assert set(statuses[10:]) == {429}

    def test_keyed_users_are_limited_separately(self, app, client, settings):
        override_settings(app, settings, api_keys="key-one")
        alice = {"X-API-Key": "key-one", "X-User-Id": "alice"}
        bob = {"X-API-Key": "key-one", "X-User-Id": "bob"}

        for _ in range(10):
            assert client.get(URL, headers=alice).status_code == 200

        assert client.get(URL, headers=alice).status_code == 429
        assert client.get(URL, headers=bob).status_code == 200

    def test_bypass_key_skips_rate_limit(self, app, client, settings):
        override_settings(app, settings, rate_limit_bypass_keys="internal-batch")

        statuses = [
            client.get(URL, headers={"X-API-Key": "internal-batch"}).status_code
            for _ in range(15)
        ]

        assert statuses == [200] * 15

    def test_missing_private_key_is_opaque_500(self, app, client, settings):
        override_settings(app, settings, imagekit_private_key="")

        response = client.get(URL)

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to get authentication parameters"}

    def test_missing_private_key_does_not_hide_forbidden(self, app, client, settings):
        override_settings(app, settings, imagekit_private_key="", api_keys="key-one")

        assert client.get(URL).status_code == 403

    def test_missing_private_key_still_counts_requests(self, app, client, settings):
        override_settings(app, settings, imagekit_private_key="")

        statuses = [client.get(URL).status_code for _ in range(11)]

        assert statuses == [500] * 10 + [429]

    def test_store_down_fails_closed(self, app, client, clock):
        app.dependency_overrides[get_rate_limiter] = lambda: FixedWindowRateLimiter(
            DownStore(), 10, 10, clock=clock
        )

        response = client.get(URL)

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to get authentication parameters"}

    def test_store_down_fail_open(self, app, client, clock):
        app.dependency_overrides[get_rate_limiter] = lambda: FixedWindowRateLimiter(
            DownStore(), 10, 10, fail_open=True, clock=clock
        )

        assert client.get(URL).status_code == 200


class TestApiKeys:
    """The X-API-Key check applies only when keys are configured."""

    @pytest.fixture(autouse=True)
    def require_keys(self, app, settings):
        override_settings(app, settings, api_keys="key-one,key-two")

    def test_missing_key_is_forbidden(self, client):
        assert client.get(URL).status_code == 403

    def test_wrong_key_is_forbidden(self, client):
        assert client.get(URL, headers={"X-API-Key": "nope"}).status_code == 403

    def test_valid_key(self, client):
        assert client.get(URL, headers={"X-API-Key": "key-two"}).status_code == 200


class TestClientIdentity:
    """The user header is only trusted alongside a verified API key."""

    REQUEST = SimpleNamespace(client=SimpleNamespace(host="10.0.0.1"))

    def test_anonymous_request_counts_by_address(self):
        identity = get_client_identity(request=self.REQUEST, api_key=None, x_user_id="alice")
        assert identity == "ip:10.0.0.1"

    def test_keyed_user_is_scoped_to_key(self):
        identity = get_client_identity(request=self.REQUEST, api_key="key-one", x_user_id="alice")

        assert identity.startswith("key:")
        assert identity.endswith(":user:alice")
        assert "key-one" not in identity

    def test_same_user_under_different_keys_is_distinct(self):
        first = get_client_identity(request=self.REQUEST, api_key="key-one", x_user_id="alice")
        second = get_client_identity(request=self.REQUEST, api_key="key-two", x_user_id="alice")
        assert first != second

    def test_keyed_request_without_user(self):
        identity = get_client_identity(request=self.REQUEST, api_key="key-one", x_user_id=None)
        assert identity.startswith("key:")
        assert ":user:" not in identity

    def test_missing_client_address(self):
        request = SimpleNamespace(client=None)
        assert get_client_identity(request=request, api_key=None) == "ip:unknown"


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_ready(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"
        assert {c["name"]: c["status"] for c in response.json()["checks"]} == {
            "configuration": "ok",
            "signing": "ok",
            "counter_store": "ok",
        }

    def test_not_ready_without_signing_key(self, app, client, settings):
        override_settings(app, settings, imagekit_private_key="")

        response = client.get("/health/ready")

        assert response.status_code == 503
        checks = {c["name"]: c["status"] for c in response.json()["checks"]}
        assert checks["signing"] == "error"

    def test_root(self, client):
        assert client.get("/").json()["docs"] == "/docs"
