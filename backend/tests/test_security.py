"""
Security tests: tenant resolution, bearer auth, rate limiting and headers.
"""
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from conftest import FakeLLM, auth_headers, hash_password, make_user, verify_password
from app.config import Settings
from app.dependencies import Services
from app.errors import ValidationError
from app.main import create_app
from app.middleware.security import InputValidator, RateLimiter, validate_uuid
from app.middleware.tenant import resolve_tenant
from app.models.schemas import Subscription, Tenant, User, utcnow
from app.services.auth_service import create_token

PROTECTED = "/api/emotion-conversations/history"


def _request(host: str, tenant_id: str = None) -> Request:
    headers = [(b"host", host.encode())]
    if tenant_id:
        headers.append((b"x-tenant-id", tenant_id.encode()))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers, "query_string": b""})


class TestAuthentication:
    """Test bearer token handling"""

    def test_missing_bearer(self, test_client, tenant):
        response = test_client.get(PROTECTED, headers={"X-Tenant-ID": tenant.id})

        assert response.status_code == 401
        assert response.json() == {"error": "Access denied", "message": "No token provided"}
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_garbage_token(self, test_client, tenant):
        response = test_client.get(PROTECTED, headers={
            "X-Tenant-ID": tenant.id, "Authorization": "Bearer not.a.jwt",
        })
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token"

    def test_expired_token(self, test_client, user, test_settings):
        token = create_token(user.id, user.tenant_id, settings=test_settings, expires_in=timedelta(seconds=-5))
        response = test_client.get(PROTECTED, headers={
            "X-Tenant-ID": user.tenant_id, "Authorization": f"Bearer {token}",
        })
        assert response.status_code == 401
        assert response.json()["message"] == "Token expired"

    def test_wrong_signing_key(self, test_client, user):
        token = create_token(user.id, user.tenant_id, settings=Settings(SECRET_KEY="someone-else"))
        response = test_client.get(PROTECTED, headers={
            "X-Tenant-ID": user.tenant_id, "Authorization": f"Bearer {token}",
        })
        assert response.status_code == 401

    def test_inactive_user(self, test_client, fake_db, tenant, test_settings):
        dormant = make_user(fake_db, tenant.id, is_active=False)
        response = test_client.get(PROTECTED, headers=auth_headers(dormant, test_settings))

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token or user not found"

    def test_valid_token(self, test_client, headers):
        assert test_client.get(PROTECTED, headers=headers).status_code == 200

    def test_passwords(self):
        hashed = hash_password("correct horse")
        assert verify_password("correct horse", hashed) is True
        assert verify_password("battery staple", hashed) is False

    def test_fixture_users_carry_bcrypt_hashes(self, fake_db, tenant):
        analyst = make_user(fake_db, tenant.id, role="analyst", password="s3cret")
        stored = fake_db.get_user(tenant.id, analyst.id)

        assert stored.password_hash.startswith("$2")
        assert verify_password("s3cret", stored.password_hash) is True


class TestTenantIsolation:
    """Test that identities never cross tenants"""

    def test_token_used_against_another_tenant(self, test_client, fake_db, user, test_settings):
        other = fake_db.create_tenant(Tenant(name="Globex", domain="globex.example.com"))
        response = test_client.get(PROTECTED, headers=auth_headers(user, test_settings, tenant_id=other.id))

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token or user not found"

    def test_colliding_user_ids(self, test_client, fake_db, user, test_settings):
        other = fake_db.create_tenant(Tenant(name="Globex", domain="globex.example.com"))
        twin = fake_db.create_user(User(
            id=user.id, tenant_id=other.id, email="twin@example.com", password_hash="x",
            first_name="Twin", last_name="User",
        ))

        # The twin's own token works in its own tenant and sees only its own data
        response = test_client.get(PROTECTED, headers=auth_headers(twin, test_settings))
        assert response.status_code == 200

        # A forged claim for the other tenant still fails: the user record decides
        token = create_token(user.id, other.id, settings=test_settings)
        response = test_client.get(PROTECTED, headers={
            "X-Tenant-ID": user.tenant_id, "Authorization": f"Bearer {token}",
        })
        assert response.status_code == 401

    def test_colliding_conversation_ids(self, test_client, fake_db, user, test_settings):
        other = fake_db.create_tenant(Tenant(name="Globex", domain="globex.example.com"))
        twin = make_user(fake_db, other.id)
        session = test_client.post(
            "/api/emotion-conversations/start", json={}, headers=auth_headers(user, test_settings)
        ).json()["session_id"]

        response = test_client.get(
            f"/api/emotion-conversations/{session}", headers=auth_headers(twin, test_settings)
        )
        assert response.status_code == 404


class TestTenantResolution:

    def test_unknown_tenant(self, test_client, user, test_settings):
        headers = auth_headers(user, test_settings, tenant_id="no-such-tenant")
        response = test_client.get(PROTECTED, headers=headers)

        assert response.status_code == 404
        assert response.json()["error"] == "Tenant not found"

    def test_inactive_tenant(self, test_client, fake_db, tenant, headers):
        fake_db.tenants[tenant.id].is_active = False
        response = test_client.get(PROTECTED, headers=headers)

        assert response.status_code == 403
        assert response.json()["error"] == "Tenant inactive"

    def test_suspended_subscription(self, test_client, fake_db, tenant, headers):
        fake_db.tenants[tenant.id].subscription = Subscription(status="suspended")
        response = test_client.get(PROTECTED, headers=headers)

        assert response.status_code == 403
        assert response.json()["error"] == "Subscription inactive"

    def test_expired_subscription(self, test_client, fake_db, tenant, headers):
        fake_db.tenants[tenant.id].subscription = Subscription(expires_at=utcnow() - timedelta(days=1))
        assert test_client.get(PROTECTED, headers=headers).status_code == 403

    def test_subdomain(self, services, tenant):
        assert resolve_tenant(_request("acme.moodpulse.io"), services).id == tenant.id

    def test_exact_domain(self, services, fake_db):
        initech = fake_db.create_tenant(Tenant(name="Initech", domain="initech.io"))
        assert resolve_tenant(_request("Initech.io:443"), services).id == initech.id

    def test_header_wins(self, services, fake_db, tenant):
        other = fake_db.create_tenant(Tenant(name="Globex", domain="globex.example.com"))
        assert resolve_tenant(_request("acme.moodpulse.io", other.id), services).id == other.id

    def test_no_default_outside_development(self, services):
        assert resolve_tenant(_request("localhost:8000"), services) is None

    def test_default_tenant_in_development(self, fake_db):
        services = Services(fake_db, FakeLLM(), Settings(ENVIRONMENT="development"))

        first = resolve_tenant(_request("localhost:8000"), services)
        second = resolve_tenant(_request("localhost:8000"), services)

        assert first.domain == "localhost"
        assert first.subdomain == "default"
        assert first.id == second.id
        assert len(fake_db.tenants) == 1


class TestMiddleware:

    def test_health_and_security_headers(self, test_client):
        response = test_client.get("/health")

        assert response.status_code == 200
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert "max-age" in response.headers["Strict-Transport-Security"]

    def test_request_id_is_echoed(self, test_client):
        response = test_client.get("/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"

    def test_request_id_is_generated(self, test_client):
        assert test_client.get("/health").headers["X-Request-ID"]

    def test_rate_limit(self, fake_db, tenant):
        settings = Settings(ENVIRONMENT="test", RATE_LIMIT_REQUESTS=2, RATE_LIMIT_WINDOW_SECONDS=60)
        app = create_app(services=Services(fake_db, FakeLLM(), settings), settings=settings)
        client = TestClient(app, raise_server_exceptions=False)
        headers = {"X-Tenant-ID": tenant.id}

        statuses = [client.get(PROTECTED, headers=headers).status_code for _ in range(3)]

        assert statuses == [401, 401, 429]
        response = client.get(PROTECTED, headers=headers)
        assert response.json()["error"] == "Too many requests"
        assert response.headers["X-RateLimit-Limit"] == "2"
        # health checks are never limited
        assert client.get("/health").status_code == 200


class TestRateLimiter:
    """Test how requests are bucketed"""

    @staticmethod
    def _hit(limiter, ip="10.0.0.1", **headers):
        raw = [(name.replace("_", "-").lower().encode(), value.encode()) for name, value in headers.items()]
        request = Request({
            "type": "http", "method": "GET", "path": "/api/emotion-conversations/history",
            "headers": raw, "query_string": b"", "client": (ip, 50000),
        })
        return limiter.is_allowed(request)[0]

    def test_tenant_header_does_not_pick_the_bucket(self):
        limiter = RateLimiter(limit=2, window=60)

        allowed = [self._hit(limiter, x_tenant_id=f"tenant-{i}") for i in range(10)]

        assert allowed == [True, True] + [False] * 8
        assert len(limiter.requests) == 1

    def test_forwarded_for_is_ignored_by_default(self):
        limiter = RateLimiter(limit=1, window=60)

        assert self._hit(limiter, x_forwarded_for="1.1.1.1") is True
        assert self._hit(limiter, x_forwarded_for="2.2.2.2") is False

    def test_forwarded_for_behind_trusted_proxy(self):
        limiter = RateLimiter(limit=1, window=60, trust_forwarded=True)

        assert self._hit(limiter, x_forwarded_for="1.1.1.1, 10.0.0.1") is True
        assert self._hit(limiter, x_forwarded_for="2.2.2.2, 10.0.0.1") is True
        assert self._hit(limiter, x_forwarded_for="1.1.1.1, 10.0.0.1") is False

    def test_idle_clients_are_forgotten(self):
        limiter = RateLimiter(limit=5, window=60)
        limiter.requests["192.168.1.9:default"] = [0.0]

        assert self._hit(limiter) is True

        assert list(limiter.requests) == ["10.0.0.1:default"]


class TestInputValidation:

    def test_uuid_format(self):
        assert InputValidator.is_valid_uuid("123e4567-e89b-12d3-a456-426614174000") is True
        assert InputValidator.is_valid_uuid("not-a-uuid") is False
        assert InputValidator.is_valid_uuid("") is False

    def test_validate_uuid_raises(self):
        with pytest.raises(ValidationError):
            validate_uuid("12345", "session_id")
