"""Security tests: tokens, role checks, error handling, ops endpoints."""

from datetime import timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import token_for

from cashdesk.core.exceptions import ConflictError, PermissionDeniedError, register_exception_handlers
from cashdesk.core.rbac import TokenData, UserRole, ensure_can_act_for
from cashdesk.core.security import (
    create_access_token,
    decode_access_token,
    extract_bearer_token,
    get_password_hash,
    token_subject,
    verify_password,
)


# ============== Tokens & passwords ==============

class TestTokens:
    def test_round_trip(self):
        token = create_access_token({"sub": "5", "role": "cashier"})
        payload = decode_access_token(token)
        assert payload["sub"] == "5"
        assert "jti" in payload

    def test_expired(self):
        token = create_access_token({"sub": "5"}, expires_delta=timedelta(seconds=-5))
        assert decode_access_token(token) is None

    def test_tampered(self):
        token = create_access_token({"sub": "5"})
        assert decode_access_token(token[:-2] + "xx") is None

    def test_empty(self):
        assert decode_access_token("") is None

    def test_bearer_extraction(self):
        assert extract_bearer_token("Bearer abc") == "abc"
        assert extract_bearer_token("Basic abc") is None
        assert extract_bearer_token("Bearer ") is None
        assert extract_bearer_token(None) is None

    def test_token_subject(self):
        assert token_subject({"sub": "42"}) == 42
        assert token_subject({"sub": "abc"}) is None
        assert token_subject({}) is None
        assert token_subject(None) is None

    def test_password_hash(self):
        hashed = get_password_hash("s3cret")
        assert verify_password("s3cret", hashed)
        assert not verify_password("wrong", hashed)
        assert not verify_password("s3cret", "not-a-bcrypt-hash")


# ============== Role checks ==============

class TestRoleChecks:
    def test_cashier_acts_for_self(self):
        ensure_can_act_for(TokenData(1, "a@example.com", UserRole.CASHIER), 1)

    def test_cashier_cannot_act_for_other(self):
        with pytest.raises(PermissionDeniedError):
            ensure_can_act_for(TokenData(1, "a@example.com", UserRole.CASHIER), 2)

    @pytest.mark.parametrize("role", [UserRole.SUPERVISOR, UserRole.MANAGER, UserRole.ADMIN])
    def test_monitoring_roles_act_for_anyone(self, role):
        ensure_can_act_for(TokenData(9, "s@example.com", role), 2)

    def test_full_name_defaults_to_email(self):
        assert TokenData(1, "alice@example.com", UserRole.CASHIER).full_name == "alice"

    def test_disabled_user_token_rejected(self, client, db_session, cashier):
        headers = {"Authorization": f"Bearer {token_for(cashier)}"}
        cashier.is_active = False
        db_session.commit()
        response = client.get(f"/api/v1/cashier/session-status/{cashier.id}", headers=headers)
        assert response.status_code == 401

    def test_token_missing_role(self, client, cashier):
        token = create_access_token({"sub": str(cashier.id), "email": cashier.email})
        response = client.get(
            f"/api/v1/cashier/session-status/{cashier.id}", headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 401

    def test_cookie_auth(self, client, cashier):
        client.cookies.set("access_token", token_for(cashier))
        response = client.get(f"/api/v1/cashier/session-status/{cashier.id}")
        client.cookies.clear()
        assert response.status_code == 200


# ============== Error handling ==============

class TestErrorHandlers:
    @pytest.fixture
    def error_client(self):
        app = FastAPI()
        register_exception_handlers(app)

        @app.get("/conflict")
        def conflict():
            raise ConflictError("Session already reviewed")

        @app.get("/boom")
        def boom():
            raise RuntimeError("kaboom")

        with TestClient(app, raise_server_exceptions=False) as test_client:
            yield test_client

    def test_domain_error(self, error_client):
        response = error_client.get("/conflict")
        assert response.status_code == 409
        assert response.json() == {"detail": "Session already reviewed"}

    def test_unhandled_error(self, error_client):
        response = error_client.get("/boom")
        assert response.status_code == 500
        assert response.json()["detail"] == "Internal server error"


# ============== Ops endpoints ==============

class TestOpsEndpoints:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_readiness(self, client):
        data = client.get("/health/ready").json()
        assert data["checks"]["database"] == "healthy"
        assert data["checks"]["monitoring_hub"].startswith("healthy")

    def test_security_headers(self, client):
        response = client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_metrics_requires_manager(self, client, supervisor_headers):
        assert client.get("/metrics").status_code == 401
        assert client.get("/metrics", headers=supervisor_headers).status_code == 403

    def test_metrics_for_manager(self, client, manager_headers):
        client.get("/health")
        response = client.get("/metrics", headers=manager_headers)
        assert response.status_code == 200
        assert "http_requests_total" in response.text
        assert "hub_connected_cashiers 0" in response.text
        assert "# TYPE cashier_session_events_total counter" in response.text
        assert "# TYPE hub_events_total counter" in response.text

    def test_scheduler_status(self, client, manager_headers):
        response = client.get("/api/v1/scheduler/status", headers=manager_headers)
        assert response.status_code == 200
        assert "presence-sweep" in response.json()["tasks"]
