"""Tests for the rate limit API routes.

All /v1 routes require the X-API-Key header; conftest.py configures
``test-api-key-123`` as a valid key. The process-wide engine is reset before
every test, so counters start empty.
"""

from unittest.mock import Mock, patch

import pytest
from fastapi.testclient import TestClient

from gatekeeper.core.errors import StoreUnavailableError
from gatekeeper.core.rate_limit import get_decision_engine
from gatekeeper.main import app

NOW = 1_000_020.0


@pytest.fixture
def client() -> TestClient:
    """Create FastAPI test client."""
    return TestClient(app)


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"X-API-Key": "test-api-key-123"}


def _evaluate(client: TestClient, headers: dict, **body):
    payload = {"subject_id": "user-1", "action_type": "create_reel", "timestamp": NOW, **body}
    return client.post("/v1/rate-limit/evaluate", json=payload, headers=headers)


class TestEvaluateEndpoint:
    def test_requires_api_key(self, client: TestClient) -> None:
        response = _evaluate(client, {})

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "missing_api_key"

    def test_rejects_invalid_api_key(self, client: TestClient) -> None:
        response = _evaluate(client, {"X-API-Key": "nope"})

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "invalid_api_key"

    def test_unverified_escalation_sequence(self, client: TestClient, auth_headers: dict) -> None:
        # create_reel default policy: 1 hour, 5 verified, 2 unverified
        bodies = [_evaluate(client, auth_headers, tier="unverified").json() for _ in range(3)]

        assert [b["decision"] for b in bodies] == ["allowed", "allowed", "requires_verification"]
        assert [b["count"] for b in bodies] == [1, 2, 3]
        assert bodies[2]["threshold"] == 2
        assert bodies[2]["retry_after_seconds"] is None

    def test_verified_exceeded_includes_retry_after(self, client: TestClient, auth_headers: dict) -> None:
        for _ in range(5):
            assert _evaluate(client, auth_headers, tier="verified").json()["decision"] == "allowed"

        body = _evaluate(client, auth_headers, tier="verified").json()

        assert body["decision"] == "exceeded"
        assert body["count"] == 6
        assert body["threshold"] == 5
        assert body["window_seconds"] == 3600
        assert body["retry_after_seconds"] == body["window_start"] + 3600 - int(NOW)

    def test_unconfigured_action_is_allowed_without_counting(self, client: TestClient, auth_headers: dict) -> None:
        bodies = [_evaluate(client, auth_headers, action_type="delete_account").json() for _ in range(20)]

        assert {b["decision"] for b in bodies} == {"allowed"}
        assert all(b["count"] is None for b in bodies)
        assert len(get_decision_engine().store) == 0

    def test_defaults_tier_to_unverified(self, client: TestClient, auth_headers: dict) -> None:
        for _ in range(2):
            _evaluate(client, auth_headers)

        assert _evaluate(client, auth_headers).json()["decision"] == "requires_verification"

    def test_validates_payload(self, client: TestClient, auth_headers: dict) -> None:
        assert _evaluate(client, auth_headers, tier="gold").status_code == 422
        assert _evaluate(client, auth_headers, subject_id="").status_code == 422

    def test_store_failure_returns_503(self, client: TestClient, auth_headers: dict) -> None:
        engine = get_decision_engine()
        with patch.object(engine, "_store") as store:
            store.increment_and_get.side_effect = StoreUnavailableError()
            response = _evaluate(client, auth_headers)

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "store_unavailable"


class TestPoliciesEndpoint:
    def test_lists_default_policies(self, client: TestClient, auth_headers: dict) -> None:
        response = client.get("/v1/rate-limit/policies", headers=auth_headers)

        assert response.status_code == 200
        policies = {p["action_type"]: p for p in response.json()["policies"]}
        assert set(policies) == {"create_post", "create_reel", "send_message"}
        assert policies["send_message"] == {
            "action_type": "send_message",
            "window_seconds": 300,
            "max_count": 40,
            "unverified_max_count": 15,
        }


class TestEnforceEndpoint:
    def _enforce(self, client: TestClient, auth_headers: dict, tier: str = "unverified"):
        headers = {**auth_headers, "X-Subject-Id": "user-7", "X-Verification-Tier": tier}
        return client.post("/v1/actions/create_post/enforce", headers=headers)

    def test_allowed_returns_204(self, client: TestClient, auth_headers: dict) -> None:
        response = self._enforce(client, auth_headers)

        assert response.status_code == 204
        assert response.content == b""

    def test_requires_verification_returns_403(self, client: TestClient, auth_headers: dict) -> None:
        for _ in range(3):
            assert self._enforce(client, auth_headers).status_code == 204

        response = self._enforce(client, auth_headers)

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "rate_limit_verify"

    def test_exceeded_returns_429_with_headers(self, client: TestClient, auth_headers: dict) -> None:
        for _ in range(6):
            assert self._enforce(client, auth_headers, tier="verified").status_code == 204

        response = self._enforce(client, auth_headers, tier="verified")

        assert response.status_code == 429
        assert response.json()["error"]["code"] == "rate_limit_exceeded"
        assert int(response.headers["Retry-After"]) >= 0
        assert response.headers["X-RateLimit-Limit"] == "6"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert "X-RateLimit-Reset" in response.headers

    def test_unknown_tier_returns_400(self, client: TestClient, auth_headers: dict) -> None:
        response = self._enforce(client, auth_headers, tier="gold")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_verification_tier"

    def test_store_failure_returns_503(self, client: TestClient, auth_headers: dict) -> None:
        engine = get_decision_engine()
        with patch.object(engine, "_store") as store:
            store.increment_and_get.side_effect = StoreUnavailableError()
            response = self._enforce(client, auth_headers)

        assert response.status_code == 503


class TestHealth:
    def test_health_is_public(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_ready_with_memory_store(self, client: TestClient) -> None:
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_not_ready_when_store_unreachable(self, client: TestClient) -> None:
        engine = get_decision_engine()
        with patch.object(engine, "_store", Mock(ping=Mock(return_value=False))):
            response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "unavailable"
