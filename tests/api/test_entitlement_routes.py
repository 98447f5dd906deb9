"""
Tests for the entitlement HTTP API.
"""

import inspect
from datetime import timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from src.common.entitlement_types import EntitlementRecord
from tests.helpers.fakes import T0


def _seed(repo, tool_id, days_left=30, payment_id="pay_seed"):
    repo.seed(EntitlementRecord(
        user_id="u1",
        tool_id=tool_id,
        payment_id=payment_id,
        purchased_at=T0 - timedelta(days=90 - days_left),
        expires_at=T0 + timedelta(days=days_left),
    ))


class TestAuthentication:

    def test_health_is_public(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_missing_token(self, client):
        response = client.get("/api/entitlements/tools/ats-checker")
        assert response.status_code == 401

    def test_wrong_token(self, client, invalid_auth_headers):
        response = client.get("/api/entitlements/tools/ats-checker", headers=invalid_auth_headers)
        assert response.status_code == 401


class TestCheckEntitlement:

    def test_not_purchased(self, client, user_headers):
        response = client.get("/api/entitlements/tools/ats-checker", headers=user_headers)
        assert response.status_code == 200
        assert response.json() == {"tool_id": "ats-checker", "entitled": False}

    def test_purchased(self, client, user_headers, entitlement_repo):
        _seed(entitlement_repo, "ats-checker")
        response = client.get("/api/entitlements/tools/ats-checker", headers=user_headers)
        assert response.json()["entitled"] is True

    def test_free_tool_requires_user(self, client, auth_headers, user_headers):
        assert client.get("/api/entitlements/tools/ai-resume", headers=auth_headers).json()["entitled"] is False
        assert client.get("/api/entitlements/tools/ai-resume", headers=user_headers).json()["entitled"] is True

    def test_blank_user_header_is_anonymous(self, client, auth_headers, entitlement_repo):
        _seed(entitlement_repo, "ats-checker")
        headers = {**auth_headers, "X-User-Id": "   "}
        assert client.get("/api/entitlements/tools/ats-checker", headers=headers).json()["entitled"] is False

    def test_store_outage_fails_closed(self, client, user_headers, entitlement_repo):
        _seed(entitlement_repo, "ats-checker")
        entitlement_repo.always_fail_reads = True
        response = client.get("/api/entitlements/tools/ats-checker", headers=user_headers)
        assert response.status_code == 200
        assert response.json()["entitled"] is False


class TestListings:

    def test_active_tools_sorted(self, client, user_headers, entitlement_repo):
        _seed(entitlement_repo, "skill-gap")
        _seed(entitlement_repo, "ats-checker")
        _seed(entitlement_repo, "cover-letter", days_left=-1)

        response = client.get("/api/entitlements/active", headers=user_headers)

        assert response.json() == {"tools": ["ats-checker", "skill-gap"]}

    def test_history_includes_expired(self, client, user_headers, entitlement_repo):
        _seed(entitlement_repo, "ats-checker", days_left=10, payment_id="pay_new")
        _seed(entitlement_repo, "cover-letter", days_left=-5, payment_id="pay_old")

        purchases = client.get("/api/entitlements/history", headers=user_headers).json()["purchases"]

        assert [p["tool_id"] for p in purchases] == ["ats-checker", "cover-letter"]
        assert purchases[0]["title"] == "ATS Score Checker"
        assert purchases[0]["active"] is True
        assert purchases[1]["active"] is False

    def test_history_uses_single_store_read(self, client, user_headers, entitlement_repo):
        _seed(entitlement_repo, "ats-checker")

        client.get("/api/entitlements/history", headers=user_headers)

        assert entitlement_repo.read_calls == 1

    def test_history_marks_record_expiring_now_inactive(self, client, user_headers, entitlement_repo):
        _seed(entitlement_repo, "ats-checker", days_left=0)

        purchases = client.get("/api/entitlements/history", headers=user_headers).json()["purchases"]

        assert purchases[0]["active"] is False

    def test_history_anonymous_is_empty(self, client, auth_headers):
        assert client.get("/api/entitlements/history", headers=auth_headers).json() == {"purchases": []}

    def test_catalog_states(self, client, user_headers, entitlement_repo):
        _seed(entitlement_repo, "skill-gap")

        tools = client.get("/api/entitlements/catalog", headers=user_headers).json()["tools"]
        unlocked = {t["tool_id"]: t["unlocked"] for t in tools}

        assert unlocked == {
            "ai-resume": True,
            "ats-checker": False,
            "skill-gap": True,
            "cover-letter": False,
        }

    def test_payments(self, client, user_headers):
        client.post(
            "/api/entitlements/purchases",
            json={"tool_id": "ats-checker", "payment_id": "pay_1"},
            headers=user_headers,
        )

        payments = client.get("/api/entitlements/payments", headers=user_headers).json()["payments"]

        assert len(payments) == 1
        assert payments[0]["amount"] == 149
        assert payments[0]["payment_id"] == "pay_1"


class TestCheckoutQuote:

    def test_paid_tool(self, client, auth_headers):
        response = client.get("/api/entitlements/checkout/cover-letter", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["amount_minor"] == 9900
        assert data["currency"] == "INR"
        assert data["description"] == "90 Days Access to AI Cover Letter"

    def test_unknown_tool(self, client, auth_headers):
        response = client.get("/api/entitlements/checkout/resume-roaster", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["error_code"] == "UNKNOWN_TOOL"

    def test_free_tool(self, client, auth_headers):
        response = client.get("/api/entitlements/checkout/ai-resume", headers=auth_headers)
        assert response.status_code == 400


class TestRecordPurchase:

    def test_success_unlocks_tool(self, client, user_headers, entitlement_repo, ledger):
        response = client.post(
            "/api/entitlements/purchases",
            json={"tool_id": "skill-gap", "payment_id": "pay_9"},
            headers=user_headers,
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "redirect_path": "/skill-gap-analyzer",
            "message": "90 days of access unlocked",
        }
        assert entitlement_repo.records[("u1", "skill-gap")].expires_at == T0 + timedelta(days=90)
        assert len(ledger.for_pair("u1", "skill-gap")) == 1

    def test_anonymous_rejected(self, client, auth_headers, entitlement_repo):
        response = client.post(
            "/api/entitlements/purchases",
            json={"tool_id": "skill-gap", "payment_id": "pay_9"},
            headers=auth_headers,
        )
        assert response.status_code == 401
        assert entitlement_repo.records == {}
        assert response.json()["error_code"] == "IDENTITY_MISSING"

    @pytest.mark.parametrize("body", [
        {"tool_id": "skill-gap"},
        {"tool_id": "skill-gap", "payment_id": ""},
        {"tool_id": "", "payment_id": "pay_9"},
    ])
    def test_invalid_body(self, client, user_headers, body):
        response = client.post("/api/entitlements/purchases", json=body, headers=user_headers)
        assert response.status_code == 422

    def test_store_failure_reports_pending(self, client, user_headers, entitlement_repo, ledger):
        entitlement_repo.fail_writes = True

        response = client.post(
            "/api/entitlements/purchases",
            json={"tool_id": "skill-gap", "payment_id": "pay_9"},
            headers=user_headers,
        )

        assert response.status_code == 503
        assert "contact support" in response.json()["detail"]
        assert ledger.entries == []

    def test_ledger_failure_still_succeeds(self, client, user_headers, ledger, alerts):
        ledger.fail_appends = True

        response = client.post(
            "/api/entitlements/purchases",
            json={"tool_id": "skill-gap", "payment_id": "pay_9"},
            headers=user_headers,
        )

        assert response.status_code == 200
        assert len(alerts.get_history(source="audit_anomaly")) == 1


class TestServiceUnavailable:

    def test_misconfigured_store_returns_503(self, auth_headers):
        from entitlement_api.app import app

        with patch(
            "entitlement_api.routes.entitlements.get_entitlement_service",
            side_effect=ValueError("MONGODB_URI environment variable is required"),
        ):
            response = TestClient(app).get("/api/entitlements/active", headers=auth_headers)

        assert response.status_code == 503
        assert response.json()["error_code"] == "STORE_UNAVAILABLE"


class TestHandlers:

    def test_entitlement_handlers_run_in_threadpool(self):
        from entitlement_api.routes.entitlements import router

        for route in router.routes:
            assert not inspect.iscoroutinefunction(route.endpoint), route.path
