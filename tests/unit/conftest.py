"""
Global fixtures for all unit tests.

This conftest provides autouse fixtures that keep unit tests hermetic:
- Environment variable isolation (no real MongoDB URI, Slack webhook or gateway keys)
- Module singletons reset between tests
"""

import pytest

from src.common.alerting import reset_alert_manager
from src.common.repositories import reset_entitlement_repository, reset_purchase_ledger_repository
from src.services.entitlement_service import reset_entitlement_service


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """
    Isolate test environment from real credentials and configurations.
    """
    monkeypatch.setenv("MONGODB_URI", "mongodb://test-host:27017")
    monkeypatch.delenv("SLACK_WEBHOOK_URL", raising=False)
    monkeypatch.delenv("RAZORPAY_KEY_ID", raising=False)
    monkeypatch.delenv("RAZORPAY_KEY_SECRET", raising=False)


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset repository, service and alert singletons around each test."""
    reset_entitlement_service()
    reset_entitlement_repository()
    reset_purchase_ledger_repository()
    reset_alert_manager()
    yield
    reset_entitlement_service()
    reset_entitlement_repository()
    reset_purchase_ledger_repository()
    reset_alert_manager()
