"""
Shared fixtures for entitlement tests.

Every fixture builds fresh in-memory collaborators, so tests never touch
MongoDB, Slack or the payment gateway.
"""

import pytest

from src.common.alerting import AlertManager
from src.common.catalog import DEFAULT_CATALOG
from src.services.entitlement_service import EntitlementService
from tests.helpers.fakes import FakeClock, InMemoryEntitlementRepository, InMemoryPurchaseLedger


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def entitlement_repo():
    return InMemoryEntitlementRepository()


@pytest.fixture
def ledger():
    return InMemoryPurchaseLedger()


@pytest.fixture
def alerts():
    """Alert manager with no notifiers and no suppression; inspect via get_history()."""
    return AlertManager(suppression_window=0, notifiers=[], enabled=True)


@pytest.fixture
def service(entitlement_repo, ledger, clock, alerts):
    return EntitlementService(
        entitlements=entitlement_repo,
        ledger=ledger,
        catalog=DEFAULT_CATALOG,
        clock=clock,
        alert_manager=alerts,
        read_attempts=3,
        retry_wait=0,
    )
