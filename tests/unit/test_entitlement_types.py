"""
Tests for entitlement domain types and the is_active expiry rule.
"""

import pytest
from datetime import datetime, timedelta, timezone

from src.common.entitlement_types import (
    AI_TOOL_PURCHASE_TYPE,
    EntitlementRecord,
    EntitlementStatus,
    LedgerEntry,
    is_active,
)

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _record(expires_at=None, purchased_at=T0):
    return EntitlementRecord(
        user_id="u1",
        tool_id="ats-checker",
        payment_id="pay_1",
        purchased_at=purchased_at,
        expires_at=expires_at,
    )


class TestIsActive:
    """Tests for the pure expiry check."""

    def test_active_before_expiry(self):
        record = _record(expires_at=T0 + timedelta(days=90))
        assert is_active(record, T0) is True
        assert is_active(record, T0 + timedelta(days=90) - timedelta(microseconds=1)) is True

    def test_expired_at_exact_expiry_instant(self):
        record = _record(expires_at=T0 + timedelta(days=90))
        assert is_active(record, T0 + timedelta(days=90)) is False

    def test_expired_after_expiry(self):
        record = _record(expires_at=T0)
        assert is_active(record, T0 + timedelta(seconds=1)) is False

    def test_missing_expiry_never_expires(self):
        assert is_active(_record(expires_at=None), T0 + timedelta(days=3650)) is True

    def test_naive_now_treated_as_utc(self):
        record = _record(expires_at=T0)
        assert is_active(record, datetime(2025, 3, 1, 11, 59)) is True
        assert is_active(record, datetime(2025, 3, 1, 12, 0)) is False

    def test_other_timezone_compared_by_instant(self):
        record = _record(expires_at=T0)
        ist = timezone(timedelta(hours=5, minutes=30))
        # 17:29 IST is 11:59 UTC
        assert is_active(record, datetime(2025, 3, 1, 17, 29, tzinfo=ist)) is True


class TestEntitlementRecord:

    def test_to_dict_keeps_datetimes_for_mongodb(self):
        data = _record(expires_at=T0 + timedelta(days=90)).to_dict()

        assert data == {
            "user_id": "u1",
            "tool_id": "ats-checker",
            "payment_id": "pay_1",
            "purchased_at": T0,
            "expires_at": T0 + timedelta(days=90),
            "status": "active",
        }

    def test_to_json_uses_iso_strings(self):
        data = _record(expires_at=None).to_json()
        assert data["purchased_at"] == "2025-03-01T12:00:00+00:00"
        assert data["expires_at"] is None

    def test_from_dict_tags_naive_mongodb_dates_as_utc(self):
        record = EntitlementRecord.from_dict({
            "user_id": "u1",
            "tool_id": "skill-gap",
            "payment_id": "pay_2",
            "purchased_at": datetime(2025, 3, 1, 12, 0),
            "expires_at": datetime(2025, 5, 30, 12, 0),
        })

        assert record.purchased_at == T0
        assert record.purchased_at.tzinfo is not None
        assert record.status == EntitlementStatus.ACTIVE

    def test_from_dict_accepts_iso_strings(self):
        record = EntitlementRecord.from_dict({
            "user_id": "u1",
            "tool_id": "skill-gap",
            "payment_id": "pay_2",
            "purchased_at": "2025-03-01T12:00:00Z",
            "expires_at": "",
        })

        assert record.purchased_at == T0
        assert record.expires_at is None

    def test_from_dict_rejects_unknown_status(self):
        with pytest.raises(ValueError):
            EntitlementRecord.from_dict({"user_id": "u1", "tool_id": "t", "status": "revoked"})

    def test_records_are_immutable(self):
        record = _record()
        with pytest.raises(AttributeError):
            record.payment_id = "other"


class TestLedgerEntry:

    def test_default_type_tag(self):
        entry = LedgerEntry(user_id="u1", tool_id="t", payment_id="p", amount=149, timestamp=T0)
        assert entry.type == AI_TOOL_PURCHASE_TYPE
        assert entry.to_dict()["type"] == "ai_tool"

    def test_from_dict_defaults_amount_to_zero(self):
        entry = LedgerEntry.from_dict({
            "user_id": "u1",
            "tool_id": "t",
            "payment_id": "p",
            "timestamp": datetime(2025, 3, 1, 12, 0),
        })
        assert entry.amount == 0
        assert entry.timestamp == T0
