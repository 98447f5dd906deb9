"""
Entitlement domain types.

EntitlementRecord is the current-state projection (one per user and tool),
LedgerEntry is the immutable event log row (one per purchase). Both convert
to and from MongoDB documents.

Expiry is never stored as a status: a record is expired when is_active()
says so for the current time.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

# Ledger rows for AI tools share the purchases collection with other products
AI_TOOL_PURCHASE_TYPE = "ai_tool"


class EntitlementStatus(str, Enum):
    """Persisted record status. Expiry is derived, not stored."""
    ACTIVE = "active"


def _as_utc(value: Any) -> Optional[datetime]:
    """
    Normalize a stored timestamp to an aware UTC datetime.

    PyMongo returns naive datetimes unless the client is tz_aware;
    BSON dates are always UTC, so naive values are tagged as such.
    ISO strings are accepted for documents written by older clients.
    """
    if value is None:
        return None
    if isinstance(value, str):
        if not value:
            return None
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if not isinstance(value, datetime):
        raise ValueError(f"Unsupported timestamp value: {value!r}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class EntitlementRecord:
    """
    A user's current purchase of one tool.

    purchased_at may be None for records written without a server timestamp;
    expires_at may be None for legacy records, which count as active.
    """

    user_id: str
    tool_id: str
    payment_id: str
    purchased_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    status: EntitlementStatus = EntitlementStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for MongoDB storage."""
        return {
            "user_id": self.user_id,
            "tool_id": self.tool_id,
            "payment_id": self.payment_id,
            "purchased_at": self.purchased_at,
            "expires_at": self.expires_at,
            "status": self.status.value,
        }

    def to_json(self) -> Dict[str, Any]:
        """Convert to a JSON-safe dictionary (ISO timestamps)."""
        data = self.to_dict()
        data["purchased_at"] = self.purchased_at.isoformat() if self.purchased_at else None
        data["expires_at"] = self.expires_at.isoformat() if self.expires_at else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EntitlementRecord":
        """Create from dictionary (MongoDB document)."""
        return cls(
            user_id=data.get("user_id", ""),
            tool_id=data.get("tool_id", ""),
            payment_id=data.get("payment_id", ""),
            purchased_at=_as_utc(data.get("purchased_at")),
            expires_at=_as_utc(data.get("expires_at")),
            status=EntitlementStatus(data.get("status", EntitlementStatus.ACTIVE.value)),
        )


@dataclass(frozen=True)
class LedgerEntry:
    """One purchase event. Never updated or deleted."""

    user_id: str
    tool_id: str
    payment_id: str
    amount: int
    timestamp: datetime
    type: str = AI_TOOL_PURCHASE_TYPE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "tool_id": self.tool_id,
            "payment_id": self.payment_id,
            "amount": self.amount,
            "timestamp": self.timestamp,
            "type": self.type,
        }

    def to_json(self) -> Dict[str, Any]:
        data = self.to_dict()
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LedgerEntry":
        timestamp = _as_utc(data.get("timestamp"))
        if timestamp is None:
            raise ValueError("Ledger entry has no timestamp")
        return cls(
            user_id=data.get("user_id", ""),
            tool_id=data.get("tool_id", ""),
            payment_id=data.get("payment_id", ""),
            amount=data.get("amount", 0),
            timestamp=timestamp,
            type=data.get("type", AI_TOOL_PURCHASE_TYPE),
        )


def is_active(record: EntitlementRecord, now: datetime) -> bool:
    """
    Decide whether a record still grants access at `now`.

    A record without expires_at never expires. Access ends exactly at
    expires_at: a query at that instant is already expired.
    """
    if record.expires_at is None:
        return True
    return _as_utc(now) < record.expires_at
