"""
Centralized error handling for the entitlement service.

Defines the exception taxonomy shared by the service and HTTP layers,
plus the structured failure record attached to store alerts.

Propagation policy: store exceptions never leave EntitlementService.
Reads degrade to "not entitled" / empty results, writes degrade to False.
The exceptions below are raised only where a caller has to branch on them
(e.g. the HTTP layer turning UnknownToolError into a 404).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


class EntitlementError(Exception):
    """Base class for entitlement errors."""

    error_code = "ENTITLEMENT_ERROR"
    status_code = 500


class IdentityMissingError(EntitlementError):
    """No authenticated user was supplied for an operation that needs one."""

    error_code = "IDENTITY_MISSING"
    status_code = 401

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"{operation} requires an authenticated user")


class StoreUnavailableError(EntitlementError):
    """The document store failed a read or write."""

    error_code = "STORE_UNAVAILABLE"
    status_code = 503

    def __init__(self, operation: str, cause: Optional[Exception] = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Store unavailable during {operation}{detail}")


class UnknownToolError(EntitlementError):
    """The tool id has no entry in the product catalog."""

    error_code = "UNKNOWN_TOOL"
    status_code = 404

    def __init__(self, tool_id: str):
        self.tool_id = tool_id
        super().__init__(f"Unknown tool: {tool_id!r}")


class PaymentVerificationError(EntitlementError):
    """The payment gateway could not confirm a payment token."""

    error_code = "PAYMENT_NOT_VERIFIED"
    status_code = 402

    def __init__(self, payment_id: str, reason: str):
        self.payment_id = payment_id
        self.reason = reason
        super().__init__(f"Payment {payment_id} not verified: {reason}")


@dataclass
class StoreFailure:
    """
    Structured record of a store failure caught at the service boundary.

    Sent as alert metadata so failures can be reconciled later.
    """

    operation: str  # e.g., "is_entitled", "ledger_append"
    message: str
    user_id: Optional[str] = None
    tool_id: Optional[str] = None
    payment_id: Optional[str] = None
    exception_type: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @classmethod
    def from_exception(
        cls,
        operation: str,
        exc: Exception,
        user_id: Optional[str] = None,
        tool_id: Optional[str] = None,
        payment_id: Optional[str] = None,
    ) -> "StoreFailure":
        return cls(
            operation=operation,
            message=str(exc),
            user_id=user_id,
            tool_id=tool_id,
            payment_id=payment_id,
            exception_type=type(exc).__name__,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary, dropping empty fields."""
        data = {
            "operation": self.operation,
            "message": self.message,
            "user_id": self.user_id,
            "tool_id": self.tool_id,
            "payment_id": self.payment_id,
            "exception_type": self.exception_type,
            "timestamp": self.timestamp,
        }
        return {k: v for k, v in data.items() if v is not None}
