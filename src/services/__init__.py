"""
Services module for AI tool entitlements.

EntitlementService is the only consumer-facing entry point; payment
verification is an optional collaborator it calls before granting access.
"""

from src.services.entitlement_service import (
    CheckoutQuote,
    EntitlementService,
    ToolStatus,
    get_entitlement_service,
    reset_entitlement_service,
)
from src.services.payment_verification import (
    PaymentVerifier,
    RazorpayPaymentVerifier,
    get_payment_verifier,
)

__all__ = [
    "CheckoutQuote",
    "EntitlementService",
    "ToolStatus",
    "get_entitlement_service",
    "reset_entitlement_service",
    "PaymentVerifier",
    "RazorpayPaymentVerifier",
    "get_payment_verifier",
]
