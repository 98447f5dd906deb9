"""
Payment verification for recorded purchases.

The checkout page hands EntitlementService a payment id it received from the
Razorpay widget. By default that id is trusted. When
PAYMENT_VERIFICATION_ENABLED is set, the service first asks Razorpay whether
the payment really happened and was for the quoted amount.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import requests

from src.common.catalog import CURRENCY
from src.common.config import Config
from src.common.error_handling import PaymentVerificationError

logger = logging.getLogger(__name__)

RAZORPAY_API_BASE = "https://api.razorpay.com/v1"
# "authorized" payments are auto-captured by the account's capture settings
ACCEPTED_PAYMENT_STATUSES = frozenset({"captured", "authorized"})


class PaymentVerifier(ABC):
    """Confirms a payment token with the gateway before access is granted."""

    @abstractmethod
    def verify(self, payment_id: str, expected_amount_minor: Optional[int] = None) -> None:
        """
        Check that a payment completed.

        Args:
            payment_id: Token returned by the checkout widget
            expected_amount_minor: Amount in paise the payment must match,
                or None to skip the amount check

        Raises:
            PaymentVerificationError: If the payment cannot be confirmed
        """
        pass


class RazorpayPaymentVerifier(PaymentVerifier):
    """Looks the payment up through the Razorpay Payments API."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = RAZORPAY_API_BASE,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        if not key_id or not key_secret:
            raise ValueError("Razorpay key id and secret are required for payment verification")
        self._auth = (key_id, key_secret)
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    def verify(self, payment_id: str, expected_amount_minor: Optional[int] = None) -> None:
        url = f"{self._base_url}/payments/{payment_id}"
        try:
            response = self._session.get(url, auth=self._auth, timeout=self._timeout)
        except requests.RequestException as e:
            raise PaymentVerificationError(payment_id, f"gateway unreachable: {e}") from e

        if response.status_code == 404:
            raise PaymentVerificationError(payment_id, "payment not found")
        if response.status_code != 200:
            raise PaymentVerificationError(
                payment_id, f"gateway returned HTTP {response.status_code}"
            )

        try:
            payment = response.json()
        except ValueError as e:
            raise PaymentVerificationError(payment_id, "gateway returned invalid JSON") from e

        status = payment.get("status")
        if status not in ACCEPTED_PAYMENT_STATUSES:
            raise PaymentVerificationError(payment_id, f"payment status is {status!r}")

        currency = payment.get("currency")
        if currency and currency != CURRENCY:
            raise PaymentVerificationError(payment_id, f"unexpected currency {currency!r}")

        if expected_amount_minor is not None and payment.get("amount") != expected_amount_minor:
            raise PaymentVerificationError(
                payment_id,
                f"amount {payment.get('amount')} does not match expected {expected_amount_minor}",
            )

        logger.info(f"Payment {payment_id} verified ({status})")


def get_payment_verifier() -> Optional[PaymentVerifier]:
    """
    Build the configured verifier.

    Returns:
        RazorpayPaymentVerifier when verification is enabled, otherwise None
        (payment confirmations from checkout are trusted).
    """
    if not Config.PAYMENT_VERIFICATION_ENABLED:
        return None
    return RazorpayPaymentVerifier(Config.RAZORPAY_KEY_ID, Config.RAZORPAY_KEY_SECRET)
