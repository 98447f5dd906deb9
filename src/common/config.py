"""
Configuration loader for the AI tool entitlement service.

Loads all settings from environment variables (.env file).
Validates required settings and provides type-safe access.
"""

import os
from typing import List
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """
    Centralized configuration for entitlement components.

    All values loaded from environment variables - NO SECRETS IN CODE.
    """

    # ===== MongoDB =====
    MONGODB_URI: str = os.getenv("MONGODB_URI", "")
    MONGO_DB_NAME: str = os.getenv("MONGO_DB_NAME", "catalyst")
    ENTITLEMENTS_COLLECTION: str = os.getenv("ENTITLEMENTS_COLLECTION", "ai_purchases")
    LEDGER_COLLECTION: str = os.getenv("LEDGER_COLLECTION", "purchases")

    # ===== Entitlements =====
    # Every purchase grants this many days of access from the time it is recorded
    ENTITLEMENT_TERM_DAYS: int = int(os.getenv("ENTITLEMENT_TERM_DAYS", "90"))
    # Reads are retried with backoff, writes never are
    STORE_READ_ATTEMPTS: int = int(os.getenv("STORE_READ_ATTEMPTS", "3"))
    # Optional JSON file overriding the built-in product catalog
    CATALOG_PATH: str = os.getenv("CATALOG_PATH", "")

    # ===== Payments =====
    # Off by default: the checkout flow's payment confirmation is trusted as-is
    PAYMENT_VERIFICATION_ENABLED: bool = (
        os.getenv("PAYMENT_VERIFICATION_ENABLED", "false").lower() == "true"
    )
    RAZORPAY_KEY_ID: str = os.getenv("RAZORPAY_KEY_ID", "")
    RAZORPAY_KEY_SECRET: str = os.getenv("RAZORPAY_KEY_SECRET", "")

    # ===== Alerting =====
    ENABLE_ALERTING: bool = os.getenv("ENABLE_ALERTING", "true").lower() == "true"
    SLACK_WEBHOOK_URL: str = os.getenv("SLACK_WEBHOOK_URL", "")

    @classmethod
    def validate(cls) -> None:
        """
        Validate that all required configuration is present.
        Raises ValueError if critical settings are missing.
        """
        required_settings = {
            "MONGODB_URI": cls.MONGODB_URI,
        }

        if cls.PAYMENT_VERIFICATION_ENABLED:
            required_settings.update({
                "RAZORPAY_KEY_ID": cls.RAZORPAY_KEY_ID,
                "RAZORPAY_KEY_SECRET": cls.RAZORPAY_KEY_SECRET,
            })

        missing = [name for name, value in required_settings.items() if not value]

        if missing:
            raise ValueError(
                f"Missing required configuration: {', '.join(missing)}. "
                f"Please check your .env file."
            )

        if cls.ENTITLEMENT_TERM_DAYS <= 0:
            raise ValueError(
                f"ENTITLEMENT_TERM_DAYS must be positive, got {cls.ENTITLEMENT_TERM_DAYS}"
            )

        if cls.STORE_READ_ATTEMPTS < 1:
            raise ValueError(
                f"STORE_READ_ATTEMPTS must be at least 1, got {cls.STORE_READ_ATTEMPTS}"
            )

    @classmethod
    def summary(cls) -> List[str]:
        """Non-secret settings, for startup logging."""
        return [
            f"database={cls.MONGO_DB_NAME}",
            f"entitlements={cls.ENTITLEMENTS_COLLECTION}",
            f"ledger={cls.LEDGER_COLLECTION}",
            f"term_days={cls.ENTITLEMENT_TERM_DAYS}",
            f"read_attempts={cls.STORE_READ_ATTEMPTS}",
            f"catalog={cls.CATALOG_PATH or 'built-in'}",
            f"payment_verification={'on' if cls.PAYMENT_VERIFICATION_ENABLED else 'off'}",
        ]
