"""
Repository Configuration and Factory

Provides factory functions returning the repository implementations
configured by environment variables.
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

from .base import EntitlementRepositoryInterface
from .purchase_ledger_repository import PurchaseLedgerRepositoryInterface

logger = logging.getLogger(__name__)


@dataclass
class RepositoryConfig:
    """
    Configuration for repository initialization.

    Loaded from environment variables with sensible defaults.
    """
    mongodb_uri: str

    database: str = "catalyst"
    entitlements_collection: str = "ai_purchases"
    ledger_collection: str = "purchases"

    @classmethod
    def from_env(cls) -> "RepositoryConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - MONGODB_URI (required): MongoDB connection string
        - MONGO_DB_NAME: Database name
        - ENTITLEMENTS_COLLECTION: Entitlement records collection
        - LEDGER_COLLECTION: Purchase ledger collection

        Raises:
            ValueError: If MONGODB_URI is not set
        """
        mongodb_uri = os.getenv("MONGODB_URI")
        if not mongodb_uri:
            raise ValueError("MONGODB_URI environment variable is required")

        return cls(
            mongodb_uri=mongodb_uri,
            database=os.getenv("MONGO_DB_NAME", "catalyst"),
            entitlements_collection=os.getenv("ENTITLEMENTS_COLLECTION", "ai_purchases"),
            ledger_collection=os.getenv("LEDGER_COLLECTION", "purchases"),
        )


# Singleton repository instances
_entitlement_repository: Optional[EntitlementRepositoryInterface] = None
_ledger_repository: Optional[PurchaseLedgerRepositoryInterface] = None


def get_entitlement_repository() -> EntitlementRepositoryInterface:
    """
    Get the entitlement repository instance.

    Uses singleton pattern for connection pooling.

    Raises:
        ValueError: If MongoDB URI is not configured
    """
    global _entitlement_repository

    if _entitlement_repository is None:
        config = RepositoryConfig.from_env()
        from .entitlement_repository import AtlasEntitlementRepository
        _entitlement_repository = AtlasEntitlementRepository(
            mongodb_uri=config.mongodb_uri,
            database=config.database,
            collection=config.entitlements_collection,
        )
        logger.info("Initialized Atlas entitlement repository")

    return _entitlement_repository


def reset_entitlement_repository() -> None:
    """
    Reset the entitlement repository singleton.

    Used for testing or when configuration changes.
    """
    global _entitlement_repository

    if _entitlement_repository is not None:
        from .entitlement_repository import AtlasEntitlementRepository
        if isinstance(_entitlement_repository, AtlasEntitlementRepository):
            AtlasEntitlementRepository.reset_connection()

    _entitlement_repository = None
    logger.info("Entitlement repository singleton reset")


def get_purchase_ledger_repository() -> PurchaseLedgerRepositoryInterface:
    """
    Get the purchase ledger repository instance.

    Raises:
        ValueError: If MongoDB URI is not configured
    """
    global _ledger_repository

    if _ledger_repository is None:
        config = RepositoryConfig.from_env()
        from .purchase_ledger_repository import AtlasPurchaseLedgerRepository
        _ledger_repository = AtlasPurchaseLedgerRepository(
            mongodb_uri=config.mongodb_uri,
            database=config.database,
            collection=config.ledger_collection,
        )
        logger.info("Initialized Atlas purchase ledger repository")

    return _ledger_repository


def reset_purchase_ledger_repository() -> None:
    """Reset the purchase ledger repository singleton."""
    global _ledger_repository

    if _ledger_repository is not None:
        from .purchase_ledger_repository import AtlasPurchaseLedgerRepository
        if isinstance(_ledger_repository, AtlasPurchaseLedgerRepository):
            AtlasPurchaseLedgerRepository.reset_connection()

    _ledger_repository = None
    logger.info("Purchase ledger repository singleton reset")
