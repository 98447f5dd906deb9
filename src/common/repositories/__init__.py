"""
Repository Pattern for MongoDB Operations

Provides abstraction layer over MongoDB for the entitlement service.

Public API:
- get_entitlement_repository(): Factory for the per-user entitlement records
- get_purchase_ledger_repository(): Factory for the append-only purchase ledger
- EntitlementRepositoryInterface: Abstract interface for entitlement records
- PurchaseLedgerRepositoryInterface: Abstract interface for the ledger
- WriteResult: Result dataclass for write operations

Usage:
    from src.common.repositories import get_entitlement_repository

    repo = get_entitlement_repository()
    record = repo.get("user-123", "ats-checker")
"""

from .base import EntitlementRepositoryInterface, WriteResult
from .purchase_ledger_repository import PurchaseLedgerRepositoryInterface
from .config import (
    get_entitlement_repository,
    reset_entitlement_repository,
    get_purchase_ledger_repository,
    reset_purchase_ledger_repository,
    RepositoryConfig,
)

__all__ = [
    # Entitlement records
    "get_entitlement_repository",
    "reset_entitlement_repository",
    "EntitlementRepositoryInterface",
    # Purchase ledger
    "get_purchase_ledger_repository",
    "reset_purchase_ledger_repository",
    "PurchaseLedgerRepositoryInterface",
    # Shared
    "WriteResult",
    "RepositoryConfig",
]
