"""
Repository Interface Definitions

Defines the abstract interface for entitlement record storage.
This enables swapping implementations (MongoDB, in-memory for tests)
without changing consumer code.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from src.common.entitlement_types import EntitlementRecord


@dataclass
class WriteResult:
    """
    Result of a write operation.

    Attributes:
        matched_count: Number of documents that matched the filter
        modified_count: Number of documents actually modified
        upserted_id: ID of upserted/inserted document (if any)
    """
    matched_count: int
    modified_count: int
    upserted_id: Optional[str] = None


class EntitlementRepositoryInterface(ABC):
    """
    Abstract interface for per-user, per-tool entitlement records.

    Records are addressed by (user_id, tool_id); there is at most one
    record per pair.

    Implementations:
    - AtlasEntitlementRepository: MongoDB collection

    All methods are fail-fast: store errors propagate to the caller.
    EntitlementService is the layer that degrades them.
    """

    @abstractmethod
    def get(self, user_id: str, tool_id: str) -> Optional[EntitlementRecord]:
        """
        Point read of one record.

        Args:
            user_id: Owner of the record
            tool_id: Tool the record grants

        Returns:
            The record, or None if the user never purchased the tool
        """
        pass

    @abstractmethod
    def put(self, record: EntitlementRecord) -> WriteResult:
        """
        Write a record, replacing any existing record for the same pair.

        Last write wins; no fields of the previous record survive.

        Args:
            record: Record to store

        Returns:
            WriteResult with match/modify counts

        Raises:
            Exception: If the write fails (fail-fast behavior)
        """
        pass

    @abstractmethod
    def list_for_user(self, user_id: str) -> List[EntitlementRecord]:
        """
        All records owned by a user, in no particular order.

        Args:
            user_id: Owner of the records

        Returns:
            List of records (empty if none)
        """
        pass
