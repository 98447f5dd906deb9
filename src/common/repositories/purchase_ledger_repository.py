"""
Purchase Ledger Repository

Repository interface for the purchases collection: an append-only log of
payment events used for audit and revenue reconciliation. Independent of
the entitlement records; the two are written separately.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from pymongo import DESCENDING, MongoClient
from pymongo.collection import Collection

from src.common.entitlement_types import AI_TOOL_PURCHASE_TYPE, LedgerEntry

from .base import WriteResult

logger = logging.getLogger(__name__)


class PurchaseLedgerRepositoryInterface(ABC):
    """
    Abstract interface for the purchase ledger.

    Entries are only ever appended. There is deliberately no update or
    delete operation.
    """

    @abstractmethod
    def append(self, entry: LedgerEntry) -> WriteResult:
        """
        Append one ledger entry.

        Args:
            entry: The purchase event

        Returns:
            WriteResult with upserted_id set to the new entry's id

        Raises:
            Exception: If the insert fails (fail-fast behavior)
        """
        pass

    @abstractmethod
    def find_by_user(self, user_id: str, limit: int = 100) -> List[LedgerEntry]:
        """
        AI tool purchases made by a user, newest first.

        Args:
            user_id: Purchaser
            limit: Maximum number of entries to return (0 = no limit)
        """
        pass

    @abstractmethod
    def find_by_payment_id(self, payment_id: str) -> List[LedgerEntry]:
        """
        Entries recorded with a given payment token.

        More than one entry means the same payment was reported twice.
        """
        pass


class AtlasPurchaseLedgerRepository(PurchaseLedgerRepositoryInterface):
    """
    Atlas MongoDB implementation of PurchaseLedgerRepository.
    """

    _client: Optional[MongoClient] = None

    def __init__(
        self,
        mongodb_uri: str,
        database: str = "catalyst",
        collection: str = "purchases",
    ):
        """
        Initialize the repository.

        Args:
            mongodb_uri: MongoDB connection string
            database: Database name
            collection: Collection name
        """
        if not mongodb_uri:
            raise ValueError("MongoDB URI is required")
        self._mongodb_uri = mongodb_uri
        self._database = database
        self._collection_name = collection

    def _get_client(self) -> MongoClient:
        """Get or create the MongoDB client (singleton)."""
        if AtlasPurchaseLedgerRepository._client is None:
            AtlasPurchaseLedgerRepository._client = MongoClient(self._mongodb_uri, tz_aware=True)
            logger.info("Created new MongoDB client for purchase ledger repository")
        return AtlasPurchaseLedgerRepository._client

    def _get_collection(self) -> Collection:
        client = self._get_client()
        return client[self._database][self._collection_name]

    @classmethod
    def reset_connection(cls) -> None:
        """Reset the MongoDB client connection."""
        if cls._client is not None:
            cls._client.close()
            cls._client = None
            logger.info("Purchase ledger repository connection reset")

    def append(self, entry: LedgerEntry) -> WriteResult:
        try:
            collection = self._get_collection()
            result = collection.insert_one(entry.to_dict())
            return WriteResult(
                matched_count=0,
                modified_count=0,
                upserted_id=str(result.inserted_id) if result.inserted_id else None,
            )
        except Exception as e:
            logger.error(f"Error appending ledger entry for payment {entry.payment_id}: {e}")
            raise

    def find_by_user(self, user_id: str, limit: int = 100) -> List[LedgerEntry]:
        collection = self._get_collection()
        cursor = collection.find(
            {"user_id": user_id, "type": AI_TOOL_PURCHASE_TYPE},
            {"_id": 0},
        ).sort([("timestamp", DESCENDING)])
        if limit > 0:
            cursor = cursor.limit(limit)
        return self._to_entries(cursor)

    def find_by_payment_id(self, payment_id: str) -> List[LedgerEntry]:
        collection = self._get_collection()
        return self._to_entries(collection.find({"payment_id": payment_id}, {"_id": 0}))

    @staticmethod
    def _to_entries(docs) -> List[LedgerEntry]:
        """Map documents to entries, skipping ones that cannot be read."""
        entries = []
        for doc in docs:
            try:
                entries.append(LedgerEntry.from_dict(doc))
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed ledger document (payment {doc.get('payment_id')!r}): {e}")
        return entries
