"""
Atlas Entitlement Repository

MongoDB implementation of EntitlementRepositoryInterface. One document per
(user_id, tool_id), enforced by a unique compound index.
"""

import logging
from typing import List, Optional

from pymongo import ASCENDING, MongoClient
from pymongo.collection import Collection

from src.common.entitlement_types import EntitlementRecord

from .base import EntitlementRepositoryInterface, WriteResult

logger = logging.getLogger(__name__)


class AtlasEntitlementRepository(EntitlementRepositoryInterface):
    """
    MongoDB-backed entitlement records.

    Connection Management:
    - Uses singleton MongoClient for connection pooling
    - Client is created once and reused across requests
    - tz_aware so timestamps come back as UTC-aware datetimes

    Error Handling:
    - Fail-fast: All errors propagate to caller
    """

    _client: Optional[MongoClient] = None
    _collection: Optional[Collection] = None

    def __init__(
        self,
        mongodb_uri: str,
        database: str = "catalyst",
        collection: str = "ai_purchases",
    ):
        """
        Initialize repository with connection parameters.

        Args:
            mongodb_uri: MongoDB connection string
            database: Database name (default: "catalyst")
            collection: Collection name (default: "ai_purchases")
        """
        if not mongodb_uri:
            raise ValueError("MongoDB URI is required")
        self._mongodb_uri = mongodb_uri
        self._database_name = database
        self._collection_name = collection

    def _get_collection(self) -> Collection:
        """
        Get the MongoDB collection, creating client and index if needed.

        Uses class-level singleton for connection pooling.
        """
        if AtlasEntitlementRepository._collection is None:
            client = MongoClient(self._mongodb_uri, tz_aware=True)
            collection = client[self._database_name][self._collection_name]
            collection.create_index(
                [("user_id", ASCENDING), ("tool_id", ASCENDING)],
                unique=True,
                name="user_tool_unique",
            )
            AtlasEntitlementRepository._client = client
            AtlasEntitlementRepository._collection = collection
            logger.info(
                f"Entitlement repository connected: {self._database_name}.{self._collection_name}"
            )
        return AtlasEntitlementRepository._collection

    def get(self, user_id: str, tool_id: str) -> Optional[EntitlementRecord]:
        collection = self._get_collection()
        doc = collection.find_one({"user_id": user_id, "tool_id": tool_id}, {"_id": 0})
        return EntitlementRecord.from_dict(doc) if doc else None

    def put(self, record: EntitlementRecord) -> WriteResult:
        """
        Replace the record for (user_id, tool_id), inserting if absent.

        Fail-fast behavior: exceptions propagate to caller.
        """
        collection = self._get_collection()
        result = collection.replace_one(
            {"user_id": record.user_id, "tool_id": record.tool_id},
            record.to_dict(),
            upsert=True,
        )
        return WriteResult(
            matched_count=result.matched_count,
            modified_count=result.modified_count,
            upserted_id=str(result.upserted_id) if result.upserted_id else None,
        )

    def list_for_user(self, user_id: str) -> List[EntitlementRecord]:
        """
        All records of a user.

        Documents that cannot be mapped to a record are logged and skipped,
        so one corrupt document does not hide the user's other tools.
        """
        collection = self._get_collection()
        records = []
        for doc in collection.find({"user_id": user_id}, {"_id": 0}):
            try:
                records.append(EntitlementRecord.from_dict(doc))
            except (ValueError, TypeError) as e:
                logger.warning(
                    f"Skipping malformed entitlement document (tool {doc.get('tool_id')!r}): {e}"
                )
        return records

    @classmethod
    def reset_connection(cls) -> None:
        """
        Reset the connection pool.

        Used for testing or connection recovery.
        """
        if cls._client:
            cls._client.close()
        cls._client = None
        cls._collection = None
        logger.info("Entitlement repository connection reset")
