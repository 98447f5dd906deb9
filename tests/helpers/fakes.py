"""
In-memory collaborators for entitlement tests.

The repositories implement the real interfaces and can be told to fail,
so tests exercise the service's fail-closed and partial-write paths
without MongoDB.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from pymongo.errors import AutoReconnect, ServerSelectionTimeoutError

from src.common.entitlement_types import EntitlementRecord, LedgerEntry
from src.common.repositories.base import EntitlementRepositoryInterface, WriteResult
from src.common.repositories.purchase_ledger_repository import PurchaseLedgerRepositoryInterface
from src.services.payment_verification import PaymentVerifier
from src.common.error_handling import PaymentVerificationError

T0 = datetime(2025, 1, 15, 9, 30, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class InMemoryEntitlementRepository(EntitlementRepositoryInterface):
    """Dict-backed entitlement store keyed by (user_id, tool_id)."""

    def __init__(self):
        self.records: Dict[Tuple[str, str], EntitlementRecord] = {}
        self.read_failures = 0  # next N reads raise
        self.always_fail_reads = False
        self.fail_writes = False
        self.read_calls = 0
        self.write_calls = 0

    def _read(self) -> None:
        self.read_calls += 1
        if self.always_fail_reads:
            raise ServerSelectionTimeoutError("no primary available")
        if self.read_failures > 0:
            self.read_failures -= 1
            raise AutoReconnect("connection reset")

    def get(self, user_id: str, tool_id: str) -> Optional[EntitlementRecord]:
        self._read()
        return self.records.get((user_id, tool_id))

    def put(self, record: EntitlementRecord) -> WriteResult:
        self.write_calls += 1
        if self.fail_writes:
            raise ServerSelectionTimeoutError("no primary available")
        key = (record.user_id, record.tool_id)
        existed = key in self.records
        self.records[key] = record
        return WriteResult(
            matched_count=1 if existed else 0,
            modified_count=1 if existed else 0,
            upserted_id=None if existed else f"{record.user_id}:{record.tool_id}",
        )

    def list_for_user(self, user_id: str) -> List[EntitlementRecord]:
        self._read()
        return [r for (uid, _), r in self.records.items() if uid == user_id]

    def seed(self, record: EntitlementRecord) -> None:
        self.records[(record.user_id, record.tool_id)] = record


class InMemoryPurchaseLedger(PurchaseLedgerRepositoryInterface):
    """List-backed append-only ledger."""

    def __init__(self):
        self.entries: List[LedgerEntry] = []
        self.fail_appends = False
        self.fail_reads = False

    def append(self, entry: LedgerEntry) -> WriteResult:
        if self.fail_appends:
            raise AutoReconnect("connection reset")
        self.entries.append(entry)
        return WriteResult(matched_count=0, modified_count=0, upserted_id=str(len(self.entries)))

    def find_by_user(self, user_id: str, limit: int = 100) -> List[LedgerEntry]:
        if self.fail_reads:
            raise AutoReconnect("connection reset")
        entries = sorted(
            (e for e in self.entries if e.user_id == user_id),
            key=lambda e: e.timestamp,
            reverse=True,
        )
        return entries[:limit] if limit > 0 else entries

    def find_by_payment_id(self, payment_id: str) -> List[LedgerEntry]:
        if self.fail_reads:
            raise AutoReconnect("connection reset")
        return [e for e in self.entries if e.payment_id == payment_id]

    def for_pair(self, user_id: str, tool_id: str) -> List[LedgerEntry]:
        return [e for e in self.entries if e.user_id == user_id and e.tool_id == tool_id]


class StubPaymentVerifier(PaymentVerifier):
    """Accepts or rejects every payment, remembering what it was asked."""

    def __init__(self, accept: bool = True):
        self.accept = accept
        self.calls: List[Tuple[str, Optional[int]]] = []

    def verify(self, payment_id: str, expected_amount_minor: Optional[int] = None) -> None:
        self.calls.append((payment_id, expected_amount_minor))
        if not self.accept:
            raise PaymentVerificationError(payment_id, "payment status is 'failed'")
