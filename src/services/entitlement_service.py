"""
Entitlement Service - decides who may use which AI tool.

Provides:
- is_entitled(user_id, tool_id) -> bool
- list_active_tools(user_id) -> set of tool ids
- record_purchase(user_id, tool_id, payment_token) -> bool
- purchase_history(user_id) -> entitlement records, newest first
- payment_history(user_id) -> ledger entries, newest first
- tool_statuses(user_id) -> locked/unlocked state of every catalog tool
- checkout_quote(tool_id) -> what the checkout widget should charge

Architecture:
- Fail-CLOSED: a store error on read means "not entitled" / empty, plus an alert
- Reads retry with exponential backoff; writes are never retried, since a
  retried purchase would append a second ledger row
- A purchase is two independent writes: the entitlement record (authoritative,
  decides the return value) then the ledger entry (best-effort audit)
- Expiry is computed on read from expires_at and the injected clock

Callers get plain values back; store exceptions never leave this module.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Set, TypeVar

from pymongo.errors import PyMongoError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.common.alerting import AlertLevel, AlertManager, AlertSource, get_alert_manager
from src.common.catalog import CURRENCY, DEFAULT_CATALOG, ProductCatalog, load_catalog
from src.common.config import Config
from src.common.entitlement_types import (
    AI_TOOL_PURCHASE_TYPE,
    EntitlementRecord,
    EntitlementStatus,
    LedgerEntry,
    is_active,
)
from src.common.error_handling import (
    PaymentVerificationError,
    StoreFailure,
    UnknownToolError,
)
from src.common.logger import EntitlementLogAdapter, get_logger
from src.common.repositories import (
    EntitlementRepositoryInterface,
    PurchaseLedgerRepositoryInterface,
    get_entitlement_repository,
    get_purchase_ledger_repository,
)
from src.services.payment_verification import PaymentVerifier, get_payment_verifier

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TERM_DAYS = 90
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def has_identity(user_id: Optional[str]) -> bool:
    """True when user_id denotes a signed-in user."""
    return isinstance(user_id, str) and bool(user_id.strip())


@dataclass(frozen=True)
class ToolStatus:
    """Locked/unlocked state of one catalog tool for one user."""

    tool_id: str
    title: str
    path: str
    actual_price: int
    sale_price: int
    unlocked: bool
    expires_at: Optional[datetime] = None

    def to_json(self) -> dict:
        return {
            "tool_id": self.tool_id,
            "title": self.title,
            "path": self.path,
            "actual_price": self.actual_price,
            "sale_price": self.sale_price,
            "unlocked": self.unlocked,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }


@dataclass(frozen=True)
class CheckoutQuote:
    """Parameters for the payment widget."""

    tool_id: str
    title: str
    amount_minor: int
    currency: str
    description: str
    access_days: int
    redirect_path: str

    def to_json(self) -> dict:
        return {
            "tool_id": self.tool_id,
            "title": self.title,
            "amount_minor": self.amount_minor,
            "currency": self.currency,
            "description": self.description,
            "access_days": self.access_days,
            "redirect_path": self.redirect_path,
        }


class EntitlementService:
    """
    Single entry point for AI tool entitlements.

    All collaborators are injected; get_entitlement_service() wires the
    production ones from configuration.
    """

    def __init__(
        self,
        entitlements: EntitlementRepositoryInterface,
        ledger: PurchaseLedgerRepositoryInterface,
        catalog: ProductCatalog = DEFAULT_CATALOG,
        clock: Optional[Callable[[], datetime]] = None,
        alert_manager: Optional[AlertManager] = None,
        payment_verifier: Optional[PaymentVerifier] = None,
        term_days: int = DEFAULT_TERM_DAYS,
        read_attempts: int = 3,
        retry_wait: float = 0.2,
    ):
        """
        Args:
            entitlements: Per-user entitlement record store
            ledger: Append-only purchase ledger
            catalog: Product catalog (prices, free tools)
            clock: Returns the current UTC time; defaults to the system clock
            alert_manager: Receives store failures and audit anomalies
            payment_verifier: Confirms payment tokens; None trusts the caller
            term_days: Access granted per purchase
            read_attempts: Total attempts per store read (1 = no retry)
            retry_wait: Base of the exponential backoff between read attempts, seconds
        """
        if term_days <= 0:
            raise ValueError(f"term_days must be positive, got {term_days}")
        if read_attempts < 1:
            raise ValueError(f"read_attempts must be at least 1, got {read_attempts}")

        self._entitlements = entitlements
        self._ledger = ledger
        self._catalog = catalog
        self._clock = clock or _utcnow
        self._alerts = alert_manager or get_alert_manager()
        self._verifier = payment_verifier
        self._term = timedelta(days=term_days)
        self._read_attempts = read_attempts
        self._retry_wait = retry_wait

    @property
    def catalog(self) -> ProductCatalog:
        return self._catalog

    @property
    def term_days(self) -> int:
        return self._term.days

    def now(self) -> datetime:
        """Current time from the injected clock."""
        return self._clock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def is_entitled(self, user_id: Optional[str], tool_id: str) -> bool:
        """
        Whether the user may use the tool right now.

        Anonymous users are never entitled, not even to free tools.
        Free tools are unlocked without a store read. Expired and
        never-purchased are both reported as False.
        """
        if not has_identity(user_id):
            return False
        if self._catalog.is_free(tool_id):
            return True

        record = self._read(
            "is_entitled",
            lambda: self._entitlements.get(user_id, tool_id),
            fallback=None,
            user_id=user_id,
            tool_id=tool_id,
        )
        if record is None:
            return False
        return is_active(record, self._clock())

    def list_active_tools(self, user_id: Optional[str]) -> Set[str]:
        """
        Tool ids the user has an unexpired purchase for.

        One listing read; free tools are not included since they are never
        purchased.
        """
        if not has_identity(user_id):
            return set()

        records = self._read(
            "list_active_tools",
            lambda: self._entitlements.list_for_user(user_id),
            fallback=[],
            user_id=user_id,
        )
        now = self._clock()
        return {record.tool_id for record in records if is_active(record, now)}

    def purchase_history(self, user_id: Optional[str]) -> List[EntitlementRecord]:
        """
        Every entitlement record of the user, expired or not.

        Newest purchased_at first; records missing purchased_at sort last.
        Only the latest purchase per tool exists here, see payment_history
        for every payment.
        """
        if not has_identity(user_id):
            return []

        records = self._read(
            "purchase_history",
            lambda: self._entitlements.list_for_user(user_id),
            fallback=[],
            user_id=user_id,
        )
        return sorted(
            records,
            key=lambda r: (r.purchased_at is not None, r.purchased_at or _EPOCH),
            reverse=True,
        )

    def payment_history(self, user_id: Optional[str], limit: int = 100) -> List[LedgerEntry]:
        """Ledger entries for the user's AI tool payments, newest first."""
        if not has_identity(user_id):
            return []

        return self._read(
            "payment_history",
            lambda: self._ledger.find_by_user(user_id, limit=limit),
            fallback=[],
            user_id=user_id,
            source=AlertSource.PURCHASE_LEDGER,
        )

    def tool_statuses(self, user_id: Optional[str]) -> List[ToolStatus]:
        """
        State of every catalog tool for the AI hub page, in catalog order.

        Uses a single listing read instead of one is_entitled call per tool.
        """
        signed_in = has_identity(user_id)
        active = {}
        if signed_in:
            records = self._read(
                "tool_statuses",
                lambda: self._entitlements.list_for_user(user_id),
                fallback=[],
                user_id=user_id,
            )
            now = self._clock()
            active = {r.tool_id: r for r in records if is_active(r, now)}

        statuses = []
        for listing in self._catalog:
            record = active.get(listing.tool_id)
            statuses.append(ToolStatus(
                tool_id=listing.tool_id,
                title=listing.display_title,
                path=listing.path,
                actual_price=listing.actual_price,
                sale_price=listing.sale_price,
                unlocked=signed_in and (listing.is_free or record is not None),
                expires_at=record.expires_at if record else None,
            ))
        return statuses

    def checkout_quote(self, tool_id: str) -> CheckoutQuote:
        """
        What to charge for a tool.

        Raises:
            UnknownToolError: If the tool is not in the catalog
            ValueError: If the tool is free
        """
        listing = self._catalog.get(tool_id)
        if listing is None:
            raise UnknownToolError(tool_id)
        if listing.is_free:
            raise ValueError(f"{tool_id} is free and cannot be purchased")

        return CheckoutQuote(
            tool_id=listing.tool_id,
            title=listing.display_title,
            amount_minor=listing.sale_price_minor,
            currency=CURRENCY,
            description=f"{self.term_days} Days Access to {listing.display_title}",
            access_days=self.term_days,
            redirect_path=listing.path,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_purchase(
        self,
        user_id: Optional[str],
        tool_id: str,
        payment_token: Optional[str],
    ) -> bool:
        """
        Grant the user a fresh access term for the tool.

        Replaces any existing record for the pair (a repeat purchase restarts
        the term from now) and appends one ledger entry. Calling twice is not
        a no-op: the second call renews again and adds a second ledger row.

        Returns:
            True if the entitlement record was written. A failed ledger
            append does not change the result; it raises an audit alert.
        """
        log = get_logger(__name__, user_id=user_id, tool_id=tool_id, operation="record_purchase")

        if not has_identity(user_id):
            log.warning("Rejected purchase without an authenticated user")
            return False
        if not payment_token or not str(payment_token).strip():
            log.warning("Rejected purchase without a payment confirmation")
            return False

        listing = self._catalog.get(tool_id)
        if listing is None:
            log.warning("Recording purchase of unknown tool, ledger amount defaults to 0")
            self._alerts.alert(
                level=AlertLevel.WARNING,
                message=f"Purchase recorded for unknown tool {tool_id!r}",
                source=AlertSource.CATALOG,
                metadata={"user_id": user_id, "tool_id": tool_id, "payment_id": payment_token},
            )

        if self._verifier is not None:
            try:
                self._verifier.verify(
                    payment_token,
                    expected_amount_minor=listing.sale_price_minor if listing else None,
                )
            except PaymentVerificationError as e:
                log.error(f"Payment verification failed: {e.reason}")
                self._alerts.alert(
                    level=AlertLevel.ERROR,
                    message=f"Payment {payment_token} could not be verified: {e.reason}",
                    source=AlertSource.PAYMENT_VERIFICATION,
                    metadata={"user_id": user_id, "tool_id": tool_id, "payment_id": payment_token},
                    force=True,
                )
                return False

            if not self._payment_unclaimed(user_id, tool_id, payment_token, log):
                return False

        now = self._clock()
        record = EntitlementRecord(
            user_id=user_id,
            tool_id=tool_id,
            payment_id=payment_token,
            purchased_at=now,
            expires_at=now + self._term,
            status=EntitlementStatus.ACTIVE,
        )

        try:
            self._entitlements.put(record)
        except PyMongoError as e:
            failure = StoreFailure.from_exception(
                "record_purchase", e, user_id=user_id, tool_id=tool_id, payment_id=payment_token
            )
            log.error(f"Entitlement write failed, access not granted: {e}")
            self._alerts.alert(
                level=AlertLevel.CRITICAL,
                message=f"Paid purchase could not be recorded (payment {payment_token})",
                source=AlertSource.ENTITLEMENT_STORE,
                metadata=failure.to_dict(),
                force=True,
            )
            return False

        entry = LedgerEntry(
            user_id=user_id,
            tool_id=tool_id,
            payment_id=payment_token,
            amount=self._catalog.price_of(tool_id),
            timestamp=now,
            type=AI_TOOL_PURCHASE_TYPE,
        )
        try:
            self._ledger.append(entry)
        except PyMongoError as e:
            failure = StoreFailure.from_exception(
                "ledger_append", e, user_id=user_id, tool_id=tool_id, payment_id=payment_token
            )
            log.error(f"Ledger append failed after entitlement was granted: {e}")
            self._alerts.alert(
                level=AlertLevel.ERROR,
                message=f"Entitlement granted without ledger entry (payment {payment_token})",
                source=AlertSource.AUDIT_ANOMALY,
                metadata={**failure.to_dict(), "amount": entry.amount},
                force=True,
            )

        log.info(f"Purchase recorded, access until {record.expires_at.isoformat()}")
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _payment_unclaimed(
        self,
        user_id: str,
        tool_id: str,
        payment_token: str,
        log: EntitlementLogAdapter,
    ) -> bool:
        """
        Whether a verified payment may grant access to this user and tool.

        A payment already on the ledger for another user or tool is a
        replay. If the ledger cannot be read the purchase is refused.
        """
        entries = self._read(
            "payment_replay_check",
            lambda: self._ledger.find_by_payment_id(payment_token),
            fallback=None,
            user_id=user_id,
            tool_id=tool_id,
            source=AlertSource.PURCHASE_LEDGER,
        )
        if entries is None:
            log.error("Ledger unavailable, cannot check payment for reuse")
            return False

        claimed_by = {(e.user_id, e.tool_id) for e in entries} - {(user_id, tool_id)}
        if claimed_by:
            log.error(f"Payment {payment_token} already used for {len(claimed_by)} other purchase(s)")
            self._alerts.alert(
                level=AlertLevel.ERROR,
                message=f"Payment {payment_token} reused for a different purchase",
                source=AlertSource.PAYMENT_VERIFICATION,
                metadata={"user_id": user_id, "tool_id": tool_id, "payment_id": payment_token},
                force=True,
            )
            return False
        return True

    def _read(
        self,
        operation: str,
        fn: Callable[[], T],
        fallback: T,
        user_id: Optional[str] = None,
        tool_id: Optional[str] = None,
        source: str = AlertSource.ENTITLEMENT_STORE,
    ) -> T:
        """
        Run a store read, failing closed to `fallback`.

        PyMongoError is retried with backoff. A document that cannot be
        mapped to a record (ValueError/TypeError) is not retried: the
        same bytes would come back.
        """
        retrying = Retrying(
            stop=stop_after_attempt(self._read_attempts),
            wait=wait_exponential(multiplier=self._retry_wait, max=5),
            retry=retry_if_exception_type(PyMongoError),
            reraise=True,
        )
        log = get_logger(__name__, user_id=user_id, tool_id=tool_id, operation=operation)
        try:
            return retrying(fn)
        except (ValueError, TypeError) as e:
            failure = StoreFailure.from_exception(operation, e, user_id=user_id, tool_id=tool_id)
            log.warning(f"Malformed store document, failing closed: {e}")
            self._alerts.alert(
                level=AlertLevel.ERROR,
                message=f"Malformed store document during {operation}",
                source=source,
                metadata=failure.to_dict(),
            )
            return fallback
        except PyMongoError as e:
            failure = StoreFailure.from_exception(operation, e, user_id=user_id, tool_id=tool_id)
            log.warning(
                f"Store read failed after {self._read_attempts} attempt(s), failing closed: {e}"
            )
            self._alerts.alert(
                level=AlertLevel.ERROR,
                message=f"Store read failed during {operation}",
                source=source,
                metadata=failure.to_dict(),
            )
            return fallback


# Singleton instance
_entitlement_service: Optional[EntitlementService] = None


def get_entitlement_service() -> EntitlementService:
    """
    Get the entitlement service wired from configuration (singleton).

    Raises:
        ValueError: If MongoDB or the catalog file is misconfigured
    """
    global _entitlement_service

    if _entitlement_service is None:
        _entitlement_service = EntitlementService(
            entitlements=get_entitlement_repository(),
            ledger=get_purchase_ledger_repository(),
            catalog=load_catalog(Config.CATALOG_PATH),
            alert_manager=get_alert_manager(),
            payment_verifier=get_payment_verifier(),
            term_days=Config.ENTITLEMENT_TERM_DAYS,
            read_attempts=Config.STORE_READ_ATTEMPTS,
        )
        logger.info(f"Initialized entitlement service ({', '.join(Config.summary())})")

    return _entitlement_service


def reset_entitlement_service() -> None:
    """Reset the service singleton (for testing)."""
    global _entitlement_service
    _entitlement_service = None
