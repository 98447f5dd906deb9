"""
Entitlement API Routes.

REST endpoints used by the web app:
- Tool pages ask whether the signed-in user may use a tool
- The AI hub lists every tool with its locked/unlocked state
- The profile page shows purchase and payment history
- The checkout page fetches a quote, then reports the completed payment

Anonymous requests (no X-User-Id) get "not entitled" / empty answers on
reads and 401 on purchase.

Handlers are plain functions: the service does blocking pymongo I/O, so
FastAPI runs them in its threadpool.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from src.common.entitlement_types import is_active
from src.common.error_handling import IdentityMissingError, StoreUnavailableError
from src.services.entitlement_service import EntitlementService, get_entitlement_service

from ..auth import current_user_id, verify_token

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/entitlements",
    tags=["entitlements"],
    dependencies=[Depends(verify_token)],
)

PURCHASE_PENDING_MESSAGE = (
    "Payment received but access is pending. Please contact support with your payment id."
)


# =============================================================================
# Pydantic Models
# =============================================================================


class EntitlementResponse(BaseModel):
    """Response model for a single tool check."""

    tool_id: str
    entitled: bool


class ActiveToolsResponse(BaseModel):
    """Response model for the active tools listing."""

    tools: List[str] = Field(default_factory=list)


class PurchaseRecordModel(BaseModel):
    """One entitlement record as shown on the profile page."""

    tool_id: str
    title: str
    payment_id: str
    purchased_at: Optional[str] = None
    expires_at: Optional[str] = None
    active: bool


class PurchaseHistoryResponse(BaseModel):
    purchases: List[PurchaseRecordModel] = Field(default_factory=list)


class PaymentModel(BaseModel):
    tool_id: str
    payment_id: str
    amount: int
    timestamp: str


class PaymentHistoryResponse(BaseModel):
    payments: List[PaymentModel] = Field(default_factory=list)


class ToolStatusModel(BaseModel):
    tool_id: str
    title: str
    path: str
    actual_price: int
    sale_price: int
    unlocked: bool
    expires_at: Optional[str] = None


class CatalogResponse(BaseModel):
    tools: List[ToolStatusModel] = Field(default_factory=list)


class CheckoutQuoteResponse(BaseModel):
    tool_id: str
    title: str
    amount_minor: int
    currency: str
    description: str
    access_days: int
    redirect_path: str


class PurchaseRequest(BaseModel):
    """Request model sent by the checkout page after a successful payment."""

    tool_id: str = Field(..., min_length=1, description="Tool that was paid for")
    payment_id: str = Field(..., min_length=1, description="Payment id returned by the gateway")


class PurchaseResponse(BaseModel):
    success: bool
    redirect_path: str = ""
    message: str = ""


# =============================================================================
# Helper Functions
# =============================================================================


def get_service() -> EntitlementService:
    """
    Get the EntitlementService instance.

    Raises:
        StoreUnavailableError: If the service cannot be configured (503)
    """
    try:
        return get_entitlement_service()
    except ValueError as e:
        logger.error(f"Failed to initialize entitlement service: {e}")
        raise StoreUnavailableError("service_init", e) from e


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/tools/{tool_id}", response_model=EntitlementResponse)
def check_entitlement(
    tool_id: str,
    user_id: Optional[str] = Depends(current_user_id),
    service: EntitlementService = Depends(get_service),
):
    """Whether the user may open the tool page right now."""
    return EntitlementResponse(tool_id=tool_id, entitled=service.is_entitled(user_id, tool_id))


@router.get("/active", response_model=ActiveToolsResponse)
def list_active_tools(
    user_id: Optional[str] = Depends(current_user_id),
    service: EntitlementService = Depends(get_service),
):
    """Purchased tools whose access term has not ended."""
    return ActiveToolsResponse(tools=sorted(service.list_active_tools(user_id)))


@router.get("/history", response_model=PurchaseHistoryResponse)
def purchase_history(
    user_id: Optional[str] = Depends(current_user_id),
    service: EntitlementService = Depends(get_service),
):
    """Latest purchase of each tool, newest first, including expired ones."""
    now = service.now()
    purchases = []
    for record in service.purchase_history(user_id):
        listing = service.catalog.get(record.tool_id)
        data = record.to_json()
        purchases.append(PurchaseRecordModel(
            tool_id=record.tool_id,
            title=listing.display_title if listing else record.tool_id,
            payment_id=record.payment_id,
            purchased_at=data["purchased_at"],
            expires_at=data["expires_at"],
            active=is_active(record, now),
        ))
    return PurchaseHistoryResponse(purchases=purchases)


@router.get("/payments", response_model=PaymentHistoryResponse)
def payment_history(
    user_id: Optional[str] = Depends(current_user_id),
    service: EntitlementService = Depends(get_service),
):
    """Every AI tool payment the user made, newest first."""
    payments = [
        PaymentModel(
            tool_id=entry.tool_id,
            payment_id=entry.payment_id,
            amount=entry.amount,
            timestamp=entry.timestamp.isoformat(),
        )
        for entry in service.payment_history(user_id)
    ]
    return PaymentHistoryResponse(payments=payments)


@router.get("/catalog", response_model=CatalogResponse)
def catalog(
    user_id: Optional[str] = Depends(current_user_id),
    service: EntitlementService = Depends(get_service),
):
    """All tools with prices and the user's locked/unlocked state."""
    return CatalogResponse(
        tools=[ToolStatusModel(**status.to_json()) for status in service.tool_statuses(user_id)]
    )


@router.get("/checkout/{tool_id}", response_model=CheckoutQuoteResponse)
def checkout_quote(
    tool_id: str,
    service: EntitlementService = Depends(get_service),
):
    """
    Amount and description for the payment widget.

    Unknown tools propagate as UnknownToolError (404).
    """
    try:
        quote = service.checkout_quote(tool_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return CheckoutQuoteResponse(**quote.to_json())


@router.post("/purchases", response_model=PurchaseResponse)
def record_purchase(
    request: PurchaseRequest,
    user_id: Optional[str] = Depends(current_user_id),
    service: EntitlementService = Depends(get_service),
):
    """
    Record a completed payment and unlock the tool.

    Returns:
        200 with the tool page to redirect to

    Raises:
        IdentityMissingError: 401 without a signed-in user
        HTTPException: 503 if access could not be granted (the user has
            paid and must contact support)
    """
    if user_id is None:
        raise IdentityMissingError("record_purchase")

    logger.info(f"Recording purchase of {request.tool_id} (payment {request.payment_id})")

    if not service.record_purchase(user_id, request.tool_id, request.payment_id):
        raise HTTPException(status_code=503, detail=PURCHASE_PENDING_MESSAGE)

    listing = service.catalog.get(request.tool_id)
    return PurchaseResponse(
        success=True,
        redirect_path=listing.path if listing else "",
        message=f"{service.term_days} days of access unlocked",
    )
