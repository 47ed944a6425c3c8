"""
Subscription Domain Models

Domain models for subscription billing following Clean Architecture.
Enums, the status state machine, domain entities and request/response DTOs
for the billing bounded context.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status."""
    INCOMPLETE = "incomplete"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class TransactionType(str, Enum):
    """Kind of credit ledger entry."""
    PURCHASE = "purchase"
    RENEWAL = "renewal"
    PAYMENT_FAILED = "payment_failed"


# =============================================================================
# Status State Machine
# =============================================================================

ALLOWED_TRANSITIONS: dict[SubscriptionStatus, frozenset[SubscriptionStatus]] = {
    SubscriptionStatus.INCOMPLETE: frozenset({
        SubscriptionStatus.TRIALING,
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.CANCELED,
    }),
    SubscriptionStatus.TRIALING: frozenset({
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.CANCELED,
    }),
    SubscriptionStatus.ACTIVE: frozenset({
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.CANCELED,
    }),
    SubscriptionStatus.PAST_DUE: frozenset({
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.CANCELED,
    }),
    SubscriptionStatus.CANCELED: frozenset(),
}

# Stripe statuses outside our model, folded onto the closest local status
_PROVIDER_STATUS_ALIASES = {
    "unpaid": SubscriptionStatus.PAST_DUE,
    "paused": SubscriptionStatus.PAST_DUE,
    "incomplete_expired": SubscriptionStatus.CANCELED,
    "cancelled": SubscriptionStatus.CANCELED,
}


def can_transition(current: SubscriptionStatus, new: SubscriptionStatus) -> bool:
    """Re-applying the same status is always allowed."""
    if current == new:
        return True
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


def normalize_status(raw: Optional[str]) -> Optional[SubscriptionStatus]:
    """Map a Stripe subscription status string to a local status."""
    if not raw:
        return None
    try:
        return SubscriptionStatus(raw)
    except ValueError:
        return _PROVIDER_STATUS_ALIASES.get(raw)


# =============================================================================
# Domain Entities
# =============================================================================

class BillingCustomer(BaseModel):
    """Link between an application user and a Stripe customer."""
    id: Optional[str] = None
    user_id: str
    customer_id: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class Subscription(BaseModel):
    """Core subscription domain entity (one current row per user)."""
    id: Optional[str] = None
    user_id: str
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    stripe_product_id: Optional[str] = None
    plan_name: Optional[str] = None
    status: SubscriptionStatus = SubscriptionStatus.INCOMPLETE
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    credits_allocated: int = 0
    credits_remaining: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SubscriptionUpsert(BaseModel):
    """
    Field set written by ``SubscriptionManager.upsert_subscription``.

    Credit fields left as ``None`` keep the stored values.
    """
    user_id: str
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    stripe_product_id: Optional[str] = None
    plan_name: Optional[str] = None
    status: SubscriptionStatus
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    credits_allocated: Optional[int] = None
    credits_remaining: Optional[int] = None


class CreditTransaction(BaseModel):
    """Append-only credit ledger entry."""
    id: Optional[str] = None
    user_id: str
    subscription_id: Optional[str] = None
    reference_id: Optional[str] = None
    stripe_transaction_id: Optional[str] = None
    stripe_invoice_id: Optional[str] = None
    amount_paid: int = 0
    credits_granted: int = 0
    transaction_type: TransactionType
    stripe_event_id: Optional[str] = None
    idempotency_key: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# Request/Response DTOs
# =============================================================================

class CreateCheckoutRequest(BaseModel):
    """Request DTO for starting a checkout session."""
    price_id: str = Field(..., alias="priceId", min_length=1, description="Stripe price ID of the plan")

    model_config = ConfigDict(populate_by_name=True)


class CheckoutResponse(BaseModel):
    """Response DTO for checkout session creation."""
    session_id: str = Field(..., alias="sessionId")
    url: str

    model_config = ConfigDict(populate_by_name=True)


class CancelSubscriptionResponse(BaseModel):
    """Response DTO for cancel-at-period-end."""
    success: bool = True
    message: str
    cancel_at_period_end: bool
    current_period_end: Optional[datetime] = None


class ReactivateSubscriptionResponse(BaseModel):
    """Response DTO for clearing cancel-at-period-end."""
    success: bool = True
    message: str
    cancel_at_period_end: bool


class SubscriptionStatusResponse(BaseModel):
    """Response DTO for subscription status."""
    subscription: Optional[Subscription] = None
    transactions: list[CreditTransaction] = Field(default_factory=list)
    credits_remaining: int = Field(0, description="Clamped remaining credits")


class CreditBalanceResponse(BaseModel):
    """Response DTO for the credit balance."""
    credits_remaining: int


class PlanSummary(BaseModel):
    """Plan block returned after checkout."""
    name: Optional[str] = None
    credits: int
    price: Optional[float] = None  # major units


class CheckoutSessionSummary(BaseModel):
    """Stripe checkout session block returned after checkout."""
    id: str
    customer: Optional[str] = None
    subscription: Optional[str] = None


class CheckoutSuccessResponse(BaseModel):
    """Response DTO for the checkout success finalization."""
    success: bool = True
    message: str
    already_processed: bool = False
    plan: PlanSummary
    session: Optional[CheckoutSessionSummary] = None


class PlanResponse(BaseModel):
    """Public plan listing entry."""
    id: str
    name: str
    description: str
    monthly_credits: int
    price_cents: int
    price_display: str
    price_id: str
    billing_mode: str


class ConfigStatusResponse(BaseModel):
    """Which external collaborators are configured."""
    configured: bool
    payments_configured: bool
    identity_configured: bool
    database_configured: bool
    has_url: bool
    has_key: bool
