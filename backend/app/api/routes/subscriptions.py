"""
Subscription API Routes

REST API endpoints for subscription management: starting checkout,
cancel/reactivate at period end and status reads.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, status

from app.api.dependencies import (
    CheckoutServiceDep,
    CurrentUserDep,
    StripeDep,
    UnitOfWorkDep,
)
from app.domain.subscription import (
    CancelSubscriptionResponse,
    CheckoutResponse,
    CreateCheckoutRequest,
    ReactivateSubscriptionResponse,
    Subscription,
    SubscriptionStatusResponse,
)
from app.infrastructure.services.credit_ledger import CreditLedger
from app.infrastructure.services.subscription_manager import SubscriptionManager
from app.infrastructure.payments.stripe_payloads import to_datetime


logger = logging.getLogger(__name__)

router = APIRouter()

# Ledger entries returned with the status payload
STATUS_TRANSACTION_LIMIT = 10


# =============================================================================
# Checkout Endpoints
# =============================================================================

@router.post("/subscriptions/checkout", response_model=CheckoutResponse)
async def create_checkout_session(
    request: CreateCheckoutRequest,
    user: CurrentUserDep,
    checkout: CheckoutServiceDep,
):
    """
    Create a Stripe Checkout session for a plan.

    Args:
        request: Checkout request carrying the plan's price id

    Returns:
        CheckoutResponse with session ID and hosted checkout URL
    """
    return await checkout.start_checkout(user, request.price_id)


# =============================================================================
# Cancellation Endpoints
# =============================================================================

@router.post("/subscriptions/cancel", response_model=CancelSubscriptionResponse)
async def cancel_subscription(
    user: CurrentUserDep,
    uow: UnitOfWorkDep,
    stripe_service: StripeDep,
):
    """
    Cancel the active subscription at the end of the current period.

    The status stays ``active`` until Stripe reports the deletion.
    """
    manager = SubscriptionManager(uow)
    subscription = await manager.get_active(user.id)
    if subscription is None or not subscription.stripe_subscription_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No active subscription found",
        )

    updated = await stripe_service.set_cancel_at_period_end(
        subscription.stripe_subscription_id, True
    )
    await manager.set_cancel_at_period_end(subscription.stripe_subscription_id, True)
    await uow.commit()

    period_end = to_datetime(updated.get("current_period_end")) or subscription.current_period_end
    logger.info(f"User {user.id} scheduled cancellation of {subscription.stripe_subscription_id}")

    return CancelSubscriptionResponse(
        message="Subscription will be canceled at the end of the current billing period",
        cancel_at_period_end=True,
        current_period_end=period_end,
    )


@router.post("/subscriptions/reactivate", response_model=ReactivateSubscriptionResponse)
async def reactivate_subscription(
    user: CurrentUserDep,
    uow: UnitOfWorkDep,
    stripe_service: StripeDep,
):
    """Undo a scheduled cancellation."""
    manager = SubscriptionManager(uow)
    subscription = await manager.get_current(user.id)
    if subscription is None or not subscription.stripe_subscription_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No subscription found",
        )

    await stripe_service.set_cancel_at_period_end(subscription.stripe_subscription_id, False)
    await manager.set_cancel_at_period_end(subscription.stripe_subscription_id, False)
    await uow.commit()

    logger.info(f"User {user.id} reactivated {subscription.stripe_subscription_id}")

    return ReactivateSubscriptionResponse(
        message="Subscription reactivated",
        cancel_at_period_end=False,
    )


# =============================================================================
# Status Endpoints
# =============================================================================

@router.get("/subscriptions/status", response_model=SubscriptionStatusResponse)
async def get_subscription_status(
    user: CurrentUserDep,
    uow: UnitOfWorkDep,
):
    """Active subscription, recent ledger entries and the remaining balance."""
    ledger = CreditLedger(uow)
    subscription = await SubscriptionManager(uow).get_active(user.id)
    transactions = await ledger.history(user.id, limit=STATUS_TRANSACTION_LIMIT)

    return SubscriptionStatusResponse(
        subscription=subscription,
        transactions=transactions,
        credits_remaining=await ledger.current_balance(user.id),
    )


@router.get("/subscriptions/current", response_model=Optional[Subscription])
async def get_current_subscription(
    user: CurrentUserDep,
    uow: UnitOfWorkDep,
):
    """The user's subscription row in any status, or null."""
    return await SubscriptionManager(uow).get_current(user.id)
