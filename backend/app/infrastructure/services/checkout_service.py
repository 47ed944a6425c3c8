"""
Checkout Service

Starts hosted checkout for a plan and finalizes it when the user returns
from Stripe. Credits for the first period are granted exactly once across
the success redirect and the ``customer.subscription.created`` webhook:
both use the ``purchase:{subscription_id}`` idempotency key.
"""

import logging
from typing import Any, Optional

from app.config.settings import Settings
from app.domain.models import AuthenticatedUser
from app.domain.plans import Plan, get_plan_by_price_id
from app.domain.subscription import (
    BillingCustomer,
    CheckoutResponse,
    CheckoutSessionSummary,
    CheckoutSuccessResponse,
    PlanSummary,
    SubscriptionUpsert,
    TransactionType,
    normalize_status,
)
from app.infrastructure.db.unit_of_work import UnitOfWork
from app.infrastructure.exceptions import (
    AlreadySubscribedError,
    CheckoutNotPaidError,
    PlanNotFoundError,
    ValidationError,
)
from app.infrastructure.payments.stripe_payloads import (
    expandable_id,
    first_subscription_item,
    item_product_id,
    line_item_price_id,
    subscription_period,
)
from app.infrastructure.payments.stripe_service import StripeService
from app.infrastructure.services.credit_ledger import CreditLedger, purchase_key
from app.infrastructure.services.subscription_manager import SubscriptionManager


logger = logging.getLogger(__name__)

CHECKOUT_SESSION_PLACEHOLDER = "{CHECKOUT_SESSION_ID}"


def require_plan(price_id: Optional[str]) -> Plan:
    """
    Plan for a checkout request.

    Raises:
        PlanNotFoundError: price id is not in the catalog (never retried)
    """
    plan = get_plan_by_price_id(price_id)
    if plan is None:
        raise PlanNotFoundError(price_id)
    return plan


class CheckoutService:
    """Orchestrates checkout across Stripe and the billing tables."""

    def __init__(self, uow: UnitOfWork, stripe_service: StripeService, settings: Settings):
        self._uow = uow
        self._stripe = stripe_service
        self._settings = settings
        self._subscriptions = SubscriptionManager(uow)
        self._ledger = CreditLedger(uow)

    @property
    def success_url(self) -> str:
        return f"{self._settings.frontend_url}/success?session_id={CHECKOUT_SESSION_PLACEHOLDER}"

    @property
    def cancel_url(self) -> str:
        return f"{self._settings.frontend_url}/pricing?error=Payment%20was%20cancelled"

    # =========================================================================
    # Start
    # =========================================================================

    async def start_checkout(self, user: AuthenticatedUser, price_id: str) -> CheckoutResponse:
        """
        Create a subscription checkout session for a plan.

        Raises:
            PlanNotFoundError: unknown price id
            AlreadySubscribedError: the user already has an active subscription
            PaymentProviderError: Stripe call failed
        """
        plan = require_plan(price_id)

        active = await self._subscriptions.get_active(user.id)
        if active is not None:
            raise AlreadySubscribedError(user.id, active.stripe_subscription_id)

        customer = await self._ensure_customer(user)

        session = await self._stripe.create_checkout_session(
            customer_id=customer.customer_id,
            plan=plan,
            user_id=user.id,
            success_url=self.success_url,
            cancel_url=self.cancel_url,
        )
        logger.info(f"Started checkout {session['id']} for user {user.id} ({plan.name})")
        return CheckoutResponse(session_id=session["id"], url=session["url"])

    async def _ensure_customer(self, user: AuthenticatedUser) -> BillingCustomer:
        """Stored Stripe customer for the user, creating one on first checkout."""
        customer = await self._uow.customers.get_by_user_id(user.id)
        if customer is not None:
            return customer

        created = await self._stripe.create_customer(
            user_id=user.id,
            email=user.email,
            name=user.display_name,
        )
        customer = await self._uow.customers.create(user.id, created["id"])
        await self._uow.commit()
        return customer

    # =========================================================================
    # Finalize
    # =========================================================================

    async def complete_checkout(
        self,
        user: AuthenticatedUser,
        session_id: str,
    ) -> CheckoutSuccessResponse:
        """
        Record the subscription and first-period credits of a paid session.

        Safe to call repeatedly for the same session.
        """
        existing = await self._uow.transactions.get_by_reference(
            session_id, TransactionType.PURCHASE
        )
        if existing is not None:
            logger.info(f"Checkout {session_id} already processed for user {user.id}")
            return CheckoutSuccessResponse(
                message=f"Transaction already processed at {existing.created_at}",
                already_processed=True,
                plan=PlanSummary(credits=existing.credits_granted),
            )

        session = await self._stripe.retrieve_checkout_session(session_id)
        if session is None:
            raise ValidationError("Invalid session ID", {"session_id": session_id})

        payment_status = session.get("payment_status")
        if payment_status != "paid":
            raise CheckoutNotPaidError(session_id, payment_status)

        owner = (session.get("metadata") or {}).get("user_id")
        if owner and owner != user.id:
            logger.warning(f"User {user.id} tried to finalize checkout {session_id} owned by {owner}")
            raise ValidationError("Invalid session ID", {"session_id": session_id})

        plan = require_plan(line_item_price_id(session))

        customer_id = expandable_id(session.get("customer"))
        if not customer_id:
            raise ValidationError("No customer ID found in session", {"session_id": session_id})

        stored_customer = await self._uow.customers.get_by_user_id(user.id)
        if stored_customer is None:
            await self._uow.customers.create(user.id, customer_id)

        subscription = session.get("subscription")
        subscription_id = expandable_id(subscription)
        invoice_id = expandable_id(session.get("invoice"))

        if subscription_id:
            if not isinstance(subscription, dict):
                subscription = await self._stripe.retrieve_subscription(subscription_id)
            invoice_id = invoice_id or expandable_id(subscription.get("latest_invoice"))
            await self._record_subscription(user.id, customer_id, subscription, plan)

        granted = await self._ledger.grant_credits(
            user.id,
            plan.monthly_credits,
            TransactionType.PURCHASE,
            reference_id=session_id,
            amount_paid=session.get("amount_total") or plan.price_cents,
            stripe_invoice_id=invoice_id,
            idempotency_key=purchase_key(subscription_id, session_id),
            description=f"Purchased {plan.name} plan - {plan.monthly_credits} credits added",
        )
        if not granted:
            logger.warning(
                f"Failed to grant credits for checkout {session_id} (user {user.id}), "
                f"payment was successful"
            )

        await self._uow.commit()

        return CheckoutSuccessResponse(
            message=f"Successfully subscribed to {plan.name} plan",
            plan=PlanSummary(
                name=plan.name,
                credits=plan.monthly_credits,
                price=plan.price_cents / 100,
            ),
            session=CheckoutSessionSummary(
                id=session["id"],
                customer=customer_id,
                subscription=subscription_id,
            ),
        )

    async def _record_subscription(
        self,
        user_id: str,
        customer_id: str,
        subscription: dict[str, Any],
        plan: Plan,
    ) -> None:
        status = normalize_status(subscription.get("status"))
        if status is None:
            logger.warning(
                f"Unknown status {subscription.get('status')!r} on subscription "
                f"{subscription.get('id')}; skipping record"
            )
            return

        period_start, period_end = subscription_period(subscription)
        item = first_subscription_item(subscription)

        await self._subscriptions.upsert_subscription(
            SubscriptionUpsert(
                user_id=user_id,
                stripe_customer_id=customer_id,
                stripe_subscription_id=subscription["id"],
                stripe_product_id=item_product_id(item) or plan.stripe_product_id,
                plan_name=plan.name,
                status=status,
                current_period_start=period_start,
                current_period_end=period_end,
                cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
                credits_allocated=plan.monthly_credits,
            )
        )
