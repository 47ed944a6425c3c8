"""
Stripe Webhook Reconciler

Verifies Stripe webhook deliveries and applies their effects to the
billing tables. Implements idempotent event processing backed by the
database (survives restarts).

Handled events:
- customer.subscription.created: record subscription, grant first-period credits
- customer.subscription.updated: sync status, period and cancel flag
- customer.subscription.deleted: mark canceled
- invoice.payment_succeeded: renewal credits (billing_reason=subscription_cycle)
- invoice.payment_failed: audit entry, no credit change
- checkout.session.completed: link the Stripe customer to the user

Every other type is acknowledged without action.
"""

import logging
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel

from app.domain.plans import Plan, get_plan_by_price_id, get_plan_by_product_id
from app.domain.subscription import (
    Subscription,
    SubscriptionStatus,
    SubscriptionUpsert,
    TransactionType,
    normalize_status,
)
from app.infrastructure.db.unit_of_work import UnitOfWork
from app.infrastructure.payments.stripe_payloads import (
    expandable_id,
    first_subscription_item,
    invoice_subscription_id,
    item_price_id,
    item_product_id,
    subscription_period,
)
from app.infrastructure.payments.stripe_service import StripeService
from app.infrastructure.services.credit_ledger import CreditLedger, purchase_key, renewal_key
from app.infrastructure.services.subscription_manager import SubscriptionManager


logger = logging.getLogger(__name__)

EventHandler = Callable[[dict[str, Any], str], Awaitable[None]]


class WebhookResult(BaseModel):
    """Outcome of one delivery; always acknowledged once verified."""
    received: bool = True
    event_id: str
    event_type: str
    duplicate: bool = False
    handled: bool = False


def _plan_for_item(item: dict[str, Any]) -> Optional[Plan]:
    """Plan by product id, falling back to price id."""
    return get_plan_by_product_id(item_product_id(item)) or get_plan_by_price_id(item_price_id(item))


class WebhookReconciler:
    """
    Applies verified Stripe events inside one unit of work per delivery.

    The processed-event marker is written first, in the same transaction
    as the handler's effects, so a concurrent redelivery cannot apply the
    event twice.
    """

    def __init__(self, uow: UnitOfWork, stripe_service: StripeService):
        self._uow = uow
        self._stripe = stripe_service
        self._subscriptions = SubscriptionManager(uow)
        self._ledger = CreditLedger(uow)
        self._handlers: dict[str, EventHandler] = {
            "customer.subscription.created": self._on_subscription_created,
            "customer.subscription.updated": self._on_subscription_updated,
            "customer.subscription.deleted": self._on_subscription_deleted,
            "invoice.payment_succeeded": self._on_invoice_payment_succeeded,
            "invoice.payment_failed": self._on_invoice_payment_failed,
            "checkout.session.completed": self._on_checkout_completed,
        }

    async def handle(self, payload: bytes, signature: Optional[str]) -> WebhookResult:
        """
        Verify and process one delivery.

        Raises:
            WebhookSignatureError: signature missing or invalid (nothing applied)
        """
        event = self._stripe.verify_webhook_signature(payload, signature)
        event_id = event.get("id")
        event_type = event.get("type")
        result = WebhookResult(event_id=event_id, event_type=event_type)

        if await self._uow.events.is_processed(event_id):
            logger.info(f"Event {event_id} already processed, skipping")
            result.duplicate = True
            return result

        logger.info(f"Processing webhook event: {event_type} ({event_id})")

        try:
            if not await self._uow.events.mark_processed(event_id, event_type):
                await self._uow.rollback()
                result.duplicate = True
                return result

            handler = self._handlers.get(event_type)
            if handler is None:
                logger.debug(f"Unhandled event type: {event_type}")
            else:
                await handler(event["data"]["object"], event_id)
                result.handled = True

            await self._uow.commit()

        except Exception as e:
            # Still acknowledged; no partial effects survive
            await self._uow.rollback()
            result.handled = False
            logger.error(
                f"Error processing webhook {event_type} ({event_id}): {e}",
                exc_info=True,
            )

        return result

    # =========================================================================
    # Subscription Events
    # =========================================================================

    async def _on_subscription_created(self, subscription: dict[str, Any], event_id: str) -> None:
        await self._sync_subscription(subscription, event_id, grant_first_period=True)

    async def _on_subscription_updated(self, subscription: dict[str, Any], event_id: str) -> None:
        await self._sync_subscription(subscription, event_id, grant_first_period=False)

    async def _sync_subscription(
        self,
        subscription: dict[str, Any],
        event_id: str,
        grant_first_period: bool,
    ) -> None:
        subscription_id = subscription["id"]
        customer_id = expandable_id(subscription.get("customer"))

        user_id = await self._resolve_user(subscription, customer_id)
        if not user_id:
            logger.error(
                f"No user for subscription {subscription_id} "
                f"(customer {customer_id}, event {event_id})"
            )
            return

        item = first_subscription_item(subscription)
        plan = _plan_for_item(item)
        if plan is None:
            logger.error(
                f"Unknown product {item_product_id(item)} / price {item_price_id(item)} "
                f"on subscription {subscription_id} (event {event_id})"
            )
            return

        status = normalize_status(subscription.get("status"))
        if status is None:
            logger.warning(
                f"Unknown status {subscription.get('status')!r} on subscription "
                f"{subscription_id} (event {event_id})"
            )
            return

        if not grant_first_period:
            current = await self._subscriptions.get_current(user_id)
            if _is_superseded(current, subscription_id, status):
                logger.info(
                    f"Ignoring update for superseded subscription {subscription_id}; "
                    f"user {user_id} is on {current.stripe_subscription_id}"
                )
                return

        period_start, period_end = subscription_period(subscription)
        record = await self._subscriptions.upsert_subscription(
            SubscriptionUpsert(
                user_id=user_id,
                stripe_customer_id=customer_id,
                stripe_subscription_id=subscription_id,
                stripe_product_id=item_product_id(item) or plan.stripe_product_id,
                plan_name=plan.name,
                status=status,
                current_period_start=period_start,
                current_period_end=period_end,
                cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
                credits_allocated=plan.monthly_credits,
            )
        )
        logger.info(
            f"Synced subscription {subscription_id} for user {user_id} "
            f"({plan.name}, {record.status.value})"
        )

        if not grant_first_period:
            return

        invoice = await self._stripe.get_latest_invoice(subscription_id)
        if not invoice or (invoice.get("amount_paid") or 0) <= 0:
            logger.info(f"No paid invoice yet for subscription {subscription_id}")
            return

        await self._ledger.grant_credits(
            user_id,
            plan.monthly_credits,
            TransactionType.PURCHASE,
            reference_id=invoice["id"],
            subscription_id=record.id,
            amount_paid=invoice["amount_paid"],
            stripe_invoice_id=invoice["id"],
            stripe_transaction_id=_invoice_payment_reference(invoice),
            stripe_event_id=event_id,
            idempotency_key=purchase_key(subscription_id),
            description=f"Subscribed to {plan.name} - {plan.monthly_credits} credits added",
        )

    async def _on_subscription_deleted(self, subscription: dict[str, Any], event_id: str) -> None:
        updated = await self._subscriptions.mark_canceled(subscription["id"])
        if updated is not None:
            logger.info(f"Canceled subscription {subscription['id']} for user {updated.user_id}")

    async def _resolve_user(
        self,
        subscription: dict[str, Any],
        customer_id: Optional[str],
    ) -> Optional[str]:
        """
        Owner of a subscription.

        Subscription metadata, then the stored customer link, then the
        Stripe customer's metadata. The stored link wins on conflict.
        A user resolved without a stored link gets one.
        """
        metadata_user = (subscription.get("metadata") or {}).get("user_id")

        stored = None
        if customer_id:
            stored = await self._uow.customers.get_by_customer_id(customer_id)
        if stored is not None:
            if metadata_user and metadata_user != stored.user_id:
                logger.warning(
                    f"Subscription {subscription.get('id')} metadata names user {metadata_user} "
                    f"but customer {customer_id} belongs to {stored.user_id}; using stored link"
                )
            return stored.user_id

        user_id = metadata_user
        if not user_id and customer_id:
            customer = await self._stripe.retrieve_customer(customer_id) or {}
            customer_metadata = customer.get("metadata") or {}
            user_id = customer_metadata.get("user_id") or customer_metadata.get("supabase_user_id")

        if user_id and customer_id:
            await self._uow.customers.create(user_id, customer_id)
        return user_id

    # =========================================================================
    # Invoice Events
    # =========================================================================

    async def _on_invoice_payment_succeeded(self, invoice: dict[str, Any], event_id: str) -> None:
        """Renewal credits; the first invoice is credited on subscription creation."""
        invoice_id = invoice["id"]
        if invoice.get("billing_reason") != "subscription_cycle":
            logger.debug(f"Invoice {invoice_id} ({invoice.get('billing_reason')}) is not a renewal")
            return

        subscription_id = invoice_subscription_id(invoice)
        if not subscription_id:
            logger.warning(f"Renewal invoice {invoice_id} has no subscription (event {event_id})")
            return

        record = await self._subscriptions.get_by_stripe_subscription_id(subscription_id)
        if record is None:
            logger.error(
                f"No subscription row for {subscription_id}; renewal invoice {invoice_id} "
                f"not credited (event {event_id})"
            )
            return

        subscription = await self._stripe.retrieve_subscription(subscription_id)
        if normalize_status(subscription.get("status")) != SubscriptionStatus.ACTIVE:
            logger.info(
                f"Subscription {subscription_id} is {subscription.get('status')}; "
                f"renewal invoice {invoice_id} not credited"
            )
            return

        plan = _plan_for_item(first_subscription_item(subscription)) or get_plan_by_product_id(
            record.stripe_product_id
        )
        if plan is None:
            logger.error(
                f"Unknown plan on subscription {subscription_id}; renewal invoice "
                f"{invoice_id} not credited (event {event_id})"
            )
            return

        period_start, period_end = subscription_period(subscription)
        await self._subscriptions.set_status(
            subscription_id,
            SubscriptionStatus.ACTIVE,
            current_period_start=period_start,
            current_period_end=period_end,
        )
        await self._subscriptions.set_credits_allocated(subscription_id, plan.monthly_credits)

        granted = await self._ledger.grant_credits(
            record.user_id,
            plan.monthly_credits,
            TransactionType.RENEWAL,
            reference_id=invoice_id,
            subscription_id=record.id,
            amount_paid=invoice.get("amount_paid") or 0,
            stripe_invoice_id=invoice_id,
            stripe_transaction_id=_invoice_payment_reference(invoice),
            stripe_event_id=event_id,
            idempotency_key=renewal_key(invoice_id),
            description=f"{plan.name} renewal - {plan.monthly_credits} credits added",
        )
        if not granted:
            logger.error(
                f"Renewal credits not granted for user {record.user_id} "
                f"(subscription {subscription_id}, invoice {invoice_id}, event {event_id})"
            )

    async def _on_invoice_payment_failed(self, invoice: dict[str, Any], event_id: str) -> None:
        """Audit entry only; Stripe drives the status change through subscription.updated."""
        invoice_id = invoice["id"]
        subscription_id = invoice_subscription_id(invoice)

        record = None
        if subscription_id:
            record = await self._subscriptions.get_by_stripe_subscription_id(subscription_id)

        user_id = record.user_id if record else None
        if user_id is None:
            customer_id = expandable_id(invoice.get("customer"))
            customer = await self._uow.customers.get_by_customer_id(customer_id) if customer_id else None
            user_id = customer.user_id if customer else None

        if user_id is None:
            logger.warning(
                f"Payment failed for invoice {invoice_id} (subscription {subscription_id}) "
                f"but no user is linked (event {event_id})"
            )
            return

        await self._ledger.grant_credits(
            user_id,
            0,
            TransactionType.PAYMENT_FAILED,
            reference_id=invoice_id,
            subscription_id=record.id if record else None,
            amount_paid=0,
            stripe_invoice_id=invoice_id,
            stripe_event_id=event_id,
            description=f"Payment failed for invoice {invoice_id}",
        )
        logger.warning(f"Payment failed for user {user_id} (invoice {invoice_id})")

    # =========================================================================
    # Checkout Events
    # =========================================================================

    async def _on_checkout_completed(self, session: dict[str, Any], event_id: str) -> None:
        """Link the customer only; credits come from subscription creation."""
        user_id = (session.get("metadata") or {}).get("user_id")
        customer_id = expandable_id(session.get("customer"))
        if not user_id or not customer_id:
            logger.info(f"Checkout {session.get('id')} completed without user/customer link")
            return

        await self._uow.customers.create(user_id, customer_id)


def _is_superseded(
    current: Optional[Subscription],
    subscription_id: str,
    status: SubscriptionStatus,
) -> bool:
    """
    An update for another subscription than the stored one is stale unless
    the stored one has ended and the incoming one is still live.
    """
    if current is None or not current.stripe_subscription_id:
        return False
    if current.stripe_subscription_id == subscription_id:
        return False
    return (
        current.status != SubscriptionStatus.CANCELED
        or status == SubscriptionStatus.CANCELED
    )


def _invoice_payment_reference(invoice: dict[str, Any]) -> Optional[str]:
    """Payment intent (or charge) behind an invoice, when Stripe exposes it."""
    return expandable_id(invoice.get("payment_intent")) or expandable_id(invoice.get("charge"))
