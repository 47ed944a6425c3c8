"""
Stripe Payment Service

Infrastructure service for Stripe payment processing.
Handles customers, hosted checkout sessions, subscription lookups and
webhook signature verification.

Every call passes the API key and version explicitly; the module-level
``stripe.api_key`` is never touched. Retrieved objects are returned as
plain dicts so callers never depend on ``StripeObject`` behaviour.
"""

import logging
from typing import Any, Optional

import stripe
from stripe import StripeError

from app.config.settings import Settings
from app.domain.plans import Plan
from app.infrastructure.exceptions import (
    ConfigurationError,
    PaymentProviderError,
    WebhookSignatureError,
)


logger = logging.getLogger(__name__)


def _as_dict(obj: Any) -> dict[str, Any]:
    """Convert a StripeObject (or anything mapping-like) to a plain dict."""
    if obj is None:
        return {}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


class StripeService:
    """
    Stripe payment processing service.

    Constructed once per application with explicit credentials.
    """

    def __init__(self, settings: Settings):
        if not settings.stripe_secret_key:
            raise ConfigurationError(
                "Payments not configured",
                missing_keys=["STRIPE_SECRET_KEY"],
            )
        self._api_key = settings.stripe_secret_key
        self._api_version = settings.stripe_api_version
        self._webhook_secret = settings.stripe_webhook_secret

    @property
    def _request_options(self) -> dict[str, str]:
        return {"api_key": self._api_key, "stripe_version": self._api_version}

    # =========================================================================
    # Customer Management
    # =========================================================================

    async def create_customer(
        self,
        user_id: str,
        email: Optional[str],
        name: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Create a new Stripe customer.

        Args:
            user_id: Internal user ID (stored in metadata)
            email: Customer email for receipts
            name: Optional customer name

        Returns:
            Customer as a dict
        """
        try:
            customer = stripe.Customer.create(
                email=email,
                name=name,
                metadata={
                    "user_id": user_id,
                    "source": "coachbridge",
                },
                **self._request_options,
            )
            logger.info(f"Created Stripe customer {customer.id} for user {user_id}")
            return _as_dict(customer)

        except StripeError as e:
            logger.error(f"Failed to create Stripe customer for user {user_id}: {e}")
            raise PaymentProviderError(
                "Failed to create customer",
                operation="create_customer",
                original_error=e,
            ) from e

    async def retrieve_customer(self, customer_id: str) -> Optional[dict[str, Any]]:
        """Retrieve a customer, or None if it does not exist or was deleted."""
        try:
            customer = _as_dict(
                stripe.Customer.retrieve(customer_id, **self._request_options)
            )
        except StripeError as e:
            logger.warning(f"Failed to retrieve customer {customer_id}: {e}")
            return None

        if customer.get("deleted"):
            return None
        return customer

    # =========================================================================
    # Checkout Session (Subscription Flow)
    # =========================================================================

    async def create_checkout_session(
        self,
        customer_id: str,
        plan: Plan,
        user_id: str,
        success_url: str,
        cancel_url: str,
    ) -> dict[str, Any]:
        """
        Create a hosted Checkout Session for a plan.

        Args:
            customer_id: Stripe customer ID
            plan: Catalog plan being purchased
            user_id: Internal user ID for metadata
            success_url: Redirect after successful payment
                (may contain ``{CHECKOUT_SESSION_ID}``)
            cancel_url: Redirect after cancelled payment

        Returns:
            Checkout session as a dict (``id``, ``url``, ...)
        """
        metadata = {
            "user_id": user_id,
            "price_id": plan.stripe_price_id,
            "plan_name": plan.name,
        }

        try:
            session = stripe.checkout.Session.create(
                customer=customer_id,
                payment_method_types=["card"],
                line_items=[
                    {
                        "price": plan.stripe_price_id,
                        "quantity": 1,
                    }
                ],
                mode=plan.billing_mode.value,
                success_url=success_url,
                cancel_url=cancel_url,
                allow_promotion_codes=True,
                billing_address_collection="auto",
                metadata=metadata,
                subscription_data={"metadata": metadata},
                **self._request_options,
            )

            logger.info(
                f"Created checkout session {session.id} for user {user_id}, "
                f"plan={plan.id}"
            )
            return _as_dict(session)

        except StripeError as e:
            logger.error(f"Failed to create checkout session for user {user_id}: {e}")
            raise PaymentProviderError(
                "Failed to create checkout session",
                operation="create_checkout_session",
                original_error=e,
            ) from e

    async def retrieve_checkout_session(self, session_id: str) -> Optional[dict[str, Any]]:
        """
        Retrieve a checkout session with line items and subscription expanded.

        Returns:
            Session dict or None if Stripe does not know the ID
        """
        try:
            session = stripe.checkout.Session.retrieve(
                session_id,
                expand=["line_items", "subscription"],
                **self._request_options,
            )
            return _as_dict(session)
        except stripe.InvalidRequestError as e:
            logger.warning(f"Checkout session {session_id} not found: {e}")
            return None
        except StripeError as e:
            logger.error(f"Failed to retrieve checkout session {session_id}: {e}")
            raise PaymentProviderError(
                "Failed to retrieve checkout session",
                operation="retrieve_checkout_session",
                original_error=e,
            ) from e

    # =========================================================================
    # Subscription Queries
    # =========================================================================

    async def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        """Retrieve a subscription by ID."""
        try:
            return _as_dict(
                stripe.Subscription.retrieve(subscription_id, **self._request_options)
            )
        except StripeError as e:
            logger.error(f"Failed to retrieve subscription {subscription_id}: {e}")
            raise PaymentProviderError(
                "Failed to retrieve subscription",
                operation="retrieve_subscription",
                original_error=e,
            ) from e

    async def get_latest_invoice(self, subscription_id: str) -> Optional[dict[str, Any]]:
        """Most recent invoice of a subscription, or None if it has none yet."""
        try:
            invoices = stripe.Invoice.list(
                subscription=subscription_id,
                limit=1,
                **self._request_options,
            )
        except StripeError as e:
            logger.error(f"Failed to list invoices for subscription {subscription_id}: {e}")
            raise PaymentProviderError(
                "Failed to list invoices",
                operation="get_latest_invoice",
                original_error=e,
            ) from e

        data = _as_dict(invoices).get("data") or []
        if not data:
            return None
        return _as_dict(data[0])

    async def set_cancel_at_period_end(
        self,
        subscription_id: str,
        cancel_at_period_end: bool,
    ) -> dict[str, Any]:
        """
        Schedule (or unschedule) cancellation at the end of the billing period.

        Returns:
            Updated subscription as a dict
        """
        try:
            subscription = stripe.Subscription.modify(
                subscription_id,
                cancel_at_period_end=cancel_at_period_end,
                **self._request_options,
            )
            logger.info(
                f"Set cancel_at_period_end={cancel_at_period_end} "
                f"on subscription {subscription_id}"
            )
            return _as_dict(subscription)

        except StripeError as e:
            logger.error(f"Failed to update subscription {subscription_id}: {e}")
            raise PaymentProviderError(
                "Failed to update subscription",
                operation="set_cancel_at_period_end",
                original_error=e,
            ) from e

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: Optional[str],
    ) -> dict[str, Any]:
        """
        Verify webhook signature and decode the event.

        Args:
            payload: Raw request body
            signature: Stripe-Signature header

        Returns:
            Event as a plain dict

        Raises:
            WebhookSignatureError if the signature or payload is invalid
        """
        if not self._webhook_secret:
            raise ConfigurationError(
                "Webhook signing secret not configured",
                missing_keys=["STRIPE_WEBHOOK_SECRET"],
            )
        if not signature:
            raise WebhookSignatureError("Missing signature")

        try:
            event = stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except ValueError as e:
            raise WebhookSignatureError("Invalid payload", original_error=e) from e
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(original_error=e) from e

        return _as_dict(event)
