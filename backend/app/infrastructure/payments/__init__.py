"""
Stripe access for CoachBridge billing: the credentialed ``StripeService``
client and field helpers for decoded Stripe objects.
"""

from app.infrastructure.payments.stripe_payloads import (
    expandable_id,
    invoice_subscription_id,
    subscription_period,
)
from app.infrastructure.payments.stripe_service import StripeService

__all__ = [
    "StripeService",
    "expandable_id",
    "invoice_subscription_id",
    "subscription_period",
]
