"""
Subscription Database Model

SQLModel table for subscription data persistence.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field

from app.infrastructure.db.models.base import TimestampMixin, UUIDMixin


class SubscriptionModel(UUIDMixin, TimestampMixin, table=True):
    """
    Subscription table keyed by user.

    ``user_id`` is the canonical key (one current row per user);
    ``stripe_subscription_id`` is a unique secondary index used by webhooks.
    """

    __tablename__ = "subscriptions"

    user_id: str = Field(max_length=36, unique=True, index=True, nullable=False)

    # Stripe IDs
    stripe_customer_id: Optional[str] = Field(default=None, max_length=255, index=True)
    stripe_subscription_id: Optional[str] = Field(default=None, max_length=255, unique=True, index=True)
    stripe_product_id: Optional[str] = Field(default=None, max_length=255)

    # Subscription details
    plan_name: Optional[str] = Field(default=None, max_length=100)
    status: str = Field(default="incomplete", max_length=20)

    # Billing period dates
    current_period_start: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    current_period_end: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    cancel_at_period_end: bool = Field(default=False)

    # Credits
    credits_allocated: int = Field(default=0)
    credits_remaining: int = Field(default=0)
