"""
Billing Customer Database Model

One row per application user, linking it to its Stripe customer.
Created on first checkout; never deleted.
"""

from sqlmodel import Field

from app.infrastructure.db.models.base import CreatedAtMixin, UUIDMixin


class BillingCustomerModel(UUIDMixin, CreatedAtMixin, table=True):
    """Maps to the 'billing_customers' table."""

    __tablename__ = "billing_customers"

    user_id: str = Field(max_length=36, unique=True, index=True, nullable=False)
    customer_id: str = Field(max_length=255, unique=True, index=True, nullable=False)
