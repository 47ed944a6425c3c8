"""
SQLModel ORM Models for CoachBridge

Exports all database models for Alembic autogenerate and application use.
Import models here to register them with SQLModel.metadata.
"""

from app.infrastructure.db.models.base import (
    CreatedAtMixin,
    TimestampMixin,
    UUIDMixin,
)
from app.infrastructure.db.models.billing_customer import BillingCustomerModel
from app.infrastructure.db.models.subscription import SubscriptionModel
from app.infrastructure.db.models.credit_transaction import CreditTransactionModel
from app.infrastructure.db.models.processed_webhook_event import ProcessedWebhookEvent


__all__ = [
    # Base
    "CreatedAtMixin",
    "TimestampMixin",
    "UUIDMixin",
    # Billing
    "BillingCustomerModel",
    "SubscriptionModel",
    "CreditTransactionModel",
    "ProcessedWebhookEvent",
]
