"""
Repository Layer for CoachBridge

Exports all repository classes for the unit of work.
"""

from app.infrastructure.db.repositories.base_repository import BaseRepository
from app.infrastructure.db.repositories.billing_customer_repository import (
    BillingCustomerRepository,
)
from app.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
)
from app.infrastructure.db.repositories.credit_transaction_repository import (
    CreditTransactionRepository,
)
from app.infrastructure.db.repositories.webhook_event_repository import (
    WebhookEventRepository,
)


__all__ = [
    # Base
    "BaseRepository",
    # Repositories
    "BillingCustomerRepository",
    "SubscriptionRepository",
    "CreditTransactionRepository",
    "WebhookEventRepository",
]
