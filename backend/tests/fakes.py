"""
In-memory stand-ins for the billing persistence layer.

The fake repositories mirror the public methods of the SQL repositories
and share one ``InMemoryStore``. ``InMemoryUnitOfWork`` snapshots the
store so ``commit`` and ``rollback`` behave like a transaction.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from unittest.mock import MagicMock
from uuid import uuid4

from app.domain.subscription import (
    BillingCustomer,
    CreditTransaction,
    Subscription,
    SubscriptionStatus,
    SubscriptionUpsert,
    TransactionType,
)
from app.infrastructure.payments.stripe_service import StripeService


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class InMemoryStore:
    customers: list[BillingCustomer] = field(default_factory=list)
    subscriptions: dict[str, Subscription] = field(default_factory=dict)  # by user_id
    transactions: list[CreditTransaction] = field(default_factory=list)
    events: dict[str, str] = field(default_factory=dict)  # event_id -> event_type


class FakeBillingCustomerRepository:
    def __init__(self, store: InMemoryStore):
        self._store = store

    async def get_by_user_id(self, user_id: str) -> Optional[BillingCustomer]:
        return next((c for c in self._store.customers if c.user_id == user_id), None)

    async def get_by_customer_id(self, customer_id: str) -> Optional[BillingCustomer]:
        return next((c for c in self._store.customers if c.customer_id == customer_id), None)

    async def create(self, user_id: str, customer_id: str) -> BillingCustomer:
        existing = await self.get_by_user_id(user_id) or await self.get_by_customer_id(customer_id)
        if existing is not None:
            return existing
        customer = BillingCustomer(
            id=str(uuid4()), user_id=user_id, customer_id=customer_id, created_at=_now()
        )
        self._store.customers.append(customer)
        return customer


class FakeSubscriptionRepository:
    def __init__(self, store: InMemoryStore):
        self._store = store

    async def get_by_user_id(self, user_id: str) -> Optional[Subscription]:
        return self._store.subscriptions.get(user_id)

    async def get_active_by_user_id(self, user_id: str) -> Optional[Subscription]:
        subscription = self._store.subscriptions.get(user_id)
        if subscription and subscription.status == SubscriptionStatus.ACTIVE:
            return subscription
        return None

    async def get_by_stripe_subscription_id(self, stripe_subscription_id: str) -> Optional[Subscription]:
        return next(
            (
                s for s in self._store.subscriptions.values()
                if s.stripe_subscription_id == stripe_subscription_id
            ),
            None,
        )

    async def upsert(self, data: SubscriptionUpsert) -> Subscription:
        values = data.model_dump()
        existing = self._store.subscriptions.get(data.user_id)
        if existing is None:
            for credit_field in ("credits_allocated", "credits_remaining"):
                if values[credit_field] is None:
                    values[credit_field] = 0
            subscription = Subscription(id=str(uuid4()), created_at=_now(), updated_at=_now(), **values)
        else:
            updates = {k: v for k, v in values.items() if v is not None or k not in (
                "credits_allocated", "credits_remaining"
            )}
            subscription = existing.model_copy(update={**updates, "updated_at": _now()})
        self._store.subscriptions[data.user_id] = subscription
        return subscription

    async def update_by_stripe_subscription_id(
        self,
        stripe_subscription_id: str,
        values: dict[str, Any],
    ) -> Optional[Subscription]:
        existing = await self.get_by_stripe_subscription_id(stripe_subscription_id)
        if existing is None:
            return None
        updated = existing.model_copy(update={**values, "updated_at": _now()})
        self._store.subscriptions[existing.user_id] = updated
        return updated

    async def increment_credits(self, user_id: str, amount: int) -> Optional[int]:
        existing = self._store.subscriptions.get(user_id)
        if existing is None:
            return None
        updated = existing.model_copy(
            update={"credits_remaining": existing.credits_remaining + amount}
        )
        self._store.subscriptions[user_id] = updated
        return updated.credits_remaining


class FakeCreditTransactionRepository:
    def __init__(self, store: InMemoryStore):
        self._store = store

    async def add(self, transaction: CreditTransaction) -> Optional[CreditTransaction]:
        if transaction.idempotency_key and any(
            t.idempotency_key == transaction.idempotency_key for t in self._store.transactions
        ):
            return None
        stored = transaction.model_copy(update={"id": str(uuid4()), "created_at": _now()})
        self._store.transactions.append(stored)
        return stored

    async def get_by_reference(
        self,
        reference_id: str,
        transaction_type: TransactionType,
    ) -> Optional[CreditTransaction]:
        return next(
            (
                t for t in self._store.transactions
                if t.reference_id == reference_id and t.transaction_type == transaction_type
            ),
            None,
        )

    async def list_for_user(self, user_id: str, limit: int = 10) -> list[CreditTransaction]:
        entries = [t for t in self._store.transactions if t.user_id == user_id]
        return list(reversed(entries))[:limit]


class FakeWebhookEventRepository:
    def __init__(self, store: InMemoryStore):
        self._store = store

    async def is_processed(self, event_id: str) -> bool:
        return event_id in self._store.events

    async def mark_processed(self, event_id: str, event_type: str) -> bool:
        if event_id in self._store.events:
            return False
        self._store.events[event_id] = event_type
        return True


class InMemoryUnitOfWork:
    """Same surface as ``UnitOfWork``; counts commits and rollbacks."""

    def __init__(self, store: Optional[InMemoryStore] = None):
        self.store = store or InMemoryStore()
        self._committed = copy.deepcopy(self.store)
        self.commits = 0
        self.rollbacks = 0
        self.customers = FakeBillingCustomerRepository(self.store)
        self.subscriptions = FakeSubscriptionRepository(self.store)
        self.transactions = FakeCreditTransactionRepository(self.store)
        self.events = FakeWebhookEventRepository(self.store)

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            await self.rollback()

    async def commit(self) -> None:
        self._committed = copy.deepcopy(self.store)
        self.commits += 1

    async def rollback(self) -> None:
        snapshot = copy.deepcopy(self._committed)
        self.store.customers[:] = snapshot.customers
        self.store.subscriptions.clear()
        self.store.subscriptions.update(snapshot.subscriptions)
        self.store.transactions[:] = snapshot.transactions
        self.store.events.clear()
        self.store.events.update(snapshot.events)
        self.rollbacks += 1


def make_stripe_service() -> MagicMock:
    """StripeService double; coroutine methods become AsyncMocks."""
    return MagicMock(spec=StripeService)
