"""
Unit of Work for CoachBridge

Groups the billing repositories over a single session so one logical
operation (a checkout finalization, a webhook delivery) commits or rolls
back as a whole.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.infrastructure.db.repositories import (
    BillingCustomerRepository,
    CreditTransactionRepository,
    SubscriptionRepository,
    WebhookEventRepository,
)
from app.infrastructure.exceptions import DatabaseError


logger = logging.getLogger(__name__)


class UnitOfWork:
    """
    Async context manager owning one session.

    Usage:
        async with UnitOfWork(db.session_factory) as uow:
            await uow.subscriptions.upsert(...)
            await uow.commit()

    Leaving the block without ``commit()`` discards the work.
    """

    customers: BillingCustomerRepository
    subscriptions: SubscriptionRepository
    transactions: CreditTransactionRepository
    events: WebhookEventRepository

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._session: Optional[AsyncSession] = None

    async def __aenter__(self) -> "UnitOfWork":
        self._session = self._session_factory()
        self.customers = BillingCustomerRepository(self._session)
        self.subscriptions = SubscriptionRepository(self._session)
        self.transactions = CreditTransactionRepository(self._session)
        self.events = WebhookEventRepository(self._session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is not None:
                await self.rollback()
        finally:
            await self._session.close()
            self._session = None

    async def commit(self) -> None:
        try:
            await self._session.commit()
        except Exception as e:
            await self._session.rollback()
            logger.error(f"Commit failed: {e}")
            raise DatabaseError(
                "Failed to persist changes",
                operation="commit",
                original_error=e,
            ) from e

    async def rollback(self) -> None:
        await self._session.rollback()
