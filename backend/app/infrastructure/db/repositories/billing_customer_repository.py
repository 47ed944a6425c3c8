"""
Billing Customer Repository

Lookup and creation of the user <-> Stripe customer link.
"""

import logging
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.subscription import BillingCustomer
from app.infrastructure.db.models.base import utcnow
from app.infrastructure.db.models.billing_customer import BillingCustomerModel
from app.infrastructure.db.repositories.base_repository import BaseRepository


logger = logging.getLogger(__name__)


class BillingCustomerRepository(BaseRepository[BillingCustomerModel, BillingCustomer]):
    """Repository for the billing_customers table."""

    def __init__(self, session: AsyncSession):
        super().__init__(BillingCustomerModel, session)

    async def get_by_user_id(self, user_id: str) -> Optional[BillingCustomer]:
        stmt = select(*self.columns).where(BillingCustomerModel.user_id == user_id)
        return await self._fetch_one(stmt)

    async def get_by_customer_id(self, customer_id: str) -> Optional[BillingCustomer]:
        stmt = select(*self.columns).where(BillingCustomerModel.customer_id == customer_id)
        return await self._fetch_one(stmt)

    async def create(self, user_id: str, customer_id: str) -> BillingCustomer:
        """
        Link a user to a Stripe customer.

        Idempotent: if the user (or customer) is already linked, the
        existing row is returned unchanged.
        """
        stmt = (
            pg_insert(BillingCustomerModel)
            .values(
                id=uuid4(),
                user_id=user_id,
                customer_id=customer_id,
                created_at=utcnow(),
            )
            .on_conflict_do_nothing()
        )
        result = await self.session.execute(stmt)
        if result.rowcount:
            logger.info(f"Linked user {user_id} to Stripe customer {customer_id}")

        existing = await self.get_by_user_id(user_id)
        if existing is None:
            # Customer id already belongs to another user
            existing = await self.get_by_customer_id(customer_id)
        return existing

    def _to_domain(self, row: Any) -> BillingCustomer:
        return BillingCustomer(
            id=str(row.id),
            user_id=row.user_id,
            customer_id=row.customer_id,
            created_at=row.created_at,
        )
