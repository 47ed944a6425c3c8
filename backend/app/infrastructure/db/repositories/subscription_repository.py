"""
Subscription Repository

Data access layer for subscription persistence.
All writes are single statements (upsert / update ... returning) so no
read-modify-write cycle touches the credit balance.
"""

import logging
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.subscription import (
    Subscription,
    SubscriptionStatus,
    SubscriptionUpsert,
)
from app.infrastructure.db.models.base import utcnow
from app.infrastructure.db.models.subscription import SubscriptionModel
from app.infrastructure.db.repositories.base_repository import BaseRepository


logger = logging.getLogger(__name__)

# Fields always overwritten by an upsert
_UPSERT_FIELDS = (
    "stripe_customer_id",
    "stripe_subscription_id",
    "stripe_product_id",
    "plan_name",
    "status",
    "current_period_start",
    "current_period_end",
    "cancel_at_period_end",
)

# Fields only overwritten when the caller supplies them
_CREDIT_FIELDS = ("credits_allocated", "credits_remaining")


class SubscriptionRepository(BaseRepository[SubscriptionModel, Subscription]):
    """
    Repository for subscription data access.

    Canonical key is ``user_id``; ``stripe_subscription_id`` is a unique
    secondary index.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(SubscriptionModel, session)

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get_by_user_id(self, user_id: str) -> Optional[Subscription]:
        """Current subscription row for a user, any status."""
        stmt = select(*self.columns).where(SubscriptionModel.user_id == user_id)
        return await self._fetch_one(stmt)

    async def get_active_by_user_id(self, user_id: str) -> Optional[Subscription]:
        """Subscription row for a user with status ``active``."""
        stmt = select(*self.columns).where(
            SubscriptionModel.user_id == user_id,
            SubscriptionModel.status == SubscriptionStatus.ACTIVE.value,
        )
        return await self._fetch_one(stmt)

    async def get_by_stripe_subscription_id(
        self,
        stripe_subscription_id: str,
    ) -> Optional[Subscription]:
        """Subscription row located by Stripe subscription ID."""
        stmt = select(*self.columns).where(
            SubscriptionModel.stripe_subscription_id == stripe_subscription_id
        )
        return await self._fetch_one(stmt)

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def upsert(self, data: SubscriptionUpsert) -> Subscription:
        """
        Insert or replace the subscription row keyed by user_id.

        Uses PostgreSQL upsert for atomicity. Credit fields that are ``None``
        keep their stored values (0 on insert).
        """
        now = utcnow()
        values = data.model_dump()
        values["status"] = data.status.value
        values.update(id=uuid4(), created_at=now, updated_at=now)
        for field in _CREDIT_FIELDS:
            if values[field] is None:
                values[field] = 0

        stmt = pg_insert(SubscriptionModel).values(**values)
        set_ = {field: stmt.excluded[field] for field in _UPSERT_FIELDS}
        for field in _CREDIT_FIELDS:
            if getattr(data, field) is not None:
                set_[field] = stmt.excluded[field]
        set_["updated_at"] = now

        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_=set_,
        ).returning(*self.columns)

        subscription = await self._fetch_one(stmt)
        logger.info(
            f"Upserted subscription for user {data.user_id} "
            f"(stripe={data.stripe_subscription_id}, status={data.status.value})"
        )
        return subscription

    async def update_by_stripe_subscription_id(
        self,
        stripe_subscription_id: str,
        values: dict[str, Any],
    ) -> Optional[Subscription]:
        """
        Update selected fields of the row with this Stripe subscription ID.

        Returns:
            Updated subscription or None if no row matched
        """
        if "status" in values and isinstance(values["status"], SubscriptionStatus):
            values = {**values, "status": values["status"].value}

        stmt = (
            update(SubscriptionModel)
            .where(SubscriptionModel.stripe_subscription_id == stripe_subscription_id)
            .values(**values, updated_at=utcnow())
            .returning(*self.columns)
        )
        return await self._fetch_one(stmt)

    async def increment_credits(self, user_id: str, amount: int) -> Optional[int]:
        """
        Atomically add ``amount`` to the user's remaining credits.

        Returns:
            New remaining balance, or None if the user has no subscription row
        """
        stmt = (
            update(SubscriptionModel)
            .where(SubscriptionModel.user_id == user_id)
            .values(
                credits_remaining=SubscriptionModel.credits_remaining + amount,
                updated_at=utcnow(),
            )
            .returning(SubscriptionModel.credits_remaining)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    # =========================================================================
    # Mapping Methods
    # =========================================================================

    def _to_domain(self, row: Any) -> Subscription:
        """Convert a subscriptions row to the domain entity."""
        return Subscription(
            id=str(row.id),
            user_id=row.user_id,
            stripe_customer_id=row.stripe_customer_id,
            stripe_subscription_id=row.stripe_subscription_id,
            stripe_product_id=row.stripe_product_id,
            plan_name=row.plan_name,
            status=SubscriptionStatus(row.status),
            current_period_start=row.current_period_start,
            current_period_end=row.current_period_end,
            cancel_at_period_end=row.cancel_at_period_end or False,
            credits_allocated=row.credits_allocated or 0,
            credits_remaining=row.credits_remaining or 0,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
