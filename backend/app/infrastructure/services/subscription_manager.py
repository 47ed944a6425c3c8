"""
Subscription Manager

Single write path for subscription rows. Enforces the status state
machine; an illegal transition is logged and the status left as stored
while the other fields are still applied.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from app.domain.subscription import (
    Subscription,
    SubscriptionStatus,
    SubscriptionUpsert,
    can_transition,
)
from app.infrastructure.db.unit_of_work import UnitOfWork


logger = logging.getLogger(__name__)


class SubscriptionManager:
    """
    Service for subscription lifecycle writes and reads.

    Does not commit: the calling operation owns the transaction.
    """

    def __init__(self, uow: UnitOfWork):
        self._uow = uow

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_current(self, user_id: str) -> Optional[Subscription]:
        return await self._uow.subscriptions.get_by_user_id(user_id)

    async def get_active(self, user_id: str) -> Optional[Subscription]:
        return await self._uow.subscriptions.get_active_by_user_id(user_id)

    async def get_by_stripe_subscription_id(
        self,
        stripe_subscription_id: str,
    ) -> Optional[Subscription]:
        return await self._uow.subscriptions.get_by_stripe_subscription_id(
            stripe_subscription_id
        )

    # =========================================================================
    # Writes
    # =========================================================================

    async def upsert_subscription(self, fields: SubscriptionUpsert) -> Subscription:
        """
        Insert or replace the user's subscription row.

        A different Stripe subscription replaces the row outright; the same
        one goes through the transition check.
        """
        existing = await self._uow.subscriptions.get_by_user_id(fields.user_id)
        if (
            existing is not None
            and existing.stripe_subscription_id == fields.stripe_subscription_id
            and not can_transition(existing.status, fields.status)
        ):
            logger.warning(
                f"Ignoring status change {existing.status.value} -> {fields.status.value} "
                f"for subscription {fields.stripe_subscription_id} (user {fields.user_id})"
            )
            fields = fields.model_copy(update={"status": existing.status})

        return await self._uow.subscriptions.upsert(fields)

    async def set_status(
        self,
        stripe_subscription_id: str,
        status: SubscriptionStatus,
        current_period_start: Optional[datetime] = None,
        current_period_end: Optional[datetime] = None,
        cancel_at_period_end: Optional[bool] = None,
    ) -> Optional[Subscription]:
        """
        Update status and period fields of the row for a Stripe subscription.

        Returns:
            Updated subscription, or None if no row matched
        """
        existing = await self._uow.subscriptions.get_by_stripe_subscription_id(
            stripe_subscription_id
        )
        if existing is None:
            logger.warning(f"No subscription row for {stripe_subscription_id}; status {status.value} dropped")
            return None

        values: dict[str, Any] = {}
        if can_transition(existing.status, status):
            values["status"] = status
        else:
            logger.warning(
                f"Ignoring status change {existing.status.value} -> {status.value} "
                f"for subscription {stripe_subscription_id}"
            )
        if current_period_start is not None:
            values["current_period_start"] = current_period_start
        if current_period_end is not None:
            values["current_period_end"] = current_period_end
        if cancel_at_period_end is not None:
            values["cancel_at_period_end"] = cancel_at_period_end

        if not values:
            return existing
        return await self._uow.subscriptions.update_by_stripe_subscription_id(
            stripe_subscription_id, values
        )

    async def mark_canceled(self, stripe_subscription_id: str) -> Optional[Subscription]:
        return await self.set_status(stripe_subscription_id, SubscriptionStatus.CANCELED)

    async def set_cancel_at_period_end(
        self,
        stripe_subscription_id: str,
        cancel_at_period_end: bool,
    ) -> Optional[Subscription]:
        """Flip the cancel-at-period-end flag; status is never touched."""
        return await self._uow.subscriptions.update_by_stripe_subscription_id(
            stripe_subscription_id,
            {"cancel_at_period_end": cancel_at_period_end},
        )

    async def set_credits_allocated(
        self,
        stripe_subscription_id: str,
        credits_allocated: int,
    ) -> Optional[Subscription]:
        return await self._uow.subscriptions.update_by_stripe_subscription_id(
            stripe_subscription_id,
            {"credits_allocated": credits_allocated},
        )
