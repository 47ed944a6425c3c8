"""
Webhook Event Repository

Idempotency markers for processed Stripe events.
"""

import logging

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.models.base import utcnow
from app.infrastructure.db.models.processed_webhook_event import ProcessedWebhookEvent


logger = logging.getLogger(__name__)


class WebhookEventRepository:
    """Repository for the processed_webhook_events table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def is_processed(self, event_id: str) -> bool:
        stmt = select(ProcessedWebhookEvent.event_id).where(
            ProcessedWebhookEvent.event_id == event_id
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def mark_processed(self, event_id: str, event_type: str) -> bool:
        """
        Record an event as processed.

        Returns:
            False if another delivery already recorded it
        """
        stmt = (
            pg_insert(ProcessedWebhookEvent)
            .values(event_id=event_id, event_type=event_type, processed_at=utcnow())
            .on_conflict_do_nothing(index_elements=["event_id"])
            .returning(ProcessedWebhookEvent.event_id)
        )
        result = await self._session.execute(stmt)
        inserted = result.scalar_one_or_none() is not None
        if not inserted:
            logger.info(f"Event {event_id} already recorded by another delivery")
        return inserted
