"""
Credit Transaction Repository

Append-only access to the credit ledger.
"""

import logging
from typing import Any, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.subscription import CreditTransaction, TransactionType
from app.infrastructure.db.models.base import utcnow
from app.infrastructure.db.models.credit_transaction import CreditTransactionModel
from app.infrastructure.db.repositories.base_repository import BaseRepository


logger = logging.getLogger(__name__)


class CreditTransactionRepository(BaseRepository[CreditTransactionModel, CreditTransaction]):
    """
    Repository for the credit_transactions table.

    Rows are never updated or deleted.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(CreditTransactionModel, session)

    async def add(self, transaction: CreditTransaction) -> Optional[CreditTransaction]:
        """
        Append a ledger entry.

        Returns:
            The stored entry, or None if an entry with the same
            idempotency key already exists
        """
        values = transaction.model_dump(exclude={"id", "created_at"})
        values["transaction_type"] = transaction.transaction_type.value
        values["subscription_id"] = (
            UUID(transaction.subscription_id) if transaction.subscription_id else None
        )
        values.update(id=uuid4(), created_at=utcnow())

        stmt = pg_insert(CreditTransactionModel).values(**values)
        if transaction.idempotency_key:
            stmt = stmt.on_conflict_do_nothing(index_elements=["idempotency_key"])
        stmt = stmt.returning(*self.columns)

        stored = await self._fetch_one(stmt)
        if stored is None:
            logger.info(f"Ledger entry {transaction.idempotency_key} already recorded")
        return stored

    async def get_by_reference(
        self,
        reference_id: str,
        transaction_type: TransactionType,
    ) -> Optional[CreditTransaction]:
        """First entry recorded against an external reference."""
        stmt = (
            select(*self.columns)
            .where(
                CreditTransactionModel.reference_id == reference_id,
                CreditTransactionModel.transaction_type == transaction_type.value,
            )
            .order_by(CreditTransactionModel.created_at)
            .limit(1)
        )
        return await self._fetch_one(stmt)

    async def list_for_user(self, user_id: str, limit: int = 10) -> List[CreditTransaction]:
        """Most recent entries first."""
        stmt = (
            select(*self.columns)
            .where(CreditTransactionModel.user_id == user_id)
            .order_by(CreditTransactionModel.created_at.desc())
            .limit(limit)
        )
        return await self._fetch_all(stmt)

    def _to_domain(self, row: Any) -> CreditTransaction:
        return CreditTransaction(
            id=str(row.id),
            user_id=row.user_id,
            subscription_id=str(row.subscription_id) if row.subscription_id else None,
            reference_id=row.reference_id,
            stripe_transaction_id=row.stripe_transaction_id,
            stripe_invoice_id=row.stripe_invoice_id,
            amount_paid=row.amount_paid or 0,
            credits_granted=row.credits_granted or 0,
            transaction_type=TransactionType(row.transaction_type),
            stripe_event_id=row.stripe_event_id,
            idempotency_key=row.idempotency_key,
            description=row.description,
            created_at=row.created_at,
        )
