"""
Credit Transaction Database Model

Append-only ledger of credit grants and payment audit entries.
"""

from typing import Optional
from uuid import UUID

from sqlmodel import Field

from app.infrastructure.db.models.base import CreatedAtMixin, UUIDMixin


class CreditTransactionModel(UUIDMixin, CreatedAtMixin, table=True):
    """
    Maps to the 'credit_transactions' table.

    ``idempotency_key`` is unique: a second grant for the same invoice
    (or checkout session) fails at the database.
    """

    __tablename__ = "credit_transactions"

    user_id: str = Field(max_length=36, index=True, nullable=False)
    subscription_id: Optional[UUID] = Field(default=None, foreign_key="subscriptions.id", index=True)

    # External references
    reference_id: Optional[str] = Field(default=None, max_length=255, index=True)
    stripe_transaction_id: Optional[str] = Field(default=None, max_length=255)
    stripe_invoice_id: Optional[str] = Field(default=None, max_length=255, index=True)
    stripe_event_id: Optional[str] = Field(default=None, max_length=255)
    idempotency_key: Optional[str] = Field(default=None, max_length=300, unique=True)

    # Amounts
    amount_paid: int = Field(default=0)
    credits_granted: int = Field(default=0)

    transaction_type: str = Field(max_length=30, nullable=False)
    description: Optional[str] = Field(default=None, max_length=500)
