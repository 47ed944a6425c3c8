"""
Credit Ledger

Grants credits and keeps the append-only transaction log.
The balance itself lives on the user's subscription row and is only ever
changed with an atomic increment.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.domain.subscription import CreditTransaction, TransactionType
from app.infrastructure.db.unit_of_work import UnitOfWork


logger = logging.getLogger(__name__)


def purchase_key(subscription_id: Optional[str], checkout_session_id: Optional[str] = None) -> str:
    """
    Idempotency key of the first-period grant.

    One per Stripe subscription; one-off payments fall back to the
    checkout session.
    """
    return f"purchase:{subscription_id or checkout_session_id}"


def renewal_key(invoice_id: str) -> str:
    """Idempotency key of a renewal grant."""
    return f"renewal:{invoice_id}"


class CreditLedger:
    """
    Service for credit grants and balance reads.

    Does not commit: the calling operation owns the transaction.
    """

    def __init__(self, uow: UnitOfWork):
        self._uow = uow

    async def grant_credits(
        self,
        user_id: str,
        amount: int,
        transaction_type: TransactionType,
        *,
        reference_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
        amount_paid: int = 0,
        stripe_invoice_id: Optional[str] = None,
        stripe_transaction_id: Optional[str] = None,
        stripe_event_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        description: Optional[str] = None,
    ) -> bool:
        """
        Record a ledger entry and add ``amount`` to the user's balance.

        ``amount = 0`` only records the entry (payment failure audit).
        An entry whose idempotency key is already recorded is a no-op.

        Returns:
            False if the user has no subscription row to credit or
            storage failed
        """
        try:
            subscription = await self._uow.subscriptions.get_by_user_id(user_id)
            if subscription is None and amount > 0:
                logger.error(
                    f"Cannot grant {amount} credits to user {user_id}: no subscription row "
                    f"(ref={reference_id}, invoice={stripe_invoice_id})"
                )
                return False

            entry = CreditTransaction(
                user_id=user_id,
                subscription_id=subscription_id or (subscription.id if subscription else None),
                reference_id=reference_id,
                stripe_transaction_id=stripe_transaction_id,
                stripe_invoice_id=stripe_invoice_id,
                amount_paid=amount_paid,
                credits_granted=amount,
                transaction_type=transaction_type,
                stripe_event_id=stripe_event_id,
                idempotency_key=idempotency_key,
                description=description,
            )
            stored = await self._uow.transactions.add(entry)
            if stored is None:
                logger.info(f"Skipping duplicate grant {idempotency_key} for user {user_id}")
                return True

            if amount > 0:
                balance = await self._uow.subscriptions.increment_credits(user_id, amount)
                if balance is None:
                    logger.error(f"Subscription row for user {user_id} vanished during grant")
                    return False
                logger.info(
                    f"Granted {amount} credits to user {user_id} "
                    f"({transaction_type.value}, balance={balance})"
                )
            else:
                logger.info(f"Recorded {transaction_type.value} entry for user {user_id}")
            return True

        except SQLAlchemyError as e:
            logger.error(
                f"Failed to grant {amount} credits to user {user_id} "
                f"(type={transaction_type.value}, ref={reference_id}): {e}"
            )
            return False

    async def current_balance(self, user_id: str) -> int:
        """Remaining credits on the user's current subscription, never negative."""
        subscription = await self._uow.subscriptions.get_by_user_id(user_id)
        if subscription is None:
            return 0
        return max(0, subscription.credits_remaining)

    async def history(self, user_id: str, limit: int = 50) -> List[CreditTransaction]:
        """Ledger entries for a user, newest first."""
        return await self._uow.transactions.list_for_user(user_id, limit=limit)
