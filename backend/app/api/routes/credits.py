"""
Credit Routes
"""

from fastapi import APIRouter

from app.api.dependencies import CurrentUserDep, UnitOfWorkDep
from app.domain.subscription import CreditBalanceResponse
from app.infrastructure.services.credit_ledger import CreditLedger


router = APIRouter()


@router.get("/credits/balance", response_model=CreditBalanceResponse)
async def get_credit_balance(user: CurrentUserDep, uow: UnitOfWorkDep):
    """Remaining credits of the current user (never negative)."""
    balance = await CreditLedger(uow).current_balance(user.id)
    return CreditBalanceResponse(credits_remaining=balance)
