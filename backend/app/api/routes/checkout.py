"""
Checkout Success Route

Finalizes a hosted checkout when the browser returns from Stripe.
"""

from fastapi import APIRouter, Query

from app.api.dependencies import CheckoutServiceDep, CurrentUserDep
from app.domain.subscription import CheckoutSuccessResponse


router = APIRouter()


@router.get("/checkout/success", response_model=CheckoutSuccessResponse)
async def checkout_success(
    user: CurrentUserDep,
    checkout: CheckoutServiceDep,
    session_id: str = Query(..., min_length=1),
):
    """Record the subscription and first-period credits for a paid session."""
    return await checkout.complete_checkout(user, session_id)
