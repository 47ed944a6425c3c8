"""
Plan Catalog Routes

Public listing of purchasable plans.
"""

from fastapi import APIRouter

from app.domain.plans import format_price, list_plans
from app.domain.subscription import PlanResponse


router = APIRouter()


@router.get("/plans", response_model=list[PlanResponse])
async def get_plans():
    """All plans with display prices."""
    return [
        PlanResponse(
            id=plan.id,
            name=plan.name,
            description=plan.description,
            monthly_credits=plan.monthly_credits,
            price_cents=plan.price_cents,
            price_display=format_price(plan.price_cents),
            price_id=plan.stripe_price_id,
            billing_mode=plan.billing_mode.value,
        )
        for plan in list_plans()
    ]
