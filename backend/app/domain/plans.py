"""
Plan Catalog

Static mapping from Stripe price/product identifiers to CoachBridge plans.
Defined at deploy time; lookups are pure and side-effect free.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class BillingMode(str, Enum):
    """Stripe checkout mode for a plan."""
    SUBSCRIPTION = "subscription"
    PAYMENT = "payment"


class Plan(BaseModel):
    """A named tier of paid access with a fixed monthly credit grant."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    monthly_credits: int
    price_cents: int  # minor currency units (USD cents)
    billing_mode: BillingMode = BillingMode.SUBSCRIPTION
    stripe_price_id: str
    stripe_product_id: str


# =============================================================================
# Catalog
# =============================================================================

PLANS: tuple[Plan, ...] = (
    Plan(
        id="explorer",
        name="CoachBridge Explorer",
        description=(
            "Self starters who want a flexible AI accountability partner to help "
            "them stay on track with their development."
        ),
        monthly_credits=50,
        price_cents=2500,
        stripe_price_id="price_1RXeYbEREG4CzjmmBKcnXTHc",
        stripe_product_id="prod_explorer",
    ),
    Plan(
        id="starter",
        name="CoachBridge Starter",
        description=(
            "Individuals seeking more AI coaching and the guidance of a human "
            "expert through webinars or group coaching."
        ),
        monthly_credits=250,
        price_cents=6900,
        stripe_price_id="price_1ReBMSEREG4CzjmmiB7ZN5hL",
        stripe_product_id="prod_starter",
    ),
    Plan(
        id="accelerator",
        name="CoachBridge Accelerator",
        description=(
            "Individuals seeking more AI coaching with plenty of credits to use "
            "with AI Voice & Video Coaching."
        ),
        monthly_credits=600,
        price_cents=12900,
        stripe_price_id="price_1ReBNEEREG4CzjmmnOtrbc5F",
        stripe_product_id="prod_accelerator",
    ),
)

PRICE_ID_TO_PLAN: dict[str, Plan] = {plan.stripe_price_id: plan for plan in PLANS}
PRODUCT_ID_TO_PLAN: dict[str, Plan] = {plan.stripe_product_id: plan for plan in PLANS}


def list_plans() -> list[Plan]:
    """All plans in display order."""
    return list(PLANS)


def get_plan_by_price_id(price_id: Optional[str]) -> Optional[Plan]:
    """Look up a plan by Stripe price ID. ``None`` when unknown."""
    if not price_id:
        return None
    return PRICE_ID_TO_PLAN.get(price_id)


def get_plan_by_product_id(product_id: Optional[str]) -> Optional[Plan]:
    """Look up a plan by Stripe product ID. ``None`` when unknown."""
    if not product_id:
        return None
    return PRODUCT_ID_TO_PLAN.get(product_id)


def format_price(price_cents: int) -> str:
    """Format minor units as a dollar string, e.g. 2500 -> "$25.00"."""
    return f"${price_cents / 100:.2f}"
