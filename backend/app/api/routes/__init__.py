# API Routes Module
from app.api.routes import (
    checkout,
    config_status,
    credits,
    plans,
    subscriptions,
    webhooks,
)

__all__ = [
    "checkout",
    "config_status",
    "credits",
    "plans",
    "subscriptions",
    "webhooks",
]
