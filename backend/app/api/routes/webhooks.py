"""
Stripe Webhook Routes

Both endpoints share one reconciler. Deliveries are acknowledged with
``{"received": true}`` once the signature verifies, even when applying
the event fails; an invalid signature is rejected with 400.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Header, Request, status
from fastapi.responses import JSONResponse

from app.api.dependencies import WebhookReconcilerDep
from app.infrastructure.exceptions import WebhookSignatureError
from app.infrastructure.services.webhook_reconciler import WebhookReconciler


logger = logging.getLogger(__name__)

router = APIRouter()


async def _receive(
    request: Request,
    reconciler: WebhookReconciler,
    signature: Optional[str],
):
    payload = await request.body()

    try:
        result = await reconciler.handle(payload, signature)
    except WebhookSignatureError as e:
        logger.error(f"Webhook signature verification failed: {e.message}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid signature"},
        )

    return {"received": True, "duplicate": result.duplicate}


@router.post("/webhooks/subscription")
async def subscription_webhook(
    request: Request,
    reconciler: WebhookReconcilerDep,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    signature: Optional[str] = Header(None),
):
    """Stripe subscription lifecycle events."""
    return await _receive(request, reconciler, stripe_signature or signature)


@router.post("/webhooks/payments")
async def payments_webhook(
    request: Request,
    reconciler: WebhookReconcilerDep,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    signature: Optional[str] = Header(None),
):
    """Stripe invoice and checkout events."""
    return await _receive(request, reconciler, stripe_signature or signature)
