"""
Integration Tests for Webhooks (Stripe)

Verifies:
- Signature verification failure (400)
- Successful event processing
- Idempotency (prevent double processing)
"""

import hashlib
import hmac
import json
import time

import pytest
from fastapi.testclient import TestClient

from app.infrastructure.exceptions import WebhookSignatureError


WEBHOOK_PATHS = ["/api/webhooks/subscription", "/api/webhooks/payments"]


def sign(payload: bytes, secret: str, timestamp: int = None) -> str:
    """Stripe-Signature header value for a payload."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


class TestStripeWebhooks:

    @pytest.mark.parametrize("path", WEBHOOK_PATHS)
    def test_webhook_invalid_signature(self, client, stripe_service, uow, path):
        """Webhook with invalid signature should fail 400."""
        stripe_service.verify_webhook_signature.side_effect = WebhookSignatureError()

        response = client.post(path, content=b"{}", headers={"stripe-signature": "invalid_sig"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid signature"}
        assert uow.store.events == {}

    def test_webhook_success_checkout(self, client, stripe_service, uow, user):
        """Valid checkout.session.completed event links the customer."""
        stripe_service.verify_webhook_signature.return_value = {
            "id": "evt_checkout_ok",
            "type": "checkout.session.completed",
            "data": {"object": {"id": "cs_123", "customer": "cus_test", "metadata": {"user_id": user.id}}},
        }

        response = client.post(
            "/api/webhooks/payments",
            content=b"{}",
            headers={"stripe-signature": "t=1,v1=sig"},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True, "duplicate": False}
        assert uow.store.customers[0].customer_id == "cus_test"
        assert uow.commits == 1

    def test_webhook_idempotency(self, client, stripe_service, uow):
        """Replaying an event is acknowledged as a duplicate."""
        stripe_service.verify_webhook_signature.return_value = {
            "id": "evt_dup", "type": "customer.created", "data": {"object": {}},
        }

        first = client.post("/api/webhooks/subscription", content=b"{}", headers={"stripe-signature": "s"})
        second = client.post("/api/webhooks/subscription", content=b"{}", headers={"stripe-signature": "s"})

        assert first.json()["duplicate"] is False
        assert second.json() == {"received": True, "duplicate": True}
        assert uow.commits == 1

    def test_signature_header_fallback(self, client, stripe_service):
        """The plain ``signature`` header is accepted too."""
        stripe_service.verify_webhook_signature.return_value = {
            "id": "evt_1", "type": "customer.created", "data": {"object": {}},
        }

        response = client.post("/api/webhooks/payments", content=b"{}", headers={"signature": "abc"})

        assert response.status_code == 200
        stripe_service.verify_webhook_signature.assert_called_once_with(b"{}", "abc")

    def test_handler_failure_still_acknowledged(self, client, stripe_service, uow, user, explorer_plan):
        """A failing handler is logged and rolled back; Stripe gets a 200."""
        stripe_service.verify_webhook_signature.return_value = {
            "id": "evt_fail",
            "type": "customer.subscription.created",
            "data": {"object": {
                "id": "sub_1",
                "customer": "cus_1",
                "status": "active",
                "metadata": {"user_id": user.id},
                "items": {"data": [{"price": {"id": explorer_plan.stripe_price_id}}]},
            }},
        }
        stripe_service.get_latest_invoice.side_effect = RuntimeError("boom")

        response = client.post("/api/webhooks/subscription", content=b"{}", headers={"stripe-signature": "s"})

        assert response.status_code == 200
        assert response.json()["received"] is True
        assert uow.store.subscriptions == {}
        assert uow.store.events == {}


class TestSignedDeliveries:
    """Real signature verification with the configured signing secret."""

    @pytest.fixture
    def signed_client(self, test_settings, uow):
        from app.main import create_app
        from app.api.dependencies import get_unit_of_work

        application = create_app(test_settings)
        application.dependency_overrides[get_unit_of_work] = lambda: uow
        return TestClient(application)

    def test_valid_signature(self, signed_client, test_settings, uow):
        payload = json.dumps({
            "id": "evt_signed", "type": "customer.created", "data": {"object": {"id": "cus_1"}},
        }).encode()

        response = signed_client.post(
            "/api/webhooks/subscription",
            content=payload,
            headers={"stripe-signature": sign(payload, test_settings.stripe_webhook_secret)},
        )

        assert response.status_code == 200
        assert uow.store.events == {"evt_signed": "customer.created"}

    def test_wrong_secret(self, signed_client, uow):
        payload = b'{"id": "evt_forged", "type": "customer.created", "data": {"object": {}}}'

        response = signed_client.post(
            "/api/webhooks/subscription",
            content=payload,
            headers={"stripe-signature": sign(payload, "whsec_wrong")},
        )

        assert response.status_code == 400
        assert uow.store.events == {}

    def test_missing_signature(self, signed_client):
        response = signed_client.post("/api/webhooks/payments", content=b"{}")

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid signature"}
