"""
Stripe Payload Helpers

Field extraction for Stripe objects decoded to dicts. Covers both API
shapes: the legacy one (top-level ``subscription`` on invoices, period
bounds on the subscription) and the newer one
(``parent.subscription_details`` on invoices, period bounds on items).
"""

from datetime import datetime, timezone
from typing import Any, Optional


def to_datetime(timestamp: Optional[int]) -> Optional[datetime]:
    """Unix epoch seconds -> aware UTC datetime."""
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def expandable_id(value: Any) -> Optional[str]:
    """ID of a field that is either a bare ID or an expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return value.get("id")


def first_subscription_item(subscription: dict[str, Any]) -> dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def item_price_id(item: dict[str, Any]) -> Optional[str]:
    return expandable_id(item.get("price"))


def item_product_id(item: dict[str, Any]) -> Optional[str]:
    price = item.get("price")
    if isinstance(price, dict):
        return expandable_id(price.get("product"))
    return None


def subscription_period(
    subscription: dict[str, Any],
) -> tuple[Optional[datetime], Optional[datetime]]:
    """(start, end) of the current billing period."""
    start = subscription.get("current_period_start")
    end = subscription.get("current_period_end")
    if start is None or end is None:
        item = first_subscription_item(subscription)
        start = start if start is not None else item.get("current_period_start")
        end = end if end is not None else item.get("current_period_end")
    return to_datetime(start), to_datetime(end)


def invoice_subscription_id(invoice: dict[str, Any]) -> Optional[str]:
    subscription_id = expandable_id(invoice.get("subscription"))
    if subscription_id:
        return subscription_id
    details = (invoice.get("parent") or {}).get("subscription_details") or {}
    return expandable_id(details.get("subscription"))


def line_item_price_id(checkout_session: dict[str, Any]) -> Optional[str]:
    """Price of the first line item of an expanded checkout session."""
    items = (checkout_session.get("line_items") or {}).get("data") or []
    if not items:
        return None
    return expandable_id(items[0].get("price"))
