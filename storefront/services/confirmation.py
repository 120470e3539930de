# storefront/services/confirmation.py
"""
Post-payment side effects: clear the cart and send the confirmation email once.

``dispatch_confirmation`` runs as a background task after the response has
been sent, from both the instant checkout and the confirmation poll. The
ledger claim gates both effects: the poll that wins it clears the cart and
sends, later polls do nothing. It never raises; failures are logged.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog

from .carts import get_cart_store
from .dispatch_ledger import get_ledger
from .emails import send_confirmation_email
from .payments import mark_email_sent

logger = structlog.get_logger(__name__)


def _payer_email(snapshot: Dict[str, Any]) -> Optional[str]:
    metadata = snapshot.get("metadata") or {}
    return metadata.get("payerEmail") or snapshot.get("receiptEmail") or None


def order_items(metadata: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Rebuild order lines from PaymentIntent metadata."""
    raw = metadata.get("items")
    if raw:
        try:
            lines = json.loads(raw)
            return [
                {"name": line["n"], "quantity": int(line["q"]), "price": int(line["p"])}
                for line in lines
            ]
        except (ValueError, KeyError, TypeError):
            logger.warning("Unreadable items snapshot in metadata", items=raw[:80])

    quantity = int(metadata.get("quantity") or 1)
    product_amount = int(metadata.get("productAmount") or 0)
    return [{
        "name": metadata.get("productName") or "Order",
        "quantity": quantity,
        "price": round(product_amount / max(quantity, 1)),
        # the rounded unit price times quantity can drift from what was charged
        "lineTotal": product_amount,
    }]


def build_order(snapshot: Dict[str, Any], email: str) -> Dict[str, Any]:
    metadata = snapshot.get("metadata") or {}
    return {
        "email": email,
        "orderNumber": metadata.get("orderNumber") or snapshot["id"],
        "orderDate": datetime.now(timezone.utc).strftime("%Y-%m-%d"),
        "items": order_items(metadata),
        "total": snapshot.get("amount") or 0,
        "currency": snapshot.get("currency") or "",
        "shippingAddress": snapshot.get("shipping"),
        "locale": metadata.get("locale") or "en-US",
    }


def _clear_cart(snapshot: Dict[str, Any]) -> None:
    cart_id = (snapshot.get("metadata") or {}).get("cartId")
    if cart_id and get_cart_store().clear(cart_id) is not None:
        logger.info("Cart cleared after payment", cart_id=cart_id, payment_intent=snapshot["id"])


def dispatch_confirmation(snapshot: Dict[str, Any]) -> None:
    intent_id = snapshot.get("id")
    if snapshot.get("status") != "succeeded":
        return
    if (snapshot.get("metadata") or {}).get("emailSent") == "true":
        return

    email = _payer_email(snapshot)
    ledger = get_ledger()
    try:
        claimed = ledger.claim(intent_id, {"email": email or ""})
    except Exception:
        logger.exception("Dispatch ledger unavailable", payment_intent=intent_id)
        return
    if not claimed:
        logger.info("Confirmation already dispatched", payment_intent=intent_id)
        return

    # only the claiming poll clears, so a cart refilled after payment survives later polls
    _clear_cart(snapshot)

    if not email:
        logger.info("No payer email on intent, skipping confirmation", payment_intent=intent_id)
        return

    try:
        result = send_confirmation_email(build_order(snapshot, email))
    except Exception:
        logger.exception("Confirmation email failed", payment_intent=intent_id)
        try:
            ledger.release(intent_id)
        except Exception as e:
            logger.error("Could not release dispatch claim", payment_intent=intent_id, error=str(e))
        return

    try:
        ledger.mark_sent(intent_id, result.get("emailId"))
        mark_email_sent(intent_id)
    except Exception as e:
        # the claim is kept either way, so no resend
        logger.error("Could not record sent confirmation", payment_intent=intent_id, error=str(e))
