# storefront/services/payments.py
"""
Stripe PaymentIntent orchestration.

The PaymentIntent is the only durable record of an order: the order number,
product/shipping breakdown and payer email ride along in its metadata so the
confirmation step can rebuild the order later.
"""
from __future__ import annotations

import asyncio
import hashlib
import json
import time
from typing import Any, Dict, List, Optional, Tuple

import stripe
import structlog

from .carts import get_cart_store
from .products import get_product
from ..settings import settings

logger = structlog.get_logger(__name__)

stripe.api_key = settings.stripe_secret_key

METADATA_VALUE_LIMIT = 500  # Stripe caps each metadata value at 500 chars

DEFAULT_PAYMENT_METHODS: List[Dict[str, Any]] = [
    {"type": "card", "brands": ["visa", "mastercard", "amex"]},
    {"type": "google_pay"},
    {"type": "klarna"},
    {"type": "link"},
]

# Apple Pay needs a verified account (domain registration), so it is only
# advertised once the account lookup succeeds.
SUPPORTED_PAYMENT_METHODS: List[Dict[str, Any]] = [
    {"type": "card", "brands": ["visa", "mastercard", "amex"]},
    {"type": "google_pay"},
    {"type": "apple_pay"},
    {"type": "klarna"},
    {"type": "link"},
]


class PaymentFailed(Exception):
    """The processor answered, but the payment did not go through."""


class PaymentsNotConfigured(RuntimeError):
    pass


def _require_configured() -> None:
    if not settings.stripe_secret_key:
        raise PaymentsNotConfigured("Payments not configured")


def order_number(idempotency_key: Optional[str] = None) -> str:
    """Order number for a new intent.

    A retried request carrying the same idempotency key gets the same number,
    so the intent parameters match and Stripe replays the first response.
    """
    if idempotency_key:
        digest = hashlib.sha256(idempotency_key.encode("utf-8")).hexdigest()
        return f"ORD-{digest[:12].upper()}"
    return f"ORD-{int(time.time() * 1000)}"


def _plain(obj) -> Optional[Dict[str, Any]]:
    if obj is None:
        return None
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)


def _minor_units(value, field: str, allow_zero: bool = False) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Invalid {field}")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValueError(f"Invalid {field}")
    return value


def _validate(amount, currency, shipping_amount) -> Tuple[int, str, int]:
    amount = _minor_units(amount, "amount")
    if not currency:
        raise ValueError("Missing currency")
    shipping = 0 if shipping_amount is None else _minor_units(shipping_amount, "shippingAmount", allow_zero=True)
    return amount, currency.lower(), shipping


def snapshot_intent(intent) -> Dict[str, Any]:
    """Normalized view of a PaymentIntent, safe to return to the browser."""
    return {
        "id": intent.id,
        "amount": intent.amount,
        "currency": intent.currency,
        "status": intent.status,
        "shipping": _plain(getattr(intent, "shipping", None)),
        "metadata": _plain(getattr(intent, "metadata", None)) or {},
        "receiptEmail": getattr(intent, "receipt_email", None),
    }


def _cart_lines(cart: Dict[str, Any]) -> str:
    """Compact JSON snapshot of cart lines that fits one metadata value.

    Lines that do not fit are folded into a single trailing "N more items"
    line priced at their combined total, so the snapshot still sums to the
    amount charged.
    """
    lines = [
        {"n": it.get("name") or it["productId"], "q": it["quantity"], "p": it["price"]}
        for it in cart["items"]
    ]
    encoded = json.dumps(lines, separators=(",", ":"))
    keep = len(lines)
    while len(encoded) > METADATA_VALUE_LIMIT and keep > 0:
        keep -= 1
        tail = lines[keep:]
        remainder = {
            "n": f"{sum(line['q'] for line in tail)} more items",
            "q": 1,
            "p": sum(line["p"] * line["q"] for line in tail),
        }
        encoded = json.dumps(lines[:keep] + [remainder], separators=(",", ":"))
    if keep < len(lines):
        logger.warning("Cart lines folded to fit metadata", kept=keep, folded=len(lines) - keep)
    return encoded


def create_payment_intent(
    amount,
    currency: Optional[str],
    cart_id: Optional[str] = None,
    shipping_amount=None,
    shipping_option_id: Optional[str] = None,
    payer_email: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> Dict[str, Any]:
    """Standard (Payment Element) path: the browser confirms with the client secret."""
    amount, currency, shipping = _validate(amount, currency, shipping_amount)
    _require_configured()
    number = order_number(idempotency_key)

    metadata: Dict[str, str] = {
        "cartId": str(cart_id or ""),
        "orderNumber": number,
        "productAmount": str(amount),
        "shippingAmount": str(shipping),
        "shippingOptionId": str(shipping_option_id or ""),
        "payerEmail": str(payer_email or ""),
    }
    cart = get_cart_store().get(cart_id) if cart_id else None
    if cart and cart["items"]:
        metadata["items"] = _cart_lines(cart)
        metadata["quantity"] = str(sum(it["quantity"] for it in cart["items"]))

    params: Dict[str, Any] = {
        "amount": amount + shipping,
        "currency": currency,
        "automatic_payment_methods": {"enabled": True},
        "metadata": metadata,
    }
    if idempotency_key:
        params["idempotency_key"] = idempotency_key

    intent = stripe.PaymentIntent.create(**params)
    logger.info(
        "PaymentIntent created",
        payment_intent=intent.id,
        amount=intent.amount,
        order_number=number,
        cart_id=cart_id,
    )
    return {"clientSecret": intent.client_secret, "orderNumber": number}


def _wallet_shipping(address: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Map a browser wallet shipping address onto Stripe's shipping object."""
    if not address:
        return None
    lines = address.get("addressLine") or []
    return {
        "name": address.get("recipient") or address.get("name") or "",
        "phone": address.get("phone") or None,
        "address": {
            "line1": lines[0] if len(lines) > 0 else None,
            "line2": lines[1] if len(lines) > 1 else None,
            "city": address.get("city") or address.get("locality") or None,
            "state": address.get("region") or address.get("administrativeArea") or None,
            "postal_code": address.get("postalCode") or address.get("postal_code") or None,
            "country": address.get("country") or None,
        },
    }


def instant_checkout(
    payment_method_id: Optional[str],
    amount,
    currency: Optional[str],
    shipping_amount=None,
    product_id: Optional[str] = None,
    product_name: Optional[str] = None,
    quantity: Optional[int] = None,
    shipping_address: Optional[Dict[str, Any]] = None,
    shipping_option_id: Optional[str] = None,
    payer_email: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Wallet path: create and confirm server-side in one call.

    Returns the response body and the intent snapshot. Raises PaymentFailed
    when the processor leaves the intent in a terminal state.
    """
    if not payment_method_id:
        raise ValueError("Missing paymentMethodId")
    amount, currency, shipping = _validate(amount, currency, shipping_amount)
    _require_configured()
    if not shipping:
        logger.warning("Instant checkout without shipping amount", amount=amount)

    number = order_number(idempotency_key)
    if not product_name and product_id:
        product = get_product(product_id)
        product_name = product["name"] if product else None

    params: Dict[str, Any] = {
        "amount": amount + shipping,
        "currency": currency,
        "payment_method": payment_method_id,
        "confirmation_method": "automatic",
        "confirm": True,
        "return_url": f"{settings.site_url.rstrip('/')}/confirmation",
        "metadata": {
            "productId": str(product_id or ""),
            "productName": str(product_name or ""),
            "quantity": str(quantity or 1),
            "orderNumber": number,
            "shippingOptionId": str(shipping_option_id or ""),
            "shippingAmount": str(shipping),
            "productAmount": str(amount),
            "payerEmail": str(payer_email or ""),
        },
    }
    shipping_details = _wallet_shipping(shipping_address)
    if shipping_details:
        params["shipping"] = shipping_details
    if idempotency_key:
        params["idempotency_key"] = idempotency_key

    intent = stripe.PaymentIntent.create(**params)
    logger.info(
        "Instant PaymentIntent created",
        payment_intent=intent.id,
        amount=intent.amount,
        status=intent.status,
        product=amount,
        shipping=shipping,
    )

    if intent.status == "requires_action":
        return {
            "requiresAction": True,
            "clientSecret": intent.client_secret,
            "paymentIntentId": intent.id,
        }, snapshot_intent(intent)

    if intent.status == "succeeded":
        return {"status": "succeeded", "paymentIntentId": intent.id}, snapshot_intent(intent)

    last_error = _plain(getattr(intent, "last_payment_error", None)) or {}
    message = last_error.get("message") or f"Unexpected status: {intent.status}"
    logger.warning("Instant checkout did not succeed", payment_intent=intent.id, status=intent.status)
    raise PaymentFailed(message)


def retrieve_intent(payment_intent_id: str) -> Dict[str, Any]:
    _require_configured()
    return snapshot_intent(stripe.PaymentIntent.retrieve(payment_intent_id))


def mark_email_sent(payment_intent_id: str) -> None:
    # Stripe merges metadata keys on update
    stripe.PaymentIntent.modify(payment_intent_id, metadata={"emailSent": "true"})


def processor_message(exc: Exception) -> str:
    return getattr(exc, "user_message", None) or str(exc) or "Server error"


async def list_payment_methods(timeout: float = 5.0) -> Dict[str, Any]:
    if not settings.stripe_secret_key:
        return {
            "paymentMethods": DEFAULT_PAYMENT_METHODS,
            "verified": False,
            "message": "Using default payment methods (Stripe not configured)",
        }

    loop = asyncio.get_running_loop()
    try:
        account = await asyncio.wait_for(
            loop.run_in_executor(None, stripe.Account.retrieve), timeout
        )
    except (asyncio.TimeoutError, stripe.StripeError) as e:
        logger.error("Failed to verify payment methods", error=str(e) or "timeout")
        return {
            "paymentMethods": DEFAULT_PAYMENT_METHODS,
            "verified": False,
            "error": str(e) or "Stripe API timeout",
            "message": "Failed to verify payment methods, using defaults",
        }

    return {
        "paymentMethods": SUPPORTED_PAYMENT_METHODS,
        "account": {
            "country": getattr(account, "country", None),
            "default_currency": getattr(account, "default_currency", None),
        },
        "verified": True,
        "message": "Payment methods verified via Stripe API",
    }
