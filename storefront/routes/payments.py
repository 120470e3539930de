# storefront/routes/payments.py
from __future__ import annotations
from typing import Optional

import stripe
import structlog
from fastapi import APIRouter, BackgroundTasks, Header, HTTPException, Query

from ..schemas.checkout import (
    CreatePaymentIntentIn,
    CreatePaymentIntentOut,
    InstantCheckoutIn,
    InstantCheckoutOut,
    PaymentIntentOut,
)
from ..services import payments
from ..services.confirmation import dispatch_confirmation

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["payments"])


@router.post("/create-payment-intent", response_model=CreatePaymentIntentOut)
def create_payment_intent(
    body: CreatePaymentIntentIn,
    idempotency_key: Optional[str] = Header(None),
):
    try:
        return payments.create_payment_intent(
            amount=body.amount,
            currency=body.currency,
            cart_id=body.cartId,
            shipping_amount=body.shippingAmount,
            shipping_option_id=body.shippingOptionId,
            payer_email=body.payerEmail,
            idempotency_key=idempotency_key,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except payments.PaymentsNotConfigured as e:
        raise HTTPException(status_code=503, detail=str(e))
    except stripe.StripeError as e:
        logger.error("Stripe error creating payment intent", error=str(e))
        raise HTTPException(status_code=500, detail=payments.processor_message(e))


@router.post("/instant-checkout", response_model=InstantCheckoutOut, response_model_exclude_none=True)
def instant_checkout(
    body: InstantCheckoutIn,
    background: BackgroundTasks,
    idempotency_key: Optional[str] = Header(None),
):
    try:
        result, snapshot = payments.instant_checkout(
            payment_method_id=body.paymentMethodId,
            amount=body.amount,
            currency=body.currency,
            shipping_amount=body.shippingAmount,
            product_id=body.productId,
            product_name=body.productName,
            quantity=body.quantity,
            shipping_address=body.shippingAddress,
            shipping_option_id=body.shippingOptionId,
            payer_email=body.payerEmail,
            idempotency_key=idempotency_key,
        )
    except payments.PaymentFailed as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except payments.PaymentsNotConfigured as e:
        raise HTTPException(status_code=503, detail=str(e))
    except stripe.StripeError as e:
        logger.error("Instant checkout error", error=str(e))
        raise HTTPException(status_code=500, detail=payments.processor_message(e))

    if snapshot["status"] == "succeeded":
        # runs after the response is sent; the buyer never waits on email
        background.add_task(dispatch_confirmation, snapshot)
    return result


@router.get("/payment-intent", response_model=PaymentIntentOut)
def get_payment_intent(
    background: BackgroundTasks,
    payment_intent: Optional[str] = Query(None),
    redirect_status: Optional[str] = Query(None),
):
    if not payment_intent:
        raise HTTPException(status_code=400, detail="Payment intent ID is required")

    try:
        snapshot = payments.retrieve_intent(payment_intent)
    except payments.PaymentsNotConfigured as e:
        raise HTTPException(status_code=503, detail=str(e))
    except stripe.StripeError as e:
        logger.error("Failed to retrieve payment intent", payment_intent=payment_intent, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to retrieve payment intent")

    logger.info(
        "Payment intent polled",
        payment_intent=payment_intent,
        status=snapshot["status"],
        redirect_status=redirect_status,
    )
    if snapshot["status"] == "succeeded":
        background.add_task(dispatch_confirmation, snapshot)

    view = {k: snapshot[k] for k in ("id", "amount", "currency", "status", "shipping", "metadata")}
    return {"paymentIntent": view}


@router.get("/payment-methods")
async def payment_methods():
    return await payments.list_payment_methods()
