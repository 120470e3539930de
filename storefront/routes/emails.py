# storefront/routes/emails.py
from __future__ import annotations

import structlog
from fastapi import APIRouter, HTTPException

from ..schemas.checkout import ConfirmationEmailIn, NewsletterIn
from ..services.emails import MailerError, send_confirmation_email
from ..services.newsletter import NewsletterNotConfigured, SubscribeFailed, subscribe, valid_email

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["email"])


@router.post("/send-confirmation-email")
def send_confirmation(body: ConfirmationEmailIn):
    try:
        return send_confirmation_email(body.model_dump())
    except MailerError as e:
        logger.error("Error sending email", order_number=body.orderNumber, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to send email")


@router.post("/newsletter")
async def newsletter(body: NewsletterIn):
    if not valid_email(body.email):
        raise HTTPException(status_code=400, detail="Invalid email address")
    try:
        await subscribe(body.email)
    except (NewsletterNotConfigured, SubscribeFailed) as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"status": 200, "message": "Successfully subscribed"}
