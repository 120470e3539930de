# storefront/services/newsletter.py
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
import structlog

from ..settings import settings

logger = structlog.get_logger(__name__)

RESEND_AUDIENCES_URL = "https://api.resend.com/audiences"

# overridable in tests (httpx.MockTransport)
_transport: Optional[httpx.AsyncBaseTransport] = None


class NewsletterNotConfigured(RuntimeError):
    pass


class SubscribeFailed(RuntimeError):
    pass


def valid_email(email: Any) -> bool:
    return isinstance(email, str) and "@" in email


async def subscribe(email: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> Dict[str, Any]:
    """Add ``email`` as a subscribed contact of the Resend audience."""
    audience_id = settings.resend_audience_id
    if not audience_id or not settings.resend_api_key:
        logger.error("RESEND_AUDIENCE_ID is not configured")
        raise NewsletterNotConfigured("Newsletter service not configured")

    headers = {
        "Authorization": f"Bearer {settings.resend_api_key}",
        "Content-Type": "application/json",
    }
    url = f"{RESEND_AUDIENCES_URL}/{audience_id}/contacts"
    try:
        async with httpx.AsyncClient(timeout=15, transport=transport or _transport) as client:
            resp = await client.post(url, json={"email": email, "unsubscribed": False}, headers=headers)
            resp.raise_for_status()
            data = resp.json()
    except httpx.HTTPStatusError as exc:
        logger.error("Resend API error", status=exc.response.status_code, body=exc.response.text[:200])
        raise SubscribeFailed("Failed to subscribe")
    except httpx.RequestError as exc:
        logger.error("Resend request failed", error=str(exc))
        raise SubscribeFailed("Failed to subscribe")

    logger.info("Newsletter contact added", contact_id=data.get("id"))
    return data
