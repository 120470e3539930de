# storefront/services/emails.py
"""
Order confirmation emails.

Messages go out through a ``Mailer``: the Resend REST API when an API key is
configured, otherwise an in-memory outbox that just records what would have
been sent.
"""
from __future__ import annotations

import threading
import uuid
from abc import ABC, abstractmethod
from decimal import Decimal, ROUND_HALF_UP
from html import escape
from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..settings import settings

logger = structlog.get_logger(__name__)

RESEND_EMAILS_URL = "https://api.resend.com/emails"

DEFAULT_LOCALE = "en-US"

MESSAGES: Dict[str, Dict[str, Any]] = {
    "en-US": {
        "subject": "Order confirmation",
        "title": "Thank you for your order!",
        "thankYou": "Your payment went through and your order is being prepared.",
        "orderDetails": "Order details",
        "orderNumber": "Order number",
        "orderDate": "Order date",
        "itemsOrdered": "Items ordered",
        "quantity": "Quantity",
        "totalPaid": "Total paid",
        "shippingTo": "Shipping to",
        "whatNext": "What happens next?",
        "nextSteps": [
            "We prepare your order with care.",
            "You will receive a tracking number once it ships.",
            "Your starter arrives with feeding instructions.",
        ],
        "questions": "Questions? Just reply to this email.",
        "footer": "Heirbloom, from our kitchen to yours.",
    },
    "fr-CA": {
        "subject": "Confirmation de commande",
        "title": "Merci pour votre commande!",
        "thankYou": "Votre paiement a été accepté et votre commande est en préparation.",
        "orderDetails": "Détails de la commande",
        "orderNumber": "Numéro de commande",
        "orderDate": "Date de commande",
        "itemsOrdered": "Articles commandés",
        "quantity": "Quantité",
        "totalPaid": "Total payé",
        "shippingTo": "Livraison à",
        "whatNext": "Et maintenant?",
        "nextSteps": [
            "Nous préparons votre commande avec soin.",
            "Vous recevrez un numéro de suivi dès l'expédition.",
            "Votre levain arrive avec ses instructions d'entretien.",
        ],
        "questions": "Des questions? Répondez simplement à ce courriel.",
        "footer": "Heirbloom, de notre cuisine à la vôtre.",
    },
}

_SYMBOLS = {"CAD": "$", "USD": "US$", "EUR": "€", "GBP": "£"}


class MailerError(RuntimeError):
    pass


def messages_for(locale: Optional[str]) -> Dict[str, Any]:
    return MESSAGES.get(locale or DEFAULT_LOCALE, MESSAGES[DEFAULT_LOCALE])


def format_money(minor_units: int, currency: str, locale: Optional[str] = None) -> str:
    """Format an amount in minor units, e.g. 2998 CAD -> "$29.98" / "29,98 $"."""
    code = (currency or settings.default_currency).upper()
    value = (Decimal(int(minor_units)) / 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    symbol = _SYMBOLS.get(code, code + " ")
    if locale == "fr-CA":
        # fr-CA groups with spaces and puts the symbol last
        number = f"{value:,.2f}".replace(",", " ").replace(".", ",")
        return f"{number} {symbol.strip()}"
    return f"{symbol}{value:,.2f}"


def _address_html(shipping_address: Optional[Dict[str, Any]]) -> str:
    if not shipping_address:
        return ""
    addr = shipping_address.get("address") or {}
    lines = [f"<strong>{escape(shipping_address.get('name') or '')}</strong>"]
    for key in ("line1", "line2"):
        if addr.get(key):
            lines.append(escape(addr[key]))
    locality = " ".join(
        part for part in (
            ", ".join(p for p in (addr.get("city"), addr.get("state")) if p),
            addr.get("postal_code") or "",
        ) if part
    )
    if locality:
        lines.append(escape(locality))
    if addr.get("country"):
        lines.append(escape(addr["country"]))
    return '<p style="margin: 0; line-height: 1.6;">' + "<br/>".join(lines) + "</p>"


def _line_total(item: Dict[str, Any]) -> int:
    if item.get("lineTotal") is not None:
        return int(item["lineTotal"])
    return int(item.get("price", 0)) * int(item.get("quantity", 1))


def render_confirmation(order: Dict[str, Any]) -> Dict[str, str]:
    """Build subject and HTML body for the customer receipt."""
    locale = order.get("locale") or DEFAULT_LOCALE
    t = messages_for(locale)
    currency = order.get("currency") or settings.default_currency

    rows = "".join(
        f"""
        <tr>
          <td style="padding: 12px; border-bottom: 1px solid #e5e7eb;">
            <strong>{escape(str(item.get('name', '')))}</strong><br/>
            <span style="color: #6b7280; font-size: 14px;">{t['quantity']}: {int(item.get('quantity', 1))}</span>
          </td>
          <td style="padding: 12px; border-bottom: 1px solid #e5e7eb; text-align: right;">
            {format_money(_line_total(item), currency, locale)}
          </td>
        </tr>"""
        for item in order.get("items") or []
    )
    shipping_block = ""
    address = _address_html(order.get("shippingAddress"))
    if address:
        shipping_block = f"""
    <div style="background-color: #f9fafb; padding: 20px; border-radius: 8px; margin-bottom: 24px;">
      <h2 style="margin-top: 0; font-size: 18px;">{t['shippingTo']}</h2>
      {address}
    </div>"""
    steps = "".join(f"<li>{step}</li>" for step in t['nextSteps'])
    order_number = escape(str(order.get('orderNumber', '')))

    html_body = f"""<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"><meta name="viewport" content="width=device-width, initial-scale=1.0"></head>
  <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="text-align: center; margin-bottom: 30px;">
      <h1 style="color: #10b981; margin: 0;">{t['title']}</h1>
    </div>
    <div style="background-color: #f0fdf4; border-left: 4px solid #10b981; padding: 16px; margin-bottom: 24px;">
      <p style="margin: 0; color: #065f46;">{t['thankYou']}</p>
    </div>
    <div style="background-color: #f9fafb; padding: 20px; border-radius: 8px; margin-bottom: 24px;">
      <h2 style="margin-top: 0; font-size: 18px;">{t['orderDetails']}</h2>
      <table style="width: 100%; border-collapse: collapse;">
        <tr><td style="color: #6b7280;">{t['orderNumber']}</td><td style="text-align: right;"><strong>{order_number}</strong></td></tr>
        <tr><td style="color: #6b7280;">{t['orderDate']}</td><td style="text-align: right;"><strong>{escape(str(order.get('orderDate', '')))}</strong></td></tr>
      </table>
    </div>
    <div style="margin-bottom: 24px;">
      <h2 style="font-size: 18px; margin-bottom: 12px;">{t['itemsOrdered']}</h2>
      <table style="width: 100%; border-collapse: collapse; border: 1px solid #e5e7eb;">{rows}
        <tr>
          <td style="padding: 16px; background-color: #f0fdf4; font-weight: bold;">{t['totalPaid']}</td>
          <td style="padding: 16px; background-color: #f0fdf4; text-align: right; font-weight: bold; color: #10b981;">{format_money(int(order.get('total', 0)), currency, locale)}</td>
        </tr>
      </table>
    </div>{shipping_block}
    <div style="background-color: #eff6ff; border-left: 4px solid #3b82f6; padding: 16px; margin-bottom: 24px;">
      <h3 style="margin-top: 0; color: #1e40af; font-size: 16px;">{t['whatNext']}</h3>
      <ul style="margin: 0; padding-left: 20px; color: #1e40af;">{steps}</ul>
    </div>
    <div style="text-align: center; padding-top: 24px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px;">
      <p>{t['footer']}</p>
      <p>{t['questions']}</p>
    </div>
  </body>
</html>"""
    return {"subject": f"{t['subject']} - {order.get('orderNumber', '')}", "html": html_body}


def render_admin_notification(order: Dict[str, Any]) -> Dict[str, str]:
    currency = order.get("currency") or settings.default_currency
    lines = "<br>".join(
        f"{int(item.get('quantity', 1))}× {escape(str(item.get('name', '')))}"
        for item in order.get("items") or []
    )
    html_body = f"""<!DOCTYPE html>
<html>
  <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; padding: 20px; max-width: 400px; margin: 0 auto;">
    <div style="background-color: #10b981; color: white; padding: 12px; text-align: center;"><strong>One more command</strong></div>
    <div style="background-color: #f9fafb; padding: 12px;">
      <div><strong>{escape(str(order.get('orderNumber', '')))}</strong> • {escape(str(order.get('orderDate', '')))}</div>
      <div style="color: #6b7280; font-size: 14px;">{escape(str(order.get('email', '')))}</div>
    </div>
    <div style="background-color: #f0fdf4; padding: 12px;"><strong style="color: #10b981; font-size: 20px;">{format_money(int(order.get('total', 0)), currency)}</strong></div>
    <div style="font-size: 14px; color: #6b7280;">{lines}</div>
  </body>
</html>"""
    return {"subject": "One more command", "html": html_body}


# ---------- Mailers ----------

class Mailer(ABC):
    @abstractmethod
    def send(self, to: List[str], subject: str, html: str, sender: Optional[str] = None) -> Optional[str]:
        """Send one message and return the provider's message id."""


class ResendMailer(Mailer):
    def __init__(self, api_key: str, default_from: str, transport: Optional[httpx.BaseTransport] = None):
        self.api_key = api_key
        self.default_from = default_from
        self._transport = transport

    def send(self, to: List[str], subject: str, html: str, sender: Optional[str] = None) -> Optional[str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {"from": sender or self.default_from, "to": to, "subject": subject, "html": html}
        try:
            with httpx.Client(timeout=15, transport=self._transport) as client:
                resp = client.post(RESEND_EMAILS_URL, json=payload, headers=headers)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            raise MailerError(f"Resend API error {exc.response.status_code}: {exc.response.text[:200]}")
        except httpx.RequestError as exc:
            raise MailerError(f"Resend request failed: {exc}")
        return data.get("id")


class OutboxMailer(Mailer):
    """Keeps sent messages in memory. Used when no mail provider is configured."""

    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def send(self, to: List[str], subject: str, html: str, sender: Optional[str] = None) -> Optional[str]:
        message_id = f"outbox_{uuid.uuid4().hex[:12]}"
        with self._lock:
            self.sent.append({
                "id": message_id,
                "from": sender or settings.email_from,
                "to": list(to),
                "subject": subject,
                "html": html,
            })
        logger.info("Email recorded in outbox", to=to, subject=subject)
        return message_id


_mailer: Optional[Mailer] = None


def get_mailer() -> Mailer:
    global _mailer
    if _mailer is None:
        if settings.resend_api_key:
            _mailer = ResendMailer(settings.resend_api_key, settings.email_from)
        else:
            logger.warning("RESEND_API_KEY not set, emails go to the in-memory outbox")
            _mailer = OutboxMailer()
    return _mailer


def set_mailer(mailer: Optional[Mailer]) -> None:
    global _mailer
    _mailer = mailer


# ---------- Operations ----------

def send_confirmation_email(order: Dict[str, Any]) -> Dict[str, Any]:
    """Send the receipt to the customer, then notify the store owner.

    Raises MailerError if the customer email cannot be sent. The owner
    notification is best-effort.
    """
    mailer = get_mailer()
    content = render_confirmation(order)
    email_id = mailer.send([order["email"]], content["subject"], content["html"], sender=settings.email_from)
    logger.info("Confirmation email sent", order_number=order.get("orderNumber"), email_id=email_id)

    admin = settings.admin_email or settings.email_from
    if admin:
        notice = render_admin_notification(order)
        try:
            mailer.send([admin], notice["subject"], notice["html"], sender=settings.email_from)
        except MailerError as e:
            logger.error("Admin notification failed", order_number=order.get("orderNumber"), error=str(e))

    return {"success": True, "emailId": email_id}
