"""Tests for the confirmation email endpoint, rendering and the newsletter signup."""
from __future__ import annotations

import json

import httpx
import pytest

from storefront.services import newsletter
from storefront.services.emails import (
    Mailer,
    MailerError,
    ResendMailer,
    format_money,
    render_confirmation,
    set_mailer,
)
from storefront.settings import settings

ORDER = {
    "email": "marie@example.com",
    "orderNumber": "ORD-1760000000000",
    "orderDate": "2026-10-19",
    "items": [
        {"name": "Sourdough Starter", "quantity": 2, "price": 1499},
        {"name": "Pizza Dough Kit", "quantity": 1, "price": 3999},
    ],
    "total": 8197,
    "currency": "cad",
    "shippingAddress": {
        "name": "Marie Tremblay",
        "address": {
            "line1": "123 Rue Saint-Denis",
            "city": "Montréal",
            "state": "QC",
            "postal_code": "H2X 1Y7",
            "country": "CA",
        },
    },
}


# ---------- Endpoint ----------

def test_send_confirmation_email(client, outbox):
    resp = client.post("/api/send-confirmation-email", json=ORDER)
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["emailId"].startswith("outbox_")

    customer, admin = outbox.sent
    assert customer["to"] == ["marie@example.com"]
    assert customer["subject"] == "Order confirmation - ORD-1760000000000"
    assert "$29.98" in customer["html"]
    assert "$81.97" in customer["html"]
    assert "Rue Saint-Denis" in customer["html"]

    assert admin["to"] == ["owner@example.com"]
    assert admin["subject"] == "One more command"
    assert "2× Sourdough Starter" in admin["html"]


def test_french_locale(client, outbox):
    resp = client.post("/api/send-confirmation-email", json={**ORDER, "locale": "fr-CA"})
    assert resp.status_code == 200
    customer = outbox.sent[0]
    assert customer["subject"].startswith("Confirmation de commande")
    assert "81,97 $" in customer["html"]


class BrokenMailer(Mailer):
    def send(self, to, subject, html, sender=None):
        raise MailerError("Resend API error 422: invalid from")


def test_mailer_failure_is_500(client):
    set_mailer(BrokenMailer())
    resp = client.post("/api/send-confirmation-email", json=ORDER)
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to send email"}


class AdminFailsMailer(Mailer):
    def __init__(self):
        self.sent = []

    def send(self, to, subject, html, sender=None):
        if to == ["owner@example.com"]:
            raise MailerError("admin mailbox rejected")
        self.sent.append(to)
        return "em_1"


def test_admin_notification_failure_is_ignored(client):
    mailer = AdminFailsMailer()
    set_mailer(mailer)
    resp = client.post("/api/send-confirmation-email", json=ORDER)
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "emailId": "em_1"}
    assert mailer.sent == [["marie@example.com"]]


def test_missing_fields_is_400(client):
    resp = client.post("/api/send-confirmation-email", json={"email": "marie@example.com"})
    assert resp.status_code == 400
    assert "error" in resp.json()


# ---------- Rendering ----------

@pytest.mark.parametrize("amount,currency,locale,expected", [
    (2998, "CAD", None, "$29.98"),
    (123456, "cad", None, "$1,234.56"),
    (500, "USD", None, "US$5.00"),
    (123456, "CAD", "fr-CA", "1 234,56 $"),
])
def test_format_money(amount, currency, locale, expected):
    assert format_money(amount, currency, locale) == expected


def test_render_escapes_customer_input():
    order = {**ORDER, "items": [{"name": "<script>x</script>", "quantity": 1, "price": 100}]}
    html = render_confirmation(order)["html"]
    assert "<script>" not in html
    assert "&lt;script&gt;" in html


def test_resend_mailer_posts_to_api():
    seen = []

    def handler(request: httpx.Request):
        seen.append(request)
        return httpx.Response(200, json={"id": "re_123"})

    mailer = ResendMailer("re_key", "Shop <shop@example.com>", transport=httpx.MockTransport(handler))
    assert mailer.send(["a@example.com"], "Hi", "<p>hi</p>") == "re_123"

    request = seen[0]
    assert str(request.url) == "https://api.resend.com/emails"
    assert request.headers["authorization"] == "Bearer re_key"
    assert json.loads(request.content)["from"] == "Shop <shop@example.com>"


def test_resend_mailer_raises_on_error():
    mailer = ResendMailer(
        "re_key", "shop@example.com",
        transport=httpx.MockTransport(lambda request: httpx.Response(422, json={"message": "bad"})),
    )
    with pytest.raises(MailerError):
        mailer.send(["a@example.com"], "Hi", "<p>hi</p>")


# ---------- Newsletter ----------

@pytest.fixture()
def resend_audience(monkeypatch):
    seen = []

    def handler(request: httpx.Request):
        seen.append(request)
        return httpx.Response(200, json={"object": "contact", "id": "ct_1"})

    monkeypatch.setattr(settings, "resend_api_key", "re_key")
    monkeypatch.setattr(settings, "resend_audience_id", "aud_1")
    monkeypatch.setattr(newsletter, "_transport", httpx.MockTransport(handler))
    return seen


def test_newsletter_subscribe(client, resend_audience):
    resp = client.post("/api/newsletter", json={"email": "marie@example.com"})
    assert resp.status_code == 200
    assert resp.json() == {"status": 200, "message": "Successfully subscribed"}

    request = resend_audience[0]
    assert request.url.path == "/audiences/aud_1/contacts"
    assert json.loads(request.content) == {"email": "marie@example.com", "unsubscribed": False}


@pytest.mark.parametrize("body", [{}, {"email": "not-an-email"}, {"email": 42}])
def test_newsletter_invalid_email(client, resend_audience, body):
    resp = client.post("/api/newsletter", json=body)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid email address"}
    assert resend_audience == []


def test_newsletter_not_configured(client):
    resp = client.post("/api/newsletter", json={"email": "marie@example.com"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Newsletter service not configured"}


def test_newsletter_resend_error(client, monkeypatch):
    monkeypatch.setattr(settings, "resend_api_key", "re_key")
    monkeypatch.setattr(settings, "resend_audience_id", "aud_1")
    monkeypatch.setattr(
        newsletter, "_transport", httpx.MockTransport(lambda request: httpx.Response(401, json={}))
    )
    resp = client.post("/api/newsletter", json={"email": "marie@example.com"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to subscribe"}
