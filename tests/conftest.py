"""Shared fixtures: replace Stripe and the mailer so tests run without credentials."""
from __future__ import annotations

import itertools
import os
from types import SimpleNamespace

# Set env vars BEFORE any app imports
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["DISPATCH_LEDGER"] = "memory"
os.environ["EMAIL_FROM"] = "Heirbloom Orders <orders@example.com>"
os.environ["ADMIN_EMAIL"] = "owner@example.com"
for _key in (
    "CANADA_POST_API_KEY",
    "CANADA_POST_API_SECRET",
    "CANADA_POST_CUSTOMER_NUMBER",
    "RESEND_API_KEY",
    "RESEND_AUDIENCE_ID",
):
    os.environ.pop(_key, None)

import pytest
import stripe


# ---------- Fake Stripe ----------

class FakeStripe:
    """In-memory stand-in for the PaymentIntent endpoints the service uses."""

    def __init__(self):
        self.intents: dict[str, SimpleNamespace] = {}
        self.create_calls: list[dict] = []
        self.idempotent: dict[str, tuple] = {}
        self.modify_calls: list[tuple] = []
        self.next_status = "requires_payment_method"
        self.last_payment_error = None
        self.fail_with: Exception | None = None
        self._ids = itertools.count(1)

    def create(self, **params):
        if self.fail_with:
            raise self.fail_with
        self.create_calls.append(params)
        key = params.get("idempotency_key")
        request = {k: v for k, v in params.items() if k != "idempotency_key"}
        if key in self.idempotent:
            first_request, intent = self.idempotent[key]
            if first_request != request:
                raise stripe.IdempotencyError(
                    "Keys for idempotent requests can only be used with the same "
                    "parameters they were first used with."
                )
            return intent
        intent = self._new_intent(params)
        if key:
            self.idempotent[key] = (request, intent)
        return intent

    def _new_intent(self, params):
        n = next(self._ids)
        intent = SimpleNamespace(
            id=f"pi_test_{n}",
            client_secret=f"pi_test_{n}_secret_abc",
            amount=params["amount"],
            currency=params["currency"],
            status=self.next_status if params.get("confirm") else "requires_payment_method",
            metadata=dict(params.get("metadata") or {}),
            shipping=params.get("shipping"),
            receipt_email=params.get("receipt_email"),
            last_payment_error=self.last_payment_error,
        )
        self.intents[intent.id] = intent
        return intent

    def retrieve(self, intent_id, **_):
        if self.fail_with:
            raise self.fail_with
        if intent_id not in self.intents:
            raise stripe.InvalidRequestError(f"No such payment_intent: '{intent_id}'", "id")
        return self.intents[intent_id]

    def modify(self, intent_id, **params):
        self.modify_calls.append((intent_id, params))
        intent = self.intents[intent_id]
        intent.metadata.update(params.get("metadata") or {})
        return intent

    def succeed(self, intent_id, **metadata):
        """Simulate the browser confirming the intent."""
        intent = self.intents[intent_id]
        intent.status = "succeeded"
        intent.metadata.update(metadata)
        return intent


@pytest.fixture()
def fake_stripe(monkeypatch):
    fake = FakeStripe()
    monkeypatch.setattr(stripe.PaymentIntent, "create", fake.create)
    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", fake.retrieve)
    monkeypatch.setattr(stripe.PaymentIntent, "modify", fake.modify)
    monkeypatch.setattr(
        stripe.Account,
        "retrieve",
        lambda *a, **kw: SimpleNamespace(country="CA", default_currency="cad"),
    )
    return fake


# ---------- Shared state ----------

@pytest.fixture(autouse=True)
def _reset_state():
    """Fresh cart store, ledger, mailer and carrier for every test."""
    from storefront.services.carts import get_cart_store
    from storefront.services.dispatch_ledger import MemoryDispatchLedger, set_ledger
    from storefront.services.emails import OutboxMailer, set_mailer
    from storefront.services.canada_post import set_carrier

    get_cart_store().reset()
    set_ledger(MemoryDispatchLedger())
    set_mailer(OutboxMailer())
    set_carrier(None)
    yield
    set_ledger(None)
    set_mailer(None)
    set_carrier(None)


@pytest.fixture()
def outbox():
    from storefront.services.emails import get_mailer
    return get_mailer()


@pytest.fixture()
def client():
    """FastAPI TestClient (sync)."""
    from fastapi.testclient import TestClient
    from storefront.main import app
    return TestClient(app)
