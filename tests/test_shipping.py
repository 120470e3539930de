"""Tests for shipping-rate resolution, carrier fallback and the wallet collapse."""
from __future__ import annotations

import httpx
import pytest

from storefront.services.canada_post import CanadaPostClient, set_carrier
from storefront.services.shipping import collapse_for_wallet, normalize_destination
from storefront.settings import settings

PRICE_QUOTES = """<?xml version="1.0" encoding="UTF-8"?>
<price-quotes xmlns="http://www.canadapost.ca/ws/ship/rate-v4">
  <price-quote>
    <service-code>DOM.EP</service-code>
    <service-name>Expedited Parcel</service-name>
    <price-details><due>13.47</due></price-details>
    <service-standard><expected-delivery-date>2026-10-23</expected-delivery-date></service-standard>
  </price-quote>
  <price-quote>
    <service-code>DOM.XP</service-code>
    <service-name>Xpresspost</service-name>
    <price-details><due>21.055</due></price-details>
  </price-quote>
  <price-quote>
    <service-code>DOM.BROKEN</service-code>
    <price-details><due>9.99</due></price-details>
  </price-quote>
</price-quotes>
"""

EMPTY_QUOTES = '<price-quotes xmlns="http://www.canadapost.ca/ws/ship/rate-v4"></price-quotes>'

MONTREAL = {"postalCode": "H2X1Y7", "country": "CA"}


def _use_carrier(handler):
    """Install a configured carrier whose HTTP traffic goes to ``handler``."""
    requests = []

    def record(request: httpx.Request):
        requests.append(request)
        return handler(request)

    config = settings.model_copy(update={
        "canada_post_api_key": "key",
        "canada_post_api_secret": "secret",
        "canada_post_customer_number": "0001234567",
    })
    set_carrier(CanadaPostClient(config=config, transport=httpx.MockTransport(record)))
    return requests


def _codes(resp):
    return [r["serviceCode"] for r in resp.json()["rates"]]


# ---------- Fallback ----------

def test_unconfigured_carrier_returns_canadian_fallback(client):
    resp = client.post("/api/shipping-rates", json={"destination": MONTREAL})
    assert resp.status_code == 200
    assert _codes(resp) == ["DOM.EP", "DOM.RP", "DOM.XP"]


@pytest.mark.parametrize("destination,expected", [
    ({"postalCode": "10001", "country": "US"}, ["USA.EP", "USA.XP"]),
    ({"postalCode": "SW1A1AA", "country": "GB"}, ["INT.SP", "INT.XP"]),
])
def test_fallback_keyed_by_country(client, destination, expected):
    resp = client.post("/api/shipping-rates", json={"destination": destination})
    assert resp.status_code == 200
    assert _codes(resp) == expected


@pytest.mark.parametrize("handler", [
    lambda request: httpx.Response(500, text="<messages/>"),
    lambda request: httpx.Response(200, text=EMPTY_QUOTES),
    lambda request: httpx.Response(200, text="not xml at all"),
])
def test_carrier_failure_falls_back(client, handler):
    requests = _use_carrier(handler)
    resp = client.post("/api/shipping-rates", json={"destination": MONTREAL})
    assert resp.status_code == 200
    assert _codes(resp) == ["DOM.EP", "DOM.RP", "DOM.XP"]
    assert len(requests) == 1


def test_carrier_timeout_falls_back(client):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    _use_carrier(handler)
    resp = client.post("/api/shipping-rates", json={"destination": {"postalCode": "90210", "country": "US"}})
    assert resp.status_code == 200
    assert _codes(resp) == ["USA.EP", "USA.XP"]


# ---------- Carrier success ----------

def test_carrier_quotes_are_parsed(client):
    requests = _use_carrier(lambda request: httpx.Response(200, text=PRICE_QUOTES))
    resp = client.post(
        "/api/shipping-rates",
        json={"destination": {"postalCode": "h2x 1y7", "country": "ca"}, "package": {"weight": 1.2}},
    )
    assert resp.status_code == 200
    rates = resp.json()["rates"]
    assert [r["serviceCode"] for r in rates] == ["DOM.EP", "DOM.XP"]
    assert rates[0]["price"] == 1347
    assert rates[0]["estimatedDays"] == "2026-10-23"
    assert rates[1]["price"] == 2106  # half-up to the cent
    assert rates[1]["estimatedDays"] == "5-7 business days"

    sent = requests[0]
    assert sent.url.path == "/rs/ship/price"
    assert sent.headers["content-type"] == "application/vnd.cpc.ship.rate-v4+xml"
    body = sent.content.decode()
    assert "<postal-code>H2X1Y7</postal-code>" in body
    assert "<weight>1.200</weight>" in body
    assert "<customer-number>0001234567</customer-number>" in body


# ---------- Validation ----------

@pytest.mark.parametrize("destination,message", [
    ({"postalCode": "12345", "country": "CA"}, "Invalid Canadian postal code format (expected: A1A or A1A1A1)"),
    ({"postalCode": "ABCDE", "country": "US"}, "Invalid US ZIP code format"),
    ({"postalCode": "1234", "country": "US"}, "Invalid US ZIP code format"),
    ({"country": "CA"}, "Destination postal code and country are required"),
])
def test_malformed_destination_rejected_before_carrier(client, destination, message):
    requests = _use_carrier(lambda request: httpx.Response(200, text=PRICE_QUOTES))
    resp = client.post("/api/shipping-rates", json={"destination": destination})
    assert resp.status_code == 400
    assert resp.json() == {"error": message}
    assert requests == []


def test_postal_code_normalization():
    assert normalize_destination({"postalCode": "h2x", "country": "CA"}).postal_code == "H2X0A0"
    assert normalize_destination({"postalCode": "12345-6789", "country": "us"}).postal_code == "123456789"


# ---------- Wallet ----------

def test_wallet_rates_collapse_to_free_and_expedited(client):
    resp = client.post("/api/shipping-rates/wallet", json={"destination": MONTREAL})
    assert resp.status_code == 200
    rates = resp.json()["rates"]
    assert len(rates) == 2

    free, expedited = rates
    assert free["price"] == 0
    assert free["selected"] is True
    assert free["serviceCode"] == "DOM.RP"
    assert expedited["serviceCode"] == "DOM.XP"
    assert expedited["price"] == 2000 - 1000
    assert expedited["selected"] is False
    assert sum(1 for r in rates if r["selected"]) == 1


def test_collapse_single_rate_and_discount_floor():
    rates = [
        {"id": "A", "name": "A", "description": "", "price": 500, "estimatedDays": "", "serviceCode": "A"},
        {"id": "B", "name": "B", "description": "", "price": 800, "estimatedDays": "", "serviceCode": "B"},
    ]
    collapsed = collapse_for_wallet(rates, discount=1000)
    assert collapsed[1]["price"] == 0
    assert collapse_for_wallet(rates[:1])[0]["price"] == 0
    assert collapse_for_wallet([]) == []


# ---------- Lettermail ----------

@pytest.mark.parametrize("weight,price", [(20, 192), (30, 192), (45, 254), (90, 331), (400, 505)])
def test_lettermail_brackets(client, weight, price):
    resp = client.post("/api/lettermail-rates", json={"destination": MONTREAL, "weight": weight})
    assert resp.status_code == 200
    rates = resp.json()["rates"]
    assert rates[0]["serviceCode"] == "DOM.LM"
    assert rates[0]["price"] == price


def test_lettermail_requires_weight(client):
    resp = client.post("/api/lettermail-rates", json={"destination": MONTREAL})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Weight is required and must be greater than 0"
