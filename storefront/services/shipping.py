# storefront/services/shipping.py
"""
Shipping-rate resolution.

Rates come from Canada Post when the carrier is configured and answers in
time; otherwise from the static tables below, keyed by destination country
(and weight bracket for letter mail). A valid destination always yields at
least one rate.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog

from .canada_post import (
    CarrierError,
    build_mailing_scenario,
    get_carrier,
    parse_price_quotes,
)
from ..settings import settings

logger = structlog.get_logger(__name__)

DEFAULT_WEIGHT_KG = 0.05
DEFAULT_DIMENSIONS = {"length": 20.0, "width": 15.0, "height": 10.0}

_CA_POSTAL_3 = re.compile(r"^[A-Z]\d[A-Z]$")
_CA_POSTAL_6 = re.compile(r"^[A-Z]\d[A-Z]\d[A-Z]\d$")
_US_ZIP = re.compile(r"^\d{5}(\d{4})?$")


def _rate(code: str, name: str, description: str, price: int, days: str) -> Dict[str, Any]:
    return {
        "id": code,
        "name": name,
        "description": description,
        "price": price,
        "estimatedDays": days,
        "serviceCode": code,
    }


PARCEL_FALLBACK: Dict[str, List[Dict[str, Any]]] = {
    "CA": [
        _rate("DOM.EP", "Expedited Parcel", "Canada Post Expedited Parcel", 1500, "3-5 business days"),
        _rate("DOM.RP", "Regular Parcel", "Canada Post Regular Parcel", 1200, "5-7 business days"),
        _rate("DOM.XP", "Xpresspost", "Canada Post Xpresspost", 2000, "1-2 business days"),
    ],
    "US": [
        _rate("USA.EP", "Expedited Parcel USA", "Canada Post Expedited Parcel USA", 2500, "4-7 business days"),
        _rate("USA.XP", "Xpresspost USA", "Canada Post Xpresspost USA", 3500, "2-3 business days"),
    ],
    "INT": [
        _rate("INT.SP", "Small Packet International", "Canada Post Small Packet International", 3000, "6-10 business days"),
        _rate("INT.XP", "Xpresspost International", "Canada Post Xpresspost International", 5000, "4-6 business days"),
    ],
}

# (max grams, cents, label); the last bracket is open-ended
LETTERMAIL_BRACKETS: Dict[str, List[tuple]] = {
    "CA": [(30, 192, "up to 30g"), (50, 254, "up to 50g"), (100, 331, "up to 100g"), (None, 505, "up to 500g")],
    "US": [(30, 154, "up to 30g"), (50, 224, "up to 50g"), (None, 363, "up to 100g")],
    "INT": [(30, 285, "up to 30g"), (50, 385, "up to 50g"), (None, 570, "up to 100g")],
}

LETTERMAIL_SERVICE = {
    "CA": ("DOM.LM", "Lettermail", "Standard Lettermail", "2-9 business days"),
    "US": ("USA.LM", "US Lettermail", "Lettermail to USA", "4-7 business days"),
    "INT": ("INT.LM", "International Lettermail", "Lettermail International", "6-10 business days"),
}


def _zone(country: str) -> str:
    return country if country in ("CA", "US") else "INT"


def fallback_parcel_rates(country: str) -> List[Dict[str, Any]]:
    return [dict(r) for r in PARCEL_FALLBACK[_zone(country)]]


def fallback_lettermail_rates(country: str, weight_grams: float) -> List[Dict[str, Any]]:
    zone = _zone(country)
    code, name, description, days = LETTERMAIL_SERVICE[zone]
    for max_grams, price, label in LETTERMAIL_BRACKETS[zone]:
        if max_grams is None or weight_grams <= max_grams:
            break
    return [_rate(code, name, f"{description} ({label})", price, days)]


@dataclass
class Destination:
    country: str
    postal_code: str      # normalized, as sent to the carrier
    city: Optional[str] = None
    province: Optional[str] = None


def normalize_destination(raw: Optional[Dict[str, Any]]) -> Destination:
    """Validate a destination and normalize its postal code.

    Raises ValueError with a user-facing message for malformed input.
    """
    raw = raw or {}
    postal = (raw.get("postalCode") or "").strip()
    country = (raw.get("country") or "").strip().upper()
    if not postal or not country:
        raise ValueError("Destination postal code and country are required")

    cleaned = re.sub(r"\s+", "", postal).upper()

    if country == "CA":
        if _CA_POSTAL_3.match(cleaned):
            # wallet sheets only reveal the forward sortation area
            cleaned = f"{cleaned}0A0"
        elif not _CA_POSTAL_6.match(cleaned):
            raise ValueError("Invalid Canadian postal code format (expected: A1A or A1A1A1)")
    elif country == "US":
        cleaned = cleaned.replace("-", "")
        if not _US_ZIP.match(cleaned):
            raise ValueError("Invalid US ZIP code format")

    return Destination(
        country=country,
        postal_code=cleaned,
        city=raw.get("city"),
        province=raw.get("province"),
    )


def _origin_postal(origin: Optional[Dict[str, Any]], config) -> str:
    code = (origin or {}).get("postalCode") or config.origin_postal_code
    return re.sub(r"\s+", "", code).upper()


async def _quote(carrier, scenario_xml: bytes, default_days: str) -> List[Dict[str, Any]]:
    xml_text = await carrier.price(scenario_xml)
    rates = parse_price_quotes(xml_text, default_days)
    if not rates:
        raise CarrierError("carrier returned no quotes")
    return rates


async def resolve_parcel_rates(
    destination: Optional[Dict[str, Any]],
    origin: Optional[Dict[str, Any]] = None,
    package: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    dest = normalize_destination(destination)

    carrier = get_carrier()
    if not carrier.configured:
        logger.warning("Canada Post not configured, using fallback rates", country=dest.country)
        return fallback_parcel_rates(dest.country)

    package = package or {}
    weight = package.get("weight") or DEFAULT_WEIGHT_KG
    dimensions = {side: package.get(side) or DEFAULT_DIMENSIONS[side] for side in DEFAULT_DIMENSIONS}

    scenario = build_mailing_scenario(
        customer_number=carrier.config.canada_post_customer_number or "",
        origin_postal_code=_origin_postal(origin, carrier.config),
        country=dest.country,
        postal_code=dest.postal_code,
        weight_kg=weight,
        dimensions=dimensions,
    )

    try:
        rates = await _quote(carrier, scenario, default_days="5-7 business days")
    except CarrierError as e:
        logger.warning(
            "Carrier lookup failed, using fallback rates",
            country=dest.country,
            reason=str(e),
        )
        return fallback_parcel_rates(dest.country)

    logger.info("Carrier rates resolved", country=dest.country, count=len(rates))
    return rates


async def resolve_lettermail_rates(
    destination: Optional[Dict[str, Any]],
    weight_grams: Optional[float],
    origin: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    dest = normalize_destination(destination)
    if not weight_grams or weight_grams <= 0:
        raise ValueError("Weight is required and must be greater than 0")

    carrier = get_carrier()
    if not carrier.configured:
        logger.warning("Canada Post not configured, using fallback lettermail rates", country=dest.country)
        return fallback_lettermail_rates(dest.country, weight_grams)

    scenario = build_mailing_scenario(
        customer_number=carrier.config.canada_post_customer_number or "",
        origin_postal_code=_origin_postal(origin, carrier.config),
        country=dest.country,
        postal_code=dest.postal_code,
        weight_kg=weight_grams / 1000,
    )

    try:
        return await _quote(carrier, scenario, default_days="3-5 business days")
    except CarrierError as e:
        logger.warning(
            "Carrier lettermail lookup failed, using fallback rates",
            country=dest.country,
            reason=str(e),
        )
        return fallback_lettermail_rates(dest.country, weight_grams)


def collapse_for_wallet(rates: List[Dict[str, Any]], discount: Optional[int] = None) -> List[Dict[str, Any]]:
    """Reduce a rate list to the two options shown on a wallet payment sheet.

    The cheapest rate becomes free and pre-selected; the most expensive of the
    rest is offered as the expedited option, reduced by ``discount`` cents.
    """
    if not rates:
        return []
    discount = settings.wallet_expedited_discount if discount is None else discount

    ordered = sorted(rates, key=lambda r: r["price"])
    cheapest = ordered[0]
    options = [{
        **cheapest,
        "name": "Free shipping",
        "description": f"{cheapest['name']} (free)",
        "price": 0,
        "selected": True,
    }]

    if len(ordered) > 1:
        expedited = ordered[-1]
        options.append({
            **expedited,
            "price": max(0, expedited["price"] - discount),
            "selected": False,
        })
    return options
