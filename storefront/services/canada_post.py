"""Canada Post rating API client (rate-v4, XML over HTTPS)."""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, List, Optional
from xml.etree import ElementTree as ET

import httpx
import structlog

from ..settings import Settings, settings as default_settings

logger = structlog.get_logger(__name__)

RATE_V4_NS = "http://www.canadapost.ca/ws/ship/rate-v4"
RATE_V4_MEDIA_TYPE = "application/vnd.cpc.ship.rate-v4+xml"


class CarrierError(Exception):
    """The carrier could not produce a usable quote."""


class CarrierTimeout(CarrierError):
    pass


def build_mailing_scenario(
    customer_number: str,
    origin_postal_code: str,
    country: str,
    postal_code: str,
    weight_kg: float,
    dimensions: Optional[Dict[str, float]] = None,
) -> bytes:
    root = ET.Element("mailing-scenario", xmlns=RATE_V4_NS)
    ET.SubElement(root, "customer-number").text = customer_number

    parcel = ET.SubElement(root, "parcel-characteristics")
    ET.SubElement(parcel, "weight").text = f"{weight_kg:.3f}"
    if dimensions:
        dims = ET.SubElement(parcel, "dimensions")
        for side in ("length", "width", "height"):
            ET.SubElement(dims, side).text = f"{dimensions[side]:.1f}"

    ET.SubElement(root, "origin-postal-code").text = origin_postal_code

    destination = ET.SubElement(root, "destination")
    if country == "CA":
        ET.SubElement(ET.SubElement(destination, "domestic"), "postal-code").text = postal_code
    elif country == "US":
        ET.SubElement(ET.SubElement(destination, "united-states"), "zip-code").text = postal_code
    else:
        ET.SubElement(ET.SubElement(destination, "international"), "country-code").text = country

    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def _to_cents(amount: str) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_price_quotes(xml_text: str, default_days: str) -> List[Dict[str, Any]]:
    """Turn a price-quotes document into rate dicts. Incomplete quotes are skipped."""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise CarrierError(f"unparseable carrier response: {e}")

    rates: List[Dict[str, Any]] = []
    for quote in root.iterfind(".//{*}price-quote"):
        code = (quote.findtext(".//{*}service-code") or "").strip()
        name = (quote.findtext(".//{*}service-name") or "").strip()
        due = (quote.findtext(".//{*}due") or "").strip()
        if not (code and name and due):
            continue
        try:
            price = _to_cents(due)
        except InvalidOperation:
            continue
        delivery = (quote.findtext(".//{*}expected-delivery-date") or "").strip()
        rates.append({
            "id": code,
            "name": name,
            "description": name,
            "price": price,
            "estimatedDays": delivery or default_days,
            "serviceCode": code,
        })
    return rates


class CanadaPostClient:
    def __init__(
        self,
        config: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or default_settings
        self.transport = transport

    @property
    def configured(self) -> bool:
        return self.config.carrier_configured

    async def price(self, scenario_xml: bytes) -> str:
        """POST a mailing scenario and return the raw XML body."""
        url = f"{self.config.canada_post_api_url.rstrip('/')}/rs/ship/price"
        headers = {
            "Content-Type": RATE_V4_MEDIA_TYPE,
            "Accept": RATE_V4_MEDIA_TYPE,
            "Accept-Language": "en-CA",
        }
        auth = (self.config.canada_post_api_key or "", self.config.canada_post_api_secret or "")

        try:
            async with httpx.AsyncClient(
                timeout=self.config.carrier_timeout_seconds,
                transport=self.transport,
                auth=auth,
            ) as client:
                resp = await client.post(url, content=scenario_xml, headers=headers)
        except httpx.TimeoutException as exc:
            raise CarrierTimeout(f"Canada Post request timed out: {exc}")
        except httpx.RequestError as exc:
            raise CarrierError(f"Canada Post request failed: {exc}")

        if resp.status_code != 200:
            logger.error(
                "Canada Post API error",
                status=resp.status_code,
                body=resp.text[:500],
            )
            raise CarrierError(f"Canada Post API error {resp.status_code}")
        return resp.text


_carrier: Optional[CanadaPostClient] = None


def get_carrier() -> CanadaPostClient:
    global _carrier
    if _carrier is None:
        _carrier = CanadaPostClient()
    return _carrier


def set_carrier(carrier: Optional[CanadaPostClient]) -> None:
    """Override the carrier client (tests). ``None`` restores the default."""
    global _carrier
    _carrier = carrier
