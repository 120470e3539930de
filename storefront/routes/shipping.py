# storefront/routes/shipping.py
from __future__ import annotations
from fastapi import APIRouter, HTTPException

from ..schemas.shipping import ShippingRatesIn, LettermailRatesIn, ShippingRatesOut
from ..services.shipping import (
    resolve_parcel_rates,
    resolve_lettermail_rates,
    collapse_for_wallet,
)

router = APIRouter(prefix="/api", tags=["shipping"])


def _dump(model):
    return model.model_dump(exclude_none=True) if model else None


@router.post("/shipping-rates", response_model=ShippingRatesOut, response_model_exclude_none=True)
async def shipping_rates(body: ShippingRatesIn):
    try:
        rates = await resolve_parcel_rates(_dump(body.destination), _dump(body.origin), _dump(body.package))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"rates": rates}


@router.post("/shipping-rates/wallet", response_model=ShippingRatesOut, response_model_exclude_none=True)
async def wallet_shipping_rates(body: ShippingRatesIn):
    """Two-option list for the wallet payment sheet: free (selected) and expedited."""
    try:
        rates = await resolve_parcel_rates(_dump(body.destination), _dump(body.origin), _dump(body.package))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"rates": collapse_for_wallet(rates)}


@router.post("/lettermail-rates", response_model=ShippingRatesOut, response_model_exclude_none=True)
async def lettermail_rates(body: LettermailRatesIn):
    try:
        rates = await resolve_lettermail_rates(_dump(body.destination), body.weight, _dump(body.origin))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"rates": rates}
