# storefront/routes/cart.py
from __future__ import annotations
from typing import Optional

import structlog
from fastapi import APIRouter, HTTPException, Header, Cookie, Query, Response

from ..schemas.cart import CartOut, AddToCartIn, UpdateCartIn
from ..services.carts import get_cart_store, CartNotFound, CartItemNotFound, ProductNotFound

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/cart", tags=["cart"])

CART_COOKIE = "yns_cart_id"
CART_COOKIE_MAX_AGE = 30 * 24 * 60 * 60


def _cart_id(header: Optional[str], cookie: Optional[str]) -> Optional[str]:
    return header or cookie or None


@router.get("", response_model=Optional[CartOut])
def get_cart(
    x_cart_id: Optional[str] = Header(None),
    yns_cart_id: Optional[str] = Cookie(None),
):
    return get_cart_store().get(_cart_id(x_cart_id, yns_cart_id))


@router.post("", response_model=CartOut)
def add_to_cart(
    body: AddToCartIn,
    response: Response,
    x_cart_id: Optional[str] = Header(None),
    yns_cart_id: Optional[str] = Cookie(None),
):
    cart_id = _cart_id(x_cart_id, yns_cart_id)
    logger.info("Adding to cart", cart_id=cart_id, variant_id=body.variantId, quantity=body.quantity)
    try:
        cart = get_cart_store().add(cart_id, body.variantId, body.quantity)
    except ProductNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    # first add: hand the new id back as a cookie
    if cart["id"] != cart_id:
        response.set_cookie(
            CART_COOKIE, cart["id"], max_age=CART_COOKIE_MAX_AGE, samesite="lax", httponly=False,
        )
    return cart


@router.patch("", response_model=CartOut)
def update_cart(
    body: UpdateCartIn,
    x_cart_id: Optional[str] = Header(None),
    yns_cart_id: Optional[str] = Cookie(None),
):
    cart_id = _cart_id(x_cart_id, yns_cart_id)
    if not cart_id:
        raise HTTPException(status_code=400, detail="Cart ID required")

    logger.info("Updating cart", cart_id=cart_id, variant_id=body.variantId, quantity=body.quantity)
    try:
        return get_cart_store().update(cart_id, body.variantId, body.quantity)
    except (CartNotFound, CartItemNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("", response_model=CartOut)
def remove_from_cart(
    variantId: Optional[str] = Query(None),
    x_cart_id: Optional[str] = Header(None),
    yns_cart_id: Optional[str] = Cookie(None),
):
    cart_id = _cart_id(x_cart_id, yns_cart_id)
    if not cart_id:
        raise HTTPException(status_code=400, detail="Cart ID required")
    if not variantId:
        raise HTTPException(status_code=400, detail="Variant ID required")

    logger.info("Removing from cart", cart_id=cart_id, variant_id=variantId)
    try:
        return get_cart_store().remove(cart_id, variantId)
    except CartNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/clear")
def clear_cart(
    response: Response,
    x_cart_id: Optional[str] = Header(None),
    yns_cart_id: Optional[str] = Cookie(None),
):
    cart_id = _cart_id(x_cart_id, yns_cart_id)
    if cart_id:
        get_cart_store().clear(cart_id)
    response.delete_cookie(CART_COOKIE)
    return {"ok": True}
