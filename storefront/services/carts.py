# storefront/services/carts.py
"""
Session-scoped cart storage.

Carts live in process memory keyed by cart id; nothing survives a restart.
Every mutation of a cart runs under that cart's lock, so two requests
touching the same cart id apply one after the other.
"""
from __future__ import annotations

import threading
import uuid
from typing import Dict, Any, List, Optional

from .products import get_product, unit_price
from ..settings import settings


class CartNotFound(LookupError):
    pass


class CartItemNotFound(LookupError):
    pass


class ProductNotFound(LookupError):
    pass


def _cart_id() -> str:
    return f"cart_{uuid.uuid4().hex[:7]}"


def _line_id() -> str:
    return f"li_{uuid.uuid4().hex[:7]}"


def _compute_subtotal(items: List[Dict[str, Any]]) -> int:
    return sum(it["price"] * it["quantity"] for it in items)


class CartStore:
    def __init__(self) -> None:
        self._carts: Dict[str, Dict[str, Any]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, cart_id: str, create: bool = False) -> Optional[threading.Lock]:
        # locks exist only for carts that were created; unknown ids get None
        with self._registry_lock:
            lock = self._locks.get(cart_id)
            if lock is None and create:
                lock = self._locks[cart_id] = threading.Lock()
            return lock

    def _existing_lock(self, cart_id: str) -> threading.Lock:
        lock = self._lock_for(cart_id)
        if lock is None:
            raise CartNotFound("Cart not found")
        return lock

    def _snapshot(self, cart: Dict[str, Any]) -> Dict[str, Any]:
        subtotal = _compute_subtotal(cart["items"])
        cart["subtotal"] = subtotal
        cart["total"] = subtotal  # no shipping or tax at cart level
        return {
            **cart,
            "items": [dict(it) for it in cart["items"]],
        }

    def _require(self, cart_id: str) -> Dict[str, Any]:
        cart = self._carts.get(cart_id)
        if cart is None:
            raise CartNotFound("Cart not found")
        return cart

    # ---- queries ----
    def get(self, cart_id: Optional[str]) -> Optional[Dict[str, Any]]:
        lock = self._lock_for(cart_id) if cart_id else None
        if lock is None:
            return None
        with lock:
            cart = self._carts.get(cart_id)
            return self._snapshot(cart) if cart is not None else None

    # ---- commands ----
    def add(self, cart_id: Optional[str], variant_id: str, quantity: int = 1) -> Dict[str, Any]:
        product = get_product(variant_id)
        if not product or not product.get("active", True):
            raise ProductNotFound("Product not found")

        cart_id = cart_id or _cart_id()
        quantity = max(1, int(quantity or 1))

        with self._lock_for(cart_id, create=True):
            cart = self._carts.get(cart_id)
            if cart is None:
                cart = self._carts[cart_id] = {
                    "id": cart_id,
                    "items": [],
                    "currency": settings.default_currency,
                    "subtotal": 0,
                    "total": 0,
                }

            existing = next((i for i in cart["items"] if i["productId"] == product["id"]), None)
            if existing:
                existing["quantity"] += quantity
            else:
                cart["items"].append({
                    "id": _line_id(),
                    "productId": product["id"],
                    "variantId": variant_id,
                    "name": product["name"],
                    "price": unit_price(product),
                    "quantity": quantity,
                    "image": product.get("image"),
                })
            return self._snapshot(cart)

    def update(self, cart_id: str, variant_id: str, quantity: int) -> Dict[str, Any]:
        if quantity < 0:
            raise ValueError("Quantity must be zero or greater")

        product = get_product(variant_id)
        product_id = product["id"] if product else variant_id

        with self._existing_lock(cart_id):
            cart = self._require(cart_id)
            item = next((i for i in cart["items"] if i["productId"] == product_id), None)
            if item is None:
                raise CartItemNotFound("Item not found")
            if quantity == 0:
                cart["items"] = [i for i in cart["items"] if i is not item]
            else:
                item["quantity"] = quantity
            return self._snapshot(cart)

    def remove(self, cart_id: str, variant_id: str) -> Dict[str, Any]:
        product = get_product(variant_id)
        product_id = product["id"] if product else variant_id

        with self._existing_lock(cart_id):
            cart = self._require(cart_id)
            cart["items"] = [i for i in cart["items"] if i["productId"] != product_id]
            return self._snapshot(cart)

    def clear(self, cart_id: str) -> Optional[Dict[str, Any]]:
        lock = self._lock_for(cart_id)
        if lock is None:
            return None
        with lock:
            cart = self._carts.get(cart_id)
            if cart is None:
                return None
            cart["items"] = []
            return self._snapshot(cart)

    def reset(self) -> None:
        with self._registry_lock:
            self._carts.clear()
            self._locks.clear()


_store: Optional[CartStore] = None


def get_cart_store() -> CartStore:
    global _store
    if _store is None:
        _store = CartStore()
    return _store
