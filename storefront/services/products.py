# storefront/services/products.py
from __future__ import annotations
from typing import List, Dict, Any, Optional

# Static catalogue. Prices are in cents.
PRODUCTS: List[Dict[str, Any]] = [
    {
        "id": "p_1001",
        "name": "Sourdough Starter",
        "slug": "sourdough-starter",
        "price": 1999,
        "discountedPrice": 1499,
        "currency": "CAD",
        "image": "/Starter.jpg",
        "category": "products",
        "description": "Dehydrated heirloom sourdough starter, ready to revive.",
        "inStock": True,
        "active": True,
    },
    {
        "id": "p_1002",
        "name": "Basic Sourdough Guide",
        "slug": "basic-sourdough-guide",
        "price": 1999,
        "currency": "CAD",
        "image": "/Starter.jpg",
        "category": "products",
        "description": "Complete step-by-step guide for sourdough beginners.",
        "inStock": True,
        "active": True,
    },
    {
        "id": "p_1003",
        "name": "Advanced Techniques Manual",
        "slug": "advanced-techniques-manual",
        "price": 2999,
        "currency": "CAD",
        "image": "/Starter.jpg",
        "category": "products",
        "description": "Master advanced sourdough techniques and troubleshooting.",
        "inStock": True,
        "active": True,
    },
    {
        "id": "p_1004",
        "name": "Pizza Dough Kit",
        "slug": "pizza-dough-kit",
        "price": 3999,
        "currency": "CAD",
        "image": "/Starter.jpg",
        "category": "products",
        "description": "Everything you need for perfect sourdough pizza.",
        "inStock": True,
        "active": True,
    },
]


def list_products(category: Optional[str] = None, limit: int = 6) -> List[Dict[str, Any]]:
    items = [p for p in PRODUCTS if p["active"]]
    if category:
        items = [p for p in items if p["category"] == category]
    return items[:limit]


def get_product(ref: str) -> Optional[Dict[str, Any]]:
    """Find a product by id or slug."""
    if not ref:
        return None
    return next((p for p in PRODUCTS if p["id"] == ref or p["slug"] == ref), None)


def unit_price(product: Dict[str, Any]) -> int:
    return product.get("discountedPrice") or product["price"]
