# storefront/routes/products.py
from __future__ import annotations
from typing import Optional, List
from fastapi import APIRouter, HTTPException, Query

from ..schemas.cart import ProductOut
from ..services.products import list_products, get_product

router = APIRouter(prefix="/api/products", tags=["products"])


# GET /api/products
@router.get("", response_model=List[ProductOut])
def list_products_endpoint(
    category: Optional[str] = Query(None),
    limit: int = Query(6, ge=1, le=100),
):
    return list_products(category=category, limit=limit)

# GET /api/products/{slug}
@router.get("/{slug}", response_model=ProductOut)
def get_product_endpoint(slug: str):
    product = get_product(slug)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product
