# storefront/schemas/cart.py
from typing import List, Optional
from pydantic import BaseModel

class CartItemOut(BaseModel):
    id: str
    productId: str
    variantId: Optional[str] = None
    name: Optional[str] = None
    price: int
    quantity: int
    image: Optional[str] = None

class CartOut(BaseModel):
    id: str
    items: List[CartItemOut]
    currency: str
    subtotal: int
    total: int

class AddToCartIn(BaseModel):
    variantId: str
    quantity: int = 1

class UpdateCartIn(BaseModel):
    variantId: str
    quantity: int

class ProductOut(BaseModel):
    id: str
    name: str
    slug: str
    price: int
    discountedPrice: Optional[int] = None
    currency: str
    image: Optional[str] = None
    category: str
    description: Optional[str] = None
    inStock: bool
    active: bool
