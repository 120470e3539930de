# storefront/schemas/checkout.py
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, StrictFloat, StrictInt

# JSON numbers only, never numeric strings. Fractional and negative values
# pass here and are rejected by the service with "Invalid amount".
Amount = Optional[Union[StrictInt, StrictFloat]]


class CreatePaymentIntentIn(BaseModel):
    amount: Amount = None
    currency: Optional[str] = None
    cartId: Optional[str] = None
    shippingAmount: Amount = None
    shippingOptionId: Optional[str] = None
    payerEmail: Optional[str] = None


class CreatePaymentIntentOut(BaseModel):
    clientSecret: str
    orderNumber: str


class InstantCheckoutIn(BaseModel):
    paymentMethodId: Optional[str] = None
    amount: Amount = None
    shippingAmount: Amount = None
    currency: Optional[str] = None
    productId: Optional[str] = None
    productName: Optional[str] = None
    quantity: Optional[int] = None
    shippingAddress: Optional[Dict[str, Any]] = None
    shippingOptionId: Optional[str] = None
    payerEmail: Optional[str] = None


class InstantCheckoutOut(BaseModel):
    status: Optional[str] = None
    requiresAction: Optional[bool] = None
    clientSecret: Optional[str] = None
    paymentIntentId: str


class PaymentIntentView(BaseModel):
    id: str
    amount: int
    currency: str
    status: str
    shipping: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = {}


class PaymentIntentOut(BaseModel):
    paymentIntent: PaymentIntentView


class OrderItemIn(BaseModel):
    name: str
    quantity: int
    price: int
    lineTotal: Optional[int] = None


class ShippingAddressIn(BaseModel):
    name: Optional[str] = None
    address: Dict[str, Optional[str]] = {}


class ConfirmationEmailIn(BaseModel):
    email: str
    orderNumber: str
    orderDate: str
    items: List[OrderItemIn]
    total: int
    currency: str
    shippingAddress: Optional[ShippingAddressIn] = None
    locale: Optional[str] = "en-US"


class NewsletterIn(BaseModel):
    email: Optional[Any] = None
