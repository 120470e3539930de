# storefront/schemas/shipping.py
from typing import List, Optional
from pydantic import BaseModel

class DestinationIn(BaseModel):
    postalCode: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None

class OriginIn(BaseModel):
    postalCode: Optional[str] = None

class PackageIn(BaseModel):
    weight: Optional[float] = None   # kg
    length: Optional[float] = None   # cm
    width: Optional[float] = None    # cm
    height: Optional[float] = None   # cm

class ShippingRatesIn(BaseModel):
    destination: Optional[DestinationIn] = None
    origin: Optional[OriginIn] = None
    package: Optional[PackageIn] = None

class LettermailRatesIn(BaseModel):
    destination: Optional[DestinationIn] = None
    origin: Optional[OriginIn] = None
    weight: Optional[float] = None   # grams

class ShippingRateOut(BaseModel):
    id: str
    name: str
    description: str
    price: int
    estimatedDays: str
    serviceCode: str
    selected: Optional[bool] = None

class ShippingRatesOut(BaseModel):
    rates: List[ShippingRateOut]
