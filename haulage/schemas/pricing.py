from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class CityIn(BaseModel):
    name: str = Field(min_length=1)
    active: bool = True


class VehicleClassIn(BaseModel):
    name: str = Field(min_length=1)
    maxLoadKg: Optional[int] = Field(default=None, ge=0)
    active: bool = True


class PricingIn(BaseModel):
    city: str
    vehicleClass: str
    baseFare: Decimal = Field(ge=0)
    perKmRate: Decimal = Field(ge=0)
    commissionPercent: Decimal = Field(ge=0, le=100)


class PricingOut(BaseModel):
    id: str
    city: str
    vehicleClass: str
    baseFare: Decimal
    perKmRate: Decimal
    commissionPercent: Decimal
    active: bool

    @classmethod
    def from_record(cls, p) -> "PricingOut":
        return cls(
            id=p.id,
            city=p.city,
            vehicleClass=p.vehicle_class,
            baseFare=p.base_fare,
            perKmRate=p.per_km_rate,
            commissionPercent=p.commission_percent,
            active=p.active,
        )
