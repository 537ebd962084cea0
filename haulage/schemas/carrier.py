from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class CarrierRegisterIn(BaseModel):
    fullName: str = Field(min_length=1)
    mobile: str = Field(min_length=6, max_length=20)
    vehicleClass: str
    vehicleNumber: str = ""


class CarrierStatusIn(BaseModel):
    isOnline: bool


class LocationIn(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class CarrierOut(BaseModel):
    id: str
    fullName: str
    mobile: str
    vehicleClass: str
    vehicleNumber: str
    isOnline: bool
    isAvailable: bool
    isOnTrip: bool
    currentLat: Optional[float] = None
    currentLng: Optional[float] = None
    locationUpdatedAt: Optional[datetime] = None

    @classmethod
    def from_carrier(cls, c) -> "CarrierOut":
        return cls(
            id=c.id,
            fullName=c.full_name,
            mobile=c.mobile,
            vehicleClass=c.vehicle_class,
            vehicleNumber=c.vehicle_number or "",
            isOnline=c.is_online,
            isAvailable=c.is_available,
            isOnTrip=c.is_on_trip,
            currentLat=c.current_lat,
            currentLng=c.current_lng,
            locationUpdatedAt=c.location_updated_at,
        )


class AcceptOut(BaseModel):
    bookingId: str
    carrierToPickupKm: Optional[float] = None
    carrierToPickupEtaMin: Optional[int] = None
    pickupCharge: Decimal
