from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from haulage.models.booking import Booking


class RouteIn(BaseModel):
    pickupLat: float = Field(ge=-90, le=90)
    pickupLng: float = Field(ge=-180, le=180)
    dropLat: float = Field(ge=-90, le=90)
    dropLng: float = Field(ge=-180, le=180)

    @property
    def pickup(self) -> tuple[float, float]:
        return (self.pickupLat, self.pickupLng)

    @property
    def drop(self) -> tuple[float, float]:
        return (self.dropLat, self.dropLng)


class SelectVehicleIn(RouteIn):
    # any client distanceKm/durationMin is ignored; the server recomputes them
    vehicleClass: str


class PaymentPreviewIn(BaseModel):
    bookingId: Optional[str] = None
    labourRequired: bool = False
    labourCount: int = Field(default=0, ge=0)


class BookingIdIn(BaseModel):
    bookingId: str


class Point(BaseModel):
    lat: float
    lng: float


class BookingOut(BaseModel):
    id: str
    bookingRef: str
    status: str
    city: str
    vehicleClass: str
    tripType: str
    pickup: Point
    drop: Point
    distanceKm: float
    durationMin: int
    carrierId: Optional[str] = None
    baseFare: Decimal
    loadingCharge: Decimal
    discount: Decimal
    pickupCharge: Decimal
    payableAmount: Optional[Decimal] = None
    finalFare: Optional[Decimal] = None
    paymentMethod: Optional[str] = None
    paymentStatus: str
    createdAt: Optional[datetime] = None
    tripStartAt: Optional[datetime] = None
    tripEndAt: Optional[datetime] = None

    @classmethod
    def from_booking(cls, b: Booking) -> "BookingOut":
        return cls(
            id=b.id,
            bookingRef=b.booking_ref,
            status=b.status,
            city=b.city,
            vehicleClass=b.vehicle_class,
            tripType=b.trip_type,
            pickup=Point(lat=b.pickup_lat, lng=b.pickup_lng),
            drop=Point(lat=b.drop_lat, lng=b.drop_lng),
            distanceKm=b.distance_km,
            durationMin=b.duration_min,
            carrierId=b.carrier_id,
            baseFare=b.base_fare,
            loadingCharge=b.loading_charge,
            discount=b.discount,
            pickupCharge=b.pickup_charge,
            payableAmount=b.payable_amount,
            finalFare=b.final_fare,
            paymentMethod=b.payment_method,
            paymentStatus=b.payment_status,
            createdAt=b.created_at,
            tripStartAt=b.trip_start_at,
            tripEndAt=b.trip_end_at,
        )


class SettlementOut(BookingOut):
    actualDistanceKm: Optional[float] = None
    actualDurationMin: Optional[int] = None
    platformCommission: Optional[Decimal] = None
    carrierEarning: Optional[Decimal] = None

    @classmethod
    def from_booking(cls, b: Booking) -> "SettlementOut":
        base = BookingOut.from_booking(b).model_dump()
        return cls(
            **base,
            actualDistanceKm=b.actual_distance_km,
            actualDurationMin=b.actual_duration_min,
            platformCommission=b.platform_commission,
            carrierEarning=b.carrier_earning,
        )
