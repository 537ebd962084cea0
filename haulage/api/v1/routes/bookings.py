from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from haulage.api.deps import Principal, get_gateway, get_maps, get_relay, require_roles
from haulage.db.session import get_db
from haulage.schemas.booking import BookingIdIn, BookingOut, PaymentPreviewIn, RouteIn, SelectVehicleIn
from haulage.services import booking_service

router = APIRouter(prefix="/bookings", tags=["bookings"])

customer = require_roles("customer")


@router.post("/route-check")
def route_check(body: RouteIn, maps=Depends(get_maps), me: Principal = Depends(customer)):
    return booking_service.route_check(maps, body.pickup, body.drop)


@router.post("/estimate")
def estimate(body: RouteIn, db: Session = Depends(get_db), maps=Depends(get_maps), me: Principal = Depends(customer)):
    return booking_service.estimate(db, maps, body.pickup, body.drop)


@router.post("/select-vehicle", response_model=BookingOut)
def select_vehicle(body: SelectVehicleIn, db: Session = Depends(get_db), maps=Depends(get_maps),
                   me: Principal = Depends(customer)):
    b = booking_service.select_vehicle(db, maps, me.id, pickup=body.pickup, drop=body.drop, vehicle_class=body.vehicleClass)
    return BookingOut.from_booking(b)


@router.post("/ride", response_model=BookingOut)
def request_ride(body: SelectVehicleIn, db: Session = Depends(get_db), maps=Depends(get_maps),
                 relay=Depends(get_relay), me: Principal = Depends(customer)):
    b = booking_service.request_ride(db, maps, relay, me.id, pickup=body.pickup, drop=body.drop, vehicle_class=body.vehicleClass)
    return BookingOut.from_booking(b)


@router.post("/payment-preview")
def payment_preview(body: PaymentPreviewIn, db: Session = Depends(get_db), me: Principal = Depends(customer)):
    return booking_service.payment_preview(
        db, me.id, labour_required=body.labourRequired, labour_count=body.labourCount, booking_id=body.bookingId,
    )


@router.post("/cancel", response_model=BookingOut)
def cancel(body: BookingIdIn, db: Session = Depends(get_db), gateway=Depends(get_gateway),
           relay=Depends(get_relay), me: Principal = Depends(customer)):
    return BookingOut.from_booking(booking_service.cancel(db, gateway, relay, me.id, body.bookingId))


@router.get("/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: str, db: Session = Depends(get_db), me: Principal = Depends(customer)):
    return BookingOut.from_booking(booking_service.get_booking(db, me.id, booking_id))


@router.get("/{booking_id}/status")
def get_status(booking_id: str, db: Session = Depends(get_db), me: Principal = Depends(customer)):
    return booking_service.get_booking_status(db, me.id, booking_id)


@router.get("/{booking_id}/carrier-location")
def carrier_location(booking_id: str, db: Session = Depends(get_db), me: Principal = Depends(customer)):
    return booking_service.get_carrier_location(db, me.id, booking_id)
