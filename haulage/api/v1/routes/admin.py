from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from haulage.api.deps import Principal, get_relay, require_roles
from haulage.core.errors import NotFound
from haulage.db.session import get_db
from haulage.models.booking import Booking
from haulage.models.pricing import City, PricingRecord
from haulage.schemas.booking import BookingOut
from haulage.schemas.carrier import CarrierOut, CarrierRegisterIn
from haulage.schemas.pricing import CityIn, PricingIn, PricingOut, VehicleClassIn
from haulage.schemas.wallet import WithdrawalResolveIn
from haulage.services import audit_service, carrier_registry, dispatch_service, rate_catalog, wallet_service

router = APIRouter(prefix="/admin", tags=["admin"])

admin = require_roles("admin")


@router.get("/cities")
def list_cities(db: Session = Depends(get_db), me: Principal = Depends(admin)):
    rows = db.execute(select(City).order_by(City.name)).scalars()
    return [{"id": c.id, "name": c.name, "active": c.active} for c in rows]


@router.put("/cities")
def upsert_city(body: CityIn, db: Session = Depends(get_db), me: Principal = Depends(admin)):
    c = rate_catalog.upsert_city(db, me.id, body.name, body.active)
    return {"id": c.id, "name": c.name, "active": c.active}


@router.put("/vehicle-classes")
def upsert_vehicle_class(body: VehicleClassIn, db: Session = Depends(get_db), me: Principal = Depends(admin)):
    vc = rate_catalog.upsert_vehicle_class(db, me.id, body.name, body.maxLoadKg, body.active)
    return {"id": vc.id, "name": vc.name, "maxLoadKg": vc.max_load_kg, "active": vc.active}


@router.get("/pricing", response_model=list[PricingOut])
def list_pricing(city: str | None = None, db: Session = Depends(get_db), me: Principal = Depends(admin)):
    stmt = select(PricingRecord).order_by(PricingRecord.city, PricingRecord.vehicle_class)
    if city:
        stmt = stmt.where(PricingRecord.city == city)
    return [PricingOut.from_record(p) for p in db.execute(stmt).scalars()]


@router.put("/pricing", response_model=PricingOut)
def upsert_pricing(body: PricingIn, db: Session = Depends(get_db), me: Principal = Depends(admin)):
    p = rate_catalog.upsert_pricing(
        db, me.id,
        city=body.city,
        vehicle_class=body.vehicleClass,
        base_fare=body.baseFare,
        per_km_rate=body.perKmRate,
        commission_percent=body.commissionPercent,
    )
    return PricingOut.from_record(p)


@router.delete("/pricing/{pricing_id}", response_model=PricingOut)
def deactivate_pricing(pricing_id: str, db: Session = Depends(get_db), me: Principal = Depends(admin)):
    return PricingOut.from_record(rate_catalog.deactivate_pricing(db, me.id, pricing_id))


@router.post("/carriers", response_model=CarrierOut)
def register_carrier(body: CarrierRegisterIn, db: Session = Depends(get_db), me: Principal = Depends(admin)):
    c = carrier_registry.register_carrier(
        db, full_name=body.fullName, mobile=body.mobile,
        vehicle_class=body.vehicleClass, vehicle_number=body.vehicleNumber,
    )
    return CarrierOut.from_carrier(c)


@router.get("/bookings", response_model=list[BookingOut])
def list_bookings(status: str | None = None, limit: int = 50, offset: int = 0,
                  db: Session = Depends(get_db), me: Principal = Depends(admin)):
    stmt = select(Booking).order_by(Booking.created_at.desc()).limit(min(limit, 200)).offset(max(offset, 0))
    if status:
        stmt = stmt.where(Booking.status == status)
    return [BookingOut.from_booking(b) for b in db.execute(stmt).scalars()]


@router.get("/bookings/{booking_id}/audit")
def booking_audit(booking_id: str, db: Session = Depends(get_db), me: Principal = Depends(admin)):
    if not db.get(Booking, booking_id):
        raise NotFound("Booking not found")
    return audit_service.audit_trail(db, "booking", booking_id)


@router.post("/bookings/{booking_id}/redispatch")
def redispatch(booking_id: str, db: Session = Depends(get_db), relay=Depends(get_relay), me: Principal = Depends(admin)):
    notified = dispatch_service.redispatch(db, relay, me.id, booking_id)
    return {"bookingId": booking_id, "notifiedCarriers": len(notified)}


@router.get("/withdrawals")
def list_withdrawals(status: str | None = None, db: Session = Depends(get_db), me: Principal = Depends(admin)):
    return wallet_service.list_withdrawals(db, status)


@router.post("/withdrawals/{withdrawal_id}/resolve")
def resolve_withdrawal(withdrawal_id: str, body: WithdrawalResolveIn, db: Session = Depends(get_db),
                       me: Principal = Depends(admin)):
    w = wallet_service.resolve_withdrawal(db, me.id, withdrawal_id, body.approve)
    return {"id": w.id, "status": w.status, "amount": w.amount, "resolvedAt": w.resolved_at}
