import uuid
from decimal import Decimal
from sqlalchemy.orm import Session
from sqlalchemy import func, select
from haulage.core.errors import NotFound, PricingMissing, ServiceUnavailable
from haulage.models.pricing import City, VehicleClass, PricingRecord
from haulage.services.audit_service import log_audit


def find_city(db: Session, name: str | None) -> City | None:
    if not name:
        return None
    return db.execute(
        select(City).where(func.lower(City.name) == name.strip().lower())
    ).scalar_one_or_none()


def require_active_city(db: Session, name: str | None) -> City:
    city = find_city(db, name)
    if not city or not city.active:
        raise ServiceUnavailable(f"Service is not available in {name or 'this area'}")
    return city


def active_pricing(db: Session, city: str, vehicle_class: str) -> PricingRecord | None:
    return db.execute(
        select(PricingRecord).where(
            func.lower(PricingRecord.city) == city.strip().lower(),
            PricingRecord.vehicle_class == vehicle_class,
            PricingRecord.active == True,
        )
    ).scalar_one_or_none()


def require_pricing(db: Session, city: str, vehicle_class: str) -> PricingRecord:
    pricing = active_pricing(db, city, vehicle_class)
    if not pricing:
        raise PricingMissing(f"Pricing not configured for {vehicle_class} in {city}")
    return pricing


def active_vehicle_classes(db: Session) -> list[VehicleClass]:
    return list(
        db.execute(select(VehicleClass).where(VehicleClass.active == True).order_by(VehicleClass.name)).scalars()
    )


def pricing_for_city(db: Session, city: str) -> dict[str, PricingRecord]:
    """Active pricing records of a city keyed by vehicle class."""
    rows = db.execute(
        select(PricingRecord).where(
            func.lower(PricingRecord.city) == city.strip().lower(),
            PricingRecord.active == True,
        )
    ).scalars()
    return {p.vehicle_class: p for p in rows}


# ---- administration ----

def upsert_city(db: Session, actor_id: str, name: str, active: bool = True) -> City:
    city = find_city(db, name)
    if not city:
        city = City(id=str(uuid.uuid4()), name=name.strip(), active=active)
        db.add(city)
    else:
        city.active = active
    log_audit(db, actor_id, "city.upserted", "city", city.id, {"name": city.name, "active": active})
    db.commit()
    db.refresh(city)
    return city


def upsert_vehicle_class(db: Session, actor_id: str, name: str, max_load_kg: int | None = None, active: bool = True) -> VehicleClass:
    vc = db.execute(select(VehicleClass).where(VehicleClass.name == name)).scalar_one_or_none()
    if not vc:
        vc = VehicleClass(id=str(uuid.uuid4()), name=name, max_load_kg=max_load_kg, active=active)
        db.add(vc)
    else:
        vc.max_load_kg = max_load_kg if max_load_kg is not None else vc.max_load_kg
        vc.active = active
    log_audit(db, actor_id, "vehicle_class.upserted", "vehicle_class", vc.id, {"name": name, "active": active})
    db.commit()
    db.refresh(vc)
    return vc


def upsert_pricing(
    db: Session,
    actor_id: str,
    *,
    city: str,
    vehicle_class: str,
    base_fare: Decimal,
    per_km_rate: Decimal,
    commission_percent: Decimal,
) -> PricingRecord:
    """One record per (city, vehicle class); writing again replaces the rates and reactivates it."""
    if base_fare < 0 or per_km_rate < 0:
        raise ValueError("rates must be >= 0")
    if not (0 <= commission_percent <= 100):
        raise ValueError("commission percent must be between 0 and 100")
    if not find_city(db, city):
        raise NotFound(f"City {city} not found")

    pricing = db.execute(
        select(PricingRecord).where(
            func.lower(PricingRecord.city) == city.strip().lower(),
            PricingRecord.vehicle_class == vehicle_class,
        )
    ).scalar_one_or_none()
    if not pricing:
        pricing = PricingRecord(id=str(uuid.uuid4()), city=city.strip(), vehicle_class=vehicle_class)
        db.add(pricing)
    pricing.base_fare = base_fare
    pricing.per_km_rate = per_km_rate
    pricing.commission_percent = commission_percent
    pricing.active = True

    log_audit(db, actor_id, "pricing.upserted", "pricing", pricing.id, {
        "city": city, "vehicleClass": vehicle_class,
        "baseFare": base_fare, "perKmRate": per_km_rate, "commissionPercent": commission_percent,
    })
    db.commit()
    db.refresh(pricing)
    return pricing


def deactivate_pricing(db: Session, actor_id: str, pricing_id: str) -> PricingRecord:
    pricing = db.get(PricingRecord, pricing_id)
    if not pricing:
        raise NotFound("Pricing record not found")
    pricing.active = False
    log_audit(db, actor_id, "pricing.deactivated", "pricing", pricing.id, {})
    db.commit()
    db.refresh(pricing)
    return pricing
