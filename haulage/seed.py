import logging
from decimal import Decimal

from sqlalchemy import select, text
from sqlalchemy.exc import OperationalError, ProgrammingError

from haulage.db.session import SessionLocal
from haulage.models.pricing import City, PricingRecord, VehicleClass
from haulage.services import rate_catalog

logger = logging.getLogger(__name__)

SEED_ACTOR = "seed"

CITIES = ["Mumbai"]

# name, max load kg
VEHICLE_CLASSES = [
    ("Bike", 20),
    ("Tempo", 750),
    ("Truck", 2500),
]

# city, vehicle class, base fare, per km, commission %
PRICING = [
    ("Mumbai", "Bike", "50", "10", "20"),
    ("Mumbai", "Tempo", "300", "25", "18"),
    ("Mumbai", "Truck", "800", "45", "15"),
]


def run(db=None):
    own_session = db is None
    if own_session:
        db = SessionLocal()
    try:
        # If migrations haven't been applied yet, seeding must not crash the API.
        try:
            db.execute(text("SELECT 1 FROM pricing_records LIMIT 1"))
        except (ProgrammingError, OperationalError):
            db.rollback()
            logger.warning("[seed] pricing_records table not found yet. Skipping seeding (run alembic upgrade head).")
            return

        for name in CITIES:
            if not rate_catalog.find_city(db, name):
                rate_catalog.upsert_city(db, SEED_ACTOR, name)

        for name, max_load in VEHICLE_CLASSES:
            exists = db.execute(select(VehicleClass).where(VehicleClass.name == name)).scalar_one_or_none()
            if not exists:
                rate_catalog.upsert_vehicle_class(db, SEED_ACTOR, name, max_load)

        # only fill an empty rate table; admins own the rates afterwards
        if db.execute(select(PricingRecord.id).limit(1)).first():
            return
        for city, vc, base, per_km, commission in PRICING:
            rate_catalog.upsert_pricing(
                db, SEED_ACTOR,
                city=city,
                vehicle_class=vc,
                base_fare=Decimal(base),
                per_km_rate=Decimal(per_km),
                commission_percent=Decimal(commission),
            )
        logger.info("[seed] %d cities, %d vehicle classes, %d rate cards",
                    db.query(City).count(), db.query(VehicleClass).count(), len(PRICING))
    finally:
        if own_session:
            db.close()


if __name__ == "__main__":
    run()
