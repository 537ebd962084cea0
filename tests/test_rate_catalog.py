from decimal import Decimal

import pytest

from haulage.core.errors import NotFound, PricingMissing, ServiceUnavailable
from haulage.models.audit_log import AuditLog
from haulage.services import rate_catalog

from conftest import ADMIN


def test_city_lookup_is_case_insensitive(db, catalog):
    assert rate_catalog.find_city(db, "  mUMBAI ").name == "Mumbai"
    assert rate_catalog.require_active_city(db, "mumbai").name == "Mumbai"


def test_inactive_or_unknown_city_is_not_served(db, catalog):
    with pytest.raises(ServiceUnavailable):
        rate_catalog.require_active_city(db, "Pune")
    with pytest.raises(ServiceUnavailable):
        rate_catalog.require_active_city(db, None)
    rate_catalog.upsert_city(db, ADMIN, "Mumbai", active=False)
    with pytest.raises(ServiceUnavailable):
        rate_catalog.require_active_city(db, "Mumbai")


def test_upsert_pricing_replaces_the_single_record_per_key(db, catalog):
    again = rate_catalog.upsert_pricing(
        db, ADMIN, city="Mumbai", vehicle_class="Bike",
        base_fare=Decimal("60"), per_km_rate=Decimal("12"), commission_percent=Decimal("15"),
    )
    assert again.id == catalog.id
    assert rate_catalog.require_pricing(db, "Mumbai", "Bike").base_fare == Decimal("60")
    assert db.query(AuditLog).filter(AuditLog.action == "pricing.upserted").count() == 2


def test_upsert_pricing_validates_input(db, catalog):
    with pytest.raises(ValueError):
        rate_catalog.upsert_pricing(
            db, ADMIN, city="Mumbai", vehicle_class="Bike",
            base_fare=Decimal("50"), per_km_rate=Decimal("10"), commission_percent=Decimal("120"),
        )
    with pytest.raises(NotFound):
        rate_catalog.upsert_pricing(
            db, ADMIN, city="Atlantis", vehicle_class="Bike",
            base_fare=Decimal("50"), per_km_rate=Decimal("10"), commission_percent=Decimal("20"),
        )


def test_deactivated_pricing_is_missing(db, catalog):
    rate_catalog.deactivate_pricing(db, ADMIN, catalog.id)
    assert rate_catalog.active_pricing(db, "Mumbai", "Bike") is None
    assert rate_catalog.pricing_for_city(db, "Mumbai") == {}
    with pytest.raises(PricingMissing):
        rate_catalog.require_pricing(db, "Mumbai", "Bike")


def test_active_vehicle_classes_skip_inactive(db, catalog):
    rate_catalog.upsert_vehicle_class(db, ADMIN, "Tempo", active=False)
    assert [vc.name for vc in rate_catalog.active_vehicle_classes(db)] == ["Bike"]


def test_seed_fills_empty_catalog_once(db):
    from haulage import seed
    from haulage.models.pricing import PricingRecord, VehicleClass

    seed.run(db)
    seed.run(db)

    assert db.query(VehicleClass).count() == 3
    assert db.query(PricingRecord).count() == 3
    bike = rate_catalog.require_pricing(db, "Mumbai", "Bike")
    assert (bike.base_fare, bike.per_km_rate, bike.commission_percent) == (Decimal("50"), Decimal("10"), Decimal("20"))


def test_seed_keeps_admin_rates(db, catalog):
    from haulage import seed
    from haulage.models.pricing import PricingRecord

    seed.run(db)
    assert db.query(PricingRecord).count() == 1
