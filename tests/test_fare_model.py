from decimal import Decimal

import pytest

from haulage.models.booking import TripType
from haulage.services import fare_model


def test_estimated_fare_rounds_half_up_to_paise():
    assert fare_model.estimated_fare(Decimal("50"), Decimal("10"), 31.059) == Decimal("360.59")
    assert fare_model.estimated_fare(Decimal("0"), Decimal("1"), 0.005) == Decimal("0.01")


def test_estimated_fare_rejects_negative_distance():
    with pytest.raises(ValueError):
        fare_model.estimated_fare(50, 10, -1)


@pytest.mark.parametrize("km,expected", [
    (30.0, TripType.IN_CITY),
    (30.001, TripType.OUTSTATION),
    (31.059, TripType.OUTSTATION),
    (2.5, TripType.IN_CITY),
])
def test_trip_type_threshold(km, expected):
    assert fare_model.trip_type_for(km) == expected


@pytest.mark.parametrize("km,expected", [
    (None, "0"),
    (0.0, "10"),
    (3.0, "10"),
    (3.01, "20"),
    (4.2, "20"),
    (5.0, "20"),
    (49.9, "40"),
    (50.0, "40"),
    (50.1, "0"),
])
def test_pickup_charge_tiers(km, expected):
    assert fare_model.pickup_charge(km) == Decimal(expected)


def test_loading_charge_caps_billed_labour_at_three():
    assert fare_model.loading_charge(False, 5) == Decimal("0")
    assert fare_model.loading_charge(True, 2) == Decimal("200")
    assert fare_model.loading_charge(True, 7) == Decimal("300")


def test_payable_amount_subtracts_discount():
    assert fare_model.payable_amount(Decimal("50"), Decimal("200"), Decimal("25.50")) == Decimal("224.50")


def test_settle_fare_splits_commission():
    s = fare_model.settle_fare(
        base_fare=Decimal("50"),
        per_km_rate=Decimal("10"),
        distance_km=31.059,
        pickup=Decimal("20"),
        loading=Decimal("0"),
        discount=Decimal("0"),
        commission_percent=Decimal("20"),
    )
    assert s.distance_fare == Decimal("310.59")
    assert s.final_fare == Decimal("380.59")
    assert s.platform_commission == Decimal("76.12")
    assert s.carrier_earning == Decimal("304.47")
    assert s.platform_commission + s.carrier_earning == s.final_fare


def test_to_minor_units():
    assert fare_model.to_minor_units(Decimal("360.59")) == 36059
    assert fare_model.to_minor_units(50) == 5000
