"""Fare computation. Pure functions, no I/O.

All amounts are ``Decimal`` rounded half-up to the currency minor unit
(paise). Distances come from the routing collaborator only.
"""

from decimal import Decimal, ROUND_HALF_UP

from pydantic import BaseModel, Field

from haulage.models.booking import TripType

MINOR_UNIT = Decimal("0.01")
LOADING_CHARGE_PER_LABOUR = Decimal("100")
MAX_BILLED_LABOUR = 3

# (upper bound km, charge); beyond the last tier the carrier is not compensated
PICKUP_CHARGE_TIERS: tuple[tuple[float, Decimal], ...] = (
    (3.0, Decimal("10")),
    (5.0, Decimal("20")),
    (50.0, Decimal("40")),
)


class FareSettlement(BaseModel):
    """Final fare split computed at trip completion."""

    distance_fare: Decimal = Field(ge=0)
    final_fare: Decimal
    platform_commission: Decimal
    carrier_earning: Decimal


def to_money(value) -> Decimal:
    if not isinstance(value, Decimal):
        # str() keeps 31.059 as 31.059 instead of its binary float expansion
        value = Decimal(str(value))
    return value.quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


def to_minor_units(amount) -> int:
    """Rupees -> paise for the payment gateway."""
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def estimated_fare(base_fare, per_km_rate, distance_km: float) -> Decimal:
    if distance_km < 0:
        raise ValueError("Distance must be non-negative")
    return to_money(Decimal(str(base_fare)) + Decimal(str(per_km_rate)) * Decimal(str(distance_km)))


def trip_type_for(distance_km: float, outstation_threshold_km: float = 30.0) -> str:
    return TripType.OUTSTATION if distance_km > outstation_threshold_km else TripType.IN_CITY


def loading_charge(labour_required: bool, labour_count: int) -> Decimal:
    if not labour_required:
        return to_money(0)
    if labour_count < 0:
        raise ValueError("labour count must be >= 0")
    return to_money(LOADING_CHARGE_PER_LABOUR * min(labour_count, MAX_BILLED_LABOUR))


def payable_amount(base_fare, loading, discount) -> Decimal:
    return to_money(Decimal(str(base_fare)) + Decimal(str(loading)) - Decimal(str(discount)))


def pickup_charge(distance_km: float | None) -> Decimal:
    if distance_km is None:
        return to_money(0)
    for upper_km, charge in PICKUP_CHARGE_TIERS:
        if distance_km <= upper_km:
            return to_money(charge)
    return to_money(0)


def settle_fare(
    *,
    base_fare,
    per_km_rate,
    distance_km: float,
    pickup: Decimal,
    loading: Decimal,
    discount: Decimal,
    commission_percent,
) -> FareSettlement:
    """finalFare = base + distance x rate + pickup + loading - discount; commission is a share of it."""
    if distance_km < 0:
        raise ValueError("Distance must be non-negative")

    distance_fare = to_money(Decimal(str(per_km_rate)) * Decimal(str(distance_km)))
    final = to_money(
        Decimal(str(base_fare)) + distance_fare + Decimal(str(pickup)) + Decimal(str(loading)) - Decimal(str(discount))
    )
    commission = to_money(final * Decimal(str(commission_percent)) / 100)

    return FareSettlement(
        distance_fare=distance_fare,
        final_fare=final,
        platform_commission=commission,
        carrier_earning=final - commission,
    )
