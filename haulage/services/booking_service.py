import logging
import random
import string
import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from haulage.core.config import settings
from haulage.core.errors import InvalidState, NotFound, Unauthorized
from haulage.models.booking import (
    ACCEPTABLE_STATES,
    CANCELLABLE_STATES,
    Booking,
    BookingRejection,
    BookingStatus,
    PaymentMethod,
    PaymentStatus,
)
from haulage.services import carrier_registry, dispatch_service, fare_model, payment_service, rate_catalog, wallet_service
from haulage.services.audit_service import log_audit
from haulage.services.relay import Relay, safe_send

logger = logging.getLogger(__name__)


def make_booking_ref() -> str:
    return "HLG-" + "".join(random.choices(string.ascii_uppercase + string.digits, k=6))


def _allocate_ref(db: Session) -> str:
    # booking_ref must be unique
    for _ in range(10):
        ref = make_booking_ref()
        exists = db.execute(select(Booking.id).where(Booking.booking_ref == ref)).first()
        if not exists:
            return ref
    raise ValueError("could not allocate booking reference")


def _route(maps, pickup: tuple[float, float], drop: tuple[float, float]):
    return maps.distance_and_duration(pickup[0], pickup[1], drop[0], drop[1])


# ---- customer side ----

def route_check(maps, pickup: tuple[float, float], drop: tuple[float, float]) -> dict:
    route = _route(maps, pickup, drop)
    return {"distanceKm": route.distance_km, "durationMin": route.duration_min}


def estimate(db: Session, maps, pickup: tuple[float, float], drop: tuple[float, float]) -> dict:
    """Fare estimate for every active vehicle class.

    A class without active pricing in the pickup city is still listed, with
    ``estimatedFare`` set to None, so clients can show it as unavailable.
    An unknown or switched-off city prices nothing.
    """
    route = _route(maps, pickup, drop)
    city = maps.city_for_point(pickup[0], pickup[1])
    served = rate_catalog.find_city(db, city)
    pricing = rate_catalog.pricing_for_city(db, served.name) if served and served.active else {}

    vehicles = []
    for vc in rate_catalog.active_vehicle_classes(db):
        p = pricing.get(vc.name)
        vehicles.append({
            "vehicleClass": vc.name,
            "maxLoadKg": vc.max_load_kg,
            "estimatedFare": fare_model.estimated_fare(p.base_fare, p.per_km_rate, route.distance_km) if p else None,
            "etaMin": route.duration_min,
        })

    return {
        "distanceKm": route.distance_km,
        "durationMin": route.duration_min,
        "city": city,
        "tripType": fare_model.trip_type_for(route.distance_km, settings.OUTSTATION_THRESHOLD_KM),
        "vehicles": vehicles,
    }


def _new_booking(db: Session, maps, requester_id: str, pickup, drop, vehicle_class: str, status: str) -> Booking:
    # never trust client distances: always ask the routing service again
    route = _route(maps, pickup, drop)
    city_name = maps.city_for_point(pickup[0], pickup[1])
    city = rate_catalog.require_active_city(db, city_name)
    pricing = rate_catalog.require_pricing(db, city.name, vehicle_class)

    return Booking(
        id=str(uuid.uuid4()),
        booking_ref=_allocate_ref(db),
        requester_id=requester_id,
        city=city.name,
        vehicle_class=vehicle_class,
        trip_type=fare_model.trip_type_for(route.distance_km, settings.OUTSTATION_THRESHOLD_KM),
        pickup_lat=pickup[0],
        pickup_lng=pickup[1],
        drop_lat=drop[0],
        drop_lng=drop[1],
        distance_km=route.distance_km,
        duration_min=route.duration_min,
        base_fare=fare_model.to_money(pricing.base_fare),
        status=status,
        payment_status=PaymentStatus.NONE,
    )


def select_vehicle(db: Session, maps, requester_id: str, *, pickup, drop, vehicle_class: str) -> Booking:
    booking = _new_booking(db, maps, requester_id, pickup, drop, vehicle_class, BookingStatus.VEHICLE_SELECTED)
    db.add(booking)
    db.commit()
    db.refresh(booking)
    logger.info("booking %s created (%s, %.3f km)", booking.booking_ref, vehicle_class, booking.distance_km,
                extra={"booking_id": booking.id, "requester_id": requester_id})
    return booking


def request_ride(db: Session, maps, relay: Relay, requester_id: str, *, pickup, drop, vehicle_class: str) -> Booking:
    """Immediate ride: no prepayment, cash on completion, offered to carriers around the pickup."""
    booking = _new_booking(db, maps, requester_id, pickup, drop, vehicle_class, BookingStatus.SEARCHING_DRIVER)
    booking.payable_amount = fare_model.payable_amount(booking.base_fare, 0, 0)
    booking.payment_method = PaymentMethod.CASH
    booking.payment_status = PaymentStatus.PENDING
    db.add(booking)
    db.commit()
    db.refresh(booking)

    dispatch_service.dispatch_nearby(db, relay, booking)
    db.refresh(booking)
    return booking


def payment_preview(db: Session, requester_id: str, *, labour_required: bool = False, labour_count: int = 0,
                    booking_id: str | None = None) -> dict:
    booking = payment_service.latest_booking(
        db, requester_id, [BookingStatus.VEHICLE_SELECTED, BookingStatus.PAYMENT_FAILED], booking_id,
    )
    if not booking:
        raise NotFound("No booking awaiting payment preview")

    loading = fare_model.loading_charge(labour_required, labour_count)
    discount = fare_model.to_money(0)

    if booking.status == BookingStatus.PAYMENT_FAILED:
        # fresh attempt; the failed order stays in the audit log
        booking.gateway_order_id = None
        booking.gateway_payment_id = None
        booking.gateway_signature = None
        booking.payment_status = PaymentStatus.NONE

    booking.labour_required = labour_required
    booking.labour_count = labour_count if labour_required else 0
    booking.loading_charge = loading
    booking.discount = discount
    booking.payable_amount = fare_model.payable_amount(booking.base_fare, loading, discount)
    booking.transition(BookingStatus.PAYMENT_PREVIEW)
    db.commit()
    db.refresh(booking)

    return {
        "bookingId": booking.id,
        "bookingRef": booking.booking_ref,
        "vehicleClass": booking.vehicle_class,
        "distanceKm": booking.distance_km,
        "tripType": booking.trip_type,
        "baseFare": booking.base_fare,
        "loadingCharge": booking.loading_charge,
        "discount": booking.discount,
        "payableAmount": booking.payable_amount,
    }


def get_booking(db: Session, requester_id: str, booking_id: str) -> Booking:
    booking = db.execute(
        select(Booking).where(Booking.id == booking_id, Booking.requester_id == requester_id)
    ).scalar_one_or_none()
    if not booking:
        raise NotFound("Booking not found")
    return booking


def get_booking_status(db: Session, requester_id: str, booking_id: str) -> dict:
    booking = get_booking(db, requester_id, booking_id)
    return {"status": booking.status, "paymentStatus": booking.payment_status}


def get_carrier_location(db: Session, requester_id: str, booking_id: str) -> dict:
    booking = get_booking(db, requester_id, booking_id)
    if not booking.carrier_id:
        raise InvalidState("Carrier not assigned")
    lat, lng = booking.last_carrier_lat, booking.last_carrier_lng
    if lat is None or lng is None:
        carrier = carrier_registry.get_carrier(db, booking.carrier_id)
        lat, lng = carrier.current_lat, carrier.current_lng
    return {
        "lat": lat,
        "lng": lng,
        "remainingDistanceKm": booking.remaining_distance_km,
        "remainingEtaMin": booking.remaining_eta_min,
    }


def _cancel_if_unchanged(db: Session, booking_id: str, status: str, carrier_id: str | None) -> bool:
    now = datetime.now(timezone.utc)
    assignee = Booking.carrier_id.is_(None) if carrier_id is None else Booking.carrier_id == carrier_id
    result = db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status == status, assignee)
        .values(status=BookingStatus.CANCELLED, carrier_id=None, cancelled_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def cancel(db: Session, gateway, relay: Relay, requester_id: str, booking_id: str) -> Booking:
    booking = get_booking(db, requester_id, booking_id)
    if booking.status not in CANCELLABLE_STATES:
        raise InvalidState("Booking cannot be cancelled now")

    seen_status, carrier_id = booking.status, booking.carrier_id

    # refund before any local change; a gateway error aborts the cancellation
    refunded = payment_service.refund_booking(db, gateway, booking, requester_id)
    db.flush()

    if not _cancel_if_unchanged(db, booking.id, seen_status, carrier_id):
        # a carrier claimed (or started) the booking while the refund was in flight
        seen_status, carrier_id = db.execute(
            select(Booking.status, Booking.carrier_id).where(Booking.id == booking.id)
        ).one()
        if seen_status not in CANCELLABLE_STATES or not _cancel_if_unchanged(db, booking.id, seen_status, carrier_id):
            # keep the refund record; the gateway has already accepted it
            db.commit()
            raise InvalidState("Booking cannot be cancelled now")

    if carrier_id:
        carrier_registry.release(db, carrier_id)
    log_audit(db, requester_id, "booking.cancelled", "booking", booking.id, {
        "bookingRef": booking.booking_ref, "carrierId": carrier_id, "refunded": refunded,
    })
    db.commit()
    db.refresh(booking)
    logger.info("booking %s cancelled", booking.booking_ref, extra={"booking_id": booking.id})

    safe_send(relay, "broadcast_to_booking", booking.id, "booking:cancelled", {"bookingId": booking.id})
    if carrier_id:
        safe_send(relay, "notify", carrier_id, "booking:cancelled", {"bookingId": booking.id})
    return booking


# ---- carrier side ----

def _carrier_booking(db: Session, carrier_id: str, booking_id: str) -> Booking:
    booking = db.get(Booking, booking_id)
    if not booking:
        raise NotFound("Booking not found")
    if booking.carrier_id != carrier_id:
        raise Unauthorized("Booking is assigned to another carrier")
    return booking


def accept_booking(db: Session, maps, relay: Relay, carrier_id: str, booking_id: str) -> dict:
    """Claim a booking. Exactly one of any number of concurrent callers wins."""
    booking = db.get(Booking, booking_id)
    if not booking:
        raise NotFound("Booking not found")
    if booking.status not in ACCEPTABLE_STATES or booking.carrier_id:
        raise InvalidState("Booking not available for acceptance")
    carrier = carrier_registry.get_carrier(db, carrier_id)
    if carrier.vehicle_class != booking.vehicle_class:
        raise InvalidState("Booking needs a different vehicle class")
    if not carrier.is_available:
        raise InvalidState("Carrier is not available")

    distance_km = eta_min = None
    if carrier.has_location:
        leg = maps.distance_and_duration(carrier.current_lat, carrier.current_lng, booking.pickup_lat, booking.pickup_lng)
        distance_km, eta_min = leg.distance_km, leg.duration_min
    charge = fare_model.pickup_charge(distance_km)

    if not carrier_registry.claim_for_trip(db, carrier_id):
        db.rollback()
        raise InvalidState("Carrier is not available")

    rejected = select(BookingRejection.booking_id).where(BookingRejection.carrier_id == carrier_id)
    result = db.execute(
        update(Booking)
        .where(
            Booking.id == booking_id,
            Booking.status.in_(list(ACCEPTABLE_STATES)),
            Booking.carrier_id.is_(None),
            Booking.id.not_in(rejected),
        )
        .values(
            carrier_id=carrier_id,
            status=BookingStatus.DRIVER_ASSIGNED,
            pickup_charge=charge,
            carrier_to_pickup_km=distance_km,
            carrier_to_pickup_eta_min=eta_min,
            last_carrier_lat=carrier.current_lat,
            last_carrier_lng=carrier.current_lng,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise InvalidState("Booking not available for acceptance")

    log_audit(db, carrier_id, "booking.assigned", "booking", booking_id, {
        "carrierToPickupKm": distance_km, "pickupCharge": charge,
    })
    db.commit()
    db.refresh(booking)
    logger.info("booking %s accepted by carrier %s", booking.booking_ref, carrier_id,
                extra={"booking_id": booking.id, "carrier_id": carrier_id})

    safe_send(relay, "broadcast_to_booking", booking.id, "booking:assigned", {
        "carrierId": carrier_id,
        "vehicleNumber": carrier.vehicle_number,
        "carrierToPickupKm": distance_km,
        "etaMin": eta_min,
    })
    return {
        "bookingId": booking.id,
        "carrierToPickupKm": distance_km,
        "carrierToPickupEtaMin": eta_min,
        "pickupCharge": charge,
    }


def reject_booking(db: Session, carrier_id: str, booking_id: str) -> None:
    if not db.get(Booking, booking_id):
        raise NotFound("Booking not found")
    exists = db.execute(
        select(BookingRejection.id).where(
            BookingRejection.booking_id == booking_id, BookingRejection.carrier_id == carrier_id,
        )
    ).first()
    if exists:
        return
    db.add(BookingRejection(id=str(uuid.uuid4()), booking_id=booking_id, carrier_id=carrier_id))
    try:
        db.commit()
    except IntegrityError:
        # same carrier rejected twice at once; the first row stands
        db.rollback()


def start_trip(db: Session, relay: Relay, carrier_id: str, booking_id: str) -> Booking:
    booking = _carrier_booking(db, carrier_id, booking_id)
    if booking.status != BookingStatus.DRIVER_ASSIGNED:
        raise InvalidState("Trip cannot be started")
    booking.transition(BookingStatus.TRIP_STARTED)
    booking.trip_start_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(booking)
    safe_send(relay, "broadcast_to_booking", booking.id, "trip:started", {"startedAt": booking.trip_start_at.isoformat()})
    return booking


def complete_trip(db: Session, maps, relay: Relay, carrier_id: str, booking_id: str) -> Booking:
    """Finalize the fare, credit the carrier once and free the carrier."""
    booking = _carrier_booking(db, carrier_id, booking_id)
    if booking.status != BookingStatus.TRIP_STARTED:
        raise InvalidState("Trip not started yet")

    pricing = rate_catalog.require_pricing(db, booking.city, booking.vehicle_class)
    route = _route(maps, (booking.pickup_lat, booking.pickup_lng), (booking.drop_lat, booking.drop_lng))
    settlement = fare_model.settle_fare(
        base_fare=booking.base_fare,
        per_km_rate=pricing.per_km_rate,
        distance_km=route.distance_km,
        pickup=booking.pickup_charge or 0,
        loading=booking.loading_charge or 0,
        discount=booking.discount or 0,
        commission_percent=pricing.commission_percent,
    )
    now = datetime.now(timezone.utc)

    result = db.execute(
        update(Booking)
        .where(
            Booking.id == booking_id,
            Booking.status == BookingStatus.TRIP_STARTED,
            Booking.earning_credited_at.is_(None),
        )
        .values(
            status=BookingStatus.TRIP_COMPLETED,
            actual_distance_km=route.distance_km,
            actual_duration_min=route.duration_min,
            final_fare=settlement.final_fare,
            platform_commission=settlement.platform_commission,
            carrier_earning=settlement.carrier_earning,
            trip_end_at=now,
            fare_finalized_at=now,
            earning_credited_at=now,
            remaining_distance_km=0.0,
            remaining_eta_min=0,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise InvalidState("Trip is already completed")

    wallet_service.credit(db, carrier_id, settlement.carrier_earning, commit=False)
    carrier_registry.release(db, carrier_id)
    log_audit(db, carrier_id, "booking.settled", "booking", booking_id, settlement.model_dump())
    db.commit()
    db.refresh(booking)
    logger.info("booking %s settled: fare %s, carrier %s", booking.booking_ref, settlement.final_fare,
                settlement.carrier_earning, extra={"booking_id": booking.id, "carrier_id": carrier_id})

    safe_send(relay, "broadcast_to_booking", booking.id, "tripCompleted", {
        "finalFare": str(settlement.final_fare),
        "paymentMethod": booking.payment_method,
    })
    return booking


def close_trip(db: Session, relay: Relay, carrier_id: str, booking_id: str) -> Booking:
    booking = _carrier_booking(db, carrier_id, booking_id)
    if booking.status != BookingStatus.TRIP_COMPLETED:
        raise InvalidState("Trip is not completed yet")
    booking.transition(BookingStatus.COMPLETED)
    if booking.payment_method == PaymentMethod.CASH:
        booking.payment_status = PaymentStatus.SUCCESS
    db.commit()
    db.refresh(booking)
    safe_send(relay, "broadcast_to_booking", booking.id, "booking:status", {"status": booking.status})
    return booking


def trip_history(db: Session, carrier_id: str, page: int = 1, limit: int = 10) -> dict:
    page, limit = max(page, 1), min(max(limit, 1), 100)
    settled = (BookingStatus.TRIP_COMPLETED, BookingStatus.COMPLETED)
    total, earned = db.execute(
        select(func.count(Booking.id), func.coalesce(func.sum(Booking.carrier_earning), 0))
        .where(Booking.carrier_id == carrier_id, Booking.status.in_(settled))
    ).one()
    rows = db.execute(
        select(Booking)
        .where(Booking.carrier_id == carrier_id, Booking.status.in_(settled))
        .order_by(Booking.trip_end_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars()
    return {
        "summary": {"totalTrips": total, "totalEarnings": fare_model.to_money(earned)},
        "pagination": {"page": page, "limit": limit, "totalPages": (total + limit - 1) // limit},
        "trips": [
            {
                "bookingId": b.id,
                "bookingRef": b.booking_ref,
                "date": b.trip_end_at,
                "pickup": {"lat": b.pickup_lat, "lng": b.pickup_lng},
                "drop": {"lat": b.drop_lat, "lng": b.drop_lng},
                "fare": b.final_fare,
                "earning": b.carrier_earning,
            }
            for b in rows
        ],
    }
