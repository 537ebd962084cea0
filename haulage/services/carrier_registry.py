"""Carrier availability and location.

Each mutation is a single conditional UPDATE so that several API instances
can flip the same carrier without an in-process lock.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import and_, case, select, update
from sqlalchemy.orm import Session

from haulage.core.errors import NotFound, UpstreamUnavailable
from haulage.models.booking import Booking, BookingStatus
from haulage.models.carrier import Carrier
from haulage.services import wallet_service
from haulage.services.geo import bounding_box, haversine_km
from haulage.services.relay import Relay, safe_send

logger = logging.getLogger(__name__)


def get_carrier(db: Session, carrier_id: str) -> Carrier:
    carrier = db.get(Carrier, carrier_id)
    if not carrier:
        raise NotFound("Carrier not found")
    return carrier


def register_carrier(db: Session, *, full_name: str, mobile: str, vehicle_class: str, vehicle_number: str = "") -> Carrier:
    exists = db.execute(select(Carrier).where(Carrier.mobile == mobile)).scalar_one_or_none()
    if exists:
        raise ValueError("mobile already registered")
    carrier = Carrier(
        id=str(uuid.uuid4()),
        full_name=full_name,
        mobile=mobile,
        vehicle_class=vehicle_class,
        vehicle_number=vehicle_number,
        is_online=False,
        is_available=False,
        is_on_trip=False,
    )
    db.add(carrier)
    db.flush()
    wallet_service.ensure_wallet(db, carrier.id)
    db.commit()
    db.refresh(carrier)
    return carrier


def set_online(db: Session, carrier_id: str, online: bool) -> Carrier:
    """Going online makes the carrier available unless a trip is in progress."""
    result = db.execute(
        update(Carrier)
        .where(Carrier.id == carrier_id)
        .values(
            is_online=online,
            is_available=case((Carrier.is_on_trip == True, False), else_=online),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        raise NotFound("Carrier not found")
    db.commit()
    carrier = db.get(Carrier, carrier_id)
    db.refresh(carrier)
    logger.info("carrier %s is now %s", carrier_id, "ONLINE" if online else "OFFLINE", extra={"carrier_id": carrier_id})
    return carrier


def claim_for_trip(db: Session, carrier_id: str) -> bool:
    """Flip an idle online carrier to busy. Runs inside the caller's transaction; does not commit."""
    result = db.execute(
        update(Carrier)
        .where(
            Carrier.id == carrier_id,
            Carrier.is_online == True,
            Carrier.is_available == True,
            Carrier.is_on_trip == False,
        )
        .values(is_available=False, is_on_trip=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def release(db: Session, carrier_id: str) -> None:
    """Carrier is free again; available only if still online. Does not commit."""
    db.execute(
        update(Carrier)
        .where(Carrier.id == carrier_id)
        .values(is_on_trip=False, is_available=Carrier.is_online)
        .execution_options(synchronize_session=False)
    )


def eligible_carriers(
    db: Session,
    *,
    vehicle_class: str,
    near: tuple[float, float],
    radius_km: float | None = None,
    exclude_ids: set[str] | None = None,
) -> list[tuple[Carrier, float | None]]:
    """Idle online carriers of a class, nearest first.

    With a radius only carriers with a known location inside it qualify.
    Without one, carriers that never reported a location are listed last.
    """
    lat, lng = near
    stmt = select(Carrier).where(
        Carrier.vehicle_class == vehicle_class,
        Carrier.is_online == True,
        Carrier.is_available == True,
        Carrier.is_on_trip == False,
    )
    if exclude_ids:
        stmt = stmt.where(Carrier.id.not_in(exclude_ids))
    if radius_km is not None:
        min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, radius_km)
        stmt = stmt.where(
            and_(
                Carrier.current_lat.between(min_lat, max_lat),
                Carrier.current_lng.between(min_lng, max_lng),
            )
        )

    ranked: list[tuple[Carrier, float | None]] = []
    for carrier in db.execute(stmt).scalars():
        distance = None
        if carrier.has_location:
            distance = haversine_km(lat, lng, carrier.current_lat, carrier.current_lng)
            if radius_km is not None and distance > radius_km:
                continue
        elif radius_km is not None:
            continue
        ranked.append((carrier, distance))

    ranked.sort(key=lambda pair: (pair[1] is None, pair[1] or 0.0))
    return ranked


def report_location(db: Session, maps, relay: Relay, carrier_id: str, lat: float, lng: float) -> dict:
    """Store the carrier position and mirror it to the active booking's room."""
    now = datetime.now(timezone.utc)
    result = db.execute(
        update(Carrier)
        .where(Carrier.id == carrier_id)
        .values(current_lat=lat, current_lng=lng, location_updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        raise NotFound("Carrier not found")

    booking = db.execute(
        select(Booking).where(
            Booking.carrier_id == carrier_id,
            Booking.status.in_([BookingStatus.DRIVER_ASSIGNED, BookingStatus.TRIP_STARTED]),
        )
    ).scalars().first()

    eta_min = None
    if booking:
        booking.last_carrier_lat = lat
        booking.last_carrier_lng = lng
        if booking.status == BookingStatus.TRIP_STARTED:
            try:
                remaining = maps.distance_and_duration(lat, lng, booking.drop_lat, booking.drop_lng)
                booking.remaining_distance_km = remaining.distance_km
                booking.remaining_eta_min = remaining.duration_min
                eta_min = remaining.duration_min
            except UpstreamUnavailable:
                # keep the position update; ETA simply stays stale
                logger.warning("eta refresh skipped for booking %s", booking.id, extra={"booking_id": booking.id})
    db.commit()

    if booking:
        location = {"lat": lat, "lng": lng}
        if eta_min is not None:
            safe_send(relay, "broadcast_to_booking", booking.id, "driver:update", {"location": location, "etaMin": eta_min})
        safe_send(relay, "broadcast_to_booking", booking.id, "driverLocation", location)

    return {"bookingId": booking.id if booking else None, "etaMin": eta_min}
