"""Matching confirmed bookings to carriers.

Two flavours share the eligibility rules in ``carrier_registry``:

* claim style (``dispatch_confirmed``): every eligible carrier of the class is
  notified and the first ``accept_booking`` wins;
* ride style (``dispatch_nearby``): only carriers inside the dispatch radius
  are notified and the booking waits in DRIVER_NOTIFIED until a carrier
  accepts or the expiry job gives up on it.
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from haulage.core.config import settings
from haulage.core.errors import InvalidState, NotFound
from haulage.models.booking import Booking, BookingRejection, BookingStatus
from haulage.services import carrier_registry
from haulage.services.audit_service import log_audit
from haulage.services.relay import Relay, safe_send

logger = logging.getLogger(__name__)

REQUEST_EVENT = "booking:request"


def rejected_carrier_ids(db: Session, booking_id: str) -> set[str]:
    return set(db.execute(
        select(BookingRejection.carrier_id).where(BookingRejection.booking_id == booking_id)
    ).scalars())


def request_payload(booking: Booking, distance_km: float | None = None) -> dict:
    return {
        "bookingId": booking.id,
        "bookingRef": booking.booking_ref,
        "vehicleClass": booking.vehicle_class,
        "pickup": {"lat": booking.pickup_lat, "lng": booking.pickup_lng},
        "drop": {"lat": booking.drop_lat, "lng": booking.drop_lng},
        "distanceKm": booking.distance_km,
        "payableAmount": str(booking.payable_amount) if booking.payable_amount is not None else None,
        "distanceToPickupKm": round(distance_km, 3) if distance_km is not None else None,
    }


def _notify_all(relay: Relay, booking: Booking, ranked) -> list[str]:
    notified = []
    for carrier, distance in ranked:
        safe_send(relay, "notify", carrier.id, REQUEST_EVENT, request_payload(booking, distance))
        notified.append(carrier.id)
    return notified


def dispatch_confirmed(db: Session, relay: Relay, booking: Booking) -> list[str]:
    """Offer a CONFIRMED booking to every eligible carrier. Commits."""
    if booking.status != BookingStatus.CONFIRMED:
        raise InvalidState(f"Booking {booking.booking_ref} is not awaiting dispatch")

    ranked = carrier_registry.eligible_carriers(
        db,
        vehicle_class=booking.vehicle_class,
        near=(booking.pickup_lat, booking.pickup_lng),
        exclude_ids=rejected_carrier_ids(db, booking.id),
    )
    if not ranked:
        booking.transition(BookingStatus.DRIVER_NOT_FOUND)
        db.commit()
        logger.info("no carrier for booking %s", booking.booking_ref, extra={"booking_id": booking.id})
        safe_send(relay, "broadcast_to_booking", booking.id, "booking:status", {"status": booking.status})
        return []

    notified = _notify_all(relay, booking, ranked)
    logger.info("booking %s offered to %d carriers", booking.booking_ref, len(notified), extra={"booking_id": booking.id})
    return notified


def dispatch_nearby(db: Session, relay: Relay, booking: Booking, radius_km: float | None = None) -> list[str]:
    """Offer a SEARCHING_DRIVER booking to carriers around the pickup. Commits."""
    radius_km = settings.DISPATCH_RADIUS_KM if radius_km is None else radius_km
    ranked = carrier_registry.eligible_carriers(
        db,
        vehicle_class=booking.vehicle_class,
        near=(booking.pickup_lat, booking.pickup_lng),
        radius_km=radius_km,
        exclude_ids=rejected_carrier_ids(db, booking.id),
    )
    if not ranked:
        booking.transition(BookingStatus.NO_DRIVER_FOUND)
        db.commit()
        logger.info("no carrier within %.1f km for booking %s", radius_km, booking.booking_ref, extra={"booking_id": booking.id})
        return []

    booking.transition(BookingStatus.DRIVER_NOTIFIED)
    db.commit()
    return _notify_all(relay, booking, ranked)


def pending_requests(db: Session, carrier_id: str) -> list[Booking]:
    """Unassigned confirmed bookings of the carrier's class it has not turned down, newest first."""
    carrier = carrier_registry.get_carrier(db, carrier_id)
    rejected = select(BookingRejection.booking_id).where(BookingRejection.carrier_id == carrier_id)
    return list(db.execute(
        select(Booking)
        .where(
            Booking.status == BookingStatus.CONFIRMED,
            Booking.carrier_id.is_(None),
            Booking.vehicle_class == carrier.vehicle_class,
            Booking.id.not_in(rejected),
        )
        .order_by(Booking.created_at.desc())
    ).scalars())


def redispatch(db: Session, relay: Relay, actor_id: str, booking_id: str) -> list[str]:
    booking = db.get(Booking, booking_id)
    if not booking:
        raise NotFound("Booking not found")
    if booking.status != BookingStatus.CONFIRMED or booking.carrier_id:
        raise InvalidState("Only confirmed, unassigned bookings can be dispatched again")
    log_audit(db, actor_id, "booking.redispatched", "booking", booking.id, {"bookingRef": booking.booking_ref})
    db.commit()
    return dispatch_confirmed(db, relay, booking)


def expire_notified(db: Session, relay: Relay | None = None, now: datetime | None = None, timeout_seconds: int | None = None) -> int:
    """Give up on DRIVER_NOTIFIED bookings nobody accepted in time."""
    now = now or datetime.now(timezone.utc)
    timeout_seconds = settings.DISPATCH_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
    cutoff = now - timedelta(seconds=timeout_seconds)

    stale = list(db.execute(
        select(Booking.id).where(
            Booking.status == BookingStatus.DRIVER_NOTIFIED,
            Booking.carrier_id.is_(None),
            Booking.updated_at < cutoff,
        )
    ).scalars())

    expired = []
    for booking_id in stale:
        # an accept may land between the select and this update
        result = db.execute(
            update(Booking)
            .where(
                Booking.id == booking_id,
                Booking.status == BookingStatus.DRIVER_NOTIFIED,
                Booking.carrier_id.is_(None),
            )
            .values(status=BookingStatus.NO_DRIVER_FOUND, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            expired.append(booking_id)
    db.commit()

    if relay is not None:
        for booking_id in expired:
            safe_send(relay, "broadcast_to_booking", booking_id, "booking:status", {"status": BookingStatus.NO_DRIVER_FOUND})
    if expired:
        logger.info("expired %d unanswered dispatch requests", len(expired))
    return len(expired)
