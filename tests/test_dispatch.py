from datetime import datetime, timedelta, timezone

import pytest

from haulage.core.errors import InvalidState
from haulage.models.booking import BookingStatus
from haulage.services import booking_service, carrier_registry, dispatch_service

from conftest import ADMIN, DROP, PICKUP, REQUESTER


def _ride(db, maps, relay):
    return booking_service.request_ride(db, maps, relay, REQUESTER, pickup=PICKUP, drop=DROP, vehicle_class="Bike")


def test_claim_dispatch_notifies_nearest_first(db, relay, make_carrier, confirmed_booking):
    far = make_carrier(location=(19.20, 72.95))
    unknown = make_carrier(location=None)
    near = make_carrier(location=(19.077, 72.878))
    make_carrier(vehicle_class="Tempo", location=(19.076, 72.8777))
    make_carrier(online=False)

    b = confirmed_booking()

    assert b.status == BookingStatus.CONFIRMED
    notified = [e[1] for e in relay.named("booking:request")]
    assert notified == [near.id, far.id, unknown.id]
    first = relay.named("booking:request")[0][3]
    assert first["bookingId"] == b.id
    assert first["distanceToPickupKm"] < 0.2


def test_claim_dispatch_without_carriers_is_terminal(db, relay, confirmed_booking):
    b = confirmed_booking()
    assert b.status == BookingStatus.DRIVER_NOT_FOUND
    with pytest.raises(InvalidState):
        dispatch_service.redispatch(db, relay, ADMIN, b.id)


def test_busy_carriers_are_not_eligible(db, maps, relay, make_carrier, confirmed_booking):
    carrier = make_carrier()
    first = confirmed_booking()
    booking_service.accept_booking(db, maps, relay, carrier.id, first.id)

    second = confirmed_booking()
    assert second.status == BookingStatus.DRIVER_NOT_FOUND


def test_pending_requests_skip_rejected_and_other_classes(db, make_carrier, confirmed_booking):
    bike = make_carrier()
    tempo = make_carrier(vehicle_class="Tempo")
    older = confirmed_booking()
    newer = confirmed_booking()

    assert [b.id for b in dispatch_service.pending_requests(db, bike.id)] == [newer.id, older.id]
    assert dispatch_service.pending_requests(db, tempo.id) == []

    booking_service.reject_booking(db, bike.id, newer.id)
    assert [b.id for b in dispatch_service.pending_requests(db, bike.id)] == [older.id]


def test_redispatch_skips_rejecting_carriers(db, relay, make_carrier, confirmed_booking):
    first = make_carrier()
    b = confirmed_booking()
    second = make_carrier()
    booking_service.reject_booking(db, first.id, b.id)
    relay.events.clear()

    notified = dispatch_service.redispatch(db, relay, ADMIN, b.id)
    assert notified == [second.id]


def test_ride_notifies_carriers_inside_radius(db, maps, relay, make_carrier, catalog):
    inside = make_carrier(location=(19.08, 72.88))
    make_carrier(location=(19.20, 72.95))

    b = _ride(db, maps, relay)
    assert b.status == BookingStatus.DRIVER_NOTIFIED
    assert [e[1] for e in relay.named("booking:request")] == [inside.id]
    assert b.payable_amount is not None


def test_ride_without_nearby_carrier(db, maps, relay, make_carrier, catalog):
    make_carrier(location=(19.20, 72.95))
    make_carrier(location=None)
    b = _ride(db, maps, relay)
    assert b.status == BookingStatus.NO_DRIVER_FOUND


def test_ride_can_be_accepted(db, maps, relay, make_carrier, catalog):
    carrier = make_carrier(location=(19.08, 72.88))
    b = _ride(db, maps, relay)
    booking_service.accept_booking(db, maps, relay, carrier.id, b.id)
    db.refresh(b)
    assert b.status == BookingStatus.DRIVER_ASSIGNED
    assert b.carrier_id == carrier.id


def test_unanswered_ride_expires(db, maps, relay, make_carrier, catalog):
    make_carrier(location=(19.08, 72.88))
    b = _ride(db, maps, relay)

    later = datetime.now(timezone.utc) + timedelta(seconds=5)
    assert dispatch_service.expire_notified(db, relay, now=later, timeout_seconds=0) == 1
    db.refresh(b)
    assert b.status == BookingStatus.NO_DRIVER_FOUND
    assert dispatch_service.expire_notified(db, relay, now=later, timeout_seconds=0) == 0


def test_fresh_ride_does_not_expire(db, maps, relay, make_carrier, catalog):
    make_carrier(location=(19.08, 72.88))
    b = _ride(db, maps, relay)
    assert dispatch_service.expire_notified(db, relay, timeout_seconds=120) == 0
    db.refresh(b)
    assert b.status == BookingStatus.DRIVER_NOTIFIED


def test_eligible_carriers_radius_filter(db, make_carrier):
    near = make_carrier(location=(19.08, 72.88))
    make_carrier(location=(19.20, 72.95))
    ranked = carrier_registry.eligible_carriers(db, vehicle_class="Bike", near=PICKUP, radius_km=3.0)
    assert [c.id for c, _ in ranked] == [near.id]
