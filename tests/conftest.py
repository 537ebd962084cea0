import os
import threading
from decimal import Decimal

# Settings are read at import time; point them at throwaway values first.
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RELAY_ENABLED", "false")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "test_key_secret")

import pytest
from sqlalchemy.orm import sessionmaker

from haulage.core.errors import UpstreamUnavailable
from haulage.db.session import Base, make_engine
from haulage.models.booking import Booking, BookingRejection  # noqa: F401
from haulage.models.carrier import Carrier  # noqa: F401
from haulage.models.pricing import City, VehicleClass, PricingRecord  # noqa: F401
from haulage.models.wallet import Wallet, WithdrawalRequest  # noqa: F401
from haulage.models.audit_log import AuditLog  # noqa: F401
from haulage.services import booking_service, carrier_registry, payment_service, rate_catalog
from haulage.services.maps_client import RouteMetrics
from haulage.services.razorpay_client import RazorpayError, expected_signature

PICKUP = (19.076, 72.8777)
DROP = (19.2183, 72.9781)
REQUESTER = "cust-1"
ADMIN = "admin-1"


class FakeMaps:
    """Routing stand-in. Routes are looked up by origin; anything else gets the default."""

    def __init__(self, distance_km: float = 31.059, duration_min: int = 53, city: str | None = "Mumbai"):
        self.default = RouteMetrics(distance_km=distance_km, duration_min=duration_min)
        self.routes: dict[tuple[float, float], RouteMetrics] = {}
        self.city = city
        self.fail = False
        self.calls = []

    def route_from(self, origin: tuple[float, float], distance_km: float, duration_min: int) -> None:
        self.routes[(round(origin[0], 6), round(origin[1], 6))] = RouteMetrics(distance_km, duration_min)

    def distance_and_duration(self, lat1, lng1, lat2, lng2) -> RouteMetrics:
        self.calls.append((lat1, lng1, lat2, lng2))
        if self.fail:
            raise UpstreamUnavailable("Routing service unavailable")
        return self.routes.get((round(lat1, 6), round(lng1, 6)), self.default)

    def city_for_point(self, lat, lng):
        if self.fail:
            raise UpstreamUnavailable("Routing service unavailable")
        return self.city


class FakeGateway:
    key_id = "rzp_test_key"
    key_secret = "test_key_secret"

    def __init__(self):
        self.orders = []
        self.refunds = []
        self.fail_refund = False

    def create_order(self, *, amount_minor: int, currency: str, receipt: str) -> dict:
        order = {"id": f"order_{len(self.orders) + 1:04d}", "amount": amount_minor, "currency": currency, "receipt": receipt}
        self.orders.append(order)
        return order

    def refund(self, *, payment_id: str, amount_minor: int) -> dict:
        if self.fail_refund:
            raise RazorpayError("Payment gateway timed out")
        ack = {"id": f"rfnd_{len(self.refunds) + 1:04d}", "payment_id": payment_id, "amount": amount_minor}
        self.refunds.append(ack)
        return ack

    def sign(self, order_id: str, payment_id: str) -> str:
        return expected_signature(self.key_secret, order_id, payment_id)


class RecordingRelay:
    def __init__(self):
        self.events = []
        self._lock = threading.Lock()

    def notify(self, carrier_id, event, payload):
        with self._lock:
            self.events.append(("carrier", carrier_id, event, payload))

    def broadcast_to_booking(self, booking_id, event, payload):
        with self._lock:
            self.events.append(("booking", booking_id, event, payload))

    def named(self, event):
        return [e for e in self.events if e[2] == event]


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'haulage-test.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def maps():
    return FakeMaps()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def relay():
    return RecordingRelay()


@pytest.fixture
def catalog(db):
    """Mumbai with Bike pricing {50, 10/km, 20%}; Tempo is listed but unpriced."""
    rate_catalog.upsert_city(db, ADMIN, "Mumbai")
    rate_catalog.upsert_vehicle_class(db, ADMIN, "Bike", 20)
    rate_catalog.upsert_vehicle_class(db, ADMIN, "Tempo", 750)
    return rate_catalog.upsert_pricing(
        db, ADMIN,
        city="Mumbai",
        vehicle_class="Bike",
        base_fare=Decimal("50"),
        per_km_rate=Decimal("10"),
        commission_percent=Decimal("20"),
    )


@pytest.fixture
def make_carrier(db):
    counter = {"n": 0}

    def _make(vehicle_class="Bike", location=(19.05, 72.85), online=True):
        counter["n"] += 1
        c = carrier_registry.register_carrier(
            db,
            full_name=f"Carrier {counter['n']}",
            mobile=f"90000000{counter['n']:02d}",
            vehicle_class=vehicle_class,
            vehicle_number=f"MH01AB{counter['n']:04d}",
        )
        if location is not None:
            c.current_lat, c.current_lng = location
            db.commit()
        if online:
            c = carrier_registry.set_online(db, c.id, True)
        return c

    return _make


@pytest.fixture
def selected_booking(db, maps, catalog):
    def _select(requester_id=REQUESTER, vehicle_class="Bike"):
        return booking_service.select_vehicle(db, maps, requester_id, pickup=PICKUP, drop=DROP, vehicle_class=vehicle_class)
    return _select


@pytest.fixture
def confirmed_booking(db, relay, selected_booking):
    """A cash booking pushed to CONFIRMED (and offered to whoever is online)."""
    def _confirm(requester_id=REQUESTER, labour_count=0):
        b = selected_booking(requester_id)
        booking_service.payment_preview(db, requester_id, labour_required=labour_count > 0, labour_count=labour_count)
        return payment_service.confirm_cash(db, relay, requester_id, b.id)
    return _confirm
