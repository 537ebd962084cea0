from sqlalchemy import String, Integer, DateTime, Float, Numeric, Boolean, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates
from datetime import datetime, timezone
from decimal import Decimal
from haulage.core.errors import InvalidState
from haulage.db.session import Base


class BookingStatus:
    # ride-dispatch path
    SEARCHING_DRIVER = "SEARCHING_DRIVER"
    DRIVER_NOTIFIED = "DRIVER_NOTIFIED"
    NO_DRIVER_FOUND = "NO_DRIVER_FOUND"
    DRIVER_NOT_FOUND = "DRIVER_NOT_FOUND"
    # payment-first path
    VEHICLE_SELECTED = "VEHICLE_SELECTED"
    PAYMENT_PREVIEW = "PAYMENT_PREVIEW"
    PAYMENT_INITIATED = "PAYMENT_INITIATED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    CONFIRMED = "CONFIRMED"
    DRIVER_ASSIGNED = "DRIVER_ASSIGNED"
    TRIP_STARTED = "TRIP_STARTED"
    TRIP_COMPLETED = "TRIP_COMPLETED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentMethod:
    ONLINE = "ONLINE"
    CASH = "CASH"


class PaymentStatus:
    NONE = "NONE"
    CREATED = "CREATED"  # gateway order exists, not yet paid
    PENDING = "PENDING"  # cash, collected at trip end
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    REFUND_INITIATED = "REFUND_INITIATED"


class TripType:
    IN_CITY = "IN_CITY"
    OUTSTATION = "OUTSTATION"


S = BookingStatus
TRANSITIONS: dict[str, frozenset[str]] = {
    S.SEARCHING_DRIVER: frozenset({S.DRIVER_NOTIFIED, S.NO_DRIVER_FOUND, S.CANCELLED}),
    S.DRIVER_NOTIFIED: frozenset({S.DRIVER_ASSIGNED, S.NO_DRIVER_FOUND, S.CANCELLED}),
    S.VEHICLE_SELECTED: frozenset({S.PAYMENT_PREVIEW, S.CANCELLED}),
    S.PAYMENT_PREVIEW: frozenset({S.PAYMENT_INITIATED, S.CONFIRMED, S.CANCELLED}),
    S.PAYMENT_INITIATED: frozenset({S.CONFIRMED, S.PAYMENT_FAILED, S.CANCELLED}),
    S.PAYMENT_FAILED: frozenset({S.PAYMENT_PREVIEW, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.DRIVER_ASSIGNED, S.DRIVER_NOT_FOUND, S.CANCELLED}),
    S.DRIVER_ASSIGNED: frozenset({S.TRIP_STARTED, S.CANCELLED}),
    S.TRIP_STARTED: frozenset({S.TRIP_COMPLETED}),
    S.TRIP_COMPLETED: frozenset({S.COMPLETED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.NO_DRIVER_FOUND: frozenset(),
    # paid but unmatched; the only way out is a cancellation with refund
    S.DRIVER_NOT_FOUND: frozenset({S.CANCELLED}),
}

# carrier_id is set exactly in these states
ASSIGNED_STATES = frozenset({S.DRIVER_ASSIGNED, S.TRIP_STARTED, S.TRIP_COMPLETED, S.COMPLETED})
# states in which a carrier may claim the booking
ACCEPTABLE_STATES = frozenset({S.CONFIRMED, S.DRIVER_NOTIFIED})
# cancellable until the trip starts, including once a carrier is assigned; paid bookings are refunded first
CANCELLABLE_STATES = frozenset({
    S.SEARCHING_DRIVER, S.DRIVER_NOTIFIED,
    S.VEHICLE_SELECTED, S.PAYMENT_PREVIEW, S.PAYMENT_INITIATED, S.PAYMENT_FAILED,
    S.CONFIRMED, S.DRIVER_ASSIGNED, S.DRIVER_NOT_FOUND,
})
GEOMETRY_LOCKED_STATES = frozenset({S.TRIP_STARTED, S.TRIP_COMPLETED, S.COMPLETED})


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_ref: Mapped[str] = mapped_column(String(20), unique=True, index=True)

    requester_id: Mapped[str] = mapped_column(String(36), index=True)
    carrier_id: Mapped[str] = mapped_column(String(36), nullable=True, index=True)

    city: Mapped[str] = mapped_column(String(80), index=True)
    vehicle_class: Mapped[str] = mapped_column(String(40), index=True)
    trip_type: Mapped[str] = mapped_column(String(12), default=TripType.IN_CITY)  # IN_CITY|OUTSTATION

    pickup_lat: Mapped[float] = mapped_column(Float)
    pickup_lng: Mapped[float] = mapped_column(Float)
    drop_lat: Mapped[float] = mapped_column(Float)
    drop_lng: Mapped[float] = mapped_column(Float)

    # routing collaborator figures, never client supplied
    distance_km: Mapped[float] = mapped_column(Float, default=0.0)
    duration_min: Mapped[int] = mapped_column(Integer, default=0)
    actual_distance_km: Mapped[float] = mapped_column(Float, nullable=True)
    actual_duration_min: Mapped[int] = mapped_column(Integer, nullable=True)
    carrier_to_pickup_km: Mapped[float] = mapped_column(Float, nullable=True)
    carrier_to_pickup_eta_min: Mapped[int] = mapped_column(Integer, nullable=True)
    remaining_distance_km: Mapped[float] = mapped_column(Float, nullable=True)
    remaining_eta_min: Mapped[int] = mapped_column(Integer, nullable=True)
    last_carrier_lat: Mapped[float] = mapped_column(Float, nullable=True)
    last_carrier_lng: Mapped[float] = mapped_column(Float, nullable=True)

    base_fare: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    labour_required: Mapped[bool] = mapped_column(Boolean, default=False)
    labour_count: Mapped[int] = mapped_column(Integer, default=0)
    loading_charge: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    discount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    pickup_charge: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    payable_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=True)
    final_fare: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=True)
    platform_commission: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=True)
    carrier_earning: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=True)

    payment_method: Mapped[str] = mapped_column(String(10), nullable=True)  # ONLINE|CASH
    payment_status: Mapped[str] = mapped_column(String(20), default=PaymentStatus.NONE)
    gateway_order_id: Mapped[str] = mapped_column(String(64), nullable=True, index=True)
    gateway_payment_id: Mapped[str] = mapped_column(String(64), nullable=True)
    gateway_signature: Mapped[str] = mapped_column(String(128), nullable=True)
    gateway_refund_id: Mapped[str] = mapped_column(String(64), nullable=True)

    status: Mapped[str] = mapped_column(String(30), index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    trip_start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    trip_end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    fare_finalized_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    earning_credited_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)

    @validates("pickup_lat", "pickup_lng", "drop_lat", "drop_lng")
    def _geometry_frozen_after_start(self, key, value):
        if self.status in GEOMETRY_LOCKED_STATES:
            raise InvalidState(f"{key} cannot change once the trip has started")
        return value

    def transition(self, new_status: str) -> None:
        allowed = TRANSITIONS.get(self.status, frozenset())
        if new_status not in allowed:
            raise InvalidState(f"Booking {self.booking_ref} cannot move from {self.status} to {new_status}")
        self.status = new_status


class BookingRejection(Base):
    __tablename__ = "booking_rejections"
    __table_args__ = (
        UniqueConstraint("booking_id", "carrier_id", name="uq_booking_rejection"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_id: Mapped[str] = mapped_column(String(36), index=True)
    carrier_id: Mapped[str] = mapped_column(String(36), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
