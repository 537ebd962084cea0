from sqlalchemy import String, DateTime, Boolean, Float
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from haulage.db.session import Base

class Carrier(Base):
    __tablename__ = "carriers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    full_name: Mapped[str] = mapped_column(String(200), default="")
    mobile: Mapped[str] = mapped_column(String(20), unique=True, index=True)
    vehicle_class: Mapped[str] = mapped_column(String(40), index=True)  # Bike, Tempo, Truck ...
    vehicle_number: Mapped[str] = mapped_column(String(20), default="")

    # available implies not on trip; both are flipped together by carrier_registry
    is_online: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    is_available: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    is_on_trip: Mapped[bool] = mapped_column(Boolean, default=False)

    current_lat: Mapped[float] = mapped_column(Float, nullable=True)
    current_lng: Mapped[float] = mapped_column(Float, nullable=True)
    location_updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def has_location(self) -> bool:
        return self.current_lat is not None and self.current_lng is not None
