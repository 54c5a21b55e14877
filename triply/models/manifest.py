from sqlalchemy import String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from triply.db.session import Base

MANIFEST_STATUSES = ("draft", "finalized", "departed", "completed")
BOARDING_STATUSES = ("not-boarded", "boarded", "no-show")

class PassengerManifest(Base):
    """Passenger roster of a schedule, rebuilt from confirmed bookings."""
    __tablename__ = "passenger_manifests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    schedule_id: Mapped[str] = mapped_column(String(36), unique=True, index=True)

    total_passengers: Mapped[int] = mapped_column(Integer, default=0)
    total_seats_booked: Mapped[int] = mapped_column(Integer, default=0)
    manifest_status: Mapped[str] = mapped_column(String(20), default="draft", index=True)

    created_by: Mapped[str] = mapped_column(String(36), default="")
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    departed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    regenerated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


class ManifestPassenger(Base):
    __tablename__ = "manifest_passengers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    manifest_id: Mapped[str] = mapped_column(String(36), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)  # order on the printed roster

    # (booking_id, passenger_index) identifies the slot across regenerations
    booking_id: Mapped[str] = mapped_column(String(36), index=True)
    passenger_index: Mapped[int] = mapped_column(Integer, default=0)
    user_id: Mapped[str] = mapped_column(String(36), default="")
    booking_ref: Mapped[str] = mapped_column(String(20), default="")

    name: Mapped[str] = mapped_column(String(200))
    age: Mapped[int] = mapped_column(Integer, default=0)  # 0 = unknown (legacy bookings)
    gender: Mapped[str] = mapped_column(String(10), default="Other")
    seat_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    contact_phone: Mapped[str] = mapped_column(String(40), default="")

    boarding_status: Mapped[str] = mapped_column(String(20), default="not-boarded")  # not-boarded, boarded, no-show
