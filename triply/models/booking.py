from decimal import Decimal
from sqlalchemy import String, Integer, DateTime, Numeric, JSON
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from triply.db.session import Base

BOOKING_CONFIRMED = "confirmed"
BOOKING_CANCELLED = "cancelled"

PAYMENT_METHODS = ("card", "upi", "netbanking", "wallet")

class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_ref: Mapped[str] = mapped_column(String(20), unique=True, index=True)

    schedule_id: Mapped[str] = mapped_column(String(36), index=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)  # booker

    seats: Mapped[int] = mapped_column(Integer, default=1)
    seat_numbers: Mapped[list] = mapped_column(JSON, default=list)  # ordered, one per seat

    status: Mapped[str] = mapped_column(String(20), default=BOOKING_CONFIRMED, index=True)  # confirmed, cancelled

    contact_phone: Mapped[str] = mapped_column(String(40), default="")
    total_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)  # card, upi, netbanking, wallet
    payment_status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, completed, failed

    # bookings made before per-passenger details existed only carry a free-text name list
    legacy_passenger_names: Mapped[str] = mapped_column(String(500), default="")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
