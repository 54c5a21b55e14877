from datetime import date, datetime, timezone
from sqlalchemy import String, Integer, Boolean, Date, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from triply.db.session import Base

class Schedule(Base):
    """One bus run of a route on a given day.

    Seat state is not stored here: held seats live in ``schedule_seats`` and the
    number of free seats is always ``capacity - held``.
    """
    __tablename__ = "schedules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    schedule_code: Mapped[str] = mapped_column(String(20), unique=True, index=True)  # SCH...
    route_id: Mapped[str] = mapped_column(String(36), index=True)

    journey_date: Mapped[date] = mapped_column(Date, index=True)
    departure_time: Mapped[str] = mapped_column(String(5), default="")  # HH:MM, empty = end of day
    arrival_time: Mapped[str] = mapped_column(String(5), default="")
    bus_number: Mapped[str] = mapped_column(String(30))
    driver_name: Mapped[str] = mapped_column(String(120), default="")

    capacity: Mapped[int] = mapped_column(Integer)  # fixed at creation
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


class ScheduleSeat(Base):
    """A seat currently held on a schedule. The unique constraint is the last line against double booking."""
    __tablename__ = "schedule_seats"
    __table_args__ = (
        UniqueConstraint("schedule_id", "seat_number", name="uq_schedule_seat"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    schedule_id: Mapped[str] = mapped_column(String(36), index=True)
    seat_number: Mapped[int] = mapped_column(Integer)
    booking_id: Mapped[str | None] = mapped_column(String(36), index=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
