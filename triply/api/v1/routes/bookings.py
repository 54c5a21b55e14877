from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from triply.api.deps import get_db, http_error
from triply.api.serializers import booking_out
from triply.schemas.booking import BookingCancel, BookingOut
from triply.services import booking_service

router = APIRouter(tags=["bookings"])

@router.get("/bookings")
def list_bookings(scheduleId: str = "", status: str = "", db: Session = Depends(get_db)):
    return {"items": [booking_out(db, b) for b in booking_service.list_bookings(db, schedule_id=scheduleId, status=status)]}

@router.get("/bookings/stats")
def booking_stats(db: Session = Depends(get_db)):
    return booking_service.booking_statistics(db)

@router.get("/bookings/ref/{booking_ref}", response_model=BookingOut)
def get_booking_by_reference(booking_ref: str, db: Session = Depends(get_db)):
    try:
        return booking_out(db, booking_service.get_booking_by_reference(db, booking_ref))
    except ValueError as e:
        raise http_error(e)

@router.get("/bookings/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: str, db: Session = Depends(get_db)):
    try:
        return booking_out(db, booking_service.get_booking(db, booking_id))
    except ValueError as e:
        raise http_error(e)

@router.post("/bookings/{booking_id}/cancel", response_model=BookingOut)
def cancel_booking(booking_id: str, body: BookingCancel | None = None,
                   db: Session = Depends(get_db)):
    try:
        booking = booking_service.cancel_booking(db, booking_id, user_id=body.userId if body else None)
    except ValueError as e:
        raise http_error(e)
    return booking_out(db, booking)
