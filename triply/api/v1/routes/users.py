from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from triply.api.deps import get_db, http_error
from triply.api.serializers import booking_out, user_out
from triply.schemas.booking import BookingCreate, BookingOut
from triply.schemas.schedule import UserCreate
from triply.services import booking_service, user_service

router = APIRouter(tags=["users"])

@router.post("/users", status_code=201)
def create_user(body: UserCreate, db: Session = Depends(get_db)):
    try:
        u = user_service.create_user(db, body.email, body.fullName, body.phone, body.role)
    except ValueError as e:
        raise http_error(e)
    return user_out(u)

@router.get("/users/{user_id}")
def get_user(user_id: str, db: Session = Depends(get_db)):
    try:
        return user_out(user_service.get_user(db, user_id))
    except ValueError as e:
        raise http_error(e)

@router.post("/users/{user_id}/bookings", response_model=BookingOut, status_code=201)
def create_booking(user_id: str, body: BookingCreate, db: Session = Depends(get_db)):
    try:
        booking = booking_service.create_booking(
            db,
            user_id=user_id,
            schedule_id=body.scheduleId,
            seat_numbers=body.seatNumbers,
            passengers=[p.model_dump() for p in body.passengers],
            seats=body.seats,
            contact_phone=body.contactPhone,
            payment_method=body.paymentMethod,
        )
    except ValueError as e:
        raise http_error(e)
    return booking_out(db, booking)

@router.get("/users/{user_id}/bookings")
def list_user_bookings(user_id: str, db: Session = Depends(get_db)):
    return {"items": [booking_out(db, b) for b in booking_service.list_user_bookings(db, user_id)]}
