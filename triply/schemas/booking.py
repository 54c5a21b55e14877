from pydantic import BaseModel, Field
from typing import List, Literal, Optional


class PassengerIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    age: int = Field(ge=0, le=120)
    gender: Literal["Male", "Female", "Other"] = "Other"


class BookingCreate(BaseModel):
    scheduleId: str
    seatNumbers: List[int]
    seats: Optional[int] = None  # defaults to len(seatNumbers)
    passengers: List[PassengerIn] = []
    contactPhone: str = ""
    paymentMethod: Optional[Literal["card", "upi", "netbanking", "wallet"]] = None


class BookingCancel(BaseModel):
    userId: Optional[str] = None  # when set, the booking must belong to this user


class PassengerOut(BaseModel):
    name: str
    age: int
    gender: str
    seatNumber: Optional[int] = None


class BookingOut(BaseModel):
    id: str
    bookingReference: str
    scheduleId: str
    userId: str
    seats: int
    seatNumbers: List[int]
    status: str
    contactPhone: str = ""
    totalPrice: Optional[float] = None
    paymentMethod: Optional[str] = None
    paymentStatus: str
    passengers: List[PassengerOut] = []
    createdAt: Optional[str] = None
    cancelledAt: Optional[str] = None
