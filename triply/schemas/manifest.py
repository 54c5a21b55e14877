from pydantic import BaseModel
from typing import List, Literal, Optional


class BoardingStatusUpdate(BaseModel):
    boardingStatus: Literal["not-boarded", "boarded", "no-show"]


class ManifestPassengerOut(BaseModel):
    id: str
    bookingId: str
    bookingReference: str
    userId: str
    passengerIndex: int
    name: str
    age: int
    gender: str
    seatNumber: Optional[int] = None
    contactPhone: str = ""
    boardingStatus: str


class ManifestOut(BaseModel):
    id: str
    scheduleId: str
    manifestStatus: str
    totalPassengers: int
    totalSeatsBooked: int
    finalizedAt: Optional[str] = None
    departedAt: Optional[str] = None
    completedAt: Optional[str] = None
    regeneratedAt: Optional[str] = None
    passengers: List[ManifestPassengerOut] = []
