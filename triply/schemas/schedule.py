from datetime import date
from pydantic import BaseModel, Field
from typing import List, Optional


class UserCreate(BaseModel):
    email: str  # plain str to allow .local and other dev domains
    fullName: str = ""
    phone: str = ""
    role: str = "user"


class RouteCreate(BaseModel):
    routeNumber: str
    origin: str
    destination: str
    fare: Optional[float] = Field(default=None, ge=0)
    distanceKm: int = 0
    durationMinutes: int = 0
    stops: List[str] = []
    description: str = ""


class ScheduleCreate(BaseModel):
    routeId: str
    journeyDate: date
    departureTime: str = ""  # HH:MM
    arrivalTime: str = ""
    busNumber: str
    driverName: str = ""
    capacity: Optional[int] = Field(default=None, ge=1)
    isActive: bool = True


class ScheduleUpdate(BaseModel):
    journeyDate: Optional[date] = None
    departureTime: Optional[str] = None
    arrivalTime: Optional[str] = None
    busNumber: Optional[str] = None
    driverName: Optional[str] = None
    isActive: Optional[bool] = None


class SeatAvailabilityOut(BaseModel):
    scheduleId: str
    capacity: int
    bookedSeats: List[int]
    bookedCount: int
    availableSeats: int
