"""Domain errors raised by the booking core.

Every error is a ``ValueError`` so callers that only care about "the request
was rejected" can keep catching ``ValueError``. ``status_code`` is the HTTP
status the API layer answers with.
"""


class BookingError(ValueError):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict:
        return {"message": self.message}


class NotFoundError(BookingError):
    status_code = 404


class ScheduleNotFound(NotFoundError):
    def __init__(self, schedule_id: str):
        super().__init__("Schedule not found")
        self.schedule_id = schedule_id


class BookingNotFound(NotFoundError):
    def __init__(self, booking_id: str):
        super().__init__("Booking not found")
        self.booking_id = booking_id


class ManifestNotFound(NotFoundError):
    def __init__(self, manifest_id: str):
        super().__init__("Manifest not found")
        self.manifest_id = manifest_id


class PassengerNotFound(NotFoundError):
    def __init__(self, passenger_id: str):
        super().__init__("Passenger not found in manifest")
        self.passenger_id = passenger_id


class UserNotFound(NotFoundError):
    def __init__(self, user_id: str):
        super().__init__("User not found")
        self.user_id = user_id


class RouteNotFound(NotFoundError):
    def __init__(self, route_id: str):
        super().__init__("Route not found")
        self.route_id = route_id


class InvalidSeatSelection(BookingError):
    pass


class InvalidSeat(InvalidSeatSelection):
    def __init__(self, seats: list[int], capacity: int):
        super().__init__(f"Invalid seat numbers: {', '.join(str(s) for s in seats)} (valid range 1-{capacity})")
        self.seats = list(seats)
        self.capacity = capacity

    def to_detail(self) -> dict:
        return {"message": self.message, "invalidSeats": self.seats, "capacity": self.capacity}


class ScheduleUnavailable(BookingError):
    status_code = 409


class SeatConflict(BookingError):
    status_code = 409

    def __init__(self, seats: list[int]):
        seats = sorted(set(seats))
        super().__init__(f"Seats {', '.join(str(s) for s in seats)} are already booked. Please select different seats.")
        self.seats = seats

    def to_detail(self) -> dict:
        return {"message": self.message, "conflictingSeats": self.seats}


class CapacityExceeded(BookingError):
    status_code = 409

    def __init__(self, available: int, requested: int):
        super().__init__(f"Not enough seats available. Only {available} seats left.")
        self.available = available
        self.requested = requested

    def to_detail(self) -> dict:
        return {"message": self.message, "availableSeats": self.available, "requestedSeats": self.requested}


class AlreadyCancelled(BookingError):
    def __init__(self, booking_ref: str):
        super().__init__("Booking is already cancelled")
        self.booking_ref = booking_ref


class InvalidManifestState(BookingError):
    pass


class ScheduleInUse(BookingError):
    status_code = 409
