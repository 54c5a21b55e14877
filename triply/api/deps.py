from fastapi import HTTPException
from triply.core.errors import BookingError
from triply.db.session import get_db  # noqa: F401  re-exported for routes


def http_error(e: ValueError) -> HTTPException:
    """Map a service-layer error to the HTTP response the client sees."""
    if isinstance(e, BookingError):
        return HTTPException(status_code=e.status_code, detail=e.to_detail())
    return HTTPException(status_code=400, detail=str(e))
