import uuid
from decimal import Decimal
from sqlalchemy.orm import Session
from triply.core.errors import RouteNotFound
from triply.models.route import Route


def create_route(db: Session, route_number: str, origin: str, destination: str, fare: Decimal | None = None,
                 distance_km: int = 0, duration_minutes: int = 0, stops: list[str] | None = None,
                 description: str = "") -> Route:
    route_number = route_number.strip()
    if not route_number:
        raise ValueError("route_number is required")
    if db.query(Route).filter(Route.route_number == route_number).first():
        raise ValueError(f"route {route_number} already exists")
    route = Route(
        id=str(uuid.uuid4()),
        route_number=route_number,
        origin=origin,
        destination=destination,
        fare=fare,
        distance_km=distance_km,
        duration_minutes=duration_minutes,
        stops=list(stops or []),
        description=description,
        active=True,
    )
    db.add(route)
    db.commit()
    db.refresh(route)
    return route

def get_route(db: Session, route_id: str) -> Route:
    route = db.get(Route, route_id)
    if not route:
        raise RouteNotFound(route_id)
    return route

def list_routes(db: Session, active_only: bool = True) -> list[Route]:
    q = db.query(Route)
    if active_only:
        q = q.filter(Route.active == True)  # noqa: E712
    return q.order_by(Route.route_number.asc()).all()

def get_fare(db: Session, route_id: str) -> Decimal | None:
    """Per-seat fare of a route, or None when the route or its fare cannot be resolved."""
    route = db.get(Route, route_id)
    if not route or route.fare is None:
        return None
    return Decimal(route.fare)
