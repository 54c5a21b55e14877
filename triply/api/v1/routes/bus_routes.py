from decimal import Decimal
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from triply.api.deps import get_db, http_error
from triply.api.serializers import route_out
from triply.schemas.schedule import RouteCreate
from triply.services import route_service

router = APIRouter(tags=["routes"])

@router.post("/routes", status_code=201)
def create_route(body: RouteCreate, db: Session = Depends(get_db)):
    try:
        r = route_service.create_route(
            db,
            route_number=body.routeNumber,
            origin=body.origin,
            destination=body.destination,
            fare=Decimal(str(body.fare)) if body.fare is not None else None,
            distance_km=body.distanceKm,
            duration_minutes=body.durationMinutes,
            stops=body.stops,
            description=body.description,
        )
    except ValueError as e:
        raise http_error(e)
    return route_out(r)

@router.get("/routes")
def list_routes(activeOnly: bool = True, db: Session = Depends(get_db)):
    return {"items": [route_out(r) for r in route_service.list_routes(db, active_only=activeOnly)]}

@router.get("/routes/{route_id}")
def get_route(route_id: str, db: Session = Depends(get_db)):
    try:
        return route_out(route_service.get_route(db, route_id))
    except ValueError as e:
        raise http_error(e)
