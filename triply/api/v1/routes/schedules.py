from dataclasses import asdict
from datetime import date
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from triply.api.deps import get_db, http_error
from triply.api.serializers import availability_out, schedule_out
from triply.schemas.schedule import ScheduleCreate, ScheduleUpdate, SeatAvailabilityOut
from triply.services import schedule_service, seat_ledger
from triply.services.audit_service import log_audit

router = APIRouter(tags=["schedules"])

@router.post("/schedules", status_code=201)
def create_schedule(body: ScheduleCreate, db: Session = Depends(get_db)):
    try:
        s = schedule_service.create_schedule(
            db,
            route_id=body.routeId,
            journey_date=body.journeyDate,
            departure_time=body.departureTime,
            arrival_time=body.arrivalTime,
            bus_number=body.busNumber,
            driver_name=body.driverName,
            capacity=body.capacity,
            is_active=body.isActive,
        )
    except ValueError as e:
        raise http_error(e)
    return schedule_out(db, s)

@router.get("/schedules")
def list_schedules(routeId: str = "", journeyDate: date | None = None, activeOnly: bool = False,
                   db: Session = Depends(get_db)):
    items = schedule_service.list_schedules(db, route_id=routeId, journey_date=journeyDate, active_only=activeOnly)
    return {"items": [schedule_out(db, s) for s in items]}

@router.get("/schedules/{schedule_id}")
def get_schedule(schedule_id: str, db: Session = Depends(get_db)):
    try:
        return schedule_out(db, schedule_service.get_schedule(db, schedule_id))
    except ValueError as e:
        raise http_error(e)

@router.patch("/schedules/{schedule_id}")
def update_schedule(schedule_id: str, body: ScheduleUpdate, db: Session = Depends(get_db)):
    changes = {
        "journey_date": body.journeyDate,
        "departure_time": body.departureTime,
        "arrival_time": body.arrivalTime,
        "bus_number": body.busNumber,
        "driver_name": body.driverName,
        "is_active": body.isActive,
    }
    try:
        s = schedule_service.update_schedule(db, schedule_id, **{k: v for k, v in changes.items() if v is not None})
    except ValueError as e:
        raise http_error(e)
    return schedule_out(db, s)

@router.delete("/schedules/{schedule_id}")
def delete_schedule(schedule_id: str, db: Session = Depends(get_db)):
    try:
        schedule_service.delete_schedule(db, schedule_id)
    except ValueError as e:
        raise http_error(e)
    return {"ok": True}

@router.get("/schedules/{schedule_id}/seats", response_model=SeatAvailabilityOut)
def seat_availability(schedule_id: str, db: Session = Depends(get_db)):
    try:
        return availability_out(seat_ledger.seat_availability(db, schedule_id))
    except ValueError as e:
        raise http_error(e)

@router.get("/schedules/{schedule_id}/ledger/drift")
def ledger_drift(schedule_id: str, db: Session = Depends(get_db)):
    try:
        drift = seat_ledger.find_drift(db, schedule_id)
    except ValueError as e:
        raise http_error(e)
    return {**asdict(drift), "isConsistent": drift.is_consistent}

@router.post("/schedules/{schedule_id}/ledger/rebuild")
def rebuild_ledger(schedule_id: str, db: Session = Depends(get_db)):
    try:
        drift = seat_ledger.rebuild_ledger(db, schedule_id)
    except ValueError as e:
        db.rollback()
        raise http_error(e)
    log_audit(db, "ledger.rebuild", "schedule", schedule_id, asdict(drift))
    db.commit()
    return {"ok": True, "driftBefore": {**asdict(drift), "isConsistent": drift.is_consistent},
            "availability": availability_out(seat_ledger.seat_availability(db, schedule_id))}
