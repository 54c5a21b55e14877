from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from triply.api.deps import get_db, http_error
from triply.api.serializers import manifest_out, manifest_passenger_out
from triply.schemas.manifest import BoardingStatusUpdate, ManifestOut, ManifestPassengerOut
from triply.services import manifest_service

router = APIRouter(tags=["manifests"])

@router.get("/schedules/{schedule_id}/manifest", response_model=ManifestOut)
def get_schedule_manifest(schedule_id: str, db: Session = Depends(get_db)):
    """Regenerates before returning so the roster reflects the latest bookings."""
    try:
        m = manifest_service.generate_for_schedule(db, schedule_id)
    except ValueError as e:
        raise http_error(e)
    return manifest_out(db, m)

@router.get("/manifests")
def list_manifests(status: str = "", db: Session = Depends(get_db)):
    return {"items": [manifest_out(db, m, with_passengers=False) for m in manifest_service.list_manifests(db, status)]}

@router.post("/manifests/sync")
def sync_manifests(background: bool = False, db: Session = Depends(get_db)):
    if background:
        from triply.tasks.jobs import sync_manifests as sync_task
        r = sync_task.delay()
        return {"queued": True, "taskId": r.id}
    return manifest_service.sync_all_manifests(db)

@router.get("/manifests/{manifest_id}", response_model=ManifestOut)
def get_manifest(manifest_id: str, db: Session = Depends(get_db)):
    try:
        return manifest_out(db, manifest_service.get_manifest(db, manifest_id))
    except ValueError as e:
        raise http_error(e)

@router.post("/manifests/{manifest_id}/finalize", response_model=ManifestOut)
def finalize_manifest(manifest_id: str, db: Session = Depends(get_db)):
    try:
        return manifest_out(db, manifest_service.finalize_manifest(db, manifest_id))
    except ValueError as e:
        raise http_error(e)

@router.post("/manifests/{manifest_id}/depart", response_model=ManifestOut)
def mark_departed(manifest_id: str, db: Session = Depends(get_db)):
    try:
        return manifest_out(db, manifest_service.mark_departed(db, manifest_id))
    except ValueError as e:
        raise http_error(e)

@router.post("/manifests/{manifest_id}/complete", response_model=ManifestOut)
def mark_completed(manifest_id: str, db: Session = Depends(get_db)):
    try:
        return manifest_out(db, manifest_service.mark_completed(db, manifest_id))
    except ValueError as e:
        raise http_error(e)

@router.patch("/manifests/{manifest_id}/passengers/{passenger_id}", response_model=ManifestPassengerOut)
def update_boarding_status(manifest_id: str, passenger_id: str, body: BoardingStatusUpdate,
                           db: Session = Depends(get_db)):
    try:
        p = manifest_service.update_passenger_boarding_status(db, manifest_id, passenger_id, body.boardingStatus)
    except ValueError as e:
        raise http_error(e)
    return manifest_passenger_out(p)
