from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session
from src.api.common.utils.database import get_db
from src.api.powerbi.config import SyncSettings
from src.api.powerbi.endpoints.dependencies import get_sync_settings
from src.api.powerbi.schemas.sync_schedule import SyncScheduleCreate, SyncScheduleRead
from src.api.powerbi.services.schedule_service import ScheduleService

router = APIRouter(prefix="/schedules", tags=["schedules"])


def get_schedule_service(
    db: Session = Depends(get_db),
    settings: SyncSettings = Depends(get_sync_settings),
):
    return ScheduleService(db, settings)


@router.post("/", response_model=SyncScheduleRead, status_code=201)
def create_schedule(
    schedule_data: SyncScheduleCreate,
    schedule_service: ScheduleService = Depends(get_schedule_service)
):
    """Create a schedule; its first run is computed from time_of_day"""
    try:
        return schedule_service.create_schedule(schedule_data)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/", response_model=List[SyncScheduleRead])
def get_schedules(
    sync_config_id: Optional[int] = Query(None),
    schedule_service: ScheduleService = Depends(get_schedule_service)
):
    return schedule_service.get_schedules(sync_config_id)


@router.delete("/{schedule_id}")
def delete_schedule(
    schedule_id: int,
    schedule_service: ScheduleService = Depends(get_schedule_service)
):
    if not schedule_service.delete_schedule(schedule_id):
        raise HTTPException(status_code=404, detail="Schedule not found")
    return {"message": "Schedule deleted successfully"}
