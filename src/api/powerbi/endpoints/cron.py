from fastapi import APIRouter, Depends
from fastapi.logger import logger
from sqlmodel import Session
from src.api.common.utils.database import get_db
from src.api.powerbi.config import SyncSettings
from src.api.powerbi.endpoints.dependencies import get_queue_drainer, get_sync_settings, require_cron_secret
from src.api.powerbi.schemas.sync_queue import DrainResult
from src.api.powerbi.schemas.sync_schedule import ScheduleRunResult
from src.api.powerbi.services.queue_drainer import QueueDrainer
from src.api.powerbi.services.schedule_runner import ScheduleRunner

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(require_cron_secret)])


@router.get("/run-schedules", response_model=ScheduleRunResult)
def run_schedules(
    db: Session = Depends(get_db),
    settings: SyncSettings = Depends(get_sync_settings),
):
    """Enqueue jobs for every due schedule"""
    result = ScheduleRunner(db, settings).run_due_schedules()
    if result.errors:
        logger.error(f"run-schedules finished with {result.errors} failing schedules")
    return result


@router.get("/process-queue", response_model=DrainResult)
async def process_queue(drainer: QueueDrainer = Depends(get_queue_drainer)):
    """Drain the queue for up to the configured time budget"""
    return await drainer.drain()
