from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.logger import logger
from sqlmodel import Session
from src.api.common.utils.database import get_db
from src.api.powerbi.config import SyncSettings
from src.api.powerbi.endpoints.dependencies import get_day_processor, get_sync_settings, require_cron_secret
from src.api.powerbi.exceptions import ActiveJobExists, AuthenticationFailure, InvalidJobState, UpstreamQueryFailure
from src.api.powerbi.schemas.sync_queue import (
    DayResult,
    EnqueueRequest,
    QueryPreviewRequest,
    QueryPreviewResult,
    SyncQueueItemRead,
)
from src.api.powerbi.services.day_processor import DayProcessor
from src.api.powerbi.services.queue_service import SyncQueueService
from src.api.powerbi.services.sync_config_service import SyncConfigService

router = APIRouter(prefix="/sync-queue", tags=["sync-queue"])


def get_queue_service(
    db: Session = Depends(get_db),
    settings: SyncSettings = Depends(get_sync_settings),
) -> SyncQueueService:
    return SyncQueueService(db, settings)


@router.get("/", response_model=List[SyncQueueItemRead])
def get_queue_items(
    group_id: Optional[int] = Query(None, description="Filter by tenant group"),
    limit: int = Query(50, ge=1, le=500),
    queue_service: SyncQueueService = Depends(get_queue_service)
):
    """Latest jobs, newest first"""
    return queue_service.get_jobs(group_id, limit)


@router.post("/", response_model=SyncQueueItemRead, status_code=201)
def enqueue(
    request: EnqueueRequest,
    queue_service: SyncQueueService = Depends(get_queue_service)
):
    """Manually enqueue a job for a sync config"""
    config = SyncConfigService(queue_service.db).get_config(request.config_id)
    if not config:
        raise HTTPException(status_code=404, detail="Sync config not found")
    try:
        return queue_service.enqueue(config, request.sync_type, request.start_date, request.end_date)
    except ActiveJobExists as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/test-query", response_model=QueryPreviewResult)
async def test_query(
    request: QueryPreviewRequest,
    processor: DayProcessor = Depends(get_day_processor)
):
    """Run a config's query for one day without writing anything"""
    config = SyncConfigService(processor.db).get_config(request.config_id)
    if not config:
        raise HTTPException(status_code=404, detail="Sync config not found")
    try:
        return await processor.preview_day(config, request.day, request.limit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (AuthenticationFailure, UpstreamQueryFailure) as e:
        logger.error(f"Test query for config {config.id} failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/{queue_id}", response_model=SyncQueueItemRead)
def get_queue_item(
    queue_id: int,
    queue_service: SyncQueueService = Depends(get_queue_service)
):
    job = queue_service.get_job(queue_id)
    if not job:
        raise HTTPException(status_code=404, detail="Queue item not found")
    return job


@router.post("/{queue_id}/process", response_model=DayResult, dependencies=[Depends(require_cron_secret)])
async def process_queue_item(
    queue_id: int,
    processor: DayProcessor = Depends(get_day_processor)
):
    """Process the next batch window of one job"""
    result = await processor.process_one_day(queue_id)
    if result.error:
        logger.error(f"Queue item {queue_id} step ended as {result.status.value}: {result.error}")
    return result


@router.delete("/{queue_id}", response_model=SyncQueueItemRead)
def cancel_queue_item(
    queue_id: int,
    queue_service: SyncQueueService = Depends(get_queue_service)
):
    """Cancel a pending or processing job"""
    try:
        return queue_service.cancel(queue_id)
    except LookupError:
        raise HTTPException(status_code=404, detail="Queue item not found")
    except InvalidJobState as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{queue_id}/requeue", response_model=SyncQueueItemRead, status_code=201)
def requeue_queue_item(
    queue_id: int,
    queue_service: SyncQueueService = Depends(get_queue_service)
):
    """Create a fresh job from a finished one"""
    try:
        return queue_service.requeue(queue_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidJobState as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ActiveJobExists as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
