from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.logger import logger
from sqlmodel import Session
from src.api.common.utils.database import get_db
from src.api.powerbi.schemas.sync_config import ClearDataResult, SyncConfigCreate, SyncConfigRead, SyncConfigUpdate
from src.api.powerbi.services.sync_config_service import SyncConfigService

router = APIRouter(prefix="/sync-configs", tags=["sync-configs"])


def get_sync_config_service(db: Session = Depends(get_db)):
    return SyncConfigService(db)


@router.post("/", response_model=SyncConfigRead, status_code=201)
def create_sync_config(
    config_data: SyncConfigCreate,
    config_service: SyncConfigService = Depends(get_sync_config_service)
):
    try:
        return config_service.create_config(config_data)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/", response_model=List[SyncConfigRead])
def get_sync_configs(
    connection_id: Optional[int] = Query(None),
    active_only: bool = Query(False),
    config_service: SyncConfigService = Depends(get_sync_config_service)
):
    return config_service.get_configs(connection_id, active_only)


@router.get("/{config_id}", response_model=SyncConfigRead)
def get_sync_config(
    config_id: int,
    config_service: SyncConfigService = Depends(get_sync_config_service)
):
    config = config_service.get_config(config_id)
    if not config:
        raise HTTPException(status_code=404, detail="Sync config not found")
    return config


@router.put("/{config_id}", response_model=SyncConfigRead)
def update_sync_config(
    config_id: int,
    config_data: SyncConfigUpdate,
    config_service: SyncConfigService = Depends(get_sync_config_service)
):
    config = config_service.update_config(config_id, config_data)
    if not config:
        raise HTTPException(status_code=404, detail="Sync config not found")
    return config


@router.delete("/{config_id}/data", response_model=ClearDataResult)
def clear_sync_config_data(
    config_id: int,
    config_service: SyncConfigService = Depends(get_sync_config_service)
):
    """Delete the rows ingested for the config's entity and group"""
    config = config_service.get_config(config_id)
    if not config:
        raise HTTPException(status_code=404, detail="Sync config not found")
    deleted = config_service.clear_data(config)
    logger.info(f"Cleared {deleted} rows for sync config {config_id}")
    return ClearDataResult(config_id=config.id, entity_type=config.entity_type, deleted=deleted)
