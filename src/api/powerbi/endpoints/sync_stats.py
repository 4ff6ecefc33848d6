from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session
from src.api.common.utils.database import get_db
from src.api.powerbi.config import SyncSettings
from src.api.powerbi.endpoints.dependencies import get_sync_settings
from src.api.powerbi.schemas.sync_stats import SyncStatsRead
from src.api.powerbi.services.sync_config_service import SyncConfigService
from src.api.powerbi.services.sync_stats_service import SyncStatsService

router = APIRouter(prefix="/sync-stats", tags=["sync-stats"])


@router.get("/", response_model=SyncStatsRead)
def get_sync_stats(
    config_id: int = Query(..., description="Sync config to report on"),
    db: Session = Depends(get_db),
    settings: SyncSettings = Depends(get_sync_settings),
):
    """Per-company record counts and date coverage in the config's window"""
    config = SyncConfigService(db).get_config(config_id)
    if not config:
        raise HTTPException(status_code=404, detail="Sync config not found")
    try:
        return SyncStatsService(db, settings).get_company_stats(config)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
