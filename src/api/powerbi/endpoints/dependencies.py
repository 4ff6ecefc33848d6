import secrets
from functools import lru_cache
from typing import Optional
from fastapi import Depends, Header, HTTPException
from sqlmodel import Session
from src.api.common.utils.database import get_db
from src.api.integrations.powerbi import PowerBIClient, PowerBIConfig, TokenCache, TokenProvider
from src.api.powerbi.config import SyncSettings
from src.api.powerbi.services.day_processor import DayProcessor
from src.api.powerbi.services.queue_drainer import QueueDrainer


@lru_cache
def get_token_cache() -> TokenCache:
    """One token cache per process, shared by every request"""
    return TokenCache()


def get_sync_settings() -> SyncSettings:
    return SyncSettings()


def get_powerbi_config() -> PowerBIConfig:
    return PowerBIConfig()


def get_token_provider(
    cache: TokenCache = Depends(get_token_cache),
    config: PowerBIConfig = Depends(get_powerbi_config),
) -> TokenProvider:
    return TokenProvider(cache, config)


def get_powerbi_client(config: PowerBIConfig = Depends(get_powerbi_config)) -> PowerBIClient:
    return PowerBIClient(config)


def get_day_processor(
    db: Session = Depends(get_db),
    token_provider: TokenProvider = Depends(get_token_provider),
    client: PowerBIClient = Depends(get_powerbi_client),
    settings: SyncSettings = Depends(get_sync_settings),
) -> DayProcessor:
    return DayProcessor(db, token_provider, client, settings)


def get_queue_drainer(
    processor: DayProcessor = Depends(get_day_processor),
    settings: SyncSettings = Depends(get_sync_settings),
) -> QueueDrainer:
    return QueueDrainer(processor, settings)


def require_cron_secret(
    authorization: Optional[str] = Header(default=None),
    settings: SyncSettings = Depends(get_sync_settings),
) -> None:
    """Bearer guard for the endpoints meant for the external scheduler"""
    if not settings.cron_enabled:
        raise HTTPException(status_code=501, detail="CRON_SECRET is not configured")
    expected = f"Bearer {settings.cron_secret}"
    if not authorization or not secrets.compare_digest(authorization, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")
