import os
from datetime import date
from typing import Optional
from pydantic import BaseModel, Field

MIN_CRON_SECRET_LENGTH = 16


class SyncSettings(BaseModel):
    cron_secret: Optional[str] = Field(default_factory=lambda: os.getenv("CRON_SECRET"))
    drain_budget_seconds: float = Field(
        default_factory=lambda: float(os.getenv("SYNC_DRAIN_BUDGET_SECONDS", "270")))
    drain_max_items: int = Field(
        default_factory=lambda: int(os.getenv("SYNC_DRAIN_MAX_ITEMS", "5")))
    drain_delay_seconds: float = Field(
        default_factory=lambda: float(os.getenv("SYNC_DRAIN_DELAY_SECONDS", "0.5")))
    upsert_batch_size: int = Field(
        default_factory=lambda: int(os.getenv("SYNC_UPSERT_BATCH_SIZE", "200")))
    schedule_timezone: str = Field(
        default_factory=lambda: os.getenv("SYNC_SCHEDULE_TIMEZONE", "America/Sao_Paulo"))
    default_initial_date: date = Field(
        default_factory=lambda: date.fromisoformat(os.getenv("SYNC_DEFAULT_INITIAL_DATE", "2024-01-01")))
    default_incremental_days: int = 7

    @property
    def cron_enabled(self) -> bool:
        """Cron endpoints are refused unless a long enough secret is configured"""
        return bool(self.cron_secret) and len(self.cron_secret) >= MIN_CRON_SECRET_LENGTH
