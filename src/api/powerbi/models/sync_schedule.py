from datetime import datetime
from typing import Optional
from sqlmodel import Field, Relationship, DateTime
from src.api.common.constants.sync import ScheduleType
from src.api.common.models.base import BaseModel, TimestampMixin
from src.api.powerbi.models.sync_config import SyncConfig


class SyncSchedule(BaseModel, TimestampMixin, table=True):
    """Recurrence rule that enqueues jobs for one sync config."""
    id: Optional[int] = Field(default=None, primary_key=True)

    sync_config_id: int = Field(foreign_key="syncconfig.id", index=True)
    sync_config: Optional[SyncConfig] = Relationship()

    schedule_type: ScheduleType
    # 0 = Sunday ... 6 = Saturday, weekly schedules only
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    # HH:MM in the scheduling timezone
    time_of_day: str
    next_run_at: datetime = Field(sa_type=DateTime(timezone=True), nullable=False, index=True)

    is_active: bool = Field(default=True, index=True)

    class Config:
        from_attributes = True
