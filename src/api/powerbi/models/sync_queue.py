from datetime import date, datetime
from typing import Optional
from sqlmodel import Field, DateTime
from src.api.common.constants.sync import SyncQueueStatus, SyncType
from src.api.common.models.base import BaseModel, TimestampMixin


class SyncQueueItem(BaseModel, TimestampMixin, table=True):
    """
    Durable unit of sync work for one (connection, config, date range).
    processed_days is the checkpoint cursor over [start_date, end_date].
    Rows are never deleted.
    """
    __tablename__ = "sync_queue"

    id: Optional[int] = Field(default=None, primary_key=True)

    connection_id: int = Field(foreign_key="powerbiconnection.id")
    config_id: int = Field(foreign_key="syncconfig.id", index=True)
    group_id: int = Field(index=True)

    start_date: date
    end_date: date
    sync_type: SyncType = Field(default=SyncType.FULL)

    total_days: int = Field(default=0, ge=0)
    processed_days: int = Field(default=0, ge=0)
    processed_records: int = Field(default=0, ge=0)

    status: SyncQueueStatus = Field(default=SyncQueueStatus.PENDING, index=True)
    last_error: Optional[str] = None

    started_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    finished_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    @property
    def progress(self) -> int:
        if not self.total_days:
            return 0
        return min(round(self.processed_days * 100 / self.total_days), 100)

    class Config:
        from_attributes = True
