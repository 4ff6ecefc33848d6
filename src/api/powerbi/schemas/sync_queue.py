from typing import Any, Dict, List, Optional
from datetime import date, datetime
from pydantic import BaseModel, Field
from src.api.common.constants.sync import SyncQueueStatus, SyncType, DayResultStatus


class SyncQueueItemRead(BaseModel):
    id: int
    connection_id: int
    config_id: int
    group_id: int
    start_date: date
    end_date: date
    sync_type: SyncType
    total_days: int
    processed_days: int
    processed_records: int
    progress: int
    status: SyncQueueStatus
    last_error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class EnqueueRequest(BaseModel):
    config_id: int
    sync_type: Optional[SyncType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class DayResult(BaseModel):
    """Outcome of one day-processing step"""
    queue_id: int
    status: DayResultStatus
    day: Optional[date] = None
    day_records: int = 0
    skipped_records: int = 0
    processed_days: int = 0
    total_days: int = 0
    processed_records: int = 0
    has_more: bool = False
    progress: int = 0
    error: Optional[str] = None


class DrainItemResult(BaseModel):
    queue_id: int
    status: DayResultStatus
    iterations: int = 0
    records: int = 0
    timed_out: bool = False
    error: Optional[str] = None


class DrainResult(BaseModel):
    processed: int = 0
    elapsed_seconds: float = 0
    results: List[DrainItemResult] = Field(default_factory=list)


class QueryPreviewRequest(BaseModel):
    config_id: int
    day: Optional[date] = None
    limit: int = Field(default=5, ge=1, le=100)


class QueryPreviewResult(BaseModel):
    config_id: int
    day: Optional[date] = None
    query: str
    row_count: int
    mapped_count: int
    skipped_count: int
    sample_rows: List[Dict[str, Any]]
    sample_records: List[Dict[str, Any]]
    errors: List[str]
