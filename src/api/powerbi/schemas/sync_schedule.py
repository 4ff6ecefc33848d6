import re
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field, field_validator, model_validator
from src.api.common.constants.sync import ScheduleType

TIME_OF_DAY_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$")


class SyncScheduleBase(BaseModel):
    sync_config_id: int
    schedule_type: ScheduleType = ScheduleType.DAILY
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6, description="0 = Sunday")
    time_of_day: str = Field(default="03:00", description="HH:MM in the schedule timezone")
    is_active: bool = True

    @field_validator("time_of_day")
    @classmethod
    def validate_time_of_day(cls, value: str) -> str:
        if not TIME_OF_DAY_PATTERN.match(value):
            raise ValueError("time_of_day must be HH:MM")
        return value[:5]

    @model_validator(mode="after")
    def validate_day_of_week(self):
        if self.schedule_type == ScheduleType.WEEKLY and self.day_of_week is None:
            raise ValueError("day_of_week is required for weekly schedules")
        return self


class SyncScheduleCreate(SyncScheduleBase):
    pass


class SyncScheduleRead(SyncScheduleBase):
    id: int
    next_run_at: datetime
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ScheduleRunItem(BaseModel):
    schedule_id: int
    config_id: Optional[int] = None
    queue_id: Optional[int] = None
    # enqueued, skipped or error
    outcome: str
    next_run_at: datetime
    error: Optional[str] = None


class ScheduleRunResult(BaseModel):
    evaluated: int
    enqueued: int
    skipped: int
    errors: int
    items: List[ScheduleRunItem]
