from datetime import datetime, timedelta, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo
from sqlmodel import Session, select
from src.api.common.constants.sync import ScheduleType
from src.api.common.utils.datetime import ensure_utc, get_current_datetime
from src.api.powerbi.config import SyncSettings
from src.api.powerbi.models.sync_config import SyncConfig
from src.api.powerbi.models.sync_schedule import SyncSchedule
from src.api.powerbi.schemas.sync_schedule import SyncScheduleCreate

SCHEDULE_PERIODS = {
    ScheduleType.DAILY: timedelta(days=1),
    ScheduleType.WEEKLY: timedelta(days=7),
}


def sunday_based_weekday(value: datetime) -> int:
    """Day of week with 0 = Sunday"""
    return (value.weekday() + 1) % 7


def calculate_next_run(
    schedule_type: ScheduleType,
    time_of_day: str,
    day_of_week: Optional[int] = None,
    now: Optional[datetime] = None,
    timezone_name: str = "America/Sao_Paulo",
) -> datetime:
    """
    First run strictly after now at time_of_day in the given timezone.

    Returns:
        datetime: The run time in UTC
    """
    now = ensure_utc(now or get_current_datetime())
    local_now = now.astimezone(ZoneInfo(timezone_name))
    hour, minute = (int(part) for part in time_of_day.split(":")[:2])
    candidate = local_now.replace(hour=hour, minute=minute, second=0, microsecond=0)

    if schedule_type == ScheduleType.WEEKLY:
        candidate += timedelta(days=(day_of_week - sunday_based_weekday(local_now)) % 7)
        if candidate <= local_now:
            candidate += timedelta(days=7)
    elif candidate <= local_now:
        candidate += timedelta(days=1)
    return candidate.astimezone(timezone.utc)


def advance_next_run(schedule: SyncSchedule) -> datetime:
    """next_run_at moved forward by exactly one period"""
    return ensure_utc(schedule.next_run_at) + SCHEDULE_PERIODS[ScheduleType(schedule.schedule_type)]


class ScheduleService:
    def __init__(self, db: Session, settings: Optional[SyncSettings] = None):
        self.db = db
        self.settings = settings or SyncSettings()

    def create_schedule(self, schedule_data: SyncScheduleCreate, now: Optional[datetime] = None) -> SyncSchedule:
        """
        Create a schedule and compute its first run

        Raises:
            ValueError: If the sync config does not exist
        """
        if not self.db.get(SyncConfig, schedule_data.sync_config_id):
            raise ValueError(f"Sync config {schedule_data.sync_config_id} not found")
        schedule = SyncSchedule(**schedule_data.model_dump())
        schedule.next_run_at = calculate_next_run(
            schedule_data.schedule_type,
            schedule_data.time_of_day,
            schedule_data.day_of_week,
            now=now,
            timezone_name=self.settings.schedule_timezone,
        )
        self.db.add(schedule)
        self.db.commit()
        self.db.refresh(schedule)
        return schedule

    def get_schedule(self, schedule_id: int) -> Optional[SyncSchedule]:
        return self.db.get(SyncSchedule, schedule_id)

    def get_schedules(self, sync_config_id: Optional[int] = None) -> List[SyncSchedule]:
        query = select(SyncSchedule)
        if sync_config_id is not None:
            query = query.where(SyncSchedule.sync_config_id == sync_config_id)
        return self.db.exec(query.order_by(SyncSchedule.id)).all()

    def get_due_schedules(self, now: datetime) -> List[SyncSchedule]:
        return self.db.exec(
            select(SyncSchedule)
            .where(SyncSchedule.is_active == True)
            .where(SyncSchedule.next_run_at <= now)
            .order_by(SyncSchedule.next_run_at, SyncSchedule.id)
        ).all()

    def delete_schedule(self, schedule_id: int) -> bool:
        schedule = self.get_schedule(schedule_id)
        if not schedule:
            return False
        self.db.delete(schedule)
        self.db.commit()
        return True
