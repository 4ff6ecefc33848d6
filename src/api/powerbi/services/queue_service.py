import logging
from datetime import date, datetime
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo
from sqlalchemy import update
from sqlmodel import Session, select
from src.api.common.constants.sync import (
    SyncQueueStatus,
    SyncType,
    ACTIVE_QUEUE_STATUSES,
    TERMINAL_QUEUE_STATUSES,
)
from src.api.common.utils.datetime import add_days, day_count, get_current_datetime
from src.api.powerbi.config import SyncSettings
from src.api.powerbi.exceptions import ActiveJobExists, InvalidJobState
from src.api.powerbi.models.connection import PowerBIConnection
from src.api.powerbi.models.sync_config import SyncConfig
from src.api.powerbi.models.sync_queue import SyncQueueItem

logger = logging.getLogger(__name__)


def get_local_today(settings: SyncSettings, now: Optional[datetime] = None) -> date:
    """Calendar date in the schedule timezone"""
    now = now or get_current_datetime()
    return now.astimezone(ZoneInfo(settings.schedule_timezone)).date()


class SyncQueueService:
    """
    Job lifecycle: enqueue, listing, administrative transitions and the
    conditional status/checkpoint updates used by the day processor.

    Conditional updates only apply when the row is still in the state the
    caller read; a False result means another invocation moved the job.
    """

    def __init__(self, db: Session, settings: Optional[SyncSettings] = None):
        self.db = db
        self.settings = settings or SyncSettings()

    def get_job(self, queue_id: int) -> Optional[SyncQueueItem]:
        return self.db.get(SyncQueueItem, queue_id)

    def get_jobs(self, group_id: Optional[int] = None, limit: int = 50) -> List[SyncQueueItem]:
        query = select(SyncQueueItem)
        if group_id is not None:
            query = query.where(SyncQueueItem.group_id == group_id)
        query = query.order_by(SyncQueueItem.created_at.desc(), SyncQueueItem.id.desc()).limit(limit)
        return self.db.exec(query).all()

    def get_active_job(self, config_id: int) -> Optional[SyncQueueItem]:
        return self.db.exec(
            select(SyncQueueItem)
            .where(SyncQueueItem.config_id == config_id)
            .where(SyncQueueItem.status.in_(ACTIVE_QUEUE_STATUSES))
            .order_by(SyncQueueItem.id)
        ).first()

    def get_drainable_jobs(self, limit: int) -> List[SyncQueueItem]:
        """Oldest pending or processing jobs first"""
        return self.db.exec(
            select(SyncQueueItem)
            .where(SyncQueueItem.status.in_(ACTIVE_QUEUE_STATUSES))
            .order_by(SyncQueueItem.created_at, SyncQueueItem.id)
            .limit(limit)
        ).all()

    def compute_window(self, config: SyncConfig, sync_type: SyncType, today: date) -> Tuple[date, date]:
        """
        Date range of a new job.

        full spans [initial_date, today]; incremental spans
        [today - incremental_days, today].
        """
        if sync_type == SyncType.INCREMENTAL:
            days = config.incremental_days
            if days is None:
                days = self.settings.default_incremental_days
            return add_days(today, -days), today
        return config.initial_date or self.settings.default_initial_date, today

    def enqueue(
        self,
        config: SyncConfig,
        sync_type: Optional[SyncType] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        today: Optional[date] = None,
    ) -> SyncQueueItem:
        """
        Create a pending job for the config.

        Raises:
            ActiveJobExists: If the config already has a pending/processing job
            ValueError: If the config or its connection is unusable, or the range is empty
        """
        if not config.is_active:
            raise ValueError(f"Sync config {config.id} is not active")
        connection = self.db.get(PowerBIConnection, config.connection_id)
        if not connection:
            raise ValueError(f"Connection {config.connection_id} of sync config {config.id} not found")

        active_job = self.get_active_job(config.id)
        if active_job:
            raise ActiveJobExists(config.id, active_job.id)

        if sync_type is None:
            sync_type = SyncType.INCREMENTAL if config.is_incremental else SyncType.FULL
        today = today or get_local_today(self.settings)
        default_start, default_end = self.compute_window(config, sync_type, today)
        start_date = start_date or default_start
        end_date = end_date or default_end
        total_days = day_count(start_date, end_date)
        if total_days == 0:
            raise ValueError(f"Empty date range {start_date} - {end_date}")

        job = SyncQueueItem(
            connection_id=connection.id,
            config_id=config.id,
            group_id=connection.group_id,
            start_date=start_date,
            end_date=end_date,
            sync_type=sync_type,
            total_days=total_days,
        )
        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)
        logger.info(f"Enqueued job {job.id} for config {config.id}: {start_date} - {end_date} ({total_days} days)")
        return job

    def cancel(self, queue_id: int) -> SyncQueueItem:
        """
        Administrative cancel of a pending or processing job

        Raises:
            LookupError: If the job does not exist
            InvalidJobState: If the job is already terminal
        """
        job = self.get_job(queue_id)
        if not job:
            raise LookupError(f"Queue item {queue_id} not found")
        now = get_current_datetime()
        changed = self._conditional_update(
            queue_id,
            expected_statuses=ACTIVE_QUEUE_STATUSES,
            status=SyncQueueStatus.CANCELLED,
            finished_at=now,
            updated_at=now,
        )
        self.db.refresh(job)
        if not changed:
            raise InvalidJobState(f"Queue item {queue_id} is already {SyncQueueStatus(job.status).value}")
        logger.info(f"Cancelled job {queue_id} at day {job.processed_days}/{job.total_days}")
        return job

    def requeue(self, queue_id: int) -> SyncQueueItem:
        """
        Create a fresh job with the same range as a terminal one

        Raises:
            LookupError: If the job does not exist
            InvalidJobState: If the job is not terminal
            ActiveJobExists: If the config already has an active job
        """
        job = self.get_job(queue_id)
        if not job:
            raise LookupError(f"Queue item {queue_id} not found")
        if job.status not in TERMINAL_QUEUE_STATUSES:
            raise InvalidJobState(f"Queue item {queue_id} is still {SyncQueueStatus(job.status).value}")
        config = self.db.get(SyncConfig, job.config_id)
        if not config:
            raise LookupError(f"Sync config {job.config_id} not found")
        return self.enqueue(config, sync_type=job.sync_type, start_date=job.start_date, end_date=job.end_date)

    def claim(self, queue_id: int) -> bool:
        """Move a pending or processing job to processing"""
        job = self.get_job(queue_id)
        if not job or job.status not in ACTIVE_QUEUE_STATUSES:
            return False
        now = get_current_datetime()
        values = {"status": SyncQueueStatus.PROCESSING, "updated_at": now}
        if job.started_at is None:
            values["started_at"] = now
        return self._conditional_update(queue_id, expected_statuses=ACTIVE_QUEUE_STATUSES, **values)

    def checkpoint(
        self,
        queue_id: int,
        expected_processed_days: int,
        processed_days: int,
        processed_records: int,
        status: SyncQueueStatus,
    ) -> bool:
        """
        Advance the cursor of a processing job.

        Applies only if the job is still processing at expected_processed_days.
        """
        now = get_current_datetime()
        values = {
            "processed_days": processed_days,
            "processed_records": processed_records,
            "status": status,
            "last_error": None,
            "updated_at": now,
        }
        if status in TERMINAL_QUEUE_STATUSES:
            values["finished_at"] = now
        return self._conditional_update(
            queue_id,
            expected_statuses=(SyncQueueStatus.PROCESSING,),
            expected_processed_days=expected_processed_days,
            **values,
        )

    def fail(self, queue_id: int, status: SyncQueueStatus, error: str,
             expected_processed_days: Optional[int] = None) -> bool:
        """Move a processing job to a failure status, keeping its cursor"""
        now = get_current_datetime()
        return self._conditional_update(
            queue_id,
            expected_statuses=(SyncQueueStatus.PROCESSING,),
            expected_processed_days=expected_processed_days,
            status=status,
            last_error=error,
            finished_at=now,
            updated_at=now,
        )

    def _conditional_update(self, queue_id: int, expected_statuses, expected_processed_days: Optional[int] = None,
                            **values) -> bool:
        stmt = (
            update(SyncQueueItem)
            .where(SyncQueueItem.id == queue_id)
            .where(SyncQueueItem.status.in_(expected_statuses))
        )
        if expected_processed_days is not None:
            stmt = stmt.where(SyncQueueItem.processed_days == expected_processed_days)
        result = self.db.execute(stmt.values(**values).execution_options(synchronize_session=False))
        self.db.commit()
        return result.rowcount == 1
