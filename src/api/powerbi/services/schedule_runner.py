import logging
from datetime import date, datetime
from typing import Optional
from sqlmodel import Session
from src.api.common.utils.datetime import ensure_utc, get_current_datetime
from src.api.powerbi.config import SyncSettings
from src.api.powerbi.exceptions import ActiveJobExists
from src.api.powerbi.models.sync_config import SyncConfig
from src.api.powerbi.models.sync_schedule import SyncSchedule
from src.api.powerbi.schemas.sync_schedule import ScheduleRunItem, ScheduleRunResult
from src.api.powerbi.services.queue_service import SyncQueueService, get_local_today
from src.api.powerbi.services.schedule_service import ScheduleService, advance_next_run

logger = logging.getLogger(__name__)


class ScheduleRunner:
    """Turns due schedules into queued jobs"""

    def __init__(self, db: Session, settings: Optional[SyncSettings] = None):
        self.db = db
        self.settings = settings or SyncSettings()
        self.schedule_service = ScheduleService(db, self.settings)
        self.queue_service = SyncQueueService(db, self.settings)

    def run_due_schedules(self, now: Optional[datetime] = None) -> ScheduleRunResult:
        """
        Enqueue a job for every active schedule due at now.

        A config that already has an active job is skipped. Each evaluated
        schedule moves forward by one period whatever the outcome, and a
        failing schedule does not stop the others.
        """
        now = ensure_utc(now or get_current_datetime())
        today = get_local_today(self.settings, now)
        result = ScheduleRunResult(evaluated=0, enqueued=0, skipped=0, errors=0, items=[])

        for schedule in self.schedule_service.get_due_schedules(now):
            schedule_id = schedule.id
            config_id = schedule.sync_config_id
            item = self._run_schedule(schedule, today)
            result.items.append(item)
            result.evaluated += 1
            if item.outcome == "enqueued":
                result.enqueued += 1
            elif item.outcome == "skipped":
                result.skipped += 1
            else:
                result.errors += 1
                logger.error(f"Schedule {schedule_id} (config {config_id}) failed: {item.error}")

        logger.info(f"Evaluated {result.evaluated} schedules: {result.enqueued} enqueued, "
                    f"{result.skipped} skipped, {result.errors} errors")
        return result

    def _run_schedule(self, schedule: SyncSchedule, today: date) -> ScheduleRunItem:
        schedule_id = schedule.id
        config_id = schedule.sync_config_id
        next_run_at = advance_next_run(schedule)
        queue_id = None
        error = None
        try:
            config = self.db.get(SyncConfig, config_id)
            if not config:
                raise ValueError(f"Sync config {config_id} not found")
            queue_id = self.queue_service.enqueue(config, today=today).id
            outcome = "enqueued"
        except ActiveJobExists as e:
            queue_id = e.queue_id
            outcome = "skipped"
        except Exception as e:
            self.db.rollback()
            outcome = "error"
            error = str(e)

        schedule = self.db.get(SyncSchedule, schedule_id)
        schedule.next_run_at = next_run_at
        schedule.updated_at = get_current_datetime()
        self.db.commit()
        return ScheduleRunItem(
            schedule_id=schedule_id,
            config_id=config_id,
            queue_id=queue_id,
            outcome=outcome,
            next_run_at=next_run_at,
            error=error,
        )
