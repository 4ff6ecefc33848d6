import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional
from src.api.common.constants.sync import (
    DayResultStatus,
    SyncQueueStatus,
    STOP_DRAINING_STATUSES,
)
from src.api.powerbi.config import SyncSettings
from src.api.powerbi.schemas.sync_queue import DrainItemResult, DrainResult
from src.api.powerbi.services.day_processor import DayProcessor

logger = logging.getLogger(__name__)


class QueueDrainer:
    """
    Time-boxed loop over the oldest active jobs.

    Jobs are processed one at a time, one batch window per iteration, until
    each reaches a stopping status or the budget runs out. A job interrupted
    by the budget stays processing and is resumed by a later drain.
    """

    def __init__(
        self,
        processor: DayProcessor,
        settings: Optional[SyncSettings] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.processor = processor
        self.queue_service = processor.queue_service
        self.settings = settings or processor.settings
        self.clock = clock
        self.sleep = sleep

    async def drain(self, budget_seconds: Optional[float] = None, max_items: Optional[int] = None) -> DrainResult:
        budget = self.settings.drain_budget_seconds if budget_seconds is None else budget_seconds
        limit = max_items or self.settings.drain_max_items
        started = self.clock()
        result = DrainResult()

        for job in self.queue_service.get_drainable_jobs(limit):
            if self._elapsed(started) >= budget:
                break
            item = await self._drain_job(job.id, started, budget)
            result.results.append(item)
            result.processed += 1
            if item.timed_out:
                break

        result.elapsed_seconds = round(self._elapsed(started), 3)
        logger.info(f"Drained {result.processed} jobs in {result.elapsed_seconds}s")
        return result

    async def _drain_job(self, queue_id: int, started: float, budget: float) -> DrainItemResult:
        item = DrainItemResult(queue_id=queue_id, status=DayResultStatus.PROCESSING)
        while self._elapsed(started) < budget:
            if item.iterations:
                await self.sleep(self.settings.drain_delay_seconds)
                if self._elapsed(started) >= budget:
                    break
            try:
                day = await asyncio.wait_for(
                    self.processor.process_one_day(queue_id),
                    timeout=budget - self._elapsed(started),
                )
            except asyncio.TimeoutError:
                # Cut before its checkpoint: the job keeps its cursor and resumes on a later drain
                logger.warning(f"Job {queue_id} step exceeded the remaining budget of {budget}s")
                self.processor.db.rollback()
                item.timed_out = True
                break
            except Exception as e:
                logger.error(f"Error processing job {queue_id}: {e}")
                self.processor.db.rollback()
                self.queue_service.fail(queue_id, SyncQueueStatus.FETCH_ERROR, str(e))
                item.status = DayResultStatus.FETCH_ERROR
                item.error = str(e)
                break

            item.iterations += 1
            item.records += day.day_records
            item.status = day.status
            item.error = day.error
            if day.status in STOP_DRAINING_STATUSES:
                break
        return item

    def _elapsed(self, started: float) -> float:
        return self.clock() - started
