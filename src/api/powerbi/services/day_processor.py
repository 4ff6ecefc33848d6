import logging
from datetime import date
from typing import Dict, List, Optional, Tuple
from sqlmodel import Session
from src.api.common.constants.sync import (
    DayResultStatus,
    EntityType,
    SyncQueueStatus,
    TERMINAL_QUEUE_STATUSES,
)
from src.api.common.utils.datetime import day_count, get_batch_window
from src.api.integrations.powerbi import PowerBIClient, TokenProvider
from src.api.integrations.powerbi.dax import build_day_query
from src.api.integrations.utils.error_logger import log_integration_error
from src.api.powerbi.config import SyncSettings
from src.api.powerbi.exceptions import (
    AuthenticationFailure,
    MappingFailure,
    PersistenceFailure,
    UpstreamQueryFailure,
)
from src.api.powerbi.models.connection import PowerBIConnection
from src.api.powerbi.models.sync_config import SyncConfig
from src.api.powerbi.models.sync_queue import SyncQueueItem
from src.api.powerbi.schemas.sync_queue import DayResult, QueryPreviewResult
from src.api.powerbi.services.connection_service import get_credentials
from src.api.powerbi.services.queue_service import SyncQueueService, get_local_today
from src.api.powerbi.services.record_mapper import map_rows
from src.api.powerbi.services.upsert_writer import UpsertWriter

INTEGRATION_NAME = "powerbi"

# Columns some datasets lack; the query is retried once without them
OPTIONAL_COLUMNS: Dict[EntityType, Tuple[str, ...]] = {
    EntityType.CASH_FLOW: ("Periodo",),
}

# Mapping failures kept in the integration error details
MAX_REPORTED_FAILURES = 5

logger = logging.getLogger(__name__)


class DayProcessor:
    """
    Processes one batch window (days_per_batch days) of a job and advances
    its checkpoint.
    """

    def __init__(
        self,
        db: Session,
        token_provider: TokenProvider,
        client: Optional[PowerBIClient] = None,
        settings: Optional[SyncSettings] = None,
    ):
        self.db = db
        self.token_provider = token_provider
        self.client = client or PowerBIClient(token_provider.config)
        self.settings = settings or SyncSettings()
        self.queue_service = SyncQueueService(db, self.settings)
        self.writer = UpsertWriter(db, self.settings.upsert_batch_size)

    async def process_one_day(self, queue_id: int) -> DayResult:
        """
        Run the next batch window of a job.

        Terminal jobs are returned unchanged. Authentication failures end the
        job as fetch_error; query and persistence failures as day_error.
        Rows that fail mapping are recorded and skipped.

        Returns:
            DayResult: Outcome of the step; status busy means another
                invocation moved the job while this one was working
        """
        job = self.queue_service.get_job(queue_id)
        if not job:
            return DayResult(queue_id=queue_id, status=DayResultStatus.NOT_FOUND, error="Queue item not found")
        if job.status in TERMINAL_QUEUE_STATUSES:
            return self._result(job)

        if not self.queue_service.claim(queue_id):
            return self._lost_race(queue_id)
        self.db.refresh(job)
        expected_days = job.processed_days

        config = self.db.get(SyncConfig, job.config_id)
        connection = self.db.get(PowerBIConnection, job.connection_id)
        setup_error = self._validate_setup(config, connection)
        if setup_error:
            return self._fail(job, expected_days, SyncQueueStatus.DAY_ERROR, setup_error)

        if config.is_dated:
            window = get_batch_window(job.start_date, job.end_date, expected_days, config.days_per_batch)
            if window is None:
                return self._finish_without_query(job, expected_days)
            batch_start, batch_end = window
            batch_days = day_count(batch_start, batch_end)
        else:
            # Snapshot entities are ingested whole in one step
            batch_start = batch_end = None
            batch_days = max(job.total_days - expected_days, 0)

        try:
            token = await self.token_provider.get_token(get_credentials(connection))
        except AuthenticationFailure as e:
            logger.error(f"Authentication failed for job {job.id}: {e}")
            return self._fail(job, expected_days, SyncQueueStatus.FETCH_ERROR, f"Authentication failed: {e}")

        query = build_day_query(config.query_template, config.date_field, batch_start, batch_end)
        try:
            rows = await self.client.execute_query(
                connection.workspace_id,
                config.dataset_id,
                token,
                query,
                optional_columns=OPTIONAL_COLUMNS.get(EntityType(config.entity_type), ()),
            )
        except UpstreamQueryFailure as e:
            logger.error(f"Query failed for job {job.id} day {batch_start}: {e}")
            return self._fail(job, expected_days, SyncQueueStatus.DAY_ERROR, str(e), day=batch_start)

        mapping = map_rows(rows, config.field_mapping or {}, config.entity_type, job.group_id)
        if mapping.failures:
            self._record_mapping_failures(job, config, batch_start, len(rows), mapping.failures)

        try:
            written = self.writer.upsert(config.entity_type, mapping.records)
        except PersistenceFailure as e:
            return self._fail(job, expected_days, SyncQueueStatus.DAY_ERROR, str(e), day=batch_start)

        processed_days = min(expected_days + batch_days, job.total_days)
        processed_records = job.processed_records + written
        status = self._next_status(processed_days, job.total_days, processed_records)
        if not self.queue_service.checkpoint(job.id, expected_days, processed_days, processed_records, status):
            return self._lost_race(job.id, day=batch_start)

        self.db.refresh(job)
        logger.info(f"Job {job.id} day {batch_start}: {written} records, {len(mapping.failures)} skipped, "
                    f"{job.processed_days}/{job.total_days} days")
        return self._result(job, day=batch_start, day_records=written, skipped_records=len(mapping.failures))

    async def preview_day(self, config: SyncConfig, day: Optional[date] = None, limit: int = 5) -> QueryPreviewResult:
        """
        Run a config's query for one day and map the rows without writing.

        Raises:
            ValueError: If the config cannot be run
            AuthenticationFailure: If no token can be obtained
            UpstreamQueryFailure: If the query fails
        """
        connection = self.db.get(PowerBIConnection, config.connection_id)
        setup_error = self._validate_setup(config, connection)
        if setup_error:
            raise ValueError(setup_error)
        if config.is_dated:
            day = day or get_local_today(self.settings)
        else:
            day = None

        token = await self.token_provider.get_token(get_credentials(connection))
        query = build_day_query(config.query_template, config.date_field, day, day)
        rows = await self.client.execute_query(
            connection.workspace_id,
            config.dataset_id,
            token,
            query,
            optional_columns=OPTIONAL_COLUMNS.get(EntityType(config.entity_type), ()),
        )
        mapping = map_rows(rows, config.field_mapping or {}, config.entity_type, connection.group_id)
        return QueryPreviewResult(
            config_id=config.id,
            day=day,
            query=query,
            row_count=len(rows),
            mapped_count=len(mapping.records),
            skipped_count=len(mapping.failures),
            sample_rows=rows[:limit],
            sample_records=[
                {key: value.isoformat() if isinstance(value, date) else value for key, value in record.items()}
                for record in mapping.records[:limit]
            ],
            errors=[str(failure) for failure in mapping.failures[:limit]],
        )

    @staticmethod
    def _next_status(processed_days: int, total_days: int, processed_records: int) -> SyncQueueStatus:
        if processed_days < total_days:
            return SyncQueueStatus.PROCESSING
        # A finished job is empty only if no day in its range produced data
        return SyncQueueStatus.COMPLETED if processed_records > 0 else SyncQueueStatus.EMPTY

    @staticmethod
    def _validate_setup(config: Optional[SyncConfig], connection: Optional[PowerBIConnection]) -> Optional[str]:
        if not config:
            return "Sync config not found"
        if not connection:
            return "Connection not found"
        missing = connection.missing_credential_fields()
        if not config.dataset_id:
            missing.append("dataset_id")
        if missing:
            return f"Missing fields: {', '.join(missing)}"
        return None

    def _finish_without_query(self, job: SyncQueueItem, expected_days: int) -> DayResult:
        status = self._next_status(job.total_days, job.total_days, job.processed_records)
        if not self.queue_service.checkpoint(job.id, expected_days, job.total_days, job.processed_records, status):
            return self._lost_race(job.id)
        self.db.refresh(job)
        return self._result(job)

    def _fail(self, job: SyncQueueItem, expected_days: int, status: SyncQueueStatus, error: str,
              day: Optional[date] = None) -> DayResult:
        if not self.queue_service.fail(job.id, status, error, expected_processed_days=expected_days):
            return self._lost_race(job.id, day=day)
        self.db.refresh(job)
        return self._result(job, day=day, error=error)

    def _lost_race(self, queue_id: int, day: Optional[date] = None) -> DayResult:
        job = self.queue_service.get_job(queue_id)
        self.db.refresh(job)
        if job.status in TERMINAL_QUEUE_STATUSES:
            return self._result(job, day=day)
        return self._result(job, day=day, status=DayResultStatus.BUSY,
                            error="Queue item is being processed by another invocation")

    def _record_mapping_failures(self, job: SyncQueueItem, config: SyncConfig, day: Optional[date],
                                 row_count: int, failures: List[MappingFailure]) -> None:
        day_label = day.isoformat() if day else "snapshot"
        log_integration_error(
            self.db,
            integration_name=INTEGRATION_NAME,
            operation_type="mapping",
            external_id=f"{job.id}:{day_label}",
            entity_type=EntityType(config.entity_type).value,
            error_message=f"{len(failures)}/{row_count} rows skipped: {failures[0]}",
            error_details={
                "day": day_label,
                "skipped": len(failures),
                "rows": row_count,
                "reasons": [
                    {"external_id": failure.external_id, "error": str(failure)}
                    for failure in failures[:MAX_REPORTED_FAILURES]
                ],
            },
            queue_item_id=job.id,
            config_id=config.id,
        )

    @staticmethod
    def _result(job: SyncQueueItem, day: Optional[date] = None, day_records: int = 0, skipped_records: int = 0,
                status: Optional[DayResultStatus] = None, error: Optional[str] = None) -> DayResult:
        return DayResult(
            queue_id=job.id,
            status=status or DayResultStatus(SyncQueueStatus(job.status).value),
            day=day,
            day_records=day_records,
            skipped_records=skipped_records,
            processed_days=job.processed_days,
            total_days=job.total_days,
            processed_records=job.processed_records,
            has_more=job.status in (SyncQueueStatus.PENDING, SyncQueueStatus.PROCESSING)
                     and job.processed_days < job.total_days,
            progress=job.progress,
            error=error if error is not None else job.last_error,
        )
