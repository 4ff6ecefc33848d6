import pytest
from datetime import date
from unittest.mock import patch
from sqlalchemy import update
from sqlmodel import select

from src.api.common.constants.sync import DayResultStatus, EntityType, SyncQueueStatus
from src.api.integrations.models.integration_error import IntegrationError
from src.api.powerbi.exceptions import AuthenticationFailure, PersistenceFailure, UpstreamQueryFailure
from src.api.powerbi.models import ExternalCompany, ExternalSale, SyncQueueItem
from src.api.powerbi.services.day_processor import DayProcessor


@pytest.fixture
def processor(test_session, mock_token_provider, mock_powerbi_client, sync_settings):
    return DayProcessor(test_session, mock_token_provider, mock_powerbi_client, sync_settings)


@pytest.fixture
def sales_job(test_session, test_data_factory):
    config = test_data_factory.create_config(test_session)
    return test_data_factory.create_job(test_session, config)


class TestProcessOneDay:
    """Test a single day-processing step"""

    @pytest.mark.asyncio
    async def test_first_day_is_ingested_and_checkpointed(self, processor, sales_job, mock_powerbi_client,
                                                        mock_token_provider, rows_for_queried_day, test_session):
        mock_powerbi_client.execute_query.side_effect = rows_for_queried_day()

        result = await processor.process_one_day(sales_job.id)

        assert result.status == DayResultStatus.PROCESSING
        assert result.day == date(2024, 1, 1)
        assert result.day_records == 2
        assert result.processed_days == 1
        assert result.processed_records == 2
        assert result.has_more is True
        assert result.progress == 10

        args = mock_powerbi_client.execute_query.call_args.args
        assert args[:3] == ("workspace-123", "dataset-123", "test-token")
        assert "VendaItemGeral[dt_contabil] >= DATE(2024, 1, 1)" in args[3]
        assert "VendaItemGeral[dt_contabil] <= DATE(2024, 1, 1)" in args[3]
        credentials = mock_token_provider.get_token.call_args.args[0]
        assert credentials.client_secret == "secret-123"

        job = test_session.get(SyncQueueItem, sales_job.id)
        assert job.status == SyncQueueStatus.PROCESSING
        assert job.started_at is not None
        assert len(test_session.exec(select(ExternalSale)).all()) == 2

    @pytest.mark.asyncio
    async def test_job_runs_to_completion(self, processor, sales_job, mock_powerbi_client, rows_for_queried_day):
        mock_powerbi_client.execute_query.side_effect = rows_for_queried_day()

        processed_days = []
        for _ in range(10):
            result = await processor.process_one_day(sales_job.id)
            processed_days.append(result.processed_days)

        assert processed_days == list(range(1, 11))
        assert result.status == DayResultStatus.COMPLETED
        assert result.processed_records == 20
        assert result.has_more is False
        assert result.progress == 100

    @pytest.mark.asyncio
    async def test_multi_day_batches(self, processor, test_session, test_data_factory, mock_powerbi_client):
        config = test_data_factory.create_config(test_session, days_per_batch=3)
        job = test_data_factory.create_job(test_session, config)

        processed_days = [(await processor.process_one_day(job.id)).processed_days for _ in range(4)]

        assert processed_days == [3, 6, 9, 10]
        last_query = mock_powerbi_client.execute_query.call_args.args[3]
        assert ">= DATE(2024, 1, 10)" in last_query
        assert "<= DATE(2024, 1, 10)" in last_query

    @pytest.mark.asyncio
    async def test_job_without_any_rows_ends_empty(self, processor, sales_job):
        for _ in range(10):
            result = await processor.process_one_day(sales_job.id)

        assert result.status == DayResultStatus.EMPTY
        assert result.processed_days == 10
        assert result.processed_records == 0

    @pytest.mark.asyncio
    async def test_job_with_data_on_some_day_is_completed(self, processor, sales_job, mock_powerbi_client,
                                                          make_sales_row):
        mock_powerbi_client.execute_query.side_effect = [[make_sales_row("2024-01-01", "S-1")]] + [[]] * 9

        for _ in range(10):
            result = await processor.process_one_day(sales_job.id)

        assert result.status == DayResultStatus.COMPLETED
        assert result.processed_records == 1

    @pytest.mark.asyncio
    async def test_terminal_job_is_not_touched(self, processor, test_session, test_data_factory,
                                               mock_powerbi_client):
        config = test_data_factory.create_config(test_session)
        job = test_data_factory.create_job(test_session, config, status=SyncQueueStatus.COMPLETED,
                                           processed_days=10, processed_records=5)

        result = await processor.process_one_day(job.id)

        assert result.status == DayResultStatus.COMPLETED
        assert result.processed_days == 10
        assert result.processed_records == 5
        mock_powerbi_client.execute_query.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_job(self, processor):
        result = await processor.process_one_day(999)

        assert result.status == DayResultStatus.NOT_FOUND

    @pytest.mark.asyncio
    async def test_processing_job_is_resumed_from_checkpoint(self, processor, test_session, test_data_factory,
                                                             mock_powerbi_client):
        config = test_data_factory.create_config(test_session)
        job = test_data_factory.create_job(test_session, config, status=SyncQueueStatus.PROCESSING,
                                           processed_days=4)

        result = await processor.process_one_day(job.id)

        assert result.day == date(2024, 1, 5)
        assert result.processed_days == 5

    @pytest.mark.asyncio
    async def test_reprocessing_the_same_day_keeps_row_count(self, processor, sales_job, mock_powerbi_client,
                                                             rows_for_queried_day, test_session):
        mock_powerbi_client.execute_query.side_effect = rows_for_queried_day()

        first = await processor.process_one_day(sales_job.id)
        processor.queue_service.cancel(sales_job.id)
        rerun = processor.queue_service.requeue(sales_job.id)
        second = await processor.process_one_day(rerun.id)

        assert first.day == second.day == date(2024, 1, 1)
        assert second.day_records == 2
        assert len(test_session.exec(select(ExternalSale)).all()) == 2


class TestProcessOneDayFailures:
    """Test how failures end or keep a job"""

    @pytest.mark.asyncio
    async def test_authentication_failure_ends_job_as_fetch_error(self, processor, sales_job,
                                                                  mock_token_provider, mock_powerbi_client,
                                                                  test_session):
        mock_token_provider.get_token.side_effect = AuthenticationFailure("invalid_client")

        result = await processor.process_one_day(sales_job.id)

        assert result.status == DayResultStatus.FETCH_ERROR
        assert "invalid_client" in result.error
        mock_powerbi_client.execute_query.assert_not_called()
        job = test_session.get(SyncQueueItem, sales_job.id)
        assert job.status == SyncQueueStatus.FETCH_ERROR
        assert job.processed_days == 0
        assert job.finished_at is not None

    @pytest.mark.asyncio
    async def test_query_failure_ends_job_as_day_error_keeping_cursor(self, processor, test_session,
                                                                      test_data_factory, mock_powerbi_client):
        config = test_data_factory.create_config(test_session)
        job = test_data_factory.create_job(test_session, config, status=SyncQueueStatus.PROCESSING,
                                           processed_days=3, processed_records=6)
        mock_powerbi_client.execute_query.side_effect = UpstreamQueryFailure(
            "Query failed with status 400: bad DAX", status_code=400)

        result = await processor.process_one_day(job.id)

        assert result.status == DayResultStatus.DAY_ERROR
        assert result.day == date(2024, 1, 4)
        assert "bad DAX" in result.error
        test_session.refresh(job)
        assert job.status == SyncQueueStatus.DAY_ERROR
        assert job.processed_days == 3
        assert job.processed_records == 6
        assert job.last_error == "Query failed with status 400: bad DAX"

    @pytest.mark.asyncio
    async def test_persistence_failure_ends_job_as_day_error(self, processor, sales_job, mock_powerbi_client,
                                                             make_sales_row):
        mock_powerbi_client.execute_query.return_value = [make_sales_row("2024-01-01", "S-1")]

        with patch.object(processor.writer, "upsert", side_effect=PersistenceFailure("constraint violated")):
            result = await processor.process_one_day(sales_job.id)

        assert result.status == DayResultStatus.DAY_ERROR
        assert result.processed_days == 0
        assert result.error == "constraint violated"

    @pytest.mark.asyncio
    async def test_missing_credentials_end_job_as_day_error(self, processor, test_session, test_data_factory,
                                                            mock_token_provider):
        connection = test_data_factory.create_connection(test_session, workspace_id="")
        config = test_data_factory.create_config(test_session, connection_id=connection.id)
        job = test_data_factory.create_job(test_session, config)

        result = await processor.process_one_day(job.id)

        assert result.status == DayResultStatus.DAY_ERROR
        assert result.error == "Missing fields: workspace_id"
        mock_token_provider.get_token.assert_not_called()

    @pytest.mark.asyncio
    async def test_mapping_failures_are_skipped_and_logged(self, processor, sales_job, mock_powerbi_client,
                                                           make_sales_row, test_session):
        bad_row = make_sales_row("2024-01-01", "S-2")
        bad_row["VendaItemGeral[CodigoMaterial]"] = None
        mock_powerbi_client.execute_query.return_value = [make_sales_row("2024-01-01", "S-1"), bad_row]

        result = await processor.process_one_day(sales_job.id)

        assert result.status == DayResultStatus.PROCESSING
        assert result.day_records == 1
        assert result.skipped_records == 1

        error = test_session.exec(select(IntegrationError)).one()
        assert error.integration_name == "powerbi"
        assert error.operation_type == "mapping"
        assert error.external_id == f"{sales_job.id}:2024-01-01"
        assert error.entity_type == "sales"
        assert error.queue_item_id == sales_job.id
        assert error.error_details["skipped"] == 1
        assert error.error_details["rows"] == 2
        assert error.error_details["reasons"][0]["external_id"] == "S-2"


class TestConcurrentProcessing:
    """Test that concurrent invocations cannot double-advance a job"""

    @pytest.mark.asyncio
    async def test_checkpoint_moved_by_another_invocation_returns_busy(self, processor, sales_job,
                                                                       mock_powerbi_client, test_session):
        async def concurrent_advance(*args, **kwargs):
            test_session.execute(
                update(SyncQueueItem).where(SyncQueueItem.id == sales_job.id).values(processed_days=1))
            test_session.commit()
            return []
        mock_powerbi_client.execute_query.side_effect = concurrent_advance

        result = await processor.process_one_day(sales_job.id)

        assert result.status == DayResultStatus.BUSY
        job = test_session.get(SyncQueueItem, sales_job.id)
        assert job.processed_days == 1

    @pytest.mark.asyncio
    async def test_cancel_during_processing_is_kept(self, processor, sales_job, mock_powerbi_client,
                                                    make_sales_row, test_session):
        async def cancel_meanwhile(*args, **kwargs):
            processor.queue_service.cancel(sales_job.id)
            return [make_sales_row("2024-01-01", "S-1")]
        mock_powerbi_client.execute_query.side_effect = cancel_meanwhile

        result = await processor.process_one_day(sales_job.id)

        assert result.status == DayResultStatus.CANCELLED
        job = test_session.get(SyncQueueItem, sales_job.id)
        assert job.status == SyncQueueStatus.CANCELLED
        assert job.processed_days == 0

    @pytest.mark.asyncio
    async def test_checkpoint_never_moves_backwards_or_past_total(self, processor, sales_job,
                                                                  mock_powerbi_client, make_sales_row,
                                                                  test_session):
        calls = []

        async def execute_query(*args, **kwargs):
            calls.append(args[3])
            if len(calls) == 3:
                # Another invocation commits a window first
                test_session.execute(
                    update(SyncQueueItem).where(SyncQueueItem.id == sales_job.id)
                    .values(processed_days=SyncQueueItem.processed_days + 1))
                test_session.commit()
            if len(calls) == 5:
                raise UpstreamQueryFailure("Query failed with status 500: timeout", status_code=500)
            return [make_sales_row("2024-01-01", f"S-{len(calls)}")]
        mock_powerbi_client.execute_query.side_effect = execute_query

        results = [await processor.process_one_day(sales_job.id) for _ in range(6)]

        processed_days = [result.processed_days for result in results]
        assert [result.status for result in results] == [
            DayResultStatus.PROCESSING,
            DayResultStatus.PROCESSING,
            DayResultStatus.BUSY,
            DayResultStatus.PROCESSING,
            DayResultStatus.DAY_ERROR,
            DayResultStatus.DAY_ERROR,
        ]
        assert processed_days == [1, 2, 3, 4, 4, 4]
        assert processed_days == sorted(processed_days)
        assert max(processed_days) <= sales_job.total_days
        test_session.refresh(sales_job)
        assert sales_job.processed_days == 4

    @pytest.mark.asyncio
    async def test_finished_job_stays_at_total_days(self, processor, test_session, test_data_factory,
                                                    rows_for_queried_day, mock_powerbi_client):
        config = test_data_factory.create_config(test_session, days_per_batch=4)
        job = test_data_factory.create_job(test_session, config)
        mock_powerbi_client.execute_query.side_effect = rows_for_queried_day()

        processed_days = [(await processor.process_one_day(job.id)).processed_days for _ in range(5)]

        assert processed_days == [4, 8, 10, 10, 10]
        test_session.refresh(job)
        assert job.status == SyncQueueStatus.COMPLETED
        assert job.processed_days == job.total_days == 10


class TestSnapshotEntities:
    @pytest.mark.asyncio
    async def test_snapshot_is_ingested_in_one_step(self, processor, test_session, test_data_factory,
                                                    mock_powerbi_client):
        config = test_data_factory.create_config(
            test_session,
            entity_type=EntityType.COMPANIES,
            query_template="EVALUATE Empresas",
            field_mapping={"Empresas[codigo]": "codigo", "Empresas[Nome]": "name"},
            date_field=None,
        )
        job = test_data_factory.create_job(test_session, config, total_days=1,
                                           start_date=date(2024, 1, 10), end_date=date(2024, 1, 10))
        mock_powerbi_client.execute_query.return_value = [
            {"Empresas[codigo]": 1, "Empresas[Nome]": "Loja Centro"},
            {"Empresas[codigo]": 2, "Empresas[Nome]": "Loja Norte"},
        ]

        result = await processor.process_one_day(job.id)

        assert result.status == DayResultStatus.COMPLETED
        assert result.processed_days == 1
        assert mock_powerbi_client.execute_query.call_args.args[3] == "EVALUATE TOPN(5000, Empresas)"
        names = {company.name for company in test_session.exec(select(ExternalCompany)).all()}
        assert names == {"Loja Centro", "Loja Norte"}


class TestPreviewDay:
    @pytest.mark.asyncio
    async def test_preview_maps_without_writing(self, processor, test_session, test_data_factory,
                                                mock_powerbi_client, make_sales_row):
        config = test_data_factory.create_config(test_session)
        mock_powerbi_client.execute_query.return_value = [
            make_sales_row("2024-02-01", "S-1"),
            make_sales_row("2024-02-01", "S-2"),
        ]

        preview = await processor.preview_day(config, day=date(2024, 2, 1), limit=1)

        assert preview.day == date(2024, 2, 1)
        assert "DATE(2024, 2, 1)" in preview.query
        assert preview.row_count == 2
        assert preview.mapped_count == 2
        assert len(preview.sample_records) == 1
        assert preview.sample_records[0]["record_date"] == "2024-02-01"
        assert test_session.exec(select(ExternalSale)).all() == []

    @pytest.mark.asyncio
    async def test_preview_of_unusable_config(self, processor, test_session, test_data_factory):
        config = test_data_factory.create_config(test_session, dataset_id="")

        with pytest.raises(ValueError, match="dataset_id"):
            await processor.preview_day(config)
