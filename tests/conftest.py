import pytest
import os
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, Mock
from sqlmodel import Session, SQLModel, create_engine
from sqlalchemy.pool import StaticPool
from cryptography.fernet import Fernet

# Import all models to ensure they're registered with SQLModel
from src.api.common.constants.sync import EntityType, ScheduleType, SyncQueueStatus, SyncType
from src.api.integrations.models.integration_error import IntegrationError
from src.api.integrations.powerbi import PowerBIConfig, TokenCache
from src.api.powerbi.config import SyncSettings
from src.api.powerbi.models import PowerBIConnection, SyncConfig, SyncQueueItem, SyncSchedule

SALES_QUERY = """EVALUATE
SUMMARIZECOLUMNS(
    VendaItemGeral[Empresa],
    VendaItemGeral[idVenda],
    VendaItemGeral[dt_contabil],
    VendaItemGeral[CodigoMaterial],
    "quantity", [Quantidades],
    "total_value", [Vendas Valor]
)"""

SALES_MAPPING = {
    "VendaItemGeral[idVenda]": "external_id",
    "VendaItemGeral[Empresa]": "external_company_id",
    "VendaItemGeral[dt_contabil]": "sale_date",
    "VendaItemGeral[CodigoMaterial]": "external_product_id",
    "[quantity]": "quantity",
    "[total_value]": "total_value",
}


@pytest.fixture(scope="session")
def test_encryption_key():
    """Provide a test encryption key for testing encrypted fields"""
    return Fernet.generate_key().decode()


@pytest.fixture(scope="session", autouse=True)
def setup_test_env(test_encryption_key):
    """Setup test environment variables"""
    os.environ["ENCRYPTION_KEY"] = test_encryption_key
    os.environ["ENV"] = "test"
    yield
    # Cleanup
    if "ENCRYPTION_KEY" in os.environ:
        del os.environ["ENCRYPTION_KEY"]
    if "ENV" in os.environ:
        del os.environ["ENV"]


@pytest.fixture
def test_engine():
    """Create an in-memory SQLite database for testing"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture
def test_session(test_engine):
    """Create a test database session"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def sync_settings():
    """Settings with no throttling delay and a known cron secret"""
    return SyncSettings(
        cron_secret="test-cron-secret-0123456789",
        drain_budget_seconds=270,
        drain_max_items=5,
        drain_delay_seconds=0,
        upsert_batch_size=200,
        schedule_timezone="America/Sao_Paulo",
        default_initial_date=date(2024, 1, 1),
    )


@pytest.fixture
def powerbi_config():
    return PowerBIConfig(
        authority_url="https://login.example.com",
        api_url="https://api.example.com/v1.0/myorg",
        scope="https://analysis.example.com/.default",
        timeout_seconds=30,
        token_safety_margin_seconds=600,
    )


@pytest.fixture
def token_cache():
    return TokenCache()


@pytest.fixture
def mock_token_provider(powerbi_config):
    """Token provider that always hands out the same token"""
    provider = Mock()
    provider.config = powerbi_config
    provider.get_token = AsyncMock(return_value="test-token")
    return provider


@pytest.fixture
def mock_powerbi_client():
    client = Mock()
    client.execute_query = AsyncMock(return_value=[])
    return client


def sales_row(day: str, sale_id: str, company: str = "1", product: str = "P1",
              quantity: float = 1, total_value: float = 10.0) -> dict:
    """Row shaped like an executeQueries result for SALES_QUERY"""
    return {
        "VendaItemGeral[Empresa]": company,
        "VendaItemGeral[idVenda]": sale_id,
        "VendaItemGeral[dt_contabil]": f"{day}T00:00:00",
        "VendaItemGeral[CodigoMaterial]": product,
        "[quantity]": quantity,
        "[total_value]": total_value,
    }


def queried_day_rows(per_day: int = 2):
    """Fake executeQueries returning rows dated on the day the query asks for"""
    async def execute_query(workspace_id, dataset_id, token, query, optional_columns=()):
        day = query.split(">= DATE(", 1)[1].split(")", 1)[0]
        year, month, day_of_month = (int(part) for part in day.split(", "))
        iso_day = date(year, month, day_of_month).isoformat()
        return [sales_row(iso_day, f"{iso_day}-{index}") for index in range(per_day)]
    return execute_query


# Test data factories
class TestDataFactory:
    @staticmethod
    def create_connection(session: Session, **kwargs) -> PowerBIConnection:
        """Create a test connection with an encrypted secret"""
        data = {
            "name": "Test Connection",
            "group_id": 1,
            "tenant_id": "tenant-123",
            "client_id": "client-123",
            "workspace_id": "workspace-123",
        }
        secret = kwargs.pop("client_secret", "secret-123")
        data.update(kwargs)

        connection = PowerBIConnection(**data, encrypted_client_secret="")
        connection.client_secret = secret
        session.add(connection)
        session.commit()
        session.refresh(connection)
        return connection

    @staticmethod
    def create_config(session: Session, connection_id: int = None, **kwargs) -> SyncConfig:
        """Create a test sales config ingesting one day per batch"""
        if connection_id is None:
            connection_id = TestDataFactory.create_connection(session).id

        data = {
            "name": "Sales",
            "connection_id": connection_id,
            "entity_type": EntityType.SALES,
            "dataset_id": "dataset-123",
            "query_template": SALES_QUERY,
            "field_mapping": SALES_MAPPING,
            "is_incremental": False,
            "incremental_days": 7,
            "initial_date": date(2024, 1, 1),
            "days_per_batch": 1,
            "date_field": "dt_contabil",
        }
        data.update(kwargs)

        config = SyncConfig(**data)
        session.add(config)
        session.commit()
        session.refresh(config)
        return config

    @staticmethod
    def create_job(session: Session, config: SyncConfig, **kwargs) -> SyncQueueItem:
        """Create a pending job over the config's range"""
        data = {
            "connection_id": config.connection_id,
            "config_id": config.id,
            "group_id": 1,
            "start_date": date(2024, 1, 1),
            "end_date": date(2024, 1, 10),
            "sync_type": SyncType.FULL,
            "total_days": 10,
            "status": SyncQueueStatus.PENDING,
        }
        data.update(kwargs)

        job = SyncQueueItem(**data)
        session.add(job)
        session.commit()
        session.refresh(job)
        return job

    @staticmethod
    def create_schedule(session: Session, config: SyncConfig, **kwargs) -> SyncSchedule:
        data = {
            "sync_config_id": config.id,
            "schedule_type": ScheduleType.DAILY,
            "time_of_day": "03:00",
            "next_run_at": datetime(2024, 1, 10, 6, 0, tzinfo=timezone.utc),
        }
        data.update(kwargs)

        schedule = SyncSchedule(**data)
        session.add(schedule)
        session.commit()
        session.refresh(schedule)
        return schedule


@pytest.fixture
def test_data_factory():
    """Provide test data factory"""
    return TestDataFactory


@pytest.fixture
def make_sales_row():
    return sales_row


@pytest.fixture
def rows_for_queried_day():
    return queried_day_rows


@pytest.fixture
def sales_mapping():
    return dict(SALES_MAPPING)
