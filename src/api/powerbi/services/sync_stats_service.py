import logging
from datetime import date
from typing import Dict, Optional, Tuple
from sqlmodel import Session, select
from src.api.common.constants.sync import DATED_ENTITY_TYPES, EntityType
from src.api.common.utils.datetime import add_days
from src.api.powerbi.config import SyncSettings
from src.api.powerbi.models.connection import PowerBIConnection
from src.api.powerbi.models.external_records import ExternalCompany, get_entity_model
from src.api.powerbi.models.sync_config import SyncConfig
from src.api.powerbi.schemas.sync_stats import CompanySyncStats, SyncStatsRead
from src.api.powerbi.services.queue_service import get_local_today

DEFAULT_LOOKBACK_DAYS = 30

logger = logging.getLogger(__name__)


class SyncStatsService:
    """Per-company counts and date coverage of already ingested rows"""

    def __init__(self, db: Session, settings: Optional[SyncSettings] = None):
        self.db = db
        self.settings = settings or SyncSettings()

    def get_window(self, config: SyncConfig, today: date) -> Tuple[date, date]:
        if config.is_incremental:
            return add_days(today, -config.incremental_days), today
        if config.initial_date:
            return config.initial_date, today
        return add_days(today, -DEFAULT_LOOKBACK_DAYS), today

    def get_company_stats(self, config: SyncConfig, today: Optional[date] = None) -> SyncStatsRead:
        """
        Aggregate the config's rows in its lookback window by company.

        Rows are read once and grouped in memory.

        Raises:
            ValueError: If the config's entity is not partitioned by date
        """
        entity_type = EntityType(config.entity_type)
        if entity_type not in DATED_ENTITY_TYPES:
            raise ValueError(f"Stats are only available for dated entities, not {entity_type.value}")

        today = today or get_local_today(self.settings)
        start_date, end_date = self.get_window(config, today)
        connection = self.db.get(PowerBIConnection, config.connection_id)
        model = get_entity_model(entity_type)

        rows = self.db.exec(
            select(model.external_company_id, model.record_date)
            .where(model.group_id == connection.group_id)
            .where(model.record_date >= start_date)
            .where(model.record_date <= end_date)
        ).all()

        stats: Dict[Optional[str], CompanySyncStats] = {}
        for company_id, record_date in rows:
            entry = stats.get(company_id)
            if entry is None:
                stats[company_id] = CompanySyncStats(
                    external_company_id=company_id, record_count=1, first_date=record_date, last_date=record_date)
                continue
            entry.record_count += 1
            entry.first_date = min(entry.first_date, record_date)
            entry.last_date = max(entry.last_date, record_date)

        names = self._company_names(connection.group_id)
        for entry in stats.values():
            entry.company_name = names.get(entry.external_company_id)

        companies = sorted(
            stats.values(),
            key=lambda entry: ((entry.company_name or entry.external_company_id or "").lower()),
        )
        logger.info(f"Stats for config {config.id}: {len(rows)} rows across {len(companies)} companies")
        return SyncStatsRead(
            config_id=config.id,
            entity_type=entity_type,
            start_date=start_date,
            end_date=end_date,
            total_records=len(rows),
            companies=companies,
        )

    def _company_names(self, group_id: int) -> Dict[str, str]:
        rows = self.db.exec(
            select(ExternalCompany.external_id, ExternalCompany.name)
            .where(ExternalCompany.group_id == group_id)
        ).all()
        return {external_id: name for external_id, name in rows if name}
