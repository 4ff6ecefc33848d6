from typing import List, Optional
from datetime import date
from pydantic import BaseModel
from src.api.common.constants.sync import EntityType


class CompanySyncStats(BaseModel):
    external_company_id: Optional[str] = None
    company_name: Optional[str] = None
    record_count: int
    first_date: Optional[date] = None
    last_date: Optional[date] = None


class SyncStatsRead(BaseModel):
    config_id: int
    entity_type: EntityType
    start_date: date
    end_date: date
    total_records: int
    companies: List[CompanySyncStats]
