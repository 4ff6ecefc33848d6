from datetime import date
from typing import Optional, Dict
from sqlmodel import Field, Relationship, Column, JSON
from src.api.common.constants.sync import EntityType, DATED_ENTITY_TYPES
from src.api.common.models.base import BaseModel, TimestampMixin
from src.api.powerbi.models.connection import PowerBIConnection


class SyncConfig(BaseModel, TimestampMixin, table=True):
    """
    Ingestion recipe for one (connection, entity type).
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    name: Optional[str] = None

    connection_id: int = Field(foreign_key="powerbiconnection.id", index=True)
    connection: Optional[PowerBIConnection] = Relationship()

    entity_type: EntityType = Field(index=True)
    dataset_id: str
    # DAX query; the day filter is injected on the date_field
    query_template: str
    # {upstream column: local field}
    field_mapping: Dict[str, str] = Field(default={}, sa_column=Column(JSON))

    is_incremental: bool = Field(default=False)
    incremental_days: int = Field(default=7)
    initial_date: Optional[date] = None
    days_per_batch: int = Field(default=1, ge=1, le=365)
    date_field: Optional[str] = None

    is_active: bool = Field(default=True, index=True)

    @property
    def is_dated(self) -> bool:
        """Whether the config is ingested day by day"""
        return bool(self.date_field) and EntityType(self.entity_type) in DATED_ENTITY_TYPES

    class Config:
        from_attributes = True
