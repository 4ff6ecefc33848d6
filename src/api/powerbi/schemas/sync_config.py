from typing import Optional, Dict
from datetime import date, datetime
from pydantic import BaseModel, Field, field_validator
from src.api.common.constants.sync import EntityType


class SyncConfigBase(BaseModel):
    name: Optional[str] = None
    connection_id: int
    entity_type: EntityType
    dataset_id: str
    query_template: str
    field_mapping: Dict[str, str] = Field(default_factory=dict, description="{upstream column: local field}")
    is_incremental: bool = False
    incremental_days: int = Field(default=7, ge=0)
    initial_date: Optional[date] = None
    days_per_batch: int = Field(default=1, ge=1, le=365)
    date_field: Optional[str] = None
    is_active: bool = True


class SyncConfigCreate(SyncConfigBase):
    pass


class SyncConfigUpdate(BaseModel):
    name: Optional[str] = None
    dataset_id: Optional[str] = None
    query_template: Optional[str] = None
    field_mapping: Optional[Dict[str, str]] = None
    is_incremental: Optional[bool] = None
    incremental_days: Optional[int] = Field(default=None, ge=0)
    initial_date: Optional[date] = None
    days_per_batch: Optional[int] = Field(default=None, ge=1, le=365)
    date_field: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator(
        "dataset_id", "query_template", "field_mapping", "is_incremental",
        "incremental_days", "days_per_batch", "is_active",
    )
    @classmethod
    def reject_null(cls, value, info):
        # Omit a field to keep it; these columns cannot be cleared
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value


class SyncConfigRead(SyncConfigBase):
    id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ClearDataResult(BaseModel):
    config_id: int
    entity_type: EntityType
    deleted: int
