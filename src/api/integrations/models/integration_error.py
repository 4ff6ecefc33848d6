from typing import Optional, Dict, Any
from sqlmodel import Field, Column, JSON
from src.api.common.models.base import BaseModel, TimestampMixin


class IntegrationError(BaseModel, TimestampMixin, table=True):
    """
    Rows skipped or days failed while ingesting from an integration
    """
    id: Optional[int] = Field(default=None, primary_key=True)

    integration_name: str = Field(index=True, description="Name of the integration (e.g., 'powerbi')")
    operation_type: str = Field(index=True, description="Step that failed (e.g., 'mapping', 'query')")

    # Entity identification for uniqueness
    external_id: str = Field(index=True, description="Business key of the failing row or '<queue id>:<day>'")
    entity_type: str = Field(description="Destination entity (e.g., 'sales', 'cash_flow')")

    error_message: str = Field(description="Human-readable error message")
    error_details: Dict[str, Any] = Field(default={}, sa_column=Column(JSON), description="Additional error details as JSON")

    queue_item_id: Optional[int] = Field(default=None, foreign_key="sync_queue.id", index=True)
    config_id: Optional[int] = Field(default=None, foreign_key="syncconfig.id", index=True)

    # Status tracking
    is_resolved: bool = Field(default=False, index=True)
    is_ignored: bool = Field(default=False, index=True)
    resolved_at: Optional[str] = None
    resolution_notes: Optional[str] = None
    ignored_at: Optional[str] = None
    ignore_notes: Optional[str] = None

    class Config:
        from_attributes = True
