from typing import Optional, Dict, Any, List
from datetime import datetime
from pydantic import BaseModel, Field


class IntegrationErrorBase(BaseModel):
    integration_name: str = Field(..., description="Name of the integration")
    operation_type: str = Field(..., description="Step that failed")
    external_id: str = Field(..., description="Business key of the failing row or day")
    entity_type: str = Field(..., description="Destination entity")
    error_message: str = Field(..., description="Human-readable error message")
    error_details: Optional[Dict[str, Any]] = Field(default={}, description="Additional error details")
    queue_item_id: Optional[int] = Field(default=None, description="Sync queue item that hit the error")
    config_id: Optional[int] = Field(default=None, description="Sync config that hit the error")


class IntegrationErrorCreate(IntegrationErrorBase):
    pass


class IntegrationErrorUpdate(BaseModel):
    is_resolved: Optional[bool] = None
    is_ignored: Optional[bool] = None
    resolution_notes: Optional[str] = None
    ignore_notes: Optional[str] = None


class IntegrationErrorRead(IntegrationErrorBase):
    id: int
    is_resolved: bool
    is_ignored: bool
    resolved_at: Optional[str] = None
    resolution_notes: Optional[str] = None
    ignored_at: Optional[str] = None
    ignore_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class IntegrationErrorFilter(BaseModel):
    """Schema for filtering integration errors"""
    integration_name: Optional[str] = None
    operation_type: Optional[str] = None
    entity_type: Optional[str] = None
    config_id: Optional[int] = None
    queue_item_id: Optional[int] = None
    is_resolved: Optional[bool] = None
    is_ignored: Optional[bool] = None
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)


class IntegrationErrorPage(BaseModel):
    errors: List[IntegrationErrorRead]
    total: int
