from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field


class PowerBIConnectionBase(BaseModel):
    name: str
    group_id: int
    tenant_id: str
    client_id: str
    workspace_id: str
    is_active: bool = True


class PowerBIConnectionCreate(PowerBIConnectionBase):
    client_secret: str = Field(..., min_length=1)


class PowerBIConnectionUpdate(BaseModel):
    name: Optional[str] = None
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    workspace_id: Optional[str] = None
    is_active: Optional[bool] = None


class PowerBIConnectionRead(PowerBIConnectionBase):
    """Connection as exposed by the API; the secret is never returned"""
    id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ConnectionTestResult(BaseModel):
    connection_id: int
    success: bool
    error: Optional[str] = None
