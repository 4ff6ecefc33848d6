from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session
from src.api.common.utils.database import get_db
from src.api.integrations.powerbi import TokenProvider
from src.api.powerbi.endpoints.dependencies import get_token_provider
from src.api.powerbi.schemas.connection import (
    ConnectionTestResult,
    PowerBIConnectionCreate,
    PowerBIConnectionRead,
    PowerBIConnectionUpdate,
)
from src.api.powerbi.services.connection_service import ConnectionService

router = APIRouter(prefix="/connections", tags=["connections"])


def get_connection_service(db: Session = Depends(get_db)):
    return ConnectionService(db)


@router.post("/", response_model=PowerBIConnectionRead, status_code=201)
def create_connection(
    connection_data: PowerBIConnectionCreate,
    connection_service: ConnectionService = Depends(get_connection_service)
):
    """Create a connection; the client secret is stored encrypted"""
    return connection_service.create_connection(connection_data)


@router.get("/", response_model=List[PowerBIConnectionRead])
def get_connections(
    group_id: Optional[int] = Query(None),
    connection_service: ConnectionService = Depends(get_connection_service)
):
    return connection_service.get_connections(group_id)


@router.get("/{connection_id}", response_model=PowerBIConnectionRead)
def get_connection(
    connection_id: int,
    connection_service: ConnectionService = Depends(get_connection_service)
):
    connection = connection_service.get_connection(connection_id)
    if not connection:
        raise HTTPException(status_code=404, detail="Connection not found")
    return connection


@router.put("/{connection_id}", response_model=PowerBIConnectionRead)
def update_connection(
    connection_id: int,
    connection_data: PowerBIConnectionUpdate,
    connection_service: ConnectionService = Depends(get_connection_service)
):
    connection = connection_service.update_connection(connection_id, connection_data)
    if not connection:
        raise HTTPException(status_code=404, detail="Connection not found")
    return connection


@router.post("/{connection_id}/test", response_model=ConnectionTestResult)
async def test_connection(
    connection_id: int,
    connection_service: ConnectionService = Depends(get_connection_service),
    token_provider: TokenProvider = Depends(get_token_provider)
):
    """Check the stored credentials against the identity provider"""
    connection = connection_service.get_connection(connection_id)
    if not connection:
        raise HTTPException(status_code=404, detail="Connection not found")
    return await connection_service.test_connection(connection, token_provider)
