from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session
from src.api.integrations.services.integration_error_service import IntegrationErrorService
from src.api.integrations.schemas.integration_error import (
    IntegrationErrorRead,
    IntegrationErrorFilter,
    IntegrationErrorPage,
)
from src.api.common.utils.database import get_db

router = APIRouter(prefix="/integration-errors", tags=["integration-errors"])


def get_integration_error_service(db: Session = Depends(get_db)) -> IntegrationErrorService:
    return IntegrationErrorService(db)


@router.get("/", response_model=IntegrationErrorPage)
def get_integration_errors(
    integration_name: Optional[str] = Query(None, description="Filter by integration name"),
    operation_type: Optional[str] = Query(None, description="Filter by operation type"),
    entity_type: Optional[str] = Query(None, description="Filter by entity type"),
    config_id: Optional[int] = Query(None, description="Filter by sync config"),
    queue_item_id: Optional[int] = Query(None, description="Filter by sync queue item"),
    is_resolved: Optional[bool] = Query(None, description="Filter by resolution status"),
    is_ignored: Optional[bool] = Query(None, description="Filter by ignored status"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    service: IntegrationErrorService = Depends(get_integration_error_service)
):
    """Get integration errors with filtering, pagination and total count"""
    filters = IntegrationErrorFilter(
        integration_name=integration_name,
        operation_type=operation_type,
        entity_type=entity_type,
        config_id=config_id,
        queue_item_id=queue_item_id,
        is_resolved=is_resolved,
        is_ignored=is_ignored,
        limit=limit,
        offset=offset,
    )
    return service.get_errors(filters)


@router.get("/{error_id}", response_model=IntegrationErrorRead)
def get_integration_error(
    error_id: int,
    service: IntegrationErrorService = Depends(get_integration_error_service)
):
    error = service.get_error(error_id)
    if not error:
        raise HTTPException(status_code=404, detail="Integration error not found")
    return error


@router.post("/{error_id}/resolve", response_model=IntegrationErrorRead)
def resolve_integration_error(
    error_id: int,
    resolution_notes: Optional[str] = Query(None, description="Notes about how the error was resolved"),
    service: IntegrationErrorService = Depends(get_integration_error_service)
):
    """Mark an integration error as resolved"""
    error = service.resolve_error(error_id, resolution_notes)
    if not error:
        raise HTTPException(status_code=404, detail="Integration error not found")
    return error


@router.post("/{error_id}/ignore", response_model=IntegrationErrorRead)
def ignore_integration_error(
    error_id: int,
    ignore_notes: Optional[str] = Query(None, description="Notes about why the error was ignored"),
    service: IntegrationErrorService = Depends(get_integration_error_service)
):
    """Mark an integration error as ignored"""
    error = service.ignore_error(error_id, ignore_notes)
    if not error:
        raise HTTPException(status_code=404, detail="Integration error not found")
    return error
