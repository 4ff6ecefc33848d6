import logging
from typing import Optional, Dict, Any
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from src.api.integrations.services.integration_error_service import IntegrationErrorService
from src.api.integrations.schemas.integration_error import IntegrationErrorCreate

logger = logging.getLogger(__name__)


def log_integration_error(
    db: Session,
    integration_name: str,
    operation_type: str,
    external_id: str,
    entity_type: str,
    error_message: str,
    error_details: Optional[Dict[str, Any]] = None,
    queue_item_id: Optional[int] = None,
    config_id: Optional[int] = None,
) -> None:
    """
    Record an integration error without interrupting the caller.

    Args:
        db: Database session
        integration_name: Name of the integration (e.g., 'powerbi')
        operation_type: Step that failed (e.g., 'mapping')
        external_id: Business key of the failing row or day
        entity_type: Destination entity
        error_message: Human-readable error message
        error_details: Additional error details as JSON
        queue_item_id: Sync queue item being processed (optional)
        config_id: Sync config being processed (optional)
    """
    try:
        IntegrationErrorService(db).create_error(IntegrationErrorCreate(
            integration_name=integration_name,
            operation_type=operation_type,
            external_id=external_id,
            entity_type=entity_type,
            error_message=error_message,
            error_details=error_details or {},
            queue_item_id=queue_item_id,
            config_id=config_id,
        ))
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to log integration error for {integration_name}/{operation_type} "
                     f"{entity_type} {external_id}: {e}. Original error: {error_message}")
