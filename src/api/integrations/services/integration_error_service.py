from typing import Optional
from sqlmodel import Session, select, and_
from sqlalchemy import func
from src.api.integrations.models.integration_error import IntegrationError
from src.api.integrations.schemas.integration_error import (
    IntegrationErrorCreate,
    IntegrationErrorUpdate,
    IntegrationErrorFilter,
)
from src.api.common.utils.datetime import get_current_datetime


class IntegrationErrorService:
    """Service class for managing integration errors"""

    def __init__(self, db: Session):
        self.db = db

    def create_error(self, error_data: IntegrationErrorCreate) -> IntegrationError:
        """
        Create an integration error, or refresh the unresolved one already
        recorded for the same (integration, operation, external id, entity).
        """
        existing_error = self._find_existing_error(error_data)
        if existing_error:
            if not existing_error.is_resolved:
                existing_error.error_message = error_data.error_message
                existing_error.error_details = error_data.error_details or {}
                existing_error.queue_item_id = error_data.queue_item_id
                existing_error.updated_at = get_current_datetime()
                self.db.commit()
                self.db.refresh(existing_error)
            return existing_error

        error = IntegrationError(**error_data.model_dump())
        self.db.add(error)
        self.db.commit()
        self.db.refresh(error)
        return error

    def get_error(self, error_id: int) -> Optional[IntegrationError]:
        return self.db.get(IntegrationError, error_id)

    def get_errors(self, filters: IntegrationErrorFilter) -> dict:
        """
        Get integration errors with filtering and pagination

        Returns:
            dict: Dictionary containing 'errors' list and 'total' count
        """
        conditions = []
        for name in ("integration_name", "operation_type", "entity_type", "config_id", "queue_item_id"):
            value = getattr(filters, name)
            if value is not None:
                conditions.append(getattr(IntegrationError, name) == value)
        if filters.is_resolved is not None:
            conditions.append(IntegrationError.is_resolved == filters.is_resolved)
        if filters.is_ignored is not None:
            conditions.append(IntegrationError.is_ignored == filters.is_ignored)

        count_query = select(func.count(IntegrationError.id))
        data_query = select(IntegrationError)
        if conditions:
            count_query = count_query.where(and_(*conditions))
            data_query = data_query.where(and_(*conditions))

        total = self.db.exec(count_query).first()
        errors = self.db.exec(
            data_query
            .order_by(IntegrationError.created_at.desc(), IntegrationError.id.desc())
            .offset(filters.offset)
            .limit(filters.limit)
        ).all()
        return {"errors": errors, "total": total or 0}

    def update_error(self, error_id: int, update_data: IntegrationErrorUpdate) -> Optional[IntegrationError]:
        error = self.get_error(error_id)
        if not error:
            return None

        was_resolved = error.is_resolved
        was_ignored = error.is_ignored
        for field, value in update_data.model_dump(exclude_unset=True).items():
            setattr(error, field, value)

        if update_data.is_resolved is True and not was_resolved:
            error.resolved_at = get_current_datetime().isoformat()
        if update_data.is_ignored is True and not was_ignored:
            error.ignored_at = get_current_datetime().isoformat()
        error.updated_at = get_current_datetime()

        self.db.commit()
        self.db.refresh(error)
        return error

    def resolve_error(self, error_id: int, resolution_notes: Optional[str] = None) -> Optional[IntegrationError]:
        return self.update_error(
            error_id, IntegrationErrorUpdate(is_resolved=True, resolution_notes=resolution_notes))

    def ignore_error(self, error_id: int, ignore_notes: Optional[str] = None) -> Optional[IntegrationError]:
        return self.update_error(
            error_id, IntegrationErrorUpdate(is_ignored=True, ignore_notes=ignore_notes))

    def _find_existing_error(self, error_data: IntegrationErrorCreate) -> Optional[IntegrationError]:
        query = select(IntegrationError).where(and_(
            IntegrationError.integration_name == error_data.integration_name,
            IntegrationError.operation_type == error_data.operation_type,
            IntegrationError.external_id == error_data.external_id,
            IntegrationError.entity_type == error_data.entity_type,
        ))
        return self.db.exec(query).first()
