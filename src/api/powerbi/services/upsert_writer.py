import logging
from typing import Any, Dict, Iterable, List, Optional
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from src.api.common.constants.sync import EntityType
from src.api.common.utils.datetime import get_current_datetime
from src.api.powerbi.config import SyncSettings
from src.api.powerbi.exceptions import PersistenceFailure
from src.api.powerbi.models.external_records import get_entity_model

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

# Never overwritten when an existing row is updated
_PRESERVED_COLUMNS = {"id", "created_at"}


class UpsertWriter:
    """Idempotent batch writer for the destination tables"""

    def __init__(self, db: Session, batch_size: Optional[int] = None):
        self.db = db
        self.batch_size = batch_size or SyncSettings().upsert_batch_size

    def upsert(self, entity_type: EntityType, records: Iterable[Dict[str, Any]]) -> int:
        """
        Insert or update records on the entity's business key and commit.

        Records sharing a business key are collapsed, the last one wins.

        Returns:
            int: Number of distinct records written

        Raises:
            PersistenceFailure: If the database rejects any chunk; nothing is
                committed in that case
        """
        model = get_entity_model(entity_type)
        table = model.__table__
        conflict_columns = list(model.conflict_columns)
        rows = self._normalize(table, conflict_columns, records)
        if not rows:
            return 0

        insert = _INSERT_BY_DIALECT.get(self.db.get_bind().dialect.name)
        if insert is None:
            raise PersistenceFailure(f"Upsert is not supported on {self.db.get_bind().dialect.name}")

        try:
            for start in range(0, len(rows), self.batch_size):
                chunk = rows[start:start + self.batch_size]
                stmt = insert(table).values(chunk)
                stmt = stmt.on_conflict_do_update(
                    index_elements=conflict_columns,
                    set_={
                        column: stmt.excluded[column]
                        for column in chunk[0]
                        if column not in _PRESERVED_COLUMNS and column not in conflict_columns
                    },
                )
                self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error upserting {len(rows)} rows into {table.name}: {e}")
            raise PersistenceFailure(f"Error saving records into {table.name}: {e}")

        logger.info(f"Upserted {len(rows)} rows into {table.name}")
        return len(rows)

    @staticmethod
    def _normalize(table, conflict_columns: List[str], records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        # Multi-row VALUES needs the same keys in every row
        columns = [column.name for column in table.columns if column.name != "id"]
        now = get_current_datetime()
        unique: Dict[tuple, Dict[str, Any]] = {}
        for record in records:
            row = {column: record.get(column) for column in columns}
            row["created_at"] = now
            row["updated_at"] = now
            if row.get("raw_data") is None:
                row["raw_data"] = {}
            key = tuple(row[column] for column in conflict_columns)
            unique.pop(key, None)
            unique[key] = row
        return list(unique.values())
