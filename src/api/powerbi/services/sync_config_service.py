import logging
from typing import List, Optional
from sqlalchemy import delete
from sqlmodel import Session, select
from src.api.powerbi.models.connection import PowerBIConnection
from src.api.powerbi.models.external_records import get_entity_model
from src.api.powerbi.models.sync_config import SyncConfig
from src.api.powerbi.schemas.sync_config import SyncConfigCreate, SyncConfigUpdate

logger = logging.getLogger(__name__)


class SyncConfigService:
    def __init__(self, db: Session):
        self.db = db

    def create_config(self, config_data: SyncConfigCreate) -> SyncConfig:
        """
        Create a sync config for an existing connection

        Raises:
            ValueError: If the connection does not exist
        """
        if not self.db.get(PowerBIConnection, config_data.connection_id):
            raise ValueError(f"Connection {config_data.connection_id} not found")
        config = SyncConfig(**config_data.model_dump())
        self.db.add(config)
        self.db.commit()
        self.db.refresh(config)
        return config

    def get_config(self, config_id: int) -> Optional[SyncConfig]:
        return self.db.get(SyncConfig, config_id)

    def get_configs(self, connection_id: Optional[int] = None, active_only: bool = False) -> List[SyncConfig]:
        query = select(SyncConfig)
        if connection_id is not None:
            query = query.where(SyncConfig.connection_id == connection_id)
        if active_only:
            query = query.where(SyncConfig.is_active == True)
        return self.db.exec(query.order_by(SyncConfig.id)).all()

    def update_config(self, config_id: int, config_data: SyncConfigUpdate) -> Optional[SyncConfig]:
        config = self.get_config(config_id)
        if not config:
            return None
        for key, value in config_data.model_dump(exclude_unset=True).items():
            setattr(config, key, value)
        self.db.commit()
        self.db.refresh(config)
        return config

    def clear_data(self, config: SyncConfig) -> int:
        """
        Delete every ingested row of the config's entity for its group.

        Returns:
            int: Number of rows deleted
        """
        connection = config.connection or self.db.get(PowerBIConnection, config.connection_id)
        model = get_entity_model(config.entity_type)
        result = self.db.execute(delete(model).where(model.group_id == connection.group_id))
        self.db.commit()
        logger.info(f"Cleared {result.rowcount} {model.__tablename__} rows of group {connection.group_id}")
        return result.rowcount
