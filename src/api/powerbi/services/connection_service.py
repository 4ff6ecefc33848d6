import logging
from typing import List, Optional
from sqlmodel import Session, select
from src.api.integrations.powerbi import PowerBICredentials, TokenProvider
from src.api.powerbi.exceptions import AuthenticationFailure
from src.api.powerbi.models.connection import PowerBIConnection
from src.api.powerbi.schemas.connection import (
    PowerBIConnectionCreate,
    PowerBIConnectionUpdate,
    ConnectionTestResult,
)

logger = logging.getLogger(__name__)


def get_credentials(connection: PowerBIConnection) -> PowerBICredentials:
    return PowerBICredentials(
        tenant_id=connection.tenant_id,
        client_id=connection.client_id,
        client_secret=connection.client_secret,
    )


class ConnectionService:
    def __init__(self, db: Session):
        self.db = db

    def create_connection(self, connection_data: PowerBIConnectionCreate) -> PowerBIConnection:
        connection = PowerBIConnection(**connection_data.model_dump(exclude={"client_secret"}),
                                       encrypted_client_secret="")
        connection.client_secret = connection_data.client_secret  # This will encrypt the secret
        self.db.add(connection)
        self.db.commit()
        self.db.refresh(connection)
        return connection

    def get_connection(self, connection_id: int) -> Optional[PowerBIConnection]:
        return self.db.get(PowerBIConnection, connection_id)

    def get_connections(self, group_id: Optional[int] = None) -> List[PowerBIConnection]:
        query = select(PowerBIConnection)
        if group_id is not None:
            query = query.where(PowerBIConnection.group_id == group_id)
        return self.db.exec(query.order_by(PowerBIConnection.name)).all()

    def update_connection(self, connection_id: int,
                          connection_data: PowerBIConnectionUpdate) -> Optional[PowerBIConnection]:
        connection = self.get_connection(connection_id)
        if not connection:
            return None
        update_data = connection_data.model_dump(exclude_unset=True)
        secret = update_data.pop("client_secret", None)
        for key, value in update_data.items():
            setattr(connection, key, value)
        if secret:
            connection.client_secret = secret
        self.db.commit()
        self.db.refresh(connection)
        return connection

    async def test_connection(self, connection: PowerBIConnection,
                              token_provider: TokenProvider) -> ConnectionTestResult:
        """Check the credentials by exchanging them for a fresh token"""
        missing = connection.missing_credential_fields()
        if missing:
            return ConnectionTestResult(connection_id=connection.id, success=False,
                                        error=f"Missing credential fields: {', '.join(missing)}")
        credentials = get_credentials(connection)
        token_provider.invalidate(credentials)
        try:
            await token_provider.get_token(credentials)
        except AuthenticationFailure as e:
            logger.error(f"Connection {connection.id} test failed: {e}")
            return ConnectionTestResult(connection_id=connection.id, success=False, error=str(e))
        return ConnectionTestResult(connection_id=connection.id, success=True)
