from typing import List, Optional
from sqlmodel import Field
from src.api.common.models.base import BaseModel, TimestampMixin
from src.api.common.utils.encryption import encrypt_data, decrypt_data


class PowerBIConnection(BaseModel, TimestampMixin, table=True):
    """
    Service principal credentials for one Power BI workspace.
    The client secret is stored encrypted.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str

    # Tenant/company group that owns the ingested data
    group_id: int = Field(index=True)

    tenant_id: str
    client_id: str = Field(index=True)
    encrypted_client_secret: str
    workspace_id: str

    is_active: bool = Field(default=True, index=True)

    @property
    def client_secret(self) -> str:
        """Get decrypted client secret"""
        return decrypt_data(self.encrypted_client_secret)

    @client_secret.setter
    def client_secret(self, value: str):
        """Set encrypted client secret"""
        self.encrypted_client_secret = encrypt_data(value)

    def missing_credential_fields(self) -> List[str]:
        """Names of the credential fields that are empty"""
        fields = {
            "tenant_id": self.tenant_id,
            "client_id": self.client_id,
            "client_secret": self.encrypted_client_secret,
            "workspace_id": self.workspace_id,
        }
        return [name for name, value in fields.items() if not value]

    class Config:
        from_attributes = True
