import os
from pydantic import BaseModel, Field


class PowerBIConfig(BaseModel):
    authority_url: str = Field(
        default_factory=lambda: os.getenv("POWERBI_AUTHORITY_URL", "https://login.microsoftonline.com"))
    api_url: str = Field(
        default_factory=lambda: os.getenv("POWERBI_API_URL", "https://api.powerbi.com/v1.0/myorg"))
    scope: str = Field(
        default_factory=lambda: os.getenv("POWERBI_SCOPE", "https://analysis.windows.net/powerbi/api/.default"))
    timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("POWERBI_TIMEOUT_SECONDS", "300")))
    # Cached tokens are treated as expired this long before the real expiry
    token_safety_margin_seconds: int = Field(
        default_factory=lambda: int(os.getenv("POWERBI_TOKEN_SAFETY_MARGIN_SECONDS", "600")))

    def token_url(self, tenant_id: str) -> str:
        return f"{self.authority_url}/{tenant_id}/oauth2/v2.0/token"

    def execute_queries_url(self, workspace_id: str, dataset_id: str) -> str:
        return f"{self.api_url}/groups/{workspace_id}/datasets/{dataset_id}/executeQueries"
