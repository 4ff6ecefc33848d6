import logging
import httpx
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from src.api.common.utils.datetime import get_current_datetime
from src.api.integrations.powerbi.config import PowerBIConfig
from src.api.integrations.powerbi.token_cache import TokenCache, TokenCacheEntry
from src.api.powerbi.exceptions import AuthenticationFailure

DEFAULT_EXPIRES_IN_SECONDS = 3600

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PowerBICredentials:
    tenant_id: str
    client_id: str
    client_secret: str


class TokenProvider:
    """Client-credentials token exchange backed by a shared TokenCache"""

    def __init__(self, cache: TokenCache, config: Optional[PowerBIConfig] = None):
        self.cache = cache
        self.config = config or PowerBIConfig()

    async def get_token(self, credentials: PowerBICredentials) -> str:
        """
        Get a bearer token for the given service principal.

        A cached token is reused while it is valid; otherwise a new one is
        requested from the identity provider and cached.

        Raises:
            AuthenticationFailure: If the identity provider does not issue a token
        """
        entry = await self.cache.get_or_refresh(
            credentials.client_id,
            lambda: self._request_token(credentials),
        )
        return entry.access_token

    def invalidate(self, credentials: PowerBICredentials) -> None:
        self.cache.invalidate(credentials.client_id)

    async def _request_token(self, credentials: PowerBICredentials) -> TokenCacheEntry:
        url = self.config.token_url(credentials.tenant_id)
        data = {
            "grant_type": "client_credentials",
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
            "scope": self.config.scope,
        }
        try:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
                response = await client.post(
                    url,
                    data=data,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Token request rejected for client {credentials.client_id}: {e.response.status_code}")
            raise AuthenticationFailure(
                f"Token request failed with status {e.response.status_code}: {e.response.text}")
        except httpx.HTTPError as e:
            logger.error(f"Token request failed for client {credentials.client_id}: {e}")
            raise AuthenticationFailure(f"Token request failed: {e}")
        except ValueError as e:
            raise AuthenticationFailure(f"Token response is not valid JSON: {e}")

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            raise AuthenticationFailure("Token response did not include an access_token")

        try:
            # Some token endpoints send expires_in as a string, possibly "3599.0"
            expires_in = int(float(payload.get("expires_in") or DEFAULT_EXPIRES_IN_SECONDS))
        except (TypeError, ValueError):
            raise AuthenticationFailure(f"Token response has an invalid expires_in: {payload.get('expires_in')!r}")
        expires_at = get_current_datetime() + timedelta(
            seconds=expires_in - self.config.token_safety_margin_seconds)
        logger.info(f"Obtained Power BI token for client {credentials.client_id}, expires at {expires_at.isoformat()}")
        return TokenCacheEntry(key=credentials.client_id, access_token=access_token, expires_at=expires_at)
