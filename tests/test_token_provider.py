import asyncio
import pytest
import httpx
from datetime import timedelta
from unittest.mock import Mock, patch

from src.api.common.utils.datetime import get_current_datetime
from src.api.integrations.powerbi import PowerBICredentials, TokenCache, TokenCacheEntry, TokenProvider
from src.api.powerbi.exceptions import AuthenticationFailure


@pytest.fixture
def credentials():
    return PowerBICredentials(tenant_id="tenant-123", client_id="client-123", client_secret="secret-123")


@pytest.fixture
def provider(token_cache, powerbi_config):
    return TokenProvider(token_cache, powerbi_config)


def token_response(payload=None, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else {
        "access_token": "fresh-token",
        "expires_in": 3600,
    }
    response.text = "error body"
    if status_code >= 400:
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "Unauthorized", request=Mock(), response=response)
    return response


class TestTokenCache:
    """Test the shared token cache"""

    def test_get_returns_valid_entry(self, token_cache):
        entry = TokenCacheEntry("client-1", "token", get_current_datetime() + timedelta(minutes=10))
        token_cache.put(entry)

        assert token_cache.get("client-1") == entry

    def test_get_ignores_expired_entry(self, token_cache):
        token_cache.put(TokenCacheEntry("client-1", "token", get_current_datetime() - timedelta(seconds=1)))

        assert token_cache.get("client-1") is None

    def test_put_keeps_longer_lived_entry(self, token_cache):
        now = get_current_datetime()
        longer = TokenCacheEntry("client-1", "long", now + timedelta(hours=1))
        shorter = TokenCacheEntry("client-1", "short", now + timedelta(minutes=5))

        token_cache.put(longer)
        kept = token_cache.put(shorter)

        assert kept == longer
        assert token_cache.get("client-1").access_token == "long"

    def test_put_replaces_with_later_expiry(self, token_cache):
        now = get_current_datetime()
        token_cache.put(TokenCacheEntry("client-1", "old", now + timedelta(minutes=5)))
        token_cache.put(TokenCacheEntry("client-1", "new", now + timedelta(hours=1)))

        assert token_cache.get("client-1").access_token == "new"

    def test_invalidate(self, token_cache):
        token_cache.put(TokenCacheEntry("client-1", "token", get_current_datetime() + timedelta(hours=1)))
        token_cache.invalidate("client-1")

        assert token_cache.get("client-1") is None

    def test_keys_are_isolated(self, token_cache):
        token_cache.put(TokenCacheEntry("client-1", "token-1", get_current_datetime() + timedelta(hours=1)))

        assert token_cache.get("client-2") is None


class TestTokenProvider:
    """Test the client-credentials token exchange"""

    @patch('httpx.AsyncClient.post')
    @pytest.mark.asyncio
    async def test_get_token_requests_and_caches(self, mock_post, provider, credentials, token_cache):
        mock_post.return_value = token_response()

        token = await provider.get_token(credentials)

        assert token == "fresh-token"
        args, kwargs = mock_post.call_args
        assert args[0] == "https://login.example.com/tenant-123/oauth2/v2.0/token"
        assert kwargs["data"]["grant_type"] == "client_credentials"
        assert kwargs["data"]["client_id"] == "client-123"
        assert kwargs["data"]["scope"] == "https://analysis.example.com/.default"
        entry = token_cache.get("client-123")
        assert entry.access_token == "fresh-token"

    @patch('httpx.AsyncClient.post')
    @pytest.mark.asyncio
    async def test_cached_token_is_reused(self, mock_post, provider, credentials):
        mock_post.return_value = token_response()

        first = await provider.get_token(credentials)
        second = await provider.get_token(credentials)

        assert first == second == "fresh-token"
        assert mock_post.call_count == 1

    @patch('httpx.AsyncClient.post')
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_exchange(self, mock_post, provider, credentials):
        mock_post.return_value = token_response()

        tokens = await asyncio.gather(*(provider.get_token(credentials) for _ in range(5)))

        assert set(tokens) == {"fresh-token"}
        assert mock_post.call_count == 1

    @patch('httpx.AsyncClient.post')
    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed(self, mock_post, provider, credentials, token_cache):
        token_cache.put(TokenCacheEntry("client-123", "stale", get_current_datetime() - timedelta(seconds=1)))
        mock_post.return_value = token_response()

        assert await provider.get_token(credentials) == "fresh-token"
        assert mock_post.call_count == 1

    @patch('httpx.AsyncClient.post')
    @pytest.mark.asyncio
    async def test_expiry_applies_safety_margin(self, mock_post, provider, credentials, token_cache):
        mock_post.return_value = token_response()
        before = get_current_datetime()

        await provider.get_token(credentials)

        remaining = (token_cache.get("client-123").expires_at - before).total_seconds()
        assert 3000 <= remaining <= 3002

    @patch('httpx.AsyncClient.post')
    @pytest.mark.asyncio
    async def test_missing_expires_in_defaults_to_an_hour(self, mock_post, provider, credentials, token_cache):
        mock_post.return_value = token_response({"access_token": "fresh-token"})
        before = get_current_datetime()

        await provider.get_token(credentials)

        remaining = (token_cache.get("client-123").expires_at - before).total_seconds()
        assert 3000 <= remaining <= 3002

    @patch('httpx.AsyncClient.post')
    @pytest.mark.asyncio
    async def test_fractional_string_expires_in_is_accepted(self, mock_post, provider, credentials, token_cache):
        mock_post.return_value = token_response({"access_token": "fresh-token", "expires_in": "3599.0"})
        before = get_current_datetime()

        await provider.get_token(credentials)

        remaining = (token_cache.get("client-123").expires_at - before).total_seconds()
        assert 2999 <= remaining <= 3001

    @patch('httpx.AsyncClient.post')
    @pytest.mark.asyncio
    async def test_invalid_expires_in_raises_authentication_failure(self, mock_post, provider, credentials,
                                                                    token_cache):
        mock_post.return_value = token_response({"access_token": "fresh-token", "expires_in": "soon"})

        with pytest.raises(AuthenticationFailure, match="expires_in"):
            await provider.get_token(credentials)

        assert token_cache.get("client-123") is None

    @patch('httpx.AsyncClient.post')
    @pytest.mark.asyncio
    async def test_rejected_credentials_raise(self, mock_post, provider, credentials, token_cache):
        mock_post.return_value = token_response(status_code=401)

        with pytest.raises(AuthenticationFailure) as exc_info:
            await provider.get_token(credentials)

        assert "401" in str(exc_info.value)
        assert token_cache.get("client-123") is None

    @patch('httpx.AsyncClient.post')
    @pytest.mark.asyncio
    async def test_response_without_token_raises(self, mock_post, provider, credentials):
        mock_post.return_value = token_response({"token_type": "Bearer"})

        with pytest.raises(AuthenticationFailure):
            await provider.get_token(credentials)

    @patch('httpx.AsyncClient.post')
    @pytest.mark.asyncio
    async def test_transport_error_raises(self, mock_post, provider, credentials):
        mock_post.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(AuthenticationFailure):
            await provider.get_token(credentials)

    def test_invalidate_drops_cached_token(self, provider, credentials, token_cache):
        token_cache.put(TokenCacheEntry("client-123", "token", get_current_datetime() + timedelta(hours=1)))

        provider.invalidate(credentials)

        assert token_cache.get("client-123") is None
