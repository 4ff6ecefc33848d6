from .auth import TokenProvider, PowerBICredentials
from .client import PowerBIClient
from .config import PowerBIConfig
from .token_cache import TokenCache, TokenCacheEntry

__all__ = [
    "TokenProvider",
    "PowerBICredentials",
    "PowerBIClient",
    "PowerBIConfig",
    "TokenCache",
    "TokenCacheEntry",
]
