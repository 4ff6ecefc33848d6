import asyncio
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional
from src.api.common.utils.datetime import get_current_datetime


@dataclass(frozen=True)
class TokenCacheEntry:
    key: str
    access_token: str
    # Already shortened by the safety margin
    expires_at: datetime

    def is_valid(self, now: datetime) -> bool:
        return self.expires_at > now


class TokenCache:
    """
    Process-wide access token cache keyed by client id.

    Reads and writes are guarded by a lock; refreshes for the same key are
    serialized so concurrent callers share one token exchange.
    """

    def __init__(self):
        self._entries: Dict[str, TokenCacheEntry] = {}
        self._lock = threading.Lock()
        self._refresh_locks: Dict[str, asyncio.Lock] = {}

    def get(self, key: str, now: Optional[datetime] = None) -> Optional[TokenCacheEntry]:
        now = now or get_current_datetime()
        with self._lock:
            entry = self._entries.get(key)
        if entry and entry.is_valid(now):
            return entry
        return None

    def put(self, entry: TokenCacheEntry) -> TokenCacheEntry:
        """
        Store an entry unless a longer-lived one is already cached.

        Returns:
            TokenCacheEntry: The entry held by the cache after the call
        """
        with self._lock:
            current = self._entries.get(entry.key)
            if current and current.expires_at >= entry.expires_at:
                return current
            self._entries[entry.key] = entry
            return entry

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _refresh_lock(self, key: str) -> asyncio.Lock:
        with self._lock:
            lock = self._refresh_locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._refresh_locks[key] = lock
            return lock

    async def get_or_refresh(
        self,
        key: str,
        refresher: Callable[[], Awaitable[TokenCacheEntry]],
        now: Optional[datetime] = None,
    ) -> TokenCacheEntry:
        """Return the cached entry for key, or store the one produced by refresher"""
        entry = self.get(key, now)
        if entry:
            return entry
        async with self._refresh_lock(key):
            # Another caller may have refreshed while we waited
            entry = self.get(key, now)
            if entry:
                return entry
            return self.put(await refresher())
