from typing import Any, Awaitable, Callable, Dict, NamedTuple, Optional
import asyncio
import hashlib
import json
import math
import time


class CacheEntry(NamedTuple):
    value: Any
    expires_at: float


class TTLCache:
    """Expiring key/value cache, injected into the components that need it

    Keys are content hashes of the request (see `content_key`), so identical
    requests share an entry and nothing lives in a process-global map. A write
    landing after the earliest pending expiry sweeps every expired entry.
    """

    def __init__(self, default_ttl: float = 3600, clock: Callable[[], float] = time.monotonic):
        self.entries: Dict[str, CacheEntry] = {}
        self.default_ttl = default_ttl
        self._clock = clock
        self._lock = asyncio.Lock()
        self._earliest_expiry = math.inf

    @staticmethod
    def content_key(namespace: str, *parts: Any) -> str:
        payload = json.dumps([str(p) for p in parts], ensure_ascii=False)
        return f"{namespace}:{hashlib.sha256(payload.encode('utf-8')).hexdigest()}"

    def _is_live(self, entry: CacheEntry, now: float) -> bool:
        return now < entry.expires_at

    def _sweep(self, now: float) -> int:
        stale = [key for key, entry in self.entries.items() if not self._is_live(entry, now)]
        for key in stale:
            del self.entries[key]
        self._earliest_expiry = min((e.expires_at for e in self.entries.values()), default=math.inf)
        return len(stale)

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        lifetime = self.default_ttl if ttl is None else ttl
        async with self._lock:
            now = self._clock()
            if now >= self._earliest_expiry:
                self._sweep(now)
            entry = CacheEntry(value, now + lifetime)
            self.entries[key] = entry
            self._earliest_expiry = min(self._earliest_expiry, entry.expires_at)

    async def get(self, key: str) -> Optional[Any]:
        """Cached value, or None when missing or expired (expired entries are evicted)"""

        async with self._lock:
            entry = self.entries.get(key)
            if entry is None:
                return None
            if not self._is_live(entry, self._clock()):
                self.entries.pop(key)
                return None
            return entry.value

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
        should_cache: Optional[Callable[[Any], bool]] = None
    ) -> Any:
        """Cached value, or the factory's result; None and rejected values are not stored"""

        cached = await self.get(key)
        if cached is not None:
            return cached

        # The factory runs outside the lock
        value = await factory()
        if value is not None and (should_cache is None or should_cache(value)):
            await self.set(key, value, ttl)
        return value

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self.entries.pop(key, None) is not None

    async def clear_expired(self) -> int:
        """Evict expired entries; returns how many were removed"""

        async with self._lock:
            return self._sweep(self._clock())

    async def get_stats(self) -> Dict[str, int]:
        async with self._lock:
            now = self._clock()
            active = sum(self._is_live(entry, now) for entry in self.entries.values())
            return {
                "total_keys": len(self.entries),
                "active_keys": active,
                "expired_keys": len(self.entries) - active,
            }
