"""
Optional resolution cache.

Resolution is cheap enough to run on every check; this cache exists for
callers that want to memoize it. It is an explicit object handed to
CachedResolver, never module state. Any role, group, membership or override
mutation must invalidate it (PermissionService does this).
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from pydantic import BaseModel

from permission_engine.features.capabilities import Capability, CapabilitySet
from permission_engine.features.permissions.entities import SecuritySummary
from permission_engine.features.permissions.resolver import PermissionResolver
from permission_engine.utils import get_logger


log = get_logger(__name__)


class CacheStats(BaseModel):
    """Cache statistics."""

    entries: int = 0
    hits: int = 0
    misses: int = 0
    invalidations: int = 0
    hit_rate: float = 0.0


@dataclass
class _Entry:
    value: CapabilitySet
    expires_at: float


class ResolutionCache:
    """In-memory TTL cache of resolved capability sets, keyed by user id."""

    def __init__(
        self,
        ttl_seconds: float = 60,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive.")
        if max_entries <= 0:
            raise ValueError("max_entries must be positive.")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._hits = 0
        self._misses = 0
        self._invalidations = 0
        # Bumped on invalidation so an in-flight resolve cannot store a stale set
        self._generation = 0
        self._user_generations: dict[str, int] = {}

    def generation(self, user_id: str) -> tuple[int, int]:
        """Token that changes whenever `user_id` (or the whole cache) is invalidated."""
        return self._generation, self._user_generations.get(user_id, 0)

    def get(self, user_id: str) -> Optional[CapabilitySet]:
        entry = self._entries.get(user_id)
        if entry is None or entry.expires_at <= self._clock():
            if entry is not None:
                del self._entries[user_id]
            self._misses += 1
            return None
        self._hits += 1
        return entry.value

    def put(
        self,
        user_id: str,
        capabilities: CapabilitySet,
        generation: Optional[tuple[int, int]] = None,
    ) -> bool:
        """
        Store a resolved set. When `generation` is given and the user was
        invalidated since it was taken, nothing is stored and False is returned.
        """
        if generation is not None and generation != self.generation(user_id):
            log.debug("Discarding stale resolution for user %s", user_id)
            return False
        if user_id not in self._entries and len(self._entries) >= self.max_entries:
            self._evict()
        self._entries[user_id] = _Entry(capabilities, self._clock() + self.ttl_seconds)
        return True

    def invalidate(self, user_id: str) -> None:
        self._invalidations += 1
        self._user_generations[user_id] = self._user_generations.get(user_id, 0) + 1
        self._entries.pop(user_id, None)

    def invalidate_all(self) -> None:
        self._invalidations += 1
        self._generation += 1
        self._user_generations.clear()
        self._entries.clear()

    def stats(self) -> CacheStats:
        lookups = self._hits + self._misses
        return CacheStats(
            entries=len(self._entries),
            hits=self._hits,
            misses=self._misses,
            invalidations=self._invalidations,
            hit_rate=self._hits / lookups if lookups else 0.0,
        )

    def _evict(self) -> None:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        if len(self._entries) >= self.max_entries:
            # Drop the entry closest to expiry
            oldest = min(self._entries, key=lambda key: self._entries[key].expires_at)
            del self._entries[oldest]
            log.debug("Resolution cache full, evicted %s", oldest)


class CachedResolver:
    """PermissionResolver front that memoizes resolve() results."""

    def __init__(self, resolver: PermissionResolver, cache: ResolutionCache):
        self.resolver = resolver
        self.cache = cache

    async def resolve(self, user_id: str) -> CapabilitySet:
        cached = self.cache.get(user_id)
        if cached is not None:
            return cached
        generation = self.cache.generation(user_id)
        summary = await self.resolver.explain(user_id)
        # Degraded results (a group lookup was skipped) are not memoized
        if not summary.skipped_group_ids:
            self.cache.put(user_id, summary.resolved, generation)
        return summary.resolved

    async def check(self, user_id: str, capability: Capability | str) -> bool:
        resolved = await self.resolve(user_id)
        return self.resolver.lookup(resolved, user_id, capability)

    async def explain(self, user_id: str) -> SecuritySummary:
        # Always fresh; the per-tier breakdown is an administrative view
        return await self.resolver.explain(user_id)
