"""Execution result cache.

Caches successful ``ExecutionResult`` values keyed by the workflow identity
and the caller-supplied context. A hit lets the engine skip resource
allocation and step execution entirely.

Key Features:
    - Async access guarded by an asyncio.Lock
    - Lazy TTL expiry: expired entries are dropped on lookup
    - LRU eviction when ``max_entries`` is reached
    - Malformed entries are evicted and reported as misses

Example:
    >>> cache = ExecutionCache(settings.cache)
    >>> await cache.put(workflow, context.snapshot(), result)
    >>> hit = await cache.get(workflow, context.snapshot())

Performance Notes:
    - Keys are MD5 digests (non-cryptographic, for speed) over JSON with
      sorted keys, so dict ordering never changes the key
    - Context values that are not JSON serializable are keyed by ``str()``
"""

import asyncio
import hashlib
import json
import time
from collections import OrderedDict
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from autopilot.config.settings import CacheSettings
from autopilot.exceptions import CacheCorruptionError
from autopilot.models.domain import ExecutionResult, WorkflowDefinition

log = structlog.get_logger(__name__)


def build_cache_key(workflow: WorkflowDefinition, context: Mapping[str, Any]) -> str:
    """Deterministic key for a workflow identity plus context snapshot."""
    payload = {"name": workflow.name, "version": workflow.version, "context": dict(context)}
    encoded = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.md5(encoded.encode(), usedforsecurity=False).hexdigest()


@dataclass
class _CacheEntry:
    result: ExecutionResult
    identity: tuple[str, str]
    stored_at: float
    last_access: float


class ExecutionCache:
    """Async TTL + LRU cache of successful execution results.

    Attributes:
        settings: TTL, capacity and the enabled flag.
    """

    def __init__(self, settings: CacheSettings | None = None, clock: Callable[[], float] = time.monotonic) -> None:
        self.settings = settings or CacheSettings()
        self._clock = clock
        self._entries: OrderedDict[str, _CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    async def get(self, workflow: WorkflowDefinition, context: Mapping[str, Any]) -> ExecutionResult | None:
        """Return the cached result, or None on a miss or expiry."""
        if not self.settings.enabled:
            return None

        key = build_cache_key(workflow, context)
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                log.debug("execution_cache_miss", workflow=workflow.name, key=key)
                return None

            try:
                self._check_entry(key, entry)
            except CacheCorruptionError as e:
                del self._entries[key]
                self._evictions += 1
                self._misses += 1
                log.warning("execution_cache_corrupt_entry", key=key, error=e.message)
                return None

            now = self._clock()
            if now - entry.stored_at >= self.settings.ttl_seconds:
                del self._entries[key]
                self._expirations += 1
                self._misses += 1
                log.debug("execution_cache_expired", workflow=workflow.name, key=key)
                return None

            entry.last_access = now
            self._entries.move_to_end(key)
            self._hits += 1

        log.debug("execution_cache_hit", workflow=workflow.name, key=key)
        return entry.result

    async def put(self, workflow: WorkflowDefinition, context: Mapping[str, Any], result: ExecutionResult) -> None:
        """Store ``result``. Failed results are never cached."""
        if not self.settings.enabled:
            return
        if not result.success:
            log.debug("execution_cache_skip_failed", workflow=workflow.name)
            return

        key = build_cache_key(workflow, context)
        now = self._clock()
        async with self._lock:
            if key not in self._entries:
                while len(self._entries) >= self.settings.max_entries:
                    evicted, _ = self._entries.popitem(last=False)
                    self._evictions += 1
                    log.debug("execution_cache_evicted", key=evicted)

            self._entries[key] = _CacheEntry(result, workflow.identity, now, now)
            self._entries.move_to_end(key)

        log.debug("execution_cache_set", workflow=workflow.name, key=key)

    def _check_entry(self, key: str, entry: Any) -> None:
        if not isinstance(entry, _CacheEntry) or not isinstance(entry.result, ExecutionResult):
            raise CacheCorruptionError("Cache entry has an unexpected shape", cache_key=key)
        if not isinstance(entry.stored_at, int | float):
            raise CacheCorruptionError("Cache entry has no valid timestamp", cache_key=key)

    async def invalidate_workflow(self, name: str, version: str | None = None) -> int:
        """Drop every entry for a workflow name, optionally one version only."""
        async with self._lock:
            keys = [
                key
                for key, entry in self._entries.items()
                if isinstance(entry, _CacheEntry)
                and entry.identity[0] == name
                and (version is None or entry.identity[1] == version)
            ]
            for key in keys:
                del self._entries[key]

        if keys:
            log.info("execution_cache_invalidated", workflow=name, version=version, entries=len(keys))
        return len(keys)

    async def invalidate_older_than(self, seconds: float) -> int:
        cutoff = self._clock() - seconds
        async with self._lock:
            keys = [
                key
                for key, entry in self._entries.items()
                if not isinstance(entry, _CacheEntry) or entry.stored_at < cutoff
            ]
            for key in keys:
                del self._entries[key]
        return len(keys)

    async def clear(self) -> None:
        async with self._lock:
            count = len(self._entries)
            self._entries.clear()
        log.info("execution_cache_cleared", entries=count)

    async def get_stats(self) -> dict[str, Any]:
        """Return cache statistics, including ``hit_rate`` in [0, 1]."""
        async with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "max_entries": self.settings.max_entries,
                "ttl_seconds": self.settings.ttl_seconds,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "expirations": self._expirations,
                "hit_rate": self._hits / total if total > 0 else 0.0,
            }

    def __len__(self) -> int:
        return len(self._entries)
