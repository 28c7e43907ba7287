from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable

logger = logging.getLogger(__name__)

_DEFAULT_TTL = 300  # 5 minutes
_MISSING = object()


def make_key(parts: dict) -> str:
    normalized = json.dumps(parts, sort_keys=True, default=str)
    return hashlib.sha256(normalized.encode()).hexdigest()[:16]


@dataclass
class _Entry:
    value: Any
    expires_at: float
    tags: frozenset[str] = field(default_factory=frozenset)


class TTLCache:
    """In-memory cache with per-entry freshness windows.

    ``get_or_fetch`` de-duplicates concurrent fetches for the same key: callers
    arriving while a fetch is in flight await that fetch instead of starting
    another one. When every waiting caller is cancelled the fetch is cancelled
    as well and nothing is stored.
    """

    def __init__(
        self,
        default_ttl: float = _DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self._inflight_tags: dict[str, frozenset[str]] = {}
        self._waiters: dict[asyncio.Task, int] = {}
        self._hits = 0
        self._misses = 0
        self._shared = 0

    def _lookup(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry and self._clock() < entry.expires_at:
            self._hits += 1
            return entry.value
        if entry:
            del self._entries[key]
        self._misses += 1
        return _MISSING

    def get(self, key: str) -> Any | None:
        value = self._lookup(key)
        return None if value is _MISSING else value

    def set(
        self,
        key: str,
        value: Any,
        ttl: float | None = None,
        tags: Iterable[str] = (),
    ) -> None:
        window = self.default_ttl if ttl is None else ttl
        self._entries[key] = _Entry(value, self._clock() + window, frozenset(tags))

    def contains(self, key: str) -> bool:
        entry = self._entries.get(key)
        return bool(entry) and self._clock() < entry.expires_at

    def is_pending(self, key: str) -> bool:
        return key in self._inflight

    def invalidate(self, key: str) -> bool:
        # Detach an in-flight fetch so its result is not stored.
        detached = self._inflight.pop(key, None) is not None
        self._inflight_tags.pop(key, None)
        return self._entries.pop(key, None) is not None or detached

    def invalidate_tag(self, tag: str) -> int:
        keys = [k for k, e in self._entries.items() if tag in e.tags]
        for key in keys:
            del self._entries[key]
        for key in [k for k, t in self._inflight_tags.items() if tag in t]:
            self._inflight.pop(key, None)
            del self._inflight_tags[key]
        return len(keys)

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Awaitable[Any]],
        ttl: float | None = None,
        tags: Iterable[str] = (),
    ) -> Any:
        value = self._lookup(key)
        if value is not _MISSING:
            return value

        task = self._inflight.get(key)
        if task is None or task.cancelled():
            logger.debug("Cache miss for %s, fetching", key)
            task = asyncio.ensure_future(self._run(key, fetch, ttl, frozenset(tags)))
            self._inflight[key] = task
            self._inflight_tags[key] = frozenset(tags)
            # A task cancelled before it starts never reaches _run's cleanup.
            task.add_done_callback(lambda t: self._release(key, t))
        else:
            self._shared += 1

        # Counted per task: a fetch detached by invalidate keeps its own waiters.
        self._waiters[task] = self._waiters.get(task, 0) + 1
        try:
            return await asyncio.shield(task)
        finally:
            remaining = self._waiters.pop(task) - 1
            if remaining:
                self._waiters[task] = remaining
            elif not task.done():
                logger.debug("All callers for %s went away, cancelling fetch", key)
                task.cancel()

    async def _run(
        self,
        key: str,
        fetch: Callable[[], Awaitable[Any]],
        ttl: float | None,
        tags: frozenset[str],
    ) -> Any:
        task = asyncio.current_task()
        try:
            value = await fetch()
        finally:
            owned = self._inflight.get(key) is task
            self._release(key, task)
        if owned:
            self.set(key, value, ttl, tags)
        return value

    def _release(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
            self._inflight_tags.pop(key, None)

    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "size": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "shared_fetches": self._shared,
            "in_flight": len(self._inflight),
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }

    def clear(self) -> None:
        self._entries.clear()
        self._inflight.clear()
        self._inflight_tags.clear()
        self._hits = 0
        self._misses = 0
        self._shared = 0
