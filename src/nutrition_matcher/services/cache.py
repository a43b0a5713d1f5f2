"""Result cache abstractions."""

import asyncio
import json
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol

from nutrition_matcher.domain.errors import CacheUnavailable
from nutrition_matcher.domain.results import ScoredResult

_logger = logging.getLogger(__name__)

KEY_NAMESPACE = "matches"


class CacheBackend(Protocol):
    """Key-value store with per-entry TTL and key/prefix deletes."""

    def get(self, key: str) -> str | None:
        """Return a cached payload if present and not expired."""

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a payload with a TTL in seconds."""

    def delete(self, key: str) -> None:
        """Remove a single key."""

    def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with prefix and return the count."""


@dataclass
class _CacheEntry:
    value: str
    created_at: datetime
    expires_at: datetime


@dataclass
class InMemoryCache(CacheBackend):
    """In-memory cache backend; writes are atomic per key."""

    _entries: dict[str, _CacheEntry]

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._entries = {}
        self._lock = threading.Lock()
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    def get(self, key: str) -> str | None:
        """Return a cached payload if it hasn't expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                self._entries.pop(key, None)
                return None
            return entry.value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a payload with a TTL."""
        now = self._clock()
        entry = _CacheEntry(
            value=value,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )
        with self._lock:
            self._entries[key] = entry

    def delete(self, key: str) -> None:
        """Remove a single key."""
        with self._lock:
            self._entries.pop(key, None)

    def delete_prefix(self, prefix: str) -> int:
        """Remove every key with the prefix."""
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)


@dataclass
class ResultCache:
    """Read-through wrapper that degrades to a miss when the backend fails."""

    backend: CacheBackend
    ttl_seconds: int = 900
    warning_window_seconds: float = 60.0
    _last_warning: float | None = field(default=None, init=False, repr=False)

    async def get(self, key: str) -> str | None:
        """Return the payload for key, or None on miss or backend failure."""
        try:
            return await asyncio.to_thread(self.backend.get, key)
        except CacheUnavailable as exc:
            self._warn("get", exc)
            return None

    async def set(self, key: str, payload: str, ttl_seconds: int | None = None) -> None:
        """Store a payload; failures are logged and ignored."""
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        try:
            await asyncio.to_thread(self.backend.set, key, payload, ttl)
        except CacheUnavailable as exc:
            self._warn("set", exc)

    async def invalidate(
        self, key: str | None = None, *, prefix: str | None = None
    ) -> int:
        """Delete one key or every key under a prefix."""
        try:
            if prefix is not None:
                return await asyncio.to_thread(self.backend.delete_prefix, prefix)
            if key is not None:
                await asyncio.to_thread(self.backend.delete, key)
                return 1
        except CacheUnavailable as exc:
            self._warn("invalidate", exc)
        return 0

    def _warn(self, action: str, exc: Exception) -> None:
        now = time.monotonic()
        if (
            self._last_warning is not None
            and now - self._last_warning < self.warning_window_seconds
        ):
            return
        self._last_warning = now
        _logger.warning(
            "Result cache %s unavailable, computing directly: %s", action, exc
        )


def subject_prefix(tenant_id: str, subject_id: str) -> str:
    """Prefix shared by every cached page of one subject."""
    return f"{KEY_NAMESPACE}:{tenant_id}:{subject_id}:"


def result_key(
    tenant_id: str, subject_id: str, policy_version: str, bucket: int
) -> str:
    """Cache key for one quota bucket."""
    return f"{subject_prefix(tenant_id, subject_id)}{policy_version}:{bucket}"


def encode_results(results: list[ScoredResult]) -> str:
    """Serialize results to a stable JSON payload."""
    return json.dumps(
        [result.to_dict() for result in results],
        sort_keys=True,
        separators=(",", ":"),
    )


def decode_results(payload: str) -> list[ScoredResult]:
    """Deserialize a payload produced by encode_results."""
    return [ScoredResult.from_dict(row) for row in json.loads(payload)]
