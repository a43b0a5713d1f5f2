"""Supabase-backed result cache shared across serverless instances."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from supabase import Client

from nutrition_matcher.adapters.row_parsing import parse_timestamp
from nutrition_matcher.adapters.supabase_filters import SUPABASE_ERRORS
from nutrition_matcher.domain.errors import CacheUnavailable
from nutrition_matcher.services.cache import CacheBackend


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class SupabaseCacheBackend(CacheBackend):
    """Stores payloads in the match_cache table keyed by cache key."""

    client: Client
    table_name: str = "match_cache"
    clock: Callable[[], datetime] = _utcnow

    def get(self, key: str) -> str | None:
        """Return the payload if the row exists and has not expired."""
        try:
            response = (
                self.client.table(self.table_name)
                .select("payload, expires_at")
                .eq("key", key)
                .limit(1)
                .execute()
            )
        except SUPABASE_ERRORS as exc:
            raise CacheUnavailable(str(exc)) from exc
        if not response.data:
            return None
        row = response.data[0]
        if parse_timestamp(row.get("expires_at")) <= self.clock():
            return None
        payload = row.get("payload")
        return payload if isinstance(payload, str) else None

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Upsert a payload with its expiry time."""
        expires_at = self.clock() + timedelta(seconds=ttl_seconds)
        try:
            self.client.table(self.table_name).upsert(
                {
                    "key": key,
                    "payload": value,
                    "expires_at": expires_at.isoformat(),
                },
                on_conflict="key",
            ).execute()
        except SUPABASE_ERRORS as exc:
            raise CacheUnavailable(str(exc)) from exc

    def delete(self, key: str) -> None:
        """Remove a single key."""
        try:
            self.client.table(self.table_name).delete().eq("key", key).execute()
        except SUPABASE_ERRORS as exc:
            raise CacheUnavailable(str(exc)) from exc

    def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with prefix."""
        try:
            response = (
                self.client.table(self.table_name)
                .delete()
                .like("key", f"{escape_like(prefix)}%")
                .execute()
            )
        except SUPABASE_ERRORS as exc:
            raise CacheUnavailable(str(exc)) from exc
        return len(response.data or [])


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so the prefix matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
