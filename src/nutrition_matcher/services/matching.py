"""Public matching facade: cached cascade plus batch fan-out."""

import asyncio
import logging
import math
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

from nutrition_matcher.domain.constraints import Tier
from nutrition_matcher.domain.errors import InvalidInput, MatchError
from nutrition_matcher.domain.profiles import Profile
from nutrition_matcher.domain.results import RankedPage, ScoredResult
from nutrition_matcher.policy import MatchingPolicy
from nutrition_matcher.services.cache import (
    ResultCache,
    decode_results,
    encode_results,
    result_key,
    subject_prefix,
)
from nutrition_matcher.services.cascade import CascadeController, CascadeOutcome

_logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"[A-Za-z0-9][A-Za-z0-9_.@-]{0,127}")


class ProfileStore(Protocol):
    """Read access to subject profiles."""

    def get_profile(self, tenant_id: str, subject_id: str) -> Profile | None:
        """Return the subject's profile, or None when there is none.

        Stores that know their subjects may raise SubjectNotFound instead.
        """


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class MatchingService:
    """Entry point for ranked results of one catalog."""

    profile_store: ProfileStore
    cascade: CascadeController
    cache: ResultCache
    bucket_size: int = 20
    max_quota: int = 200
    max_offset: int = 200
    max_batch_size: int = 100
    batch_concurrency: int = 5
    clock: Callable[[], datetime] = _utcnow

    @property
    def policy(self) -> MatchingPolicy:
        """Policy driving the cascade."""
        return self.cascade.deriver.policy

    async def get_ranked_results(
        self, tenant_id: str, subject_id: str, quota: int, offset: int = 0
    ) -> RankedPage:
        """Return one page of ranked results, served from cache when possible."""
        _check_identifier(tenant_id, "tenant_id")
        _check_identifier(subject_id, "subject_id")
        self._check_quota(quota)
        self._check_offset(offset)

        bucket = self.bucket_for(quota, offset)
        key = result_key(tenant_id, subject_id, self.policy.version, bucket)
        payload = await self.cache.get(key)
        if payload is not None:
            try:
                results = decode_results(payload)
            except (ValueError, KeyError, TypeError) as exc:
                _logger.warning("Discarding unreadable cache entry %s: %s", key, exc)
            else:
                return self._page(results, quota, offset, cache_hit=True)

        outcome = await self._compute(tenant_id, subject_id)
        results = outcome.results[:bucket]
        if outcome.failed_tiers:
            _logger.info(
                "Not caching %s/%s: tiers failed %s",
                tenant_id,
                subject_id,
                [tier.value for tier in outcome.failed_tiers],
            )
        else:
            await self.cache.set(key, encode_results(results))
        return self._page(results, quota, offset, cache_hit=False)

    async def batch_get_ranked_results(
        self, tenant_id: str, subject_ids: Iterable[str], quota: int
    ) -> dict[str, list[ScoredResult] | MatchError]:
        """Rank several subjects with bounded concurrency.

        A failing subject becomes a MatchError entry; siblings still run and
        the call itself does not raise for per-subject failures.
        """
        _check_identifier(tenant_id, "tenant_id")
        self._check_quota(quota)
        unique = list(dict.fromkeys(subject_ids))
        if not unique:
            raise InvalidInput("subject_ids must not be empty")
        if len(unique) > self.max_batch_size:
            raise InvalidInput(f"at most {self.max_batch_size} subjects per batch")

        semaphore = asyncio.Semaphore(self.batch_concurrency)

        async def run_one(
            subject_id: str,
        ) -> tuple[str, list[ScoredResult] | MatchError]:
            async with semaphore:
                try:
                    page = await self.get_ranked_results(tenant_id, subject_id, quota)
                except Exception as exc:
                    _logger.warning(
                        "Batch matching failed for %s/%s: %s",
                        tenant_id,
                        subject_id,
                        exc,
                    )
                    return subject_id, MatchError.from_exception(subject_id, exc)
                return subject_id, page.results

        pairs = await asyncio.gather(*(run_one(subject_id) for subject_id in unique))
        return dict(pairs)

    async def invalidate(self, tenant_id: str, subject_id: str) -> int:
        """Drop every cached page for a subject."""
        _check_identifier(tenant_id, "tenant_id")
        _check_identifier(subject_id, "subject_id")
        prefix = subject_prefix(tenant_id, subject_id)
        removed = await self.cache.invalidate(prefix=prefix)
        _logger.info(
            "Invalidated %s cached pages for %s/%s", removed, tenant_id, subject_id
        )
        return removed

    def bucket_for(self, quota: int, offset: int) -> int:
        """Round the requested window up to the cache bucket size."""
        return math.ceil((offset + quota) / self.bucket_size) * self.bucket_size

    @property
    def ranking_depth(self) -> int:
        """Length of the ranking every page is sliced from."""
        return self.bucket_for(self.max_quota, self.max_offset)

    async def _compute(self, tenant_id: str, subject_id: str) -> CascadeOutcome:
        """Rank to the full depth so every bucket is a prefix of one list."""
        profile = await asyncio.to_thread(
            self.profile_store.get_profile, tenant_id, subject_id
        )
        if profile is None:
            _logger.info(
                "No profile for %s/%s, using widest-net constraints",
                tenant_id,
                subject_id,
            )
        return await self.cascade.run(
            profile,
            self.ranking_depth,
            tenant_id=tenant_id,
            subject_id=subject_id,
            as_of=self.clock(),
        )

    def _page(
        self, results: list[ScoredResult], quota: int, offset: int, *, cache_hit: bool
    ) -> RankedPage:
        page = results[offset : offset + quota]
        present = {result.tier for result in page}
        tiers: tuple[Tier, ...] = tuple(
            tier for tier in self.policy.tier_order if tier in present
        )
        return RankedPage(results=page, cache_hit=cache_hit, tiers=tiers)

    def _check_quota(self, quota: int) -> None:
        if isinstance(quota, bool) or not isinstance(quota, int):
            raise InvalidInput("quota must be an integer")
        if not 1 <= quota <= self.max_quota:
            raise InvalidInput(f"quota must be between 1 and {self.max_quota}")

    def _check_offset(self, offset: int) -> None:
        if isinstance(offset, bool) or not isinstance(offset, int):
            raise InvalidInput("offset must be an integer")
        if not 0 <= offset <= self.max_offset:
            raise InvalidInput(f"offset must be between 0 and {self.max_offset}")


def _check_identifier(value: object, name: str) -> None:
    if not isinstance(value, str) or not _IDENTIFIER.fullmatch(value):
        raise InvalidInput(f"{name} is not a valid identifier")
