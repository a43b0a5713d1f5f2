"""Cascading relaxation across constraint tiers."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from nutrition_matcher.domain.catalog import CandidateItem
from nutrition_matcher.domain.constraints import ConstraintSet, Tier
from nutrition_matcher.domain.errors import CandidateSourceError, CandidateSourceTimeout
from nutrition_matcher.domain.profiles import Profile
from nutrition_matcher.domain.results import ScoredResult
from nutrition_matcher.policy import TierWeights
from nutrition_matcher.services.constraints import ConstraintDeriver
from nutrition_matcher.services.scoring import Scorer

_logger = logging.getLogger(__name__)


class CandidateSource(Protocol):
    """Catalog access used by the cascade."""

    def fetch(
        self,
        constraints: ConstraintSet,
        limit: int,
        exclude_ids: frozenset[str] = frozenset(),
    ) -> list[CandidateItem]:
        """Return up to limit candidates, ideally pre-filtered on hard constraints.

        A page shorter than limit means nothing else is left for these
        constraints.
        """


@dataclass(frozen=True)
class CascadeOutcome:
    """Accepted results plus which tiers contributed or failed."""

    results: list[ScoredResult]
    tiers: tuple[Tier, ...] = ()
    failed_tiers: tuple[Tier, ...] = ()


@dataclass
class CascadeController:
    """Runs tiers from strict to relaxed until the quota is filled."""

    source: CandidateSource
    deriver: ConstraintDeriver
    scorer: Scorer
    tier_timeout_seconds: float = 2.0
    overfetch_multiplier: int = 3
    min_fetch: int = 20
    max_fetch: int = 400

    async def run(
        self,
        profile: Profile | None,
        quota: int,
        *,
        tenant_id: str,
        subject_id: str,
        as_of: datetime,
    ) -> CascadeOutcome:
        """Accumulate deduplicated results across tiers.

        A tier is only attempted while fewer than quota results have been
        accepted. Source failures and timeouts skip the tier. Results keep
        tier order; inside a tier they follow score, recency, then id.
        """
        policy = self.deriver.policy
        accepted: dict[str, ScoredResult] = {}
        contributed: list[Tier] = []
        failed: list[Tier] = []

        for tier in policy.tier_order:
            remaining = quota - len(accepted)
            if remaining <= 0:
                break
            constraints = self.deriver.derive(
                profile, tier, tenant_id=tenant_id, subject_id=subject_id, as_of=as_of
            )
            try:
                eligible = await self._collect(
                    constraints, policy.tier(tier).weights, remaining, accepted
                )
            except CandidateSourceError as exc:
                _logger.warning(
                    "Tier %s skipped for %s/%s: %s", tier, tenant_id, subject_id, exc
                )
                failed.append(tier)
                continue

            chosen = eligible[:remaining]
            for result in chosen:
                accepted[result.item.id] = result
            _logger.debug(
                "Tier %s: eligible=%s accepted=%s total=%s",
                tier,
                len(eligible),
                len(chosen),
                len(accepted),
            )
            if chosen:
                contributed.append(tier)

        return CascadeOutcome(
            results=sorted(accepted.values(), key=ScoredResult.sort_key),
            tiers=tuple(contributed),
            failed_tiers=tuple(failed),
        )

    def fetch_limit(self, remaining: int, accepted: int) -> int:
        """Over-fetch bound for one page of a tier."""
        wanted = remaining * self.overfetch_multiplier + accepted
        return min(max(wanted, self.min_fetch), self.max_fetch)

    async def _collect(
        self,
        constraints: ConstraintSet,
        weights: TierWeights,
        remaining: int,
        accepted: dict[str, ScoredResult],
    ) -> list[ScoredResult]:
        """Page through one tier until enough eligible items turn up.

        Paging stops once remaining eligible items are found, the source
        runs dry or max_fetch rows have been scanned. Every id already seen
        is pushed down so rejected rows are not fetched twice.
        """
        seen: set[str] = set()
        eligible: list[ScoredResult] = []
        scanned = 0
        while scanned < self.max_fetch and len(eligible) < remaining:
            limit = min(
                self.fetch_limit(remaining - len(eligible), len(accepted)),
                self.max_fetch - scanned,
            )
            items = await self._fetch(constraints, limit, frozenset(accepted) | seen)
            fresh = [
                item
                for item in items
                if item.id not in accepted and item.id not in seen
            ]
            seen.update(item.id for item in items)
            scanned += len(items)
            for item in fresh:
                result = self.scorer.score(item, constraints, weights)
                if result is not None:
                    eligible.append(result)
            # Short page, or a source that ignores exclusions.
            if len(items) < limit or not fresh:
                break
        return sorted(eligible, key=ScoredResult.sort_key)

    async def _fetch(
        self, constraints: ConstraintSet, limit: int, exclude_ids: frozenset[str]
    ) -> list[CandidateItem]:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.source.fetch, constraints, limit, exclude_ids),
                timeout=self.tier_timeout_seconds,
            )
        except TimeoutError as exc:
            raise CandidateSourceTimeout(
                f"{constraints.tier} tier timed out after {self.tier_timeout_seconds}s"
            ) from exc
