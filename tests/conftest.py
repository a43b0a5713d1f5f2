"""Shared test fixtures."""

import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta

import pytest

from nutrition_matcher.config import Settings
from nutrition_matcher.containers import AppContainer, build_matching_service
from nutrition_matcher.domain.catalog import CandidateItem, NutritionFacts
from nutrition_matcher.domain.constraints import ConstraintSet, Tier
from nutrition_matcher.domain.errors import (
    CacheUnavailable,
    CandidateSourceError,
    ProfileStoreError,
    SubjectNotFound,
)
from nutrition_matcher.domain.profiles import Profile
from nutrition_matcher.policy import CONSUMER_POLICY, ENTERPRISE_POLICY, MatchingPolicy
from nutrition_matcher.services.cache import CacheBackend, InMemoryCache
from nutrition_matcher.services.cascade import CandidateSource
from nutrition_matcher.services.matching import MatchingService, ProfileStore
from nutrition_matcher.services.safety import passes_hard_constraints

AS_OF = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


def make_item(item_id: str, **overrides: object) -> CandidateItem:
    """Build a candidate updated a day before AS_OF unless overridden."""
    item = CandidateItem(
        id=item_id,
        title=f"Item {item_id}",
        updated_at=AS_OF - timedelta(days=1),
        nutrition=NutritionFacts(),
    )
    return replace(item, **overrides)


def tagged(*tags: str) -> frozenset[str]:
    return frozenset(tags)


@dataclass
class InMemoryCandidateSource(CandidateSource):
    """In-memory catalog that pushes hard constraints down like the real store."""

    items: list[CandidateItem] = field(default_factory=list)
    prefilter: bool = True
    calls: list[tuple[Tier, int, frozenset[str]]] = field(default_factory=list)

    def fetch(
        self,
        constraints: ConstraintSet,
        limit: int,
        exclude_ids: frozenset[str] = frozenset(),
    ) -> list[CandidateItem]:
        self.calls.append((constraints.tier, limit, exclude_ids))
        rows = [item for item in self.items if item.id not in exclude_ids]
        if self.prefilter:
            rows = [
                item
                for item in rows
                if item.malformed_fields
                or passes_hard_constraints(item, constraints.hard)
            ]
        rows.sort(key=lambda item: item.id)
        rows.sort(key=lambda item: item.updated_at, reverse=True)
        return rows[:limit]


@dataclass
class FlakyCandidateSource(InMemoryCandidateSource):
    """Fails or stalls on selected tiers."""

    failing_tiers: set[Tier] = field(default_factory=set)
    slow_tiers: set[Tier] = field(default_factory=set)
    delay_seconds: float = 0.3

    def fetch(
        self,
        constraints: ConstraintSet,
        limit: int,
        exclude_ids: frozenset[str] = frozenset(),
    ) -> list[CandidateItem]:
        if constraints.tier in self.failing_tiers:
            self.calls.append((constraints.tier, limit, exclude_ids))
            raise CandidateSourceError(f"{constraints.tier} unavailable")
        if constraints.tier in self.slow_tiers:
            time.sleep(self.delay_seconds)
        return super().fetch(constraints, limit, exclude_ids)


@dataclass
class InMemoryProfileStore(ProfileStore):
    """In-memory profile store for tests."""

    profiles: dict[tuple[str, str], Profile] = field(default_factory=dict)
    failing_subjects: set[str] = field(default_factory=set)
    unknown_subjects: set[str] = field(default_factory=set)
    lookups: list[tuple[str, str]] = field(default_factory=list)

    def add(self, tenant_id: str, profile: Profile) -> None:
        self.profiles[(tenant_id, profile.subject_id)] = profile

    def get_profile(self, tenant_id: str, subject_id: str) -> Profile | None:
        self.lookups.append((tenant_id, subject_id))
        if subject_id in self.failing_subjects:
            raise ProfileStoreError(f"profile store down for {subject_id}")
        if subject_id in self.unknown_subjects:
            raise SubjectNotFound(f"no active subject {subject_id}")
        return self.profiles.get((tenant_id, subject_id))


@dataclass
class UnavailableCache(CacheBackend):
    """Cache backend whose every call fails."""

    attempts: int = 0

    def get(self, key: str) -> str | None:
        self.attempts += 1
        raise CacheUnavailable("cache offline")

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self.attempts += 1
        raise CacheUnavailable("cache offline")

    def delete(self, key: str) -> None:
        self.attempts += 1
        raise CacheUnavailable("cache offline")

    def delete_prefix(self, prefix: str) -> int:
        self.attempts += 1
        raise CacheUnavailable("cache offline")


@dataclass
class ManualClock:
    """Settable clock for TTL tests."""

    now: datetime = AS_OF

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        admin_token="admin-token",
    )


def build_service(
    settings: Settings,
    source: CandidateSource,
    profile_store: ProfileStore,
    *,
    policy: MatchingPolicy = CONSUMER_POLICY,
    cache_backend: CacheBackend | None = None,
    clock: Callable[[], datetime] = lambda: AS_OF,
) -> MatchingService:
    """Matching service over in-memory ports with a fixed clock."""
    service = build_matching_service(
        settings,
        policy=policy,
        source=source,
        profile_store=profile_store,
        cache_backend=cache_backend if cache_backend is not None else InMemoryCache(),
    )
    service.clock = clock
    return service


@pytest.fixture
def recipe_source() -> InMemoryCandidateSource:
    return InMemoryCandidateSource()


@pytest.fixture
def product_source() -> InMemoryCandidateSource:
    return InMemoryCandidateSource()


@pytest.fixture
def profile_store() -> InMemoryProfileStore:
    return InMemoryProfileStore()


@pytest.fixture
def container(
    settings: Settings,
    recipe_source: InMemoryCandidateSource,
    product_source: InMemoryCandidateSource,
    profile_store: InMemoryProfileStore,
) -> AppContainer:
    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        feed_matching=build_service(settings, recipe_source, profile_store),
        product_matching=build_service(
            settings, product_source, profile_store, policy=ENTERPRISE_POLICY
        ),
        close_resources=close_resources,
    )
