"""Dependency container wiring for the application."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import Client, create_client

from nutrition_matcher.adapters.supabase_cache_backend import SupabaseCacheBackend
from nutrition_matcher.adapters.supabase_product_source import SupabaseProductSource
from nutrition_matcher.adapters.supabase_profile_repository import (
    SupabaseCustomerProfileRepository,
    SupabaseProfileRepository,
)
from nutrition_matcher.adapters.supabase_recipe_source import SupabaseRecipeSource
from nutrition_matcher.config import Settings
from nutrition_matcher.policy import (
    CONSUMER_POLICY,
    ENTERPRISE_POLICY,
    MatchingPolicy,
    load_policy,
)
from nutrition_matcher.services.cache import CacheBackend, InMemoryCache, ResultCache
from nutrition_matcher.services.cascade import CandidateSource, CascadeController
from nutrition_matcher.services.constraints import ConstraintDeriver
from nutrition_matcher.services.matching import MatchingService, ProfileStore
from nutrition_matcher.services.scoring import Scorer

_logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    feed_matching: MatchingService
    product_matching: MatchingService
    close_resources: Callable[[], Awaitable[None]]


def resolve_policy(path: str | None, default: MatchingPolicy) -> MatchingPolicy:
    """Load a policy override from disk, or fall back to the built-in one."""
    if path is None:
        return default
    policy = load_policy(path)
    _logger.info("Loaded matching policy %s from %s", policy.version, path)
    return policy


def build_matching_service(
    settings: Settings,
    *,
    policy: MatchingPolicy,
    source: CandidateSource,
    profile_store: ProfileStore,
    cache_backend: CacheBackend,
) -> MatchingService:
    """Assemble one cascade-backed matching service from its ports."""
    cascade = CascadeController(
        source=source,
        deriver=ConstraintDeriver(policy),
        scorer=Scorer(policy),
        tier_timeout_seconds=settings.tier_timeout_seconds,
        overfetch_multiplier=settings.overfetch_multiplier,
        min_fetch=settings.min_fetch,
        max_fetch=settings.max_fetch,
    )
    cache = ResultCache(
        backend=cache_backend,
        ttl_seconds=settings.cache_ttl_seconds,
        warning_window_seconds=settings.cache_warning_window_seconds,
    )
    return MatchingService(
        profile_store=profile_store,
        cascade=cascade,
        cache=cache,
        bucket_size=settings.quota_bucket_size,
        max_quota=settings.max_quota,
        max_offset=settings.max_offset,
        max_batch_size=settings.max_batch_size,
        batch_concurrency=settings.batch_concurrency,
    )


def _cache_backend(settings: Settings, client: Client) -> CacheBackend:
    if settings.cache_backend == "supabase":
        return SupabaseCacheBackend(client)
    return InMemoryCache()


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    cache_backend = _cache_backend(resolved_settings, supabase_client)
    feed_matching = build_matching_service(
        resolved_settings,
        policy=resolve_policy(resolved_settings.consumer_policy_path, CONSUMER_POLICY),
        source=SupabaseRecipeSource(supabase_client),
        profile_store=SupabaseProfileRepository(supabase_client),
        cache_backend=cache_backend,
    )
    product_matching = build_matching_service(
        resolved_settings,
        policy=resolve_policy(
            resolved_settings.enterprise_policy_path, ENTERPRISE_POLICY
        ),
        source=SupabaseProductSource(supabase_client),
        profile_store=SupabaseCustomerProfileRepository(supabase_client),
        cache_backend=cache_backend,
    )

    async def close_resources() -> None:
        _logger.info("Matching services stopped")

    return AppContainer(
        settings=resolved_settings,
        feed_matching=feed_matching,
        product_matching=product_matching,
        close_resources=close_resources,
    )
