"""Tests for container wiring."""

import asyncio
import json

import pytest

from nutrition_matcher.adapters.supabase_cache_backend import SupabaseCacheBackend
from nutrition_matcher.adapters.supabase_product_source import SupabaseProductSource
from nutrition_matcher.adapters.supabase_recipe_source import SupabaseRecipeSource
from nutrition_matcher.containers import build_container
from nutrition_matcher.domain.errors import ConfigurationError
from nutrition_matcher.policy import CONSUMER_POLICY
from nutrition_matcher.services.cache import InMemoryCache


def test_build_container_creates_both_engines(settings) -> None:
    container = build_container(settings)

    assert container.feed_matching.policy.version == "consumer-v1"
    assert container.product_matching.policy.version == "enterprise-v1"
    assert isinstance(container.feed_matching.cascade.source, SupabaseRecipeSource)
    assert isinstance(
        container.product_matching.cascade.source, SupabaseProductSource
    )
    assert isinstance(container.feed_matching.cache.backend, InMemoryCache)
    assert container.feed_matching.cache.ttl_seconds == 900
    asyncio.run(container.close_resources())


def test_build_container_uses_supabase_cache_when_configured(settings) -> None:
    container = build_container(
        settings.model_copy(update={"cache_backend": "supabase"})
    )

    assert isinstance(container.product_matching.cache.backend, SupabaseCacheBackend)


def test_policy_override_is_loaded_from_disk(settings, tmp_path) -> None:
    data = json.loads(CONSUMER_POLICY.model_dump_json())
    data["version"] = "consumer-v2"
    path = tmp_path / "consumer.json"
    path.write_text(json.dumps(data), encoding="utf-8")

    container = build_container(
        settings.model_copy(update={"consumer_policy_path": str(path)})
    )

    assert container.feed_matching.policy.version == "consumer-v2"


def test_invalid_policy_override_fails_startup(settings, tmp_path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{}", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        build_container(
            settings.model_copy(update={"enterprise_policy_path": str(path)})
        )
