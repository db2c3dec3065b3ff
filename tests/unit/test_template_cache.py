import numpy as np
import pytest

from tmplstream import MatchConfig, MatchEngine, TemplateCache
from tmplstream.caching import CachedTemplate, frame_hash, template_key


def entry(size: int = 4) -> CachedTemplate:
    return CachedTemplate(data=np.zeros((size, size), dtype=np.uint8), width=size, height=size)


def test_evicts_least_recently_used(clock) -> None:
    cache = TemplateCache(capacity=2, ttl=60.0, clock=clock)
    cache.set("a", entry())
    cache.set("b", entry())
    assert cache.get("a") is not None

    cache.set("c", entry())

    assert "a" in cache
    assert "b" not in cache
    assert "c" in cache
    assert cache.evictions == 1


def test_size_never_exceeds_capacity(clock) -> None:
    cache = TemplateCache(capacity=3, ttl=60.0, clock=clock)
    for index in range(10):
        cache.set(index, entry())
        assert len(cache) <= 3


def test_expired_entries_are_not_returned(clock) -> None:
    cache = TemplateCache(capacity=4, ttl=10.0, clock=clock)
    cache.set("a", entry())
    clock.advance(5.0)
    assert cache.get("a") is not None

    clock.advance(10.5)

    assert cache.get("a") is None
    assert len(cache) == 0


def test_set_purges_expired_before_evicting(clock) -> None:
    cache = TemplateCache(capacity=2, ttl=10.0, clock=clock)
    cache.set("stale", entry())
    clock.advance(6.0)
    cache.set("fresh", entry())
    clock.advance(6.0)

    cache.set("new", entry())

    assert "stale" not in cache
    assert "fresh" in cache
    assert "new" in cache


def test_stats_report_hit_rate(clock) -> None:
    cache = TemplateCache(capacity=2, ttl=10.0, clock=clock)
    cache.set("a", entry())
    cache.get("a")
    cache.get("missing")

    stats = cache.stats()

    assert stats["size"] == 1
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == pytest.approx(0.5)


def test_clear_empties_the_cache(clock) -> None:
    cache = TemplateCache(capacity=2, ttl=10.0, clock=clock)
    cache.set("a", entry())
    cache.clear()
    assert len(cache) == 0


@pytest.mark.parametrize("capacity, ttl", [(0, 1.0), (1, 0.0)])
def test_rejects_invalid_bounds(capacity, ttl) -> None:
    with pytest.raises(ValueError):
        TemplateCache(capacity=capacity, ttl=ttl)


def test_template_key_separates_equal_sized_templates(make_texture) -> None:
    first = make_texture(16, 16, seed=1)
    second = make_texture(16, 16, seed=2)

    assert template_key(first, 0.5, True) != template_key(second, 0.5, True)
    assert template_key(first, 0.5, True) == template_key(first.copy(), 0.5, True)
    assert template_key(first, 0.5, True) != template_key(first, 0.5, False)
    assert template_key(first, 0.5, True, name="a").identity.startswith("name:a:")


def test_frame_hash_is_deterministic_and_shape_aware(make_texture) -> None:
    image = make_texture(40, 60, seed=4)

    assert frame_hash(image) == frame_hash(image.copy())
    assert frame_hash(image).startswith("40x60x3:")
    assert frame_hash(image[:, :30]) != frame_hash(image)
    assert frame_hash(np.zeros((0, 5), dtype=np.uint8)).endswith(":empty")


def test_engine_cache_stays_bounded_and_evicts_oldest(scene) -> None:
    engine = MatchEngine(cache=TemplateCache(capacity=10, ttl=300.0))
    config = MatchConfig(downsample=1.0)
    templates = [scene[10 : 42, 20 + index * 40 : 52 + index * 40].copy() for index in range(11)]

    for template in templates:
        engine.single_match(scene, template, config)
        assert len(engine.cache) <= 10

    assert len(engine.cache) == 10
    assert engine.single_match(scene, templates[0], config).cache_hit is False
    assert engine.single_match(scene, templates[-1], config).cache_hit is True
