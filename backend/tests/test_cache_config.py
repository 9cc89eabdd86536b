import logging

import pytest

from ladder import config
from ladder.cache import TTLCache


@pytest.mark.anyio
async def test_cache_drops_entries_for_changed_players():
    cache = TTLCache(ttl_seconds=30)
    await cache.set(("a", "profile"), {"rating": 1216})
    await cache.set(("a", "streaks", "singles"), {"current": 1})
    await cache.set(("b", "profile"), {"rating": 1184})

    await cache.invalidate_players(["a", None])

    assert await cache.get(("a", "profile")) is None
    assert await cache.get(("a", "streaks", "singles")) is None
    assert await cache.get(("b", "profile")) == {"rating": 1184}
    assert len(cache) == 1


@pytest.mark.anyio
async def test_cache_with_zero_ttl_stores_nothing():
    cache = TTLCache(ttl_seconds=0)
    await cache.set(("a", "profile"), {"rating": 1200})
    assert await cache.get(("a", "profile")) is None


def test_env_number_falls_back_on_bad_values(monkeypatch, caplog):
    monkeypatch.setenv("PENDING_MATCH_TTL_HOURS", "soon")
    with caplog.at_level(logging.WARNING):
        assert config.env_number("PENDING_MATCH_TTL_HOURS", 24.0) == 24.0
    assert "not a valid number" in caplog.text

    monkeypatch.setenv("PENDING_MATCH_TTL_HOURS", "-3")
    assert config.env_number("PENDING_MATCH_TTL_HOURS", 24.0) == 24.0

    monkeypatch.setenv("PENDING_MATCH_TTL_HOURS", "48")
    assert config.env_number("PENDING_MATCH_TTL_HOURS", 24.0) == 48.0


@pytest.mark.parametrize(
    "raw, expected",
    [(None, "/api"), ("", "/api"), ("v1", "/v1"), ("/api/", "/api"), ("/", "/")],
)
def test_api_prefix_is_canonical(raw, expected):
    assert config._canon_prefix(raw) == expected


def test_friendly_flag_is_read_at_call_time(monkeypatch):
    monkeypatch.delenv("FRIENDLY_MATCHES_COUNT_RECORD", raising=False)
    assert config.friendly_matches_count_record() is False
    monkeypatch.setenv("FRIENDLY_MATCHES_COUNT_RECORD", "yes")
    assert config.friendly_matches_count_record() is True
