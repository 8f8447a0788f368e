"""
Tests for the TTL cache / stale-fallback orchestrator.
"""

import json

import pytest

from taskboard.clients.base import FetchResult
from taskboard.errors import NotFound, UpstreamError, UpstreamUnavailable
from taskboard.fetcher import CachedFetcher, compute_cache_key


@pytest.fixture
def fetcher(stub_client, data_controller, clock):
    return CachedFetcher(stub_client, data_controller, clock=clock)


async def _get(fetcher, data_controller, widget_id, force=False):
    return await fetcher.get_data(widget_id, data_controller.get_settings(widget_id), force_refresh=force)


@pytest.mark.asyncio
async def test_miss_fetches_and_persists_pair(fetcher, stub_client, data_controller, stub_widget, clock):
    data = await _get(fetcher, data_controller, stub_widget)

    assert data == {"items": [1]}
    stub_client.fetch.assert_awaited_once()
    settings = data_controller.get_settings(stub_widget)
    assert json.loads(settings["cached_data"]) == {"items": [1]}
    assert settings["last_fetched"] == str(int(clock.now))
    assert settings["cache_key"] == fetcher.cache_key_for(settings)


@pytest.mark.asyncio
async def test_fresh_cache_never_calls_upstream(fetcher, stub_client, data_controller, stub_widget, clock):
    data_controller.upsert_settings(stub_widget, {
        "cached_data": json.dumps({"items": ["cached"]}),
        "last_fetched": int(clock.now) - 30,
    })

    data = await _get(fetcher, data_controller, stub_widget)

    assert data == {"items": ["cached"]}
    stub_client.fetch.assert_not_awaited()


@pytest.mark.asyncio
async def test_second_call_within_ttl_returns_new_value_without_fetch(
    fetcher, stub_client, data_controller, stub_widget, clock
):
    stub_client.fetch.return_value = FetchResult(data=["fresh"])
    await _get(fetcher, data_controller, stub_widget)
    clock.advance(59)

    assert await _get(fetcher, data_controller, stub_widget) == ["fresh"]
    assert stub_client.fetch.await_count == 1


@pytest.mark.asyncio
async def test_expired_cache_refetches(fetcher, stub_client, data_controller, stub_widget, clock):
    await _get(fetcher, data_controller, stub_widget)
    clock.advance(60)

    await _get(fetcher, data_controller, stub_widget)

    assert stub_client.fetch.await_count == 2


@pytest.mark.asyncio
async def test_force_refresh_ignores_ttl(fetcher, stub_client, data_controller, stub_widget):
    await _get(fetcher, data_controller, stub_widget)
    await _get(fetcher, data_controller, stub_widget, force=True)
    await _get(fetcher, data_controller, stub_widget, force=True)

    assert stub_client.fetch.await_count == 3


@pytest.mark.asyncio
async def test_refresh_period_setting_overrides_default(fetcher, stub_client, data_controller, stub_widget, clock):
    data_controller.upsert_setting(stub_widget, "refresh_period", "600")
    await _get(fetcher, data_controller, stub_widget)
    clock.advance(300)

    await _get(fetcher, data_controller, stub_widget)

    assert stub_client.fetch.await_count == 1


def test_invalid_refresh_period_falls_back_to_default(fetcher):
    assert fetcher.ttl_for({"refresh_period": "soon"}) == 60
    assert fetcher.ttl_for({"refresh_period": "0"}) == 60
    assert fetcher.ttl_for({}) == 60
    assert fetcher.ttl_for({"refresh_period": "90"}) == 90


@pytest.mark.asyncio
async def test_failure_returns_stale_cache_and_keeps_timestamp(
    fetcher, stub_client, data_controller, stub_widget, clock
):
    await _get(fetcher, data_controller, stub_widget)
    before = data_controller.get_settings(stub_widget)
    clock.advance(3600)
    stub_client.fetch.side_effect = UpstreamUnavailable("down")

    data = await _get(fetcher, data_controller, stub_widget)

    assert data == {"items": [1]}
    assert data_controller.get_settings(stub_widget)["last_fetched"] == before["last_fetched"]


@pytest.mark.asyncio
async def test_force_refresh_failure_also_falls_back(fetcher, stub_client, data_controller, stub_widget):
    await _get(fetcher, data_controller, stub_widget)
    stub_client.fetch.side_effect = UpstreamError("bad gateway")

    assert await _get(fetcher, data_controller, stub_widget, force=True) == {"items": [1]}


@pytest.mark.asyncio
@pytest.mark.parametrize("error, status", [
    (NotFound("Could not find location: Atlantis"), 404),
    (UpstreamError("Failed to fetch"), 502),
    (UpstreamUnavailable("service unavailable"), 503),
])
async def test_failure_without_cache_raises_typed_error(
    fetcher, stub_client, data_controller, stub_widget, error, status
):
    stub_client.fetch.side_effect = error

    with pytest.raises(type(error)) as excinfo:
        await _get(fetcher, data_controller, stub_widget)

    assert excinfo.value.status_code == status
    assert "cached_data" not in data_controller.get_settings(stub_widget)
    assert "last_fetched" not in data_controller.get_settings(stub_widget)


@pytest.mark.asyncio
async def test_failed_fetch_is_retried_on_next_request(fetcher, stub_client, data_controller, stub_widget):
    stub_client.fetch.side_effect = UpstreamUnavailable("down")
    with pytest.raises(UpstreamUnavailable):
        await _get(fetcher, data_controller, stub_widget)

    stub_client.fetch.side_effect = None
    assert await _get(fetcher, data_controller, stub_widget) == {"items": [1]}
    assert stub_client.fetch.await_count == 2


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_upstream_error(fetcher, stub_client, data_controller, stub_widget):
    stub_client.fetch.side_effect = KeyError("latitude")

    with pytest.raises(UpstreamError) as excinfo:
        await _get(fetcher, data_controller, stub_widget)

    assert excinfo.value.status_code == 502


@pytest.mark.asyncio
async def test_corrupt_cache_is_treated_as_miss(fetcher, stub_client, data_controller, stub_widget, clock):
    data_controller.upsert_settings(stub_widget, {"cached_data": "{not json", "last_fetched": int(clock.now)})

    data = await _get(fetcher, data_controller, stub_widget)

    assert data == {"items": [1]}
    stub_client.fetch.assert_awaited_once()


@pytest.mark.asyncio
async def test_corrupt_cache_with_failing_upstream_raises(fetcher, stub_client, data_controller, stub_widget, clock):
    data_controller.upsert_settings(stub_widget, {"cached_data": "{not json", "last_fetched": int(clock.now)})
    stub_client.fetch.side_effect = UpstreamUnavailable("down")

    with pytest.raises(UpstreamUnavailable):
        await _get(fetcher, data_controller, stub_widget)


@pytest.mark.asyncio
async def test_cache_key_change_forces_miss(fetcher, stub_client, data_controller, stub_widget):
    await _get(fetcher, data_controller, stub_widget)
    # bypass the settings-update path: the key alone must catch the change
    data_controller.upsert_setting(stub_widget, "count", "20")

    await _get(fetcher, data_controller, stub_widget)

    assert stub_client.fetch.await_count == 2


@pytest.mark.asyncio
async def test_stale_data_for_other_settings_is_not_served(fetcher, stub_client, data_controller, stub_widget):
    await _get(fetcher, data_controller, stub_widget)
    data_controller.upsert_setting(stub_widget, "count", "20")
    stub_client.fetch.side_effect = UpstreamUnavailable("down")

    with pytest.raises(UpstreamUnavailable):
        await _get(fetcher, data_controller, stub_widget)


@pytest.mark.asyncio
async def test_derived_settings_written_with_cache(fetcher, stub_client, data_controller, stub_widget):
    stub_client.fetch.return_value = FetchResult(data={"ok": True}, derived={"latitude": "1.5"})

    await _get(fetcher, data_controller, stub_widget)

    settings = data_controller.get_settings(stub_widget)
    assert settings["latitude"] == "1.5"
    assert "cached_data" in settings


def test_cache_key_depends_on_type_and_identity():
    base = compute_cache_key("weather", {"location": "Paris"})

    assert base == compute_cache_key("weather", {"location": "Paris"})
    assert base != compute_cache_key("weather", {"location": "Oslo"})
    assert base != compute_cache_key("aggregator", {"location": "Paris"})


def test_default_refresh_override(stub_client, data_controller):
    fetcher = CachedFetcher(stub_client, data_controller, default_refresh_seconds=900)

    assert fetcher.ttl_for({}) == 900
