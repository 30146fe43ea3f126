"""Tests for dokkan_datahub.aggregation.coordinator."""

import asyncio
from datetime import datetime, timezone

import pytest

from dokkan_datahub.aggregation.coordinator import UpdateCoordinator
from dokkan_datahub.aggregation.orchestrator import FetchOrchestrator
from dokkan_datahub.core.exceptions import (
    CacheIOError,
    ConfigurationError,
    SourceExhaustedError,
    TransientSourceError,
)
from dokkan_datahub.core.models import CacheEntry, GameVersion


# --- Fixtures ---


@pytest.fixture
def sources(make_source, card_records, event_records):
    return {
        "alpha": make_source("alpha", {"cards": card_records, "items": [{"name": "Senzu"}]}),
        "beta": make_source("beta", {"cards": card_records, "events": event_records}),
    }


@pytest.fixture
def orchestrator(registry, clock, wall_clock) -> FetchOrchestrator:
    return FetchOrchestrator(
        registry,
        rate_limits={"alpha": 1000, "beta": 1500},
        priorities={
            "cards": ["alpha", "beta"],
            "events": ["beta", "alpha"],
            "items": ["alpha", "beta"],
        },
        clock=clock,
        sleep=clock.sleep,
        wall_clock=wall_clock,
    )


@pytest.fixture
def coordinator(json_store, registry, orchestrator, sources, wall_clock) -> UpdateCoordinator:
    return UpdateCoordinator(json_store, registry, orchestrator, sources, wall_clock=wall_clock)


class FailingStore:
    """Cache store whose writes fail for selected keys."""

    def __init__(self, inner, failing_keys):
        self._inner = inner
        self._failing = set(failing_keys)

    async def get(self, key):
        return await self._inner.get(key)

    async def put(self, key, value):
        if key in self._failing:
            raise CacheIOError("disk full", context={"operation": "put", "key": key})
        await self._inner.put(key, value)

    async def keys(self):
        return await self._inner.keys()

    async def clear_all(self):
        await self._inner.clear_all()


class TestGetOrRefresh:
    async def test_miss_fetches_and_caches(self, coordinator, json_store, sources, wall_clock):
        wall_clock.ms = 100
        result = await coordinator.get_or_refresh("cards")
        assert not result.from_cache
        assert result.source == "alpha"
        assert result.count == 2
        stored = await json_store.get("cards")
        assert stored["timestamp"] == 100
        assert stored["source"] == "alpha"
        assert len(stored["data"]) == 2

    async def test_ttl_boundaries(self, coordinator, sources, wall_clock):
        wall_clock.ms = 0
        first = await coordinator.get_or_refresh("cards")
        assert not first.from_cache

        wall_clock.ms = 500
        second = await coordinator.get_or_refresh("cards")
        assert second.from_cache
        assert second.data == first.data
        assert sources["alpha"].fetch_count("cards") == 1

        wall_clock.ms = 1500
        third = await coordinator.get_or_refresh("cards")
        assert not third.from_cache
        assert sources["alpha"].fetch_count("cards") == 2

    async def test_repeated_calls_idempotent(self, coordinator, sources):
        results = [await coordinator.get_or_refresh("cards") for _ in range(3)]
        assert [r.from_cache for r in results] == [False, True, True]
        assert results[1].data == results[2].data
        assert sources["alpha"].fetch_count("cards") == 1

    async def test_cached_dates_restored(self, coordinator, wall_clock):
        wall_clock.ms = 0
        fresh = await coordinator.get_or_refresh("events")
        wall_clock.ms = 10
        cached = await coordinator.get_or_refresh("events")
        assert cached.from_cache
        assert isinstance(cached.data[0]["startDate"], datetime)
        assert cached.data[0]["startDate"] == fresh.data[0]["startDate"]

    async def test_exhausted_propagates(self, coordinator, sources):
        sources["alpha"].data["cards"] = TransientSourceError("a down")
        sources["beta"].data["cards"] = TransientSourceError("b down")
        with pytest.raises(SourceExhaustedError):
            await coordinator.get_or_refresh("cards")

    async def test_unconfigured_type_raises(self, coordinator):
        with pytest.raises(ConfigurationError):
            await coordinator.get_or_refresh("missions")

    async def test_cache_write_failure_propagates(
        self, json_store, registry, orchestrator, sources, wall_clock
    ):
        store = FailingStore(json_store, {"cards"})
        coordinator = UpdateCoordinator(store, registry, orchestrator, sources, wall_clock=wall_clock)
        with pytest.raises(CacheIOError):
            await coordinator.get_or_refresh("cards")

    async def test_missing_adapter_falls_back(self, json_store, registry, orchestrator, sources, wall_clock):
        coordinator = UpdateCoordinator(
            json_store, registry, orchestrator, {"beta": sources["beta"]}, wall_clock=wall_clock
        )
        result = await coordinator.get_or_refresh("cards")
        assert result.source == "beta"

    async def test_malformed_entry_treated_as_miss(self, coordinator, json_store):
        await json_store.put("cards", {"unexpected": True})
        assert await coordinator.get_cached("cards") is None
        result = await coordinator.get_or_refresh("cards")
        assert not result.from_cache


class TestSingleFlight:
    async def test_concurrent_calls_share_one_fetch(self, coordinator, sources):
        gate = asyncio.Event()
        sources["alpha"].gate = gate
        tasks = [asyncio.create_task(coordinator.get_or_refresh("cards")) for _ in range(3)]
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(*tasks)
        assert sources["alpha"].fetch_count("cards") == 1
        assert all(r.source == "alpha" for r in results)
        assert not results[0].from_cache

    async def test_concurrent_failure_shared(self, coordinator, sources):
        gate = asyncio.Event()
        sources["alpha"].gate = gate
        sources["beta"].gate = gate
        sources["alpha"].data["cards"] = TransientSourceError("a down")
        sources["beta"].data["cards"] = TransientSourceError("b down")
        tasks = [asyncio.create_task(coordinator.get_or_refresh("cards")) for _ in range(2)]
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        assert all(isinstance(r, SourceExhaustedError) for r in results)
        assert sources["alpha"].fetch_count("cards") == 1

    async def test_different_types_not_merged(self, coordinator, sources):
        await asyncio.gather(
            coordinator.get_or_refresh("cards"),
            coordinator.get_or_refresh("items"),
        )
        assert sources["alpha"].fetch_count("cards") == 1
        assert sources["alpha"].fetch_count("items") == 1

    async def test_inflight_cleared_after_completion(self, coordinator, wall_clock):
        await coordinator.get_or_refresh("cards")
        await asyncio.sleep(0)
        assert coordinator._inflight == {}

    async def test_cancelled_caller_does_not_cancel_refresh(self, coordinator, sources):
        gate = asyncio.Event()
        sources["alpha"].gate = gate
        first = asyncio.create_task(coordinator.get_or_refresh("cards"))
        second = asyncio.create_task(coordinator.get_or_refresh("cards"))
        await asyncio.sleep(0)
        first.cancel()
        gate.set()
        result = await second
        assert result.source == "alpha"
        assert first.cancelled()


class TestGetCached:
    async def test_returns_stale_entry(self, coordinator, wall_clock):
        wall_clock.ms = 0
        await coordinator.get_or_refresh("cards")
        wall_clock.ms = 10_000
        entry = await coordinator.get_cached("cards")
        assert isinstance(entry, CacheEntry)
        assert entry.source == "alpha"
        assert not entry.is_fresh(wall_clock.ms, 1000)

    async def test_none_when_absent(self, coordinator):
        assert await coordinator.get_cached("cards") is None


class TestUpdateAll:
    async def test_all_succeed(self, coordinator):
        report = await coordinator.update_all()
        assert report.success
        assert set(report.results) == {"cards", "events", "items"}
        assert report.results["events"].source == "beta"
        assert report.results["cards"].count == 2

    async def test_failure_isolated(self, coordinator, sources):
        sources["beta"].data["events"] = TransientSourceError("down")
        report = await coordinator.update_all(["cards", "events", "items"])
        assert not report.success
        assert report.failed_types == ["events"]
        assert report.results["cards"].ok
        assert report.results["items"].ok
        assert "events" in report.results["events"].error

    async def test_cache_failure_isolated(
        self, json_store, registry, orchestrator, sources, wall_clock
    ):
        store = FailingStore(json_store, {"events"})
        coordinator = UpdateCoordinator(store, registry, orchestrator, sources, wall_clock=wall_clock)
        report = await coordinator.update_all()
        assert report.failed_types == ["events"]
        assert "disk full" in report.results["events"].error
        assert await json_store.get("cards") is not None

    async def test_reports_cache_hits(self, coordinator):
        await coordinator.update_all(["cards"])
        report = await coordinator.update_all(["cards"])
        assert report.results["cards"].from_cache


class TestClearCache:
    async def test_clear_forces_refetch(self, coordinator, sources):
        await coordinator.get_or_refresh("cards")
        await coordinator.clear_cache()
        assert await coordinator.get_cached("cards") is None
        result = await coordinator.get_or_refresh("cards")
        assert not result.from_cache
        assert sources["alpha"].fetch_count("cards") == 2


class TestRescore:
    async def test_single_type(self, coordinator, orchestrator, sources):
        sources["beta"].data["cards"] = [{"id": "1", "version": 3}]
        scores = await coordinator.rescore_and_reorder("cards")
        assert list(scores) == ["cards"]
        assert orchestrator.priorities("cards") == ["beta", "alpha"]
        # Samples are limited to five records
        assert sources["alpha"].calls[-1] == ("cards", {"limit": 5})

    async def test_all_types(self, coordinator):
        scores = await coordinator.rescore_and_reorder()
        assert set(scores) == {"cards", "events", "items"}

    async def test_unknown_type(self, coordinator):
        with pytest.raises(ConfigurationError):
            await coordinator.rescore_and_reorder("nope")


class TestDiscovery:
    async def test_learns_parsers_for_new_types(self, coordinator, registry, orchestrator, sources):
        sources["beta"].data["gear"] = [{"name": "Cape", "power": 5}] * 12
        learned = await coordinator.discover_data_types()
        # items had no parser; gear is new; cards and events have built-ins
        assert learned == ["items", "gear"]
        assert registry.has_type("gear")
        assert registry.cache_ttl_ms("gear") == registry.default_cache_ttl_ms
        assert registry.get_parser("gear").required_fields == ("name", "power")
        assert orchestrator.priorities("gear") == ["alpha", "beta"]
        assert ("gear", {"limit": 10}) in sources["beta"].calls

    async def test_failed_discovery_skipped(self, coordinator, registry, orchestrator, sources):
        sources["beta"].data["gear"] = TransientSourceError("down")
        learned = await coordinator.discover_data_types()
        assert "gear" not in learned
        assert not registry.has_type("gear")
        assert orchestrator.priorities("gear") == []

    async def test_known_parsers_untouched(self, coordinator, registry):
        cards_parser = registry.get_parser("cards")
        await coordinator.discover_data_types()
        assert registry.get_parser("cards") is cards_parser


class TestAnniversary:
    async def test_active_from_events(self, coordinator, wall_clock):
        wall_clock.ms = int(datetime(2024, 7, 10, tzinfo=timezone.utc).timestamp() * 1000)
        status = await coordinator.check_anniversary_status("global")
        assert status.version == GameVersion.GLOBAL
        assert status.is_active
        assert status.event["title"] == "9th Anniversary Celebration"
        assert status.days_remaining == 15

    async def test_failure_reported_not_raised(self, coordinator, sources):
        sources["alpha"].data["events"] = TransientSourceError("down")
        sources["beta"].data["events"] = TransientSourceError("down")
        status = await coordinator.check_anniversary_status(GameVersion.JP)
        assert not status.is_active
        assert status.error
