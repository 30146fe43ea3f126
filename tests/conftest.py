"""Shared pytest fixtures for dokkan-datahub."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from dokkan_datahub.core.config import (
    DataTypeConfig,
    HubConfig,
    SourceConfig,
    StorageConfig,
)
from dokkan_datahub.core.models import StorageBackend
from dokkan_datahub.parsing.builtin import BUILTIN_PARSERS
from dokkan_datahub.parsing.registry import TypeRegistry
from dokkan_datahub.storage.store import JsonFileCacheStore, SqliteCacheStore


class FakeClock:
    """Monotonic clock in seconds whose sleep advances time instantly."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWallClock:
    """Epoch-milliseconds clock set by hand."""

    def __init__(self, ms: int = 0) -> None:
        self.ms = ms

    def __call__(self) -> int:
        return self.ms


class FakeSource:
    """In-memory source adapter.

    `data` maps data type -> records or an exception to raise. Setting
    `gate` makes every fetch wait for the event.
    """

    def __init__(self, name: str, data: dict[str, Any] | None = None) -> None:
        self._name = name
        self.data = data or {}
        self.calls: list[tuple[str, dict]] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    @property
    def name(self) -> str:
        return self._name

    async def fetch(self, data_type, params=None):
        self.calls.append((data_type, dict(params or {})))
        if self.gate is not None:
            await self.gate.wait()
        value = self.data.get(data_type, [])
        if isinstance(value, Exception):
            raise value
        return [dict(r) if isinstance(r, dict) else r for r in value]

    async def sample(self, data_type, limit):
        records = await self.fetch(data_type, {"limit": limit})
        return records[:limit]

    async def available_data_types(self):
        return list(self.data)

    async def close(self):
        self.closed = True

    def fetch_count(self, data_type: str) -> int:
        return sum(1 for name, _ in self.calls if name == data_type)


# --- Records ---


@pytest.fixture
def card_records() -> list[dict]:
    return [
        {"id": 1001, "name": " Goku ", "type": "AGL", "rarity": "LR", "atk": "12000"},
        {"id": 1002, "name": "Vegeta", "type": "TEQ", "rarity": "UR", "hp": 9500},
    ]


@pytest.fixture
def event_records() -> list[dict]:
    return [
        {
            "title": "Summer Campaign",
            "description": "Limited stages",
            "startDate": "2024-07-01T00:00:00+00:00",
            "endDate": "2024-07-20T00:00:00+00:00",
        },
        {
            "title": "9th Anniversary Celebration",
            "description": "Worldwide celebration",
            "startDate": "2024-07-05T00:00:00+00:00",
            "endDate": "2024-07-25T00:00:00+00:00",
        },
    ]


# --- Config / Components ---


@pytest.fixture
def hub_config(tmp_path) -> HubConfig:
    """Two sources, three data types, JSON cache under tmp_path."""
    return HubConfig(
        sources={
            "alpha": SourceConfig(base_url="https://alpha.test", rate_limit_ms=1000),
            "beta": SourceConfig(base_url="https://beta.test", rate_limit_ms=1500),
        },
        data_types={
            "cards": DataTypeConfig(cache_ttl_ms=1000, sources=["alpha", "beta"]),
            "events": DataTypeConfig(cache_ttl_ms=1000, sources=["beta", "alpha"]),
            "items": DataTypeConfig(cache_ttl_ms=1000, sources=["alpha", "beta"]),
        },
        storage=StorageConfig(
            backend=StorageBackend.JSON,
            cache_dir=str(tmp_path / "cache"),
        ),
    )


@pytest.fixture
def registry() -> TypeRegistry:
    reg = TypeRegistry()
    for name in ("cards", "events", "items"):
        reg.register_type(name, 1000)
    for name, parser in BUILTIN_PARSERS.items():
        reg.register_parser(name, parser)
    return reg


@pytest.fixture
def make_source():
    """Factory for FakeSource adapters."""
    return FakeSource


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def wall_clock() -> FakeWallClock:
    return FakeWallClock(ms=0)


@pytest.fixture
async def sqlite_store():
    """In-memory SQLite cache store."""
    store = SqliteCacheStore(StorageConfig(sqlite_path=":memory:"))
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def json_store(tmp_path):
    store = JsonFileCacheStore(
        StorageConfig(backend=StorageBackend.JSON, cache_dir=str(tmp_path / "json-cache"))
    )
    await store.initialize()
    yield store
    await store.close()
