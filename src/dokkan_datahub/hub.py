"""Process-wide assembly of store, registry, orchestrator and coordinator."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from dokkan_datahub.aggregation.coordinator import UpdateCoordinator
from dokkan_datahub.aggregation.orchestrator import FetchOrchestrator
from dokkan_datahub.core.config import HubConfig
from dokkan_datahub.parsing.builtin import BUILTIN_PARSERS
from dokkan_datahub.parsing.registry import TypeRegistry
from dokkan_datahub.sources import SOURCE_FACTORIES, SourceAdapter
from dokkan_datahub.storage.store import CacheStore, create_store

logger = logging.getLogger(__name__)


@dataclass
class DataHub:
    """Everything one process needs to serve aggregated data.

    Use via `async with await build_hub(config) as hub:` or call `close()`.
    """

    config: HubConfig
    store: CacheStore
    registry: TypeRegistry
    orchestrator: FetchOrchestrator
    coordinator: UpdateCoordinator
    adapters: dict[str, SourceAdapter]

    async def __aenter__(self) -> DataHub:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        for adapter in self.adapters.values():
            await adapter.close()
        await self.store.close()


def build_registry(config: HubConfig) -> TypeRegistry:
    """Registry with every configured data type and the built-in parsers."""
    registry = TypeRegistry(default_cache_ttl_ms=config.default_cache_ttl_ms)
    for name, type_config in config.data_types.items():
        registry.register_type(name, type_config.cache_ttl_ms)
    for name, parser in BUILTIN_PARSERS.items():
        registry.register_parser(name, parser)
    return registry


def build_sources(config: HubConfig) -> dict[str, SourceAdapter]:
    """Instantiate the adapter for every configured source with a known factory."""
    adapters: dict[str, SourceAdapter] = {}
    for name, source_config in config.sources.items():
        factory = SOURCE_FACTORIES.get(name)
        if factory is None:
            logger.warning("No adapter available for configured source %s", name)
            continue
        adapters[name] = factory(name, source_config)
    return adapters


async def build_hub(
    config: HubConfig,
    store: CacheStore | None = None,
    adapters: Mapping[str, SourceAdapter] | None = None,
    **clocks,
) -> DataHub:
    """Assemble and initialize a DataHub.

    Args:
        config: Validated configuration.
        store: Cache store to use instead of the configured backend. Assumed
            already initialized.
        adapters: Source adapters to use instead of the built-in ones.
        **clocks: `clock`, `sleep` and `wall_clock` overrides passed to the
            orchestrator (and `wall_clock` to the coordinator).
    """
    registry = build_registry(config)
    orchestrator = FetchOrchestrator(
        registry,
        rate_limits={name: src.rate_limit_ms for name, src in config.sources.items()},
        priorities={name: dt.sources for name, dt in config.data_types.items() if dt.sources},
        **clocks,
    )
    adapters = dict(adapters) if adapters is not None else build_sources(config)
    if store is None:
        store = await create_store(config.storage)

    coordinator_kwargs = {"wall_clock": clocks["wall_clock"]} if "wall_clock" in clocks else {}
    coordinator = UpdateCoordinator(
        store, registry, orchestrator, adapters, **coordinator_kwargs
    )
    logger.info(
        "Data hub ready: %d data types, %d sources (%s cache)",
        len(registry.type_names()), len(adapters), config.storage.backend.value,
    )
    return DataHub(
        config=config,
        store=store,
        registry=registry,
        orchestrator=orchestrator,
        coordinator=coordinator,
        adapters=adapters,
    )
