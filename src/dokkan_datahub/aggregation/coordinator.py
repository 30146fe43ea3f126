"""Cache-aware refresh of data types.

The coordinator sits between callers and the orchestrator: it serves fresh
cache entries, refreshes stale or missing ones through `fetch_best`, and
writes the result back. Concurrent requests for the same type share one
in-flight refresh.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from dokkan_datahub.aggregation.freshness import FreshnessScorer
from dokkan_datahub.aggregation.orchestrator import FetchOrchestrator, FetchFn, epoch_ms
from dokkan_datahub.core.exceptions import DataHubError, TransientSourceError
from dokkan_datahub.core.models import (
    AggregateResult,
    AnniversaryStatus,
    CacheEntry,
    GameVersion,
    SourceScore,
    TypeUpdateResult,
    UpdateReport,
)
from dokkan_datahub.insights.anniversary import anniversary_status
from dokkan_datahub.parsing.registry import TypeRegistry
from dokkan_datahub.sources.base import SourceAdapter
from dokkan_datahub.storage.store import CacheStore

logger = logging.getLogger(__name__)

DISCOVERY_SAMPLE_SIZE = 10
EVENTS_TYPE = "events"


class UpdateCoordinator:
    """Serves data types from cache, refreshing through the orchestrator.

    Args:
        store: Durable cache, one entry per data type key.
        registry: Data types, TTLs and parsers.
        orchestrator: Prioritized fetching across sources.
        adapters: Source adapters by source id.
        scorer: Freshness re-ranking; built from the orchestrator if omitted.
        wall_clock: Epoch milliseconds, used for TTL checks.
    """

    def __init__(
        self,
        store: CacheStore,
        registry: TypeRegistry,
        orchestrator: FetchOrchestrator,
        adapters: Mapping[str, SourceAdapter],
        scorer: FreshnessScorer | None = None,
        wall_clock: Callable[[], int] = epoch_ms,
    ) -> None:
        self._store = store
        self._registry = registry
        self._orchestrator = orchestrator
        self._adapters = dict(adapters)
        self._scorer = scorer or FreshnessScorer(orchestrator)
        self._wall_clock = wall_clock
        self._inflight: dict[str, asyncio.Task[AggregateResult]] = {}

    # --- Fetch plumbing ---

    def _adapter(self, source: str) -> SourceAdapter:
        adapter = self._adapters.get(source)
        if adapter is None:
            raise TransientSourceError(
                f"No adapter registered for source {source}",
                context={"source": source},
            )
        return adapter

    def _fetcher(self, data_type: str, params: Mapping[str, Any] | None = None) -> FetchFn:
        async def fetch(source: str) -> Any:
            return await self._adapter(source).fetch(data_type, params)

        return fetch

    def _sampler(self, data_type: str, limit: int) -> FetchFn:
        async def sample(source: str) -> Any:
            return await self._adapter(source).sample(data_type, limit)

        return sample

    # --- Cache ---

    async def get_cached(self, data_type: str) -> CacheEntry | None:
        """Return the stored entry for a type regardless of its age.

        A malformed entry is treated as absent. Store failures raise
        CacheIOError.
        """
        raw = await self._store.get(data_type)
        if raw is None:
            return None
        try:
            entry = CacheEntry.model_validate(raw)
        except ValidationError as e:
            logger.warning("Ignoring malformed cache entry for %s: %s", data_type, e)
            return None
        return entry.model_copy(update={"data": self._registry.restore(data_type, entry.data)})

    async def get_or_refresh(self, data_type: str) -> AggregateResult:
        """Return fresh cached data, or fetch, cache and return new data.

        Concurrent calls for the same type join one refresh. A caller that is
        cancelled does not cancel the shared refresh.

        Raises:
            ConfigurationError: The type has no source priorities.
            SourceExhaustedError: Every source failed.
            CacheIOError: The cache could not be read or written.
        """
        task = self._inflight.get(data_type)
        if task is None:
            task = asyncio.ensure_future(self._refresh(data_type))
            self._inflight[data_type] = task
            task.add_done_callback(lambda t: self._forget(data_type, t))
        else:
            logger.debug("Joining in-flight refresh of %s", data_type)
        return await asyncio.shield(task)

    def _forget(self, data_type: str, task: asyncio.Task) -> None:
        if self._inflight.get(data_type) is task:
            del self._inflight[data_type]
        if not task.cancelled():
            # Marks the exception retrieved when every waiter has gone away
            task.exception()

    async def _refresh(self, data_type: str) -> AggregateResult:
        entry = await self.get_cached(data_type)
        ttl = self._registry.cache_ttl_ms(data_type)
        if entry is not None and entry.is_fresh(self._wall_clock(), ttl):
            logger.info("Using cached %s data from %s", data_type, entry.source)
            return AggregateResult(
                data_type=data_type,
                data=entry.data,
                from_cache=True,
                source=entry.source,
                fetched_at=entry.timestamp,
            )

        result = await self._orchestrator.fetch_best(data_type, self._fetcher(data_type))
        entry = CacheEntry(data=result.records, timestamp=result.fetched_at, source=result.source)
        await self._store.put(data_type, entry)
        logger.info("Cached %d %s records from %s", result.count, data_type, result.source)
        return AggregateResult(
            data_type=data_type,
            data=result.records,
            from_cache=False,
            source=result.source,
            fetched_at=result.fetched_at,
        )

    async def clear_cache(self) -> None:
        await self._store.clear_all()
        logger.info("Cache cleared")

    async def cache_summary(self) -> dict[str, dict[str, Any]]:
        """Per cached key: record count, source, timestamp and freshness."""
        now = self._wall_clock()
        summary: dict[str, dict[str, Any]] = {}
        for key in await self._store.keys():
            entry = await self.get_cached(key)
            if entry is None:
                continue
            summary[key] = {
                "count": len(entry.data),
                "source": entry.source,
                "timestamp": entry.timestamp,
                "fresh": entry.is_fresh(now, self._registry.cache_ttl_ms(key)),
            }
        return summary

    # --- Batch ---

    async def update_all(self, data_types: Iterable[str] | None = None) -> UpdateReport:
        """Refresh several types one after another, recording each outcome.

        One type's failure never aborts the others. `success` is true only if
        every type succeeded.
        """
        names = list(data_types) if data_types is not None else self._registry.type_names()
        results: dict[str, TypeUpdateResult] = {}
        for name in names:
            try:
                aggregate = await self.get_or_refresh(name)
            except Exception as e:
                logger.error("Error updating %s: %s", name, e)
                results[name] = TypeUpdateResult(error=str(e))
                continue
            results[name] = TypeUpdateResult(
                count=aggregate.count,
                from_cache=aggregate.from_cache,
                source=aggregate.source,
            )
        report = UpdateReport(success=all(r.ok for r in results.values()), results=results)
        logger.info(
            "Update finished: %d/%d types succeeded",
            len(results) - len(report.failed_types), len(results),
        )
        return report

    async def rescore_and_reorder(
        self, data_type: str | None = None
    ) -> dict[str, list[SourceScore]]:
        """Re-rank sources for one type, or for every registered type."""
        if data_type is not None:
            self._registry.get_type(data_type)
            names = [data_type]
        else:
            names = self._registry.type_names()
        scores: dict[str, list[SourceScore]] = {}
        for name in names:
            scores[name] = await self._scorer.rescore_and_reorder(
                name, self._sampler(name, self._scorer.sample_size)
            )
        return scores

    # --- Discovery ---

    async def discover_data_types(self) -> list[str]:
        """Learn parsers for advertised data types that have none.

        Each candidate gets every configured source as its priority list, is
        sampled through the orchestrator, and is registered with the default
        TTL once a parser has been learned. Failures are logged and skipped.

        Returns:
            The data types that gained a parser.
        """
        advertised: list[str] = []
        for name, adapter in self._adapters.items():
            try:
                for data_type in await adapter.available_data_types():
                    if data_type not in advertised:
                        advertised.append(data_type)
            except Exception as e:
                logger.warning("Could not list data types from %s: %s", name, e)

        learned: list[str] = []
        for data_type in advertised:
            if self._registry.has_parser(data_type):
                continue
            assigned = not self._orchestrator.priorities(data_type)
            if assigned:
                self._orchestrator.set_priorities(data_type, self._orchestrator.source_names)
            try:
                result = await self._orchestrator.fetch_best(
                    data_type,
                    self._fetcher(data_type, {"limit": DISCOVERY_SAMPLE_SIZE}),
                )
            except DataHubError as e:
                logger.warning("Discovery of %s failed: %s", data_type, e)
                if assigned:
                    self._orchestrator.discard_priorities(data_type)
                continue

            self._registry.learn_parser(data_type, result.records[:DISCOVERY_SAMPLE_SIZE])
            if not self._registry.has_type(data_type):
                self._registry.register_type(data_type)
            learned.append(data_type)

        logger.info("Discovery learned parsers for %d data types", len(learned))
        return learned

    # --- Insights ---

    async def check_anniversary_status(
        self, version: GameVersion | str = GameVersion.JP
    ) -> AnniversaryStatus:
        """Anniversary status from the current events listing.

        Never raises for fetch or cache failures; they are reported in
        `error`.
        """
        version = GameVersion(str(version).lower())
        try:
            events = await self.get_or_refresh(EVENTS_TYPE)
        except DataHubError as e:
            logger.error("Anniversary check failed: %s", e)
            return AnniversaryStatus(version=version, is_active=False, error=str(e))
        now = datetime.fromtimestamp(self._wall_clock() / 1000, tz=timezone.utc)
        return anniversary_status(events.data, version, now)
