"""Prioritized, rate-limited fetching with fallback across sources."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from dokkan_datahub.core.exceptions import ConfigurationError, SourceExhaustedError
from dokkan_datahub.core.models import FetchResult
from dokkan_datahub.parsing.registry import TypeRegistry

logger = logging.getLogger(__name__)

FetchFn = Callable[[str], Any]


def epoch_ms() -> int:
    return int(time.time() * 1000)


class FetchOrchestrator:
    """Owns source priorities and per-source rate-limit state.

    Sources are tried strictly in priority order. Before each call the
    orchestrator waits until `rate_limit_ms` has elapsed since the previous
    request to that source; the request time is recorded after every attempt,
    successful or not. A per-source lock covers wait, call and stamp, so
    concurrent callers sharing a source stay spaced.

    Args:
        registry: Parses the first successful raw result.
        rate_limits: Minimum milliseconds between requests, per source.
        priorities: Ordered source ids per data type, most preferred first.
        clock: Monotonic clock in seconds.
        sleep: Coroutine used for rate-limit waits.
        wall_clock: Epoch milliseconds used to stamp results.
    """

    def __init__(
        self,
        registry: TypeRegistry,
        rate_limits: Mapping[str, int],
        priorities: Mapping[str, Sequence[str]],
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = asyncio.sleep,
        wall_clock: Callable[[], int] = epoch_ms,
    ) -> None:
        self._registry = registry
        self._rate_limits = dict(rate_limits)
        self._priorities: dict[str, list[str]] = {
            data_type: list(sources) for data_type, sources in priorities.items()
        }
        self._clock = clock
        self._sleep = sleep
        self._wall_clock = wall_clock
        self._last_request: dict[str, float] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    # --- Priorities ---

    def priorities(self, data_type: str) -> list[str]:
        return list(self._priorities.get(data_type, []))

    def set_priorities(self, data_type: str, sources: Sequence[str]) -> None:
        self._priorities[data_type] = list(sources)
        logger.info("Updated priority for %s: %s", data_type, " > ".join(sources))

    def discard_priorities(self, data_type: str) -> None:
        self._priorities.pop(data_type, None)

    def priority_table(self) -> dict[str, list[str]]:
        return {data_type: list(sources) for data_type, sources in self._priorities.items()}

    @property
    def source_names(self) -> list[str]:
        return list(self._rate_limits)

    def last_request(self, source: str) -> float | None:
        return self._last_request.get(source)

    # --- Rate limiting ---

    async def _wait_for_slot(self, source: str) -> None:
        last = self._last_request.get(source)
        if last is None:
            return
        interval = self._rate_limits.get(source, 0) / 1000
        remaining = interval - (self._clock() - last)
        if remaining > 0:
            logger.debug("Rate limiting %s: waiting %.3fs", source, remaining)
            await self._sleep(remaining)

    async def call_source(self, source: str, fn: FetchFn) -> Any:
        """Call `fn(source)` once the source's rate limit allows it.

        `fn` may be a plain function or return an awaitable. Exceptions
        propagate after the request time is recorded.
        """
        lock = self._locks.setdefault(source, asyncio.Lock())
        async with lock:
            await self._wait_for_slot(source)
            try:
                result = fn(source)
                if inspect.isawaitable(result):
                    result = await result
                return result
            finally:
                self._last_request[source] = self._clock()

    # --- Fetching ---

    async def fetch_best(self, data_type: str, fetch_fn: FetchFn) -> FetchResult:
        """Return the first non-empty, parsed result in priority order.

        Raises:
            ConfigurationError: No priority list for the data type.
            SourceExhaustedError: Every source raised or returned nothing.
        """
        sources = self.priorities(data_type)
        if not sources:
            raise ConfigurationError(
                f"No source priorities configured for {data_type}",
                context={"data_type": data_type},
            )

        last_error: Exception | None = None
        for source in sources:
            try:
                raw = await self.call_source(source, fetch_fn)
            except Exception as e:
                logger.warning("Error fetching %s from %s: %s", data_type, source, e)
                last_error = e
                continue

            if not raw:
                logger.info("No %s data returned from %s, trying next source", data_type, source)
                continue

            records, errors = self._registry.parse_with_errors(data_type, raw, source)
            logger.info("Fetched %d %s records from %s", len(records), data_type, source)
            return FetchResult(
                data_type=data_type,
                records=records,
                source=source,
                fetched_at=self._wall_clock(),
                field_errors=len(errors),
            )

        logger.error("Failed to fetch %s from any source", data_type)
        raise SourceExhaustedError(
            f"Failed to fetch {data_type} from any source",
            context={"data_type": data_type, "sources": sources},
            last_error=last_error,
        )
