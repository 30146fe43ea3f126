"""Freshness scoring and source re-ranking."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping
from typing import Any, NamedTuple

from dokkan_datahub.aggregation.orchestrator import FetchOrchestrator
from dokkan_datahub.core.models import SourceScore
from dokkan_datahub.parsing.registry import as_records
from dokkan_datahub.parsing.transforms import parse_datetime, to_number

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 5

# Display weights. Timestamp and completeness terms are bounded below their
# weight, so whole version steps always dominate the summary score.
VERSION_WEIGHT = 1000
TIMESTAMP_WEIGHT = 100
COMPLETENESS_WEIGHT = 10
RECENCY_SCALE_MS = 365 * 24 * 3_600_000


class FreshnessKey(NamedTuple):
    """Sample averages, compared lexicographically: version, then recency, then fields."""

    version: float
    timestamp_ms: float
    field_count: float


def _timestamp_ms(record: Mapping[str, Any]) -> float | None:
    value = record.get("updatedAt") or record.get("lastModified")
    if not value:
        return None
    parsed = parse_datetime(value)
    return parsed.timestamp() * 1000 if parsed else None


def _version(record: Mapping[str, Any]) -> float | None:
    value = record.get("version")
    if not value or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and value.strip()[:1].isdigit():
        number = float(to_number(value))
    else:
        return None
    return number if math.isfinite(number) else None


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def freshness_key(records: Any) -> FreshnessKey:
    """Average version, update timestamp (epoch ms) and field count of a sample.

    Accepts a list, a tuple or a single mapping. Non-mapping entries and
    unparseable timestamps or versions are skipped; a missing component is 0.
    """
    items = [r for r in as_records(records) if isinstance(r, Mapping)]
    if not items:
        return FreshnessKey(0.0, 0.0, 0.0)
    return FreshnessKey(
        version=_mean([v for v in map(_version, items) if v is not None]),
        timestamp_ms=_mean([ts for ts in map(_timestamp_ms, items) if ts is not None]),
        field_count=_mean([len(item) for item in items]),
    )


def freshness_score(records: Any) -> float:
    """Single-number summary of `freshness_key`, for reporting.

    score = avg(version) * 1000
            + recency in [0, 1) * 100
            + completeness in [0, 1) * 10

    Recency is ts / (ts + one year) for positive epoch-ms timestamps and
    completeness is n / (n + 1) for an average of n fields. An empty sample
    scores 0.
    """
    key = freshness_key(records)
    ts = max(key.timestamp_ms, 0.0)
    recency = ts / (ts + RECENCY_SCALE_MS)
    completeness = key.field_count / (key.field_count + 1)
    return (
        key.version * VERSION_WEIGHT
        + recency * TIMESTAMP_WEIGHT
        + completeness * COMPLETENESS_WEIGHT
    )


class FreshnessScorer:
    """Re-ranks a data type's sources by the freshness of their samples."""

    def __init__(self, orchestrator: FetchOrchestrator, sample_size: int = SAMPLE_SIZE) -> None:
        self._orchestrator = orchestrator
        self.sample_size = sample_size

    def candidate_sources(self, data_type: str) -> list[str]:
        """Current priority order first, then other configured sources."""
        ordered = self._orchestrator.priorities(data_type)
        ordered += [s for s in self._orchestrator.source_names if s not in ordered]
        return ordered

    async def rescore_and_reorder(
        self, data_type: str, sample_fn: Callable[[str], Any]
    ) -> list[SourceScore]:
        """Sample every candidate source and install the new priority order.

        `sample_fn(source)` returns raw sample records and may be async. It
        runs through the orchestrator, so rate limits apply. Survivors are
        ranked by `freshness_key`: average version first, then recency, then
        field count. Sources whose sample raises score -1 and drop out. When
        every source fails the existing priority list is kept.
        """
        scores: list[SourceScore] = []
        keys: dict[str, FreshnessKey] = {}
        for source in self.candidate_sources(data_type):
            try:
                sample = await self._orchestrator.call_source(source, sample_fn)
            except Exception as e:
                logger.warning("Error checking freshness for %s from %s: %s", data_type, source, e)
                scores.append(SourceScore(source=source, score=-1, error=str(e)))
                continue
            records = as_records(sample)
            keys[source] = freshness_key(records)
            scores.append(
                SourceScore(
                    source=source,
                    score=freshness_score(records),
                    sample_size=len(records),
                )
            )

        # sorted() is stable, so ties keep the prior order
        ranked = sorted(keys, key=keys.__getitem__, reverse=True)
        if ranked:
            self._orchestrator.set_priorities(data_type, ranked)
        else:
            logger.warning(
                "No source produced a freshness sample for %s; keeping %s",
                data_type, self._orchestrator.priorities(data_type),
            )
        return scores
