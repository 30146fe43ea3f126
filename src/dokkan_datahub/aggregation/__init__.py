"""Multi-source aggregation: prioritized fetching, freshness, cache-aware updates."""

from dokkan_datahub.aggregation.coordinator import UpdateCoordinator
from dokkan_datahub.aggregation.freshness import (
    FreshnessKey,
    FreshnessScorer,
    freshness_key,
    freshness_score,
)
from dokkan_datahub.aggregation.orchestrator import FetchOrchestrator

__all__ = [
    "FetchOrchestrator",
    "FreshnessKey",
    "FreshnessScorer",
    "UpdateCoordinator",
    "freshness_key",
    "freshness_score",
]
