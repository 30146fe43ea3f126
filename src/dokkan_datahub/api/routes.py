"""FastAPI route definitions for the Dokkan DataHub API."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

import dokkan_datahub
from dokkan_datahub.aggregation.coordinator import UpdateCoordinator
from dokkan_datahub.api.deps import get_coordinator, get_hub
from dokkan_datahub.api.schemas import (
    DataResponse,
    DiscoverResponse,
    HealthResponse,
    PrioritiesResponse,
    RescoreResponse,
    UpdateRequest,
    UpdateResponse,
)
from dokkan_datahub.core.exceptions import SourceExhaustedError
from dokkan_datahub.core.models import AnniversaryStatus, GameVersion
from dokkan_datahub.hub import DataHub

logger = logging.getLogger(__name__)

router = APIRouter()


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(hub: DataHub = Depends(get_hub)):
    """Store health and basic statistics."""
    healthy = await hub.store.health_check()
    cached = await hub.store.keys() if healthy else []
    return HealthResponse(
        status="ok" if healthy else "degraded",
        version=dokkan_datahub.__version__,
        storage_backend=hub.config.storage.backend.value,
        data_types=len(hub.registry.type_names()),
        cached_types=len(cached),
    )


# -- Data --


@router.get("/data/{data_type}", response_model=DataResponse)
async def get_data(
    data_type: str,
    coordinator: UpdateCoordinator = Depends(get_coordinator),
):
    """Best-available data for a type.

    When every source fails but an expired cache entry exists, that entry is
    served with `stale=true`.
    """
    try:
        result = await coordinator.get_or_refresh(data_type)
    except SourceExhaustedError:
        entry = await coordinator.get_cached(data_type)
        if entry is None:
            raise
        logger.warning("Serving stale %s data from %s", data_type, entry.source)
        return DataResponse(
            data_type=data_type,
            data=entry.data,
            count=len(entry.data),
            from_cache=True,
            source=entry.source,
            fetched_at=entry.timestamp,
            stale=True,
        )
    return DataResponse(
        data_type=data_type,
        data=result.data,
        count=result.count,
        from_cache=result.from_cache,
        source=result.source,
        fetched_at=result.fetched_at,
    )


# -- Update / Cache --


@router.post("/update", response_model=UpdateResponse)
async def update_all(
    request: UpdateRequest | None = None,
    coordinator: UpdateCoordinator = Depends(get_coordinator),
):
    """Refresh several data types; failures are reported per type."""
    report = await coordinator.update_all(request.data_types if request else None)
    return UpdateResponse(success=report.success, results=report.results)


@router.delete("/cache", status_code=204)
async def clear_cache(coordinator: UpdateCoordinator = Depends(get_coordinator)):
    await coordinator.clear_cache()


# -- Priorities --


@router.get("/priorities", response_model=PrioritiesResponse)
async def get_priorities(hub: DataHub = Depends(get_hub)):
    return PrioritiesResponse(priorities=hub.orchestrator.priority_table())


@router.post("/priorities/rescore", response_model=RescoreResponse)
async def rescore_priorities(
    data_type: str | None = Query(None, description="Rescore only this type"),
    hub: DataHub = Depends(get_hub),
):
    """Sample every source and re-rank by freshness."""
    scores = await hub.coordinator.rescore_and_reorder(data_type)
    return RescoreResponse(priorities=hub.orchestrator.priority_table(), scores=scores)


# -- Discovery --


@router.post("/discover", response_model=DiscoverResponse)
async def discover(hub: DataHub = Depends(get_hub)):
    """Learn parsers for data types advertised by sources that have none."""
    discovered = await hub.coordinator.discover_data_types()
    return DiscoverResponse(discovered=discovered, data_types=hub.registry.type_names())


# -- Insights --


@router.get("/anniversary", response_model=AnniversaryStatus)
async def anniversary(
    version: GameVersion = Query(GameVersion.JP),
    coordinator: UpdateCoordinator = Depends(get_coordinator),
):
    return await coordinator.check_anniversary_status(version)
