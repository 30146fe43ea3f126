"""API-specific request/response schemas (Pydantic v2)."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from dokkan_datahub.core.models import SourceScore, TypeUpdateResult


# -- Error --


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str
    detail: str | None = None


# -- Health --


class HealthResponse(BaseModel):
    status: str
    version: str
    storage_backend: str
    data_types: int
    cached_types: int


# -- Data --


class DataResponse(BaseModel):
    """Best-available records for one data type."""

    data_type: str
    data: list[dict[str, Any]]
    count: int
    from_cache: bool
    source: str | None = None
    fetched_at: int | None = None
    stale: bool = False


# -- Update --


class UpdateRequest(BaseModel):
    """Types to refresh; all registered types when omitted."""

    data_types: list[str] | None = Field(default=None, min_length=1)


class UpdateResponse(BaseModel):
    success: bool
    results: dict[str, TypeUpdateResult]


# -- Priorities --


class PrioritiesResponse(BaseModel):
    priorities: dict[str, list[str]]


class RescoreResponse(BaseModel):
    """New priority lists plus the scores that produced them."""

    priorities: dict[str, list[str]]
    scores: dict[str, list[SourceScore]]


# -- Discovery --


class DiscoverResponse(BaseModel):
    discovered: list[str]
    data_types: list[str]
