"""Pydantic data models: the system's type contracts."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

# --- Type Aliases ---

DataTypeName = str
SourceId = str
NormalizedRecord = dict[str, Any]

# --- Enumerations ---


class FieldType(StrEnum):
    """Type tag attached to every field a parser knows about."""

    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ARRAY = "array"
    OBJECT = "object"
    STRING = "string"


class StorageBackend(StrEnum):
    """Supported cache store backends."""

    SQLITE = "sqlite"
    JSON = "json"


class GameVersion(StrEnum):
    """Regional game releases with distinct event calendars."""

    JP = "jp"
    GLOBAL = "global"


# --- Registry Models ---


class DataType(BaseModel):
    """A named category of aggregated records with its own cache policy."""

    model_config = ConfigDict(frozen=True)

    name: DataTypeName
    cache_ttl_ms: int

    @field_validator("cache_ttl_ms")
    @classmethod
    def ttl_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("cache_ttl_ms must be > 0")
        return v


# --- Cache Models ---


class CacheEntry(BaseModel):
    """One persisted cache record: {data, timestamp, source}.

    `timestamp` is wall-clock epoch milliseconds at creation.
    """

    model_config = ConfigDict(frozen=True)

    data: list[NormalizedRecord]
    timestamp: int
    source: SourceId = "unknown"

    def age_ms(self, now_ms: int) -> int:
        return now_ms - self.timestamp

    def is_fresh(self, now_ms: int, ttl_ms: int) -> bool:
        """An entry is fresh iff `now - timestamp < ttl`."""
        return self.age_ms(now_ms) < ttl_ms


# --- Fetch Models ---


class FetchResult(BaseModel):
    """First successful, parsed, non-empty result of a prioritized fetch."""

    model_config = ConfigDict(frozen=True)

    data_type: DataTypeName
    records: list[NormalizedRecord]
    source: SourceId
    fetched_at: int
    field_errors: int = 0

    @property
    def count(self) -> int:
        return len(self.records)


class AggregateResult(BaseModel):
    """Best-available data for a type, as returned to callers."""

    model_config = ConfigDict(frozen=True)

    data_type: DataTypeName
    data: list[NormalizedRecord]
    from_cache: bool
    source: SourceId | None = None
    fetched_at: int | None = None
    stale: bool = False

    @property
    def count(self) -> int:
        return len(self.data)


class TypeUpdateResult(BaseModel):
    """Per-type entry of an update_all() summary.

    Exactly one shape is populated: {count, from_cache, source} on success,
    {error} on failure.
    """

    model_config = ConfigDict(frozen=True)

    count: int = 0
    from_cache: bool = False
    source: SourceId | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class UpdateReport(BaseModel):
    """Result of a batch refresh over several data types."""

    model_config = ConfigDict(frozen=True)

    success: bool
    results: dict[DataTypeName, TypeUpdateResult]

    @property
    def failed_types(self) -> list[DataTypeName]:
        return [name for name, r in self.results.items() if not r.ok]


class SourceScore(BaseModel):
    """Freshness score of one source's sample for one data type.

    A score of -1 marks a source whose sample fetch raised.
    """

    model_config = ConfigDict(frozen=True)

    source: SourceId
    score: float
    sample_size: int = 0
    error: str | None = None

    @property
    def excluded(self) -> bool:
        return self.score < 0


# --- Insight Models ---


class AnniversaryForecast(BaseModel):
    """Expected date of the next anniversary campaign."""

    model_config = ConfigDict(frozen=True)

    expected_date: datetime
    days_until: int


class AnniversaryStatus(BaseModel):
    """Whether an anniversary campaign is running, upcoming, or expected."""

    model_config = ConfigDict(frozen=True)

    version: GameVersion
    is_active: bool
    is_upcoming: bool = False
    event: NormalizedRecord | None = None
    days_remaining: int | None = None
    days_until: int | None = None
    next_expected: AnniversaryForecast | None = None
    error: str | None = None
