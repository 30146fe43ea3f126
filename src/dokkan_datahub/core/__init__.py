"""dokkan_datahub.core: foundation types, config, and exceptions."""

from dokkan_datahub.core.config import (
    APIConfig,
    DataTypeConfig,
    HubConfig,
    SourceConfig,
    StorageConfig,
    load_config,
)
from dokkan_datahub.core.exceptions import (
    CacheIOError,
    ConfigurationError,
    DataHubError,
    ParseFieldError,
    RateLimitError,
    SourceError,
    SourceExhaustedError,
    TransientSourceError,
)
from dokkan_datahub.core.models import (
    AggregateResult,
    AnniversaryForecast,
    AnniversaryStatus,
    CacheEntry,
    DataType,
    DataTypeName,
    FetchResult,
    FieldType,
    GameVersion,
    NormalizedRecord,
    SourceId,
    SourceScore,
    StorageBackend,
    TypeUpdateResult,
    UpdateReport,
)

__all__ = [
    # Type aliases
    "DataTypeName",
    "SourceId",
    "NormalizedRecord",
    # Enums
    "FieldType",
    "StorageBackend",
    "GameVersion",
    # Registry / cache models
    "DataType",
    "CacheEntry",
    # Fetch models
    "FetchResult",
    "AggregateResult",
    "TypeUpdateResult",
    "UpdateReport",
    "SourceScore",
    # Insight models
    "AnniversaryForecast",
    "AnniversaryStatus",
    # Config
    "HubConfig",
    "SourceConfig",
    "DataTypeConfig",
    "StorageConfig",
    "APIConfig",
    "load_config",
    # Exceptions
    "DataHubError",
    "ConfigurationError",
    "SourceError",
    "TransientSourceError",
    "RateLimitError",
    "SourceExhaustedError",
    "ParseFieldError",
    "CacheIOError",
]
