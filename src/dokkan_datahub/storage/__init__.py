"""Durable key/value cache store."""

from dokkan_datahub.storage.store import (
    CacheStore,
    JsonFileCacheStore,
    SqliteCacheStore,
    create_store,
)

__all__ = [
    "CacheStore",
    "JsonFileCacheStore",
    "SqliteCacheStore",
    "create_store",
]
