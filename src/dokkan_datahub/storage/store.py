"""Cache store: Protocol definition, SQLite and JSON-file implementations, factory."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from urllib.parse import quote, unquote
from typing import Any, ClassVar, Protocol, runtime_checkable

import aiosqlite
from pydantic_core import to_jsonable_python

from dokkan_datahub.core.config import StorageConfig
from dokkan_datahub.core.exceptions import CacheIOError
from dokkan_datahub.core.models import StorageBackend

logger = logging.getLogger(__name__)


@runtime_checkable
class CacheStore(Protocol):
    """Dumb key/value persistence for JSON-serializable payloads.

    No TTL logic lives here; freshness is the coordinator's concern.
    """

    async def put(self, key: str, value: Any) -> None: ...
    async def get(self, key: str) -> Any | None: ...
    async def exists(self, key: str) -> bool: ...
    async def clear_all(self) -> None: ...
    async def keys(self) -> list[str]: ...
    async def initialize(self) -> None: ...
    async def close(self) -> None: ...
    async def health_check(self) -> bool: ...


def _serialize(key: str, value: Any) -> str:
    try:
        return json.dumps(to_jsonable_python(value))
    except Exception as e:
        raise CacheIOError(
            f"Value for {key!r} is not JSON-serializable: {e}",
            context={"operation": "serialize", "key": key},
        ) from e


class SqliteCacheStore:
    """SQLite implementation of the cache store.

    Uses aiosqlite for async access, WAL mode for concurrent reads,
    and a version-tracked migration system.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS cache_entries (
                    key TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    updated_at TEXT DEFAULT (datetime('now'))
                )""",
            ],
        ),
    }

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL, run migrations."""
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
            await self._db.execute("PRAGMA journal_mode=WAL")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except Exception as e:
            raise CacheIOError(
                f"Failed to initialize SQLite cache store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    def _conn(self, operation: str, key: str | None = None) -> aiosqlite.Connection:
        if self._db is None:
            raise CacheIOError(
                "Cache store is not initialized",
                context={"operation": operation, "key": key},
            )
        return self._db

    # --- Key/Value Operations ---

    async def put(self, key: str, value: Any) -> None:
        payload = _serialize(key, value)
        db = self._conn("put", key)
        try:
            await db.execute(
                """INSERT OR REPLACE INTO cache_entries (key, payload, updated_at)
                   VALUES (?, ?, datetime('now'))""",
                (key, payload),
            )
            await db.commit()
        except Exception as e:
            raise CacheIOError(
                f"Failed to write cache entry: {e}",
                context={"operation": "put", "key": key},
            ) from e

    async def get(self, key: str) -> Any | None:
        db = self._conn("get", key)
        try:
            async with db.execute(
                "SELECT payload FROM cache_entries WHERE key = ?", (key,)
            ) as cursor:
                row = await cursor.fetchone()
            if row is None:
                return None
            return json.loads(row[0])
        except Exception as e:
            raise CacheIOError(
                f"Failed to read cache entry: {e}",
                context={"operation": "get", "key": key},
            ) from e

    async def exists(self, key: str) -> bool:
        db = self._conn("exists", key)
        try:
            async with db.execute(
                "SELECT 1 FROM cache_entries WHERE key = ?", (key,)
            ) as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception as e:
            raise CacheIOError(
                f"Failed to check cache entry: {e}",
                context={"operation": "exists", "key": key},
            ) from e

    async def clear_all(self) -> None:
        db = self._conn("clear")
        try:
            await db.execute("DELETE FROM cache_entries")
            await db.commit()
        except Exception as e:
            raise CacheIOError(
                f"Failed to clear cache: {e}",
                context={"operation": "clear"},
            ) from e
        logger.info("Cleared all cache entries")

    async def keys(self) -> list[str]:
        db = self._conn("keys")
        try:
            async with db.execute(
                "SELECT key FROM cache_entries ORDER BY key"
            ) as cursor:
                rows = await cursor.fetchall()
            return [row[0] for row in rows]
        except Exception as e:
            raise CacheIOError(
                f"Failed to list cache keys: {e}",
                context={"operation": "keys"},
            ) from e


class JsonFileCacheStore:
    """One pretty-printed `<key>.json` file per key under a cache directory."""

    def __init__(self, config: StorageConfig) -> None:
        self._dir = Path(config.cache_dir)

    async def initialize(self) -> None:
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheIOError(
                f"Failed to create cache directory: {e}",
                context={"operation": "initialize", "path": str(self._dir)},
            ) from e

    async def close(self) -> None:
        return None

    async def health_check(self) -> bool:
        return self._dir.is_dir()

    def _path(self, key: str) -> Path:
        # Percent-encoded; keys() decodes file names back to keys
        return self._dir / f"{quote(key, safe='')}.json"

    async def put(self, key: str, value: Any) -> None:
        payload = _serialize(key, value)
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        try:
            tmp.write_text(
                json.dumps(json.loads(payload), indent=2), encoding="utf-8"
            )
            tmp.replace(path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise CacheIOError(
                f"Failed to write cache file: {e}",
                context={"operation": "put", "key": key, "path": str(path)},
            ) from e

    async def get(self, key: str) -> Any | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise CacheIOError(
                f"Failed to read cache file: {e}",
                context={"operation": "get", "key": key, "path": str(path)},
            ) from e

    async def exists(self, key: str) -> bool:
        return self._path(key).exists()

    async def clear_all(self) -> None:
        try:
            for path in self._dir.glob("*.json"):
                path.unlink()
        except OSError as e:
            raise CacheIOError(
                f"Failed to clear cache directory: {e}",
                context={"operation": "clear", "path": str(self._dir)},
            ) from e
        logger.info("Cleared cache directory %s", self._dir)

    async def keys(self) -> list[str]:
        return sorted(unquote(p.name[: -len(".json")]) for p in self._dir.glob("*.json"))


async def create_store(config: StorageConfig) -> SqliteCacheStore | JsonFileCacheStore:
    """Create and initialize a cache store based on configuration."""
    store: SqliteCacheStore | JsonFileCacheStore
    if config.backend == StorageBackend.SQLITE:
        store = SqliteCacheStore(config)
    elif config.backend == StorageBackend.JSON:
        store = JsonFileCacheStore(config)
    else:
        raise CacheIOError(
            f"Unsupported storage backend: {config.backend}",
            context={"operation": "create_store", "backend": str(config.backend)},
        )
    await store.initialize()
    return store
