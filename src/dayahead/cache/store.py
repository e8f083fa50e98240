"""Object cache backends: Protocol definition, SQLite and memory implementations, factory."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, Protocol, TypeVar, runtime_checkable

import aiosqlite

from dayahead.core.config import CacheConfig
from dayahead.core.exceptions import StorageError
from dayahead.core.models import CacheBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")

_NAMESPACE_RE = re.compile(r"^[a-z][a-z0-9_]*$")


@runtime_checkable
class ObjectCache(Protocol):
    """Key → JSON object store.

    ``force_sync`` asks the backend to make the write durable before
    returning; without it a backend may batch writes until ``close``.
    """

    async def has(self, key: str) -> bool: ...
    async def retrieve_object(self, key: str) -> Any | None: ...
    async def create_object(self, key: str, value: Any, force_sync: bool = False) -> None: ...
    async def delete_object(self, key: str, force_sync: bool = False) -> None: ...
    async def keys(self) -> list[str]: ...
    async def initialize(self) -> None: ...
    async def close(self) -> None: ...


class MemoryObjectCache:
    """In-process cache. Values are stored as JSON text so callers never share
    mutable state with the cache."""

    def __init__(self, namespace: str = "default") -> None:
        self.namespace = namespace
        self._data: dict[str, str] = {}

    async def initialize(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def has(self, key: str) -> bool:
        return key in self._data

    async def retrieve_object(self, key: str) -> Any | None:
        raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    async def create_object(self, key: str, value: Any, force_sync: bool = False) -> None:
        self._data[key] = json.dumps(value)

    async def delete_object(self, key: str, force_sync: bool = False) -> None:
        self._data.pop(key, None)

    async def keys(self) -> list[str]:
        return sorted(self._data)


class SqliteObjectCache:
    """SQLite-backed object cache, one table per namespace.

    Parameters
    ----------
    db_path : str
        Path to the SQLite database file.
        Created automatically if it doesn't exist.
    namespace : str
        Table name; "prices" and "currencies" share one database file.
    """

    def __init__(self, db_path: str, namespace: str) -> None:
        if not _NAMESPACE_RE.match(namespace):
            raise ValueError(f"Invalid cache namespace: {namespace!r}")
        self._db_path = db_path
        self.namespace = namespace
        self._db: aiosqlite.Connection | None = None
        self._dirty = False

    async def initialize(self) -> None:
        """Open the connection and create the table if it doesn't exist."""
        if self._db is not None:
            return
        try:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._db_path)
            await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute(
                f"""CREATE TABLE IF NOT EXISTS {self.namespace} (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT DEFAULT (datetime('now'))
                )"""
            )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to initialize SQLite cache: {e}",
                context={"operation": "initialize", "path": self._db_path},
            ) from e

    async def close(self) -> None:
        if self._db is None:
            return
        try:
            if self._dirty:
                await self._db.commit()
                self._dirty = False
            await self._db.close()
        finally:
            self._db = None

    async def has(self, key: str) -> bool:
        async def op(db: aiosqlite.Connection) -> bool:
            cursor = await db.execute(
                f"SELECT 1 FROM {self.namespace} WHERE key = ?", (key,)
            )
            return await cursor.fetchone() is not None

        return await self._run("has", key, op)

    async def retrieve_object(self, key: str) -> Any | None:
        async def op(db: aiosqlite.Connection) -> Any | None:
            cursor = await db.execute(
                f"SELECT value FROM {self.namespace} WHERE key = ?", (key,)
            )
            row = await cursor.fetchone()
            return None if row is None else json.loads(row[0])

        return await self._run("retrieve", key, op)

    async def create_object(self, key: str, value: Any, force_sync: bool = False) -> None:
        async def op(db: aiosqlite.Connection) -> None:
            await db.execute(
                f"""INSERT OR REPLACE INTO {self.namespace} (key, value, updated_at)
                    VALUES (?, ?, datetime('now'))""",
                (key, json.dumps(value)),
            )
            await self._sync(db, force_sync)

        await self._run("create", key, op)

    async def delete_object(self, key: str, force_sync: bool = False) -> None:
        async def op(db: aiosqlite.Connection) -> None:
            await db.execute(f"DELETE FROM {self.namespace} WHERE key = ?", (key,))
            await self._sync(db, force_sync)

        await self._run("delete", key, op)

    async def keys(self) -> list[str]:
        async def op(db: aiosqlite.Connection) -> list[str]:
            cursor = await db.execute(f"SELECT key FROM {self.namespace} ORDER BY key")
            rows = await cursor.fetchall()
            return [row[0] for row in rows]

        return await self._run("keys", None, op)

    async def _sync(self, db: aiosqlite.Connection, force_sync: bool) -> None:
        if force_sync:
            await db.commit()
            self._dirty = False
        else:
            self._dirty = True

    async def _run(
        self,
        operation: str,
        key: str | None,
        op: Callable[[aiosqlite.Connection], Awaitable[T]],
    ) -> T:
        if self._db is None:
            await self.initialize()
        assert self._db is not None
        try:
            return await op(self._db)
        except (aiosqlite.Error, TypeError, ValueError) as e:
            raise StorageError(
                f"Cache {operation} failed for {self.namespace}: {e}",
                context={"operation": operation, "key": key},
            ) from e


async def create_cache(config: CacheConfig, namespace: str) -> ObjectCache:
    """Factory: create and initialize the configured cache backend."""
    cache: ObjectCache
    if config.backend == CacheBackend.SQLITE:
        cache = SqliteObjectCache(config.sqlite_path, namespace)
    elif config.backend == CacheBackend.MEMORY:
        cache = MemoryObjectCache(namespace)
    else:
        raise StorageError(
            f"Unsupported cache backend: {config.backend}",
            context={"operation": "create_cache"},
        )
    await cache.initialize()
    logger.debug("Opened %s cache for %s", config.backend, namespace)
    return cache
