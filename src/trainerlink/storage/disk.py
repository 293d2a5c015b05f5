"""Disk-backed key-value store built on :mod:`diskcache`.

:class:`diskcache.Cache` keeps entries in an SQLite database inside a
directory, which gives durability across restarts and real transactions:
batch writes run inside :meth:`diskcache.Cache.transact`, so a failure
half-way through a batch rolls every write of that batch back.

Backend errors (:class:`sqlite3.Error`, :class:`OSError`,
:class:`diskcache.Timeout`) are re-raised as
:class:`~trainerlink.exceptions.StorageFailure`.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Optional

import diskcache

from trainerlink.exceptions import StorageFailure
from trainerlink.storage.base import KeyValueStore

logger = logging.getLogger(__name__)

_BACKEND_ERRORS = (sqlite3.Error, OSError, diskcache.Timeout)


class DiskKeyValueStore(KeyValueStore):
    """Persistent store of string values in a :class:`diskcache.Cache` directory.

    The coroutine methods call :mod:`diskcache` synchronously, so each one
    blocks the event loop for the duration of its SQLite transaction. None
    of them suspends midway, which also means a batch is never interleaved
    with another coroutine's access.

    Args:
        directory: Directory holding the cache database. Created on first
            use.

    Raises:
        StorageFailure: If the cache directory cannot be opened.

    Example::

        store = DiskKeyValueStore("/tmp/trainerlink-store")
        await store.multi_set({"access_token": "a1", "refresh_token": "r1"})
        assert await store.get("access_token") == "a1"
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)
        try:
            self._cache = diskcache.Cache(str(self._directory))
        except _BACKEND_ERRORS as exc:
            raise StorageFailure(f"Cannot open store at {self._directory}: {exc}") from exc

    @property
    def directory(self) -> Path:
        """The filesystem directory of the underlying cache."""
        return self._directory

    async def get(self, key: str) -> Optional[str]:
        try:
            return self._cache.get(key)
        except _BACKEND_ERRORS as exc:
            raise StorageFailure(f"Failed to read '{key}': {exc}") from exc

    async def set(self, key: str, value: str) -> None:
        try:
            self._cache.set(key, value)
        except _BACKEND_ERRORS as exc:
            raise StorageFailure(f"Failed to write '{key}': {exc}") from exc

    async def remove(self, key: str) -> None:
        try:
            self._cache.delete(key)
        except _BACKEND_ERRORS as exc:
            raise StorageFailure(f"Failed to remove '{key}': {exc}") from exc

    async def multi_get(self, keys: Iterable[str]) -> dict[str, Optional[str]]:
        keys = list(keys)
        try:
            with self._cache.transact():
                return {key: self._cache.get(key) for key in keys}
        except _BACKEND_ERRORS as exc:
            raise StorageFailure(f"Failed to read {keys}: {exc}") from exc

    async def multi_set(self, items: Mapping[str, str]) -> None:
        try:
            with self._cache.transact():
                for key, value in items.items():
                    self._cache.set(key, value)
        except _BACKEND_ERRORS as exc:
            raise StorageFailure(f"Batch write of {sorted(items)} failed: {exc}") from exc
        logger.debug("Wrote %d keys in one batch", len(items))

    async def multi_remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        try:
            with self._cache.transact():
                for key in keys:
                    self._cache.delete(key)
        except _BACKEND_ERRORS as exc:
            raise StorageFailure(f"Batch removal of {keys} failed: {exc}") from exc

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache` and release resources."""
        self._cache.close()
