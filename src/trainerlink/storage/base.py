"""Abstract interface of the persistent key-value store.

The store is a process-wide, durable mapping of string keys to string
values that survives restarts. Every operation is a coroutine so that
backends may suspend on I/O; callers never assume an operation completes
without yielding.

Batch operations (:meth:`KeyValueStore.multi_set`,
:meth:`KeyValueStore.multi_remove`) are all-or-nothing: a concurrent reader
observes either every change of the batch or none of them.

See Also:
    :class:`~trainerlink.storage.disk.DiskKeyValueStore` -- the
    :mod:`diskcache`-backed implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Optional


class KeyValueStore(ABC):
    """Durable, asynchronous string-to-string store.

    Implementations raise :class:`~trainerlink.exceptions.StorageFailure`
    when the backend cannot be read or written. Callers decide whether a
    failed read means "absent"; a failed write is always propagated.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the value stored under *key*, or ``None`` if absent."""
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store *value* under *key*, replacing any previous value."""
        ...

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete *key*. Removing an absent key is a no-op."""
        ...

    @abstractmethod
    async def multi_get(self, keys: Iterable[str]) -> dict[str, Optional[str]]:
        """Read several keys from one consistent snapshot.

        Returns:
            A dict with an entry for every requested key; absent keys map
            to ``None``.
        """
        ...

    @abstractmethod
    async def multi_set(self, items: Mapping[str, str]) -> None:
        """Write every pair in *items* as one atomic batch."""
        ...

    @abstractmethod
    async def multi_remove(self, keys: Iterable[str]) -> None:
        """Delete every key in *keys* as one atomic batch."""
        ...

    def close(self) -> None:
        """Release backend resources. The default implementation does nothing."""
