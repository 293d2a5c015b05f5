"""Persistent key-value storage for trainerlink.

This package provides the durable string store that the session layer
persists tokens, the cached profile, and remembered emails into.

- :class:`KeyValueStore` -- asynchronous interface with atomic batches.
- :class:`DiskKeyValueStore` -- implementation backed by :mod:`diskcache`.
"""

from trainerlink.storage.base import KeyValueStore
from trainerlink.storage.disk import DiskKeyValueStore

__all__ = ["KeyValueStore", "DiskKeyValueStore"]
