"""Persistent, versioned response stores for reqcache.

This package provides :class:`CacheStoreRegistry`, which owns every named
store on disk using :mod:`diskcache`, and :func:`enforce_limit`, the FIFO
eviction applied to the dynamic store during activation.

Store names follow ``<app_id>-static-v<generation>`` and
``<app_id>-dynamic-v<generation>`` (see
:class:`~reqcache.models.CacheSettings`).
"""

from reqcache.storage.eviction import enforce_limit
from reqcache.storage.registry import CacheStoreRegistry, request_identity

__all__ = ["CacheStoreRegistry", "enforce_limit", "request_identity"]
