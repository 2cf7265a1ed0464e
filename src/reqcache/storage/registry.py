"""Named, durable response stores backed by :mod:`diskcache`.

Each store is a :class:`diskcache.Index` living in its own directory under a
common root, so the set of store names is simply the set of subdirectories
and deleting a generation is a directory removal. An ``Index`` iterates in
insertion order, which is the order eviction relies on.

Entries are keyed by request identity (``"GET https://host/path?q=1"``) and
hold the ``model_dump()`` of a :class:`~reqcache.models.CachedResponse`.
Entries are never updated in place: :meth:`CacheStoreRegistry.put` deletes
before inserting, so a replaced entry moves to the newest position.

``diskcache`` is blocking; every public coroutine runs its work in a worker
thread via :func:`asyncio.to_thread`. Any failure of the backing medium is
raised as :class:`~reqcache.exceptions.StorageUnavailable`.
"""

from __future__ import annotations

import asyncio
import re
import shutil
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, TypeVar

import diskcache
import httpx
from pydantic import ValidationError

from reqcache.exceptions import StorageUnavailable
from reqcache.models import CachedResponse
from reqcache.output import debug

_T = TypeVar("_T")
_STORE_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def request_identity(method: str, url: str | httpx.URL) -> str:
    """Return the cache key for a request: upper-cased method plus absolute URL.

    The URL goes through :class:`httpx.URL`, so the scheme and host are
    lower-cased and a default port is dropped. Headers never take part in
    the key.
    """
    return f"{method.upper()} {httpx.URL(str(url))}"


class CacheStoreRegistry:
    """Owns every named store under *root*.

    Args:
        root: Directory holding one subdirectory per store. Created if
            missing.

    Example::

        registry = CacheStoreRegistry(tmp_path / "stores")
        await registry.open("app-dynamic-v1")
        await registry.put("app-dynamic-v1", "GET https://x/a", cached)
        hit = await registry.match("app-dynamic-v1", "GET https://x/a")
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        self._stores: dict[str, diskcache.Index] = {}
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def open(self, name: str) -> None:
        """Open store *name*, creating it on first use. Idempotent."""
        await self._run(self._open, name)

    async def put(self, name: str, request_id: str, response: CachedResponse) -> None:
        """Replace the entry for *request_id* in store *name* (delete then insert).

        Only an existing store is written to; a store that was never opened,
        or was deleted by an activation, raises :class:`StorageUnavailable`.
        """
        await self._run(self._put, name, request_id, response)

    async def match(self, name: str, request_id: str) -> Optional[CachedResponse]:
        """Return the entry for *request_id* in store *name*, or ``None``."""
        return await self._run(self._match, name, request_id)

    async def match_any(
        self, names: Iterable[str], request_id: str
    ) -> Optional[CachedResponse]:
        """Return the first hit for *request_id* across *names*, in order."""
        for name in names:
            hit = await self.match(name, request_id)
            if hit is not None:
                return hit
        return None

    async def delete(self, name: str, request_id: str) -> bool:
        """Delete one entry; return whether it existed."""
        return await self._run(self._delete, name, request_id)

    async def keys(self, name: str) -> list[str]:
        """Return the request identities of store *name* in insertion order."""
        return await self._run(self._keys, name)

    async def store_names(self) -> list[str]:
        """Enumerate every store present under the root, sorted by name."""
        return await self._run(self._store_names)

    async def delete_store(self, name: str) -> bool:
        """Delete store *name* wholesale; return whether it existed."""
        return await self._run(self._delete_store, name)

    def close(self) -> None:
        """Close every open store handle."""
        with self._lock:
            for index in self._stores.values():
                index.cache.close()
            self._stores.clear()

    # ------------------------------------------------------------------ #
    # Blocking implementations
    # ------------------------------------------------------------------ #

    async def _run(self, func: Callable[..., _T], *args: Any) -> _T:
        try:
            return await asyncio.to_thread(func, *args)
        except StorageUnavailable:
            raise
        except (OSError, sqlite3.Error, diskcache.Timeout) as exc:
            raise StorageUnavailable(f"Store operation failed: {exc}") from exc

    def _path(self, name: str) -> Path:
        if not _STORE_NAME.match(name):
            raise StorageUnavailable(f"Invalid store name: {name!r}")
        return self._root / name

    def _open(self, name: str) -> diskcache.Index:
        path = self._path(name)
        with self._lock:
            index = self._stores.get(name)
            if index is not None and path.is_dir():
                return index
            if index is not None:
                # Removed from disk behind our back; drop the stale handle.
                index.cache.close()
            self._root.mkdir(parents=True, exist_ok=True)
            index = diskcache.Index(str(path))
            self._stores[name] = index
            return index

    def _existing(self, name: str) -> Optional[diskcache.Index]:
        """Return the handle for *name* only if the store exists on disk."""
        if not self._path(name).is_dir():
            return None
        return self._open(name)

    def _put(self, name: str, request_id: str, response: CachedResponse) -> None:
        index = self._existing(name)
        if index is None:
            raise StorageUnavailable(f"Store {name} does not exist")
        index.pop(request_id, None)
        index[request_id] = response.model_dump()

    def _match(self, name: str, request_id: str) -> Optional[CachedResponse]:
        index = self._existing(name)
        if index is None:
            return None
        raw = index.get(request_id)
        if raw is None:
            return None
        try:
            return CachedResponse.model_validate(raw)
        except ValidationError as exc:
            raise StorageUnavailable(f"Corrupt entry {request_id!r} in {name}") from exc

    def _delete(self, name: str, request_id: str) -> bool:
        index = self._existing(name)
        if index is None:
            return False
        return index.pop(request_id, None) is not None

    def _keys(self, name: str) -> list[str]:
        index = self._existing(name)
        if index is None:
            return []
        return list(index.keys())

    def _store_names(self) -> list[str]:
        if not self._root.is_dir():
            return []
        return sorted(
            p.name for p in self._root.iterdir() if p.is_dir() and _STORE_NAME.match(p.name)
        )

    def _delete_store(self, name: str) -> bool:
        path = self._path(name)
        with self._lock:
            index = self._stores.pop(name, None)
            if index is not None:
                index.cache.close()
        if not path.is_dir():
            return False
        shutil.rmtree(path)
        debug(f"Deleted store {name}")
        return True
