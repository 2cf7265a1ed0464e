"""Generation lifecycle: Installing -> Activating -> Active.

:class:`LifecycleController` owns the current generation pointer
(:class:`~reqcache.models.RegistryState`) and is the only writer of it.

* **install** -- fetch the whole static manifest from the origin, then write
  it into the new generation's static store. Population is all-or-nothing:
  any failed asset discards the new store and the previously active
  generation keeps serving.
* **activate** -- with the :class:`GenerationGate` held exclusively, delete
  every store that does not belong to the new generation, trim the dynamic
  store, persist and swap the pointer, and only then take over clients.
  Intercepts hold the gate in shared mode, so no request ever sees a
  half-migrated cache.

The pointer is persisted as ``state.json`` in the store root with an atomic
write, so an activated generation survives a restart. Every controller
re-reads it when the file changes, so an activation done elsewhere moves
running layers onto the new generation.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import httpx

from reqcache.config import atomic_write
from reqcache.exceptions import (
    InstallPopulationFailure,
    InvalidUsageError,
    NetworkFailure,
    StorageUnavailable,
)
from reqcache.models import CachedResponse, CacheSettings, LifecycleState, RegistryState
from reqcache.network import NetworkFetcher
from reqcache.output import debug, warning
from reqcache.storage import CacheStoreRegistry, enforce_limit, request_identity

_STATE_FILENAME = "state.json"


class GenerationGate:
    """Readers-writer barrier between intercepts and activation.

    Any number of intercepts may hold the gate in shared mode. Activation
    takes it exclusively: it waits for in-flight intercepts to finish, and new
    intercepts wait until activation has released it. A waiting activation
    blocks new readers so it cannot be starved.
    """

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @property
    def readers(self) -> int:
        return self._readers

    @asynccontextmanager
    async def shared(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and not self._writers_waiting)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                self._cond.notify_all()

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        async with self._cond:
            self._writers_waiting += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class LifecycleController:
    """Drives provisioning, cutover, and client takeover for one app.

    Args:
        settings: Settings of the generation this controller deploys.
        registry: Store registry; its root also holds ``state.json``.
        fetcher: Network access used to provision the static manifest.
    """

    def __init__(
        self,
        settings: CacheSettings,
        registry: CacheStoreRegistry,
        fetcher: NetworkFetcher,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._fetcher = fetcher
        self._gate = GenerationGate()
        self._clients: dict[str, bool] = {}
        self._state: Optional[RegistryState] = None
        self._state_stamp: Optional[tuple[int, int, int]] = None
        self._lifecycle = LifecycleState.IDLE
        self._refresh_state()

    # ------------------------------------------------------------------ #
    # Read-only views
    # ------------------------------------------------------------------ #

    @property
    def settings(self) -> CacheSettings:
        return self._settings

    @property
    def gate(self) -> GenerationGate:
        return self._gate

    @property
    def lifecycle(self) -> LifecycleState:
        return self._lifecycle

    @property
    def state(self) -> Optional[RegistryState]:
        """The active generation pointer, or ``None`` before the first activation."""
        return self.current_state()

    def current_state(self) -> Optional[RegistryState]:
        """Callable form of :attr:`state` for collaborators that read it per request.

        ``state.json`` is re-read whenever it changed on disk, so a layer
        follows an activation done by another process.
        """
        self._refresh_state()
        return self._state

    # ------------------------------------------------------------------ #
    # Install
    # ------------------------------------------------------------------ #

    async def install(self) -> str:
        """Provision the static store of the configured generation.

        Returns:
            The name of the populated static store.

        Raises:
            InvalidUsageError: If the generation is older than the active one.
            InstallPopulationFailure: If any manifest asset could not be
                fetched or stored. Nothing of the new generation stays
                queryable and the active generation is untouched.
        """
        settings = self._settings
        name = settings.static_store_name
        self._refresh_state()

        if self._state is not None:
            if settings.generation < self._state.generation:
                raise InvalidUsageError(
                    f"Generation {settings.generation} is older than the active "
                    f"generation {self._state.generation}"
                )
            if settings.generation == self._state.generation:
                debug(f"Generation {settings.generation} already active; install skipped")
                return name

        self._lifecycle = LifecycleState.INSTALLING
        urls = [settings.absolute_url(path) for path in settings.static_manifest]
        try:
            # Leftovers of an interrupted install must not leak into this one.
            await self._registry.delete_store(name)
            responses = await asyncio.gather(
                *(self._fetch_asset(url) for url in urls), return_exceptions=True
            )
            for response in responses:
                if isinstance(response, BaseException):
                    raise response
            await self._registry.open(name)
            for url, response in zip(urls, responses):
                await self._registry.put(
                    name, request_identity("GET", url), CachedResponse.from_httpx(response)
                )
        except (InstallPopulationFailure, StorageUnavailable) as exc:
            await self._discard(name)
            self._lifecycle = (
                LifecycleState.ACTIVE if self._state is not None else LifecycleState.IDLE
            )
            raise InstallPopulationFailure(
                f"Install of generation {settings.generation} failed: {exc}"
            ) from exc

        self._lifecycle = LifecycleState.INSTALLED
        debug(f"Installed {len(urls)} assets into {name}")
        return name

    async def _fetch_asset(self, url: str) -> httpx.Response:
        try:
            response = await self._fetcher.get(url)
        except NetworkFailure as exc:
            raise InstallPopulationFailure(f"{url}: {exc}") from exc
        if not response.is_success:
            raise InstallPopulationFailure(f"{url} returned HTTP {response.status_code}")
        return response

    async def _discard(self, name: str) -> None:
        try:
            await self._registry.delete_store(name)
        except StorageUnavailable as exc:
            warning(f"Could not discard partial store {name}: {exc}")

    # ------------------------------------------------------------------ #
    # Activate
    # ------------------------------------------------------------------ #

    async def activate(self) -> RegistryState:
        """Cut over to the configured generation.

        Raises:
            InvalidUsageError: If the generation's static store is not installed.
            StorageUnavailable: If cleanup, eviction, or persisting the pointer
                fails; the old pointer stays in effect.
        """
        settings = self._settings
        keep = {settings.static_store_name, settings.dynamic_store_name}

        if settings.static_store_name not in await self._registry.store_names():
            raise InvalidUsageError(
                f"Generation {settings.generation} is not installed; run install first"
            )

        async with self._gate.exclusive():
            previous = self._lifecycle
            self._lifecycle = LifecycleState.ACTIVATING
            try:
                for name in await self._registry.store_names():
                    if name not in keep:
                        await self._registry.delete_store(name)
                await self._registry.open(settings.dynamic_store_name)
                await enforce_limit(
                    self._registry, settings.dynamic_store_name, settings.max_dynamic_entries
                )
                new_state = RegistryState.for_settings(settings)
                await asyncio.to_thread(self._save_state, new_state)
            except StorageUnavailable:
                self._lifecycle = previous
                raise

            self._state = new_state
            self._state_stamp = self._stat_state()
            claimed = self.claim()
            self._lifecycle = LifecycleState.ACTIVE

        debug(f"Activated generation {new_state.generation}, claimed {claimed} clients")
        return new_state

    async def deploy(self) -> RegistryState | None:
        """Install, then activate right away when ``skip_waiting`` is set.

        Returns:
            The new pointer, or ``None`` when activation is left for later.
        """
        await self.install()
        if not self._settings.skip_waiting:
            return None
        return await self.activate()

    # ------------------------------------------------------------------ #
    # Clients
    # ------------------------------------------------------------------ #

    def register_client(self, client_id: Optional[str] = None) -> str:
        """Attach a client; it is controlled at once if a generation is active."""
        client_id = client_id or uuid.uuid4().hex
        self._clients[client_id] = self.current_state() is not None
        return client_id

    def unregister_client(self, client_id: str) -> None:
        self._clients.pop(client_id, None)

    def is_controlled(self, client_id: Optional[str]) -> bool:
        """Return whether requests from *client_id* go through the cache.

        Anonymous requests (``None``) are controlled whenever a generation
        is active.
        """
        self._refresh_state()
        if client_id is None:
            return self._state is not None
        return self._clients.get(client_id, False)

    def claim(self) -> int:
        """Take over every registered client; return how many were newly claimed."""
        claimed = 0
        for client_id, controlled in self._clients.items():
            if not controlled:
                self._clients[client_id] = True
                claimed += 1
        return claimed

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    async def describe(self) -> dict[str, object]:
        """Summarise lifecycle state and every store with its entry count."""
        stores = []
        for name in await self._registry.store_names():
            stores.append({"name": name, "entries": len(await self._registry.keys(name))})
        state = self.current_state()
        return {
            "lifecycle": self._lifecycle.value,
            "generation": state.generation if state else None,
            "configured_generation": self._settings.generation,
            "stores": stores,
        }

    # ------------------------------------------------------------------ #
    # Persistence of the pointer
    # ------------------------------------------------------------------ #

    def _state_path(self) -> Path:
        return self._registry.root / _STATE_FILENAME

    def _stat_state(self) -> Optional[tuple[int, int, int]]:
        try:
            stat = self._state_path().stat()
        except OSError:
            return None
        return (stat.st_ino, stat.st_mtime_ns, stat.st_size)

    def _refresh_state(self) -> None:
        """Reload the pointer when ``state.json`` was replaced since the last read."""
        stamp = self._stat_state()
        if stamp is None or stamp == self._state_stamp:
            return
        self._state_stamp = stamp
        state = self._load_state()
        if state is None or state == self._state:
            return
        if self._state is not None:
            debug(
                f"Generation pointer moved from {self._state.generation} "
                f"to {state.generation}"
            )
        self._state = state
        if self._lifecycle is LifecycleState.IDLE:
            self._lifecycle = LifecycleState.ACTIVE
        self.claim()

    def _load_state(self) -> Optional[RegistryState]:
        path = self._state_path()
        if not path.is_file():
            return None
        try:
            return RegistryState.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError) as exc:
            warning(f"Ignoring unreadable generation pointer {path}: {exc}")
            return None

    def _save_state(self, state: RegistryState) -> None:
        try:
            atomic_write(self._state_path(), state.model_dump_json(indent=2) + "\n")
        except OSError as exc:
            raise StorageUnavailable(f"Cannot persist generation pointer: {exc}") from exc
