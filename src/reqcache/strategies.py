"""Fetch strategies -- cache-first for static assets, network-first for the rest.

Each call produces exactly one response, from the network, a store, or the
:class:`~reqcache.fallback.FallbackResolver`, and never raises for network
or storage trouble:

* **network-first** -- try the network; a 2xx response is written through to
  the dynamic store and returned. A network failure falls back to the
  current generation's stores, then to the fallback chain. A non-2xx
  response is replaced by a stored copy when one exists, otherwise it is
  returned as-is.
* **cache-first** -- serve a stored copy without touching the network. On a
  miss, fetch; a 2xx response is written to the static store. A network
  failure goes to the fallback chain.

With ``revalidate_on_hit`` enabled, a cache-first hit also spawns a detached
task that refreshes the stored copy. The task never affects the response
already returned and its failures are dropped. Its write holds the
generation gate and is skipped once an activation has retired the store.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

import httpx

from reqcache.exceptions import NetworkFailure, ReqcacheError, StorageUnavailable
from reqcache.fallback import FallbackResolver, offline_response
from reqcache.lifecycle import GenerationGate
from reqcache.models import CachedResponse, CacheSettings, RegistryState, RouteClass
from reqcache.network import NetworkFetcher
from reqcache.output import debug
from reqcache.storage.registry import CacheStoreRegistry, request_identity


def _lookup_identity(request: httpx.Request) -> str:
    # HEAD is answered from the GET entry.
    return request_identity("GET", request.url)


def _relay(response: httpx.Response, request: httpx.Request) -> httpx.Response:
    """Re-issue a read network response as a fresh one answering *request*."""
    return CachedResponse.from_httpx(response).to_httpx(request, source="network")


class StrategyExecutor:
    """Runs the strategy selected for a request's route class.

    Args:
        registry: Store registry.
        fetcher: Network access.
        fallback: Terminal fallback resolver.
        settings: Cache settings (API write-through and revalidation switches).
        state: Callable returning the current generation pointer.
        gate: Generation gate; revalidation writes hold it in shared mode.
    """

    def __init__(
        self,
        registry: CacheStoreRegistry,
        fetcher: NetworkFetcher,
        fallback: FallbackResolver,
        settings: CacheSettings,
        state: Callable[[], Optional[RegistryState]],
        gate: GenerationGate,
    ) -> None:
        self._registry = registry
        self._fetcher = fetcher
        self._fallback = fallback
        self._settings = settings
        self._state = state
        self._gate = gate
        self._background: set[asyncio.Task[None]] = set()

    async def execute(self, request: httpx.Request, route: RouteClass) -> httpx.Response:
        """Dispatch *request* to the strategy for *route*."""
        if route is RouteClass.STATIC_ASSET:
            return await self.cache_first(request)
        return await self.network_first(request, route)

    # ------------------------------------------------------------------ #
    # Strategies
    # ------------------------------------------------------------------ #

    async def network_first(
        self, request: httpx.Request, route: RouteClass = RouteClass.OTHER
    ) -> httpx.Response:
        state = self._state()
        if state is None:
            return await self.passthrough(request)

        try:
            response = await self._fetcher.fetch(request)
        except NetworkFailure:
            cached = await self._lookup(request, state)
            if cached is not None:
                debug(f"Network failed, serving cached {request.url}")
                return self._from_cache(cached, request)
            return await self._fallback.resolve(request)

        if response.is_success:
            if self._writes_through(request, route):
                await self._store(state.dynamic_store, request, response)
            return _relay(response, request)

        cached = await self._lookup(request, state)
        if cached is not None:
            debug(f"Network returned {response.status_code}, serving cached {request.url}")
            return self._from_cache(cached, request)
        return _relay(response, request)

    async def cache_first(self, request: httpx.Request) -> httpx.Response:
        state = self._state()
        if state is None:
            return await self.passthrough(request)

        cached = await self._lookup(request, state)
        if cached is not None:
            debug(f"Cache hit {request.url}")
            if self._settings.revalidate_on_hit and request.method.upper() == "GET":
                self._spawn_revalidation(request, state.static_store)
            return self._from_cache(cached, request)

        debug(f"Cache miss {request.url}")
        try:
            response = await self._fetcher.fetch(request)
        except NetworkFailure:
            return await self._fallback.resolve(request)

        if response.is_success and request.method.upper() == "GET":
            await self._store(state.static_store, request, response)
        return _relay(response, request)

    async def passthrough(self, request: httpx.Request) -> httpx.Response:
        """Network only; a failure becomes the synthetic offline response."""
        try:
            response = await self._fetcher.fetch(request)
        except NetworkFailure:
            return offline_response(request)
        return _relay(response, request)

    # ------------------------------------------------------------------ #
    # Background revalidation
    # ------------------------------------------------------------------ #

    @property
    def pending(self) -> int:
        """Number of revalidation tasks still running."""
        return len(self._background)

    async def drain(self) -> None:
        """Wait for all outstanding revalidation tasks."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _spawn_revalidation(self, request: httpx.Request, store: str) -> None:
        task = asyncio.create_task(self._revalidate(request, store))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _revalidate(self, request: httpx.Request, store: str) -> None:
        try:
            response = await self._fetcher.fetch(request)
            if not response.is_success:
                return
            async with self._gate.shared():
                state = self._state()
                if state is None or store not in state.store_names:
                    debug(f"Revalidation of {request.url} dropped: {store} is retired")
                    return
                await self._registry.put(
                    store, _lookup_identity(request), CachedResponse.from_httpx(response)
                )
            debug(f"Revalidated {request.url}")
        except ReqcacheError as exc:
            debug(f"Revalidation of {request.url} dropped: {exc}")

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _writes_through(self, request: httpx.Request, route: RouteClass) -> bool:
        if request.method.upper() != "GET":
            return False
        if route is RouteClass.API_ENDPOINT:
            return self._settings.cache_api_responses
        return True

    async def _lookup(
        self, request: httpx.Request, state: RegistryState
    ) -> Optional[CachedResponse]:
        try:
            return await self._registry.match_any(state.store_names, _lookup_identity(request))
        except StorageUnavailable as exc:
            debug(f"Store lookup failed, treating as miss: {exc}")
            return None

    async def _store(self, store: str, request: httpx.Request, response: httpx.Response) -> None:
        try:
            await self._registry.put(
                store, _lookup_identity(request), CachedResponse.from_httpx(response)
            )
        except StorageUnavailable as exc:
            debug(f"Could not cache {request.url}: {exc}")

    @staticmethod
    def _from_cache(cached: CachedResponse, request: httpx.Request) -> httpx.Response:
        if request.method.upper() == "HEAD":
            cached = cached.model_copy(update={"body": b""})
        return cached.to_httpx(request)
