"""Terminal fallback when neither the network nor a direct cache lookup answers.

The chain for a page navigation is::

    cached offline document -> cached root document -> synthetic 503

Every other request gets the synthetic 503 straight away. The resolver never
raises: a storage error while looking up a fallback document counts as a
miss and the chain moves on.
"""

from __future__ import annotations

from typing import Callable

import httpx

from reqcache.exceptions import StorageUnavailable
from reqcache.models import CacheSettings, RegistryState
from reqcache.output import debug
from reqcache.storage.registry import CacheStoreRegistry, request_identity

OFFLINE_STATUS = 503
OFFLINE_BODY = "Offline"


def is_navigation(request: httpx.Request) -> bool:
    """Return True when *request* looks like a full page load."""
    if request.method.upper() != "GET":
        return False
    return "text/html" in request.headers.get("accept", "").lower()


def offline_response(request: httpx.Request) -> httpx.Response:
    """Build the synthetic ``503 Offline`` response."""
    return httpx.Response(
        status_code=OFFLINE_STATUS,
        headers={
            "content-type": "text/plain; charset=utf-8",
            "x-reqcache-source": "fallback",
        },
        content=OFFLINE_BODY.encode("utf-8"),
        request=request,
    )


class FallbackResolver:
    """Produces a substitute response for a request that could not be served.

    Args:
        registry: Registry holding the fallback documents.
        settings: Supplies the origin and the offline/root document paths.
        state: Callable returning the current generation pointer, or ``None``
            when nothing has been activated yet.
    """

    def __init__(
        self,
        registry: CacheStoreRegistry,
        settings: CacheSettings,
        state: Callable[[], RegistryState | None],
    ) -> None:
        self._registry = registry
        self._settings = settings
        self._state = state

    def candidates(self) -> list[str]:
        """Absolute URLs tried, in order, for a navigation fallback."""
        paths = []
        if self._settings.offline_document:
            paths.append(self._settings.offline_document)
        paths.append(self._settings.root_document)
        return [self._settings.absolute_url(p) for p in paths]

    async def resolve(self, request: httpx.Request) -> httpx.Response:
        """Return the best available substitute for *request*."""
        state = self._state()
        if state is not None and is_navigation(request):
            for url in self.candidates():
                try:
                    hit = await self._registry.match_any(
                        state.store_names, request_identity("GET", url)
                    )
                except StorageUnavailable as exc:
                    debug(f"Fallback lookup of {url} failed: {exc}")
                    continue
                if hit is not None:
                    debug(f"Fallback document {url} for {request.url}")
                    return hit.to_httpx(request, source="fallback")
        debug(f"Synthetic {OFFLINE_STATUS} for {request.method} {request.url}")
        return offline_response(request)
