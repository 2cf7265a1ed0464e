"""Network access for the cache layer -- a thin :class:`httpx.AsyncClient` wrapper.

:class:`NetworkFetcher` re-issues an intercepted request against the real
network with the layer's own timeout. Every :class:`httpx.RequestError`,
redirect loops included, becomes a
:class:`~reqcache.exceptions.NetworkFailure`. A fetch that cannot complete
within the timeout is a definite failure, never held open.

There is no retry loop: each intercepted request gets exactly one network
attempt.
"""

from __future__ import annotations

from typing import Optional

import httpx

from reqcache.exceptions import NetworkFailure
from reqcache.output import debug

# Set by httpx itself for the request it builds.
_REBUILT_HEADERS = frozenset({"host", "content-length", "transfer-encoding"})


class NetworkFetcher:
    """Sends requests to the network on behalf of the cache layer.

    Args:
        timeout: Overall timeout in seconds applied to every fetch.
        transport: Optional transport for the underlying client. Tests pass an
            :class:`httpx.MockTransport`; production uses the httpx default.

    Example::

        async with NetworkFetcher(timeout=10.0) as fetcher:
            response = await fetcher.fetch(httpx.Request("GET", "https://x/a"))
    """

    def __init__(
        self,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = httpx.Timeout(timeout)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> NetworkFetcher:
        self._ensure_client()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # Fetching
    # ------------------------------------------------------------------ #

    async def fetch(self, request: httpx.Request) -> httpx.Response:
        """Send *request* and return the fully read response.

        Any status code is returned as-is; deciding what counts as success
        is up to the strategy.

        Raises:
            NetworkFailure: On connection errors, timeouts, protocol errors,
                redirect loops, or undecodable bodies.
        """
        client = self._ensure_client()
        content = await request.aread()
        headers = [
            (name, value)
            for name, value in request.headers.multi_items()
            if name.lower() not in _REBUILT_HEADERS
        ]
        outgoing = client.build_request(
            request.method,
            request.url,
            headers=headers,
            content=content or None,
        )
        try:
            response = await client.send(outgoing)
        except httpx.RequestError as exc:
            debug(f"Network failure for {request.method} {request.url}: {exc!r}")
            raise NetworkFailure(f"{request.method} {request.url} failed: {exc}") from exc
        debug(f"Network {response.status_code} for {request.method} {request.url}")
        return response

    async def get(self, url: str) -> httpx.Response:
        """Fetch *url* with a plain GET (used to provision the static manifest)."""
        return await self.fetch(httpx.Request("GET", url))

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client
