"""The intercepting transport a client application mounts on its HTTP client.

:class:`CachingTransport` implements :class:`httpx.AsyncBaseTransport`, so
the application keeps making ordinary requests with ``httpx.AsyncClient``
and never talks to the stores directly::

    client = httpx.AsyncClient(transport=layer.transport())
    response = await client.get("https://knower.life/styles.css")

Each transport registers itself as a client of the lifecycle controller.
A transport created before the first activation is not controlled: its
requests go straight to the network until activation claims it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import httpx

from reqcache.events import Intercept

if TYPE_CHECKING:
    from reqcache.events import EventScheduler
    from reqcache.lifecycle import LifecycleController


class CachingTransport(httpx.AsyncBaseTransport):
    """Answers every request through the cache layer's scheduler.

    Args:
        scheduler: Scheduler that handles the ``Intercept`` events.
        controller: Lifecycle controller the transport registers with.
        client_id: Stable id of this client; generated when omitted.
    """

    def __init__(
        self,
        scheduler: EventScheduler,
        controller: LifecycleController,
        client_id: Optional[str] = None,
    ) -> None:
        self._scheduler = scheduler
        self._controller = controller
        self.client_id = controller.register_client(client_id)

    @property
    def controlled(self) -> bool:
        return self._controller.is_controlled(self.client_id)

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return await self._scheduler.dispatch(Intercept(request, self.client_id))  # type: ignore[return-value]

    async def aclose(self) -> None:
        self._controller.unregister_client(self.client_id)
