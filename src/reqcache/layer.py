"""Assembly of the whole cache layer from settings.

:class:`CacheLayer` wires the registry, network fetcher, lifecycle
controller, classifier, strategies, fallback resolver, and notification
dispatcher together and exposes them through one
:class:`~reqcache.events.EventScheduler`. It is an async context manager
that closes the network client and store handles on exit.

Example::

    async with CacheLayer(settings) as layer:
        await layer.deploy()
        async with httpx.AsyncClient(transport=layer.transport()) as client:
            page = await client.get(f"{settings.origin}/index.html")
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import httpx

from reqcache.classifier import RequestClassifier
from reqcache.config import get_store_dir
from reqcache.events import Activate, EventScheduler, Install, Intercept, NotificationClick, Push
from reqcache.fallback import FallbackResolver
from reqcache.lifecycle import LifecycleController
from reqcache.models import (
    CacheSettings,
    NavigationRequest,
    Notification,
    NotificationDefaults,
    RegistryState,
)
from reqcache.network import NetworkFetcher
from reqcache.notifications import NotificationDispatcher, NotificationHost, RawPayload
from reqcache.storage import CacheStoreRegistry
from reqcache.strategies import StrategyExecutor
from reqcache.transport import CachingTransport


class CacheLayer:
    """One app's intercepting cache, ready to use.

    Args:
        settings: Cache settings of the generation to serve.
        notification_defaults: Defaults for push payload fields.
        network_transport: Transport for real network access; tests pass an
            :class:`httpx.MockTransport`.
        host: Notification host; defaults to a console host.
        store_root: Overrides the store directory derived from *settings*.
    """

    def __init__(
        self,
        settings: CacheSettings,
        notification_defaults: Optional[NotificationDefaults] = None,
        network_transport: Optional[httpx.AsyncBaseTransport] = None,
        host: Optional[NotificationHost] = None,
        store_root: Optional[Path] = None,
    ) -> None:
        self.settings = settings
        self.registry = CacheStoreRegistry(store_root or get_store_dir(settings))
        self.fetcher = NetworkFetcher(timeout=settings.timeout, transport=network_transport)
        self.controller = LifecycleController(settings, self.registry, self.fetcher)
        self.classifier = RequestClassifier(settings)
        self.fallback = FallbackResolver(self.registry, settings, self.controller.current_state)
        self.executor = StrategyExecutor(
            self.registry,
            self.fetcher,
            self.fallback,
            settings,
            self.controller.current_state,
            self.controller.gate,
        )
        self.notifications = NotificationDispatcher(notification_defaults, host)
        self.scheduler = EventScheduler(
            self.controller, self.classifier, self.executor, self.notifications
        )

    async def __aenter__(self) -> CacheLayer:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.executor.drain()
        await self.fetcher.aclose()
        self.registry.close()

    # ------------------------------------------------------------------ #
    # Event shortcuts
    # ------------------------------------------------------------------ #

    async def deploy(self) -> Optional[RegistryState]:
        return await self.scheduler.dispatch(Install())  # type: ignore[return-value]

    async def activate(self) -> RegistryState:
        return await self.scheduler.dispatch(Activate())  # type: ignore[return-value]

    async def handle(
        self, request: httpx.Request, client_id: Optional[str] = None
    ) -> httpx.Response:
        return await self.scheduler.dispatch(Intercept(request, client_id))  # type: ignore[return-value]

    async def push(self, payload: RawPayload) -> Optional[Notification]:
        return await self.scheduler.dispatch(Push(payload))  # type: ignore[return-value]

    async def click(
        self, notification: Notification, action: str = ""
    ) -> Optional[NavigationRequest]:
        return await self.scheduler.dispatch(  # type: ignore[return-value]
            NotificationClick(notification, action)
        )

    def transport(self, client_id: Optional[str] = None) -> CachingTransport:
        """Return a transport for a client application to mount on its ``httpx.AsyncClient``."""
        return CachingTransport(self.scheduler, self.controller, client_id)
