"""The closed set of events the cache layer reacts to, and their scheduler.

Five event kinds exist: :class:`Install`, :class:`Activate`,
:class:`Intercept`, :class:`Push`, and :class:`NotificationClick`.
:class:`EventScheduler` routes each one to its handler. Every event is an
independent unit of work; callers may dispatch them concurrently from as
many tasks as they like.

The one ordering guarantee is the activation barrier: intercepts run under
the controller's :class:`~reqcache.lifecycle.GenerationGate` in shared
mode, so an intercept either completes before activation starts or starts
after activation has deleted stale stores, trimmed the dynamic store,
swapped the pointer, and claimed clients.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

import httpx

from reqcache.classifier import RequestClassifier, is_interceptable
from reqcache.exceptions import InvalidUsageError
from reqcache.lifecycle import LifecycleController
from reqcache.models import NavigationRequest, Notification, RegistryState
from reqcache.notifications import NotificationDispatcher, RawPayload
from reqcache.output import debug
from reqcache.strategies import StrategyExecutor


@dataclass(frozen=True)
class Install:
    """Provision the configured generation (and activate it with skip-waiting)."""


@dataclass(frozen=True)
class Activate:
    """Cut over to the installed generation."""


@dataclass(frozen=True)
class Intercept:
    request: httpx.Request
    client_id: Optional[str] = None


@dataclass(frozen=True)
class Push:
    payload: RawPayload = None


@dataclass(frozen=True)
class NotificationClick:
    notification: Notification
    action: str = ""


Event = Union[Install, Activate, Intercept, Push, NotificationClick]


class EventScheduler:
    """Routes events to the lifecycle controller, strategies, and dispatcher."""

    def __init__(
        self,
        controller: LifecycleController,
        classifier: RequestClassifier,
        executor: StrategyExecutor,
        notifications: NotificationDispatcher,
    ) -> None:
        self._controller = controller
        self._classifier = classifier
        self._executor = executor
        self._notifications = notifications

    async def dispatch(
        self, event: Event
    ) -> Union[httpx.Response, RegistryState, Notification, NavigationRequest, None]:
        """Handle *event* and return what its handler produced.

        * ``Install`` -> the new pointer, or ``None`` if activation waits
        * ``Activate`` -> the new pointer
        * ``Intercept`` -> the response for the request
        * ``Push`` -> the notification shown, or ``None`` for bad data
        * ``NotificationClick`` -> the navigation raised, or ``None``
        """
        if isinstance(event, Intercept):
            return await self.intercept(event.request, event.client_id)
        if isinstance(event, Push):
            return await self._notifications.dispatch(event.payload)
        if isinstance(event, NotificationClick):
            return await self._notifications.handle_action(event.notification, event.action)
        if isinstance(event, Install):
            return await self._controller.deploy()
        if isinstance(event, Activate):
            return await self._controller.activate()
        raise InvalidUsageError(f"Unknown event: {event!r}")

    async def intercept(
        self, request: httpx.Request, client_id: Optional[str] = None
    ) -> httpx.Response:
        """Answer one request through the cache layer."""
        if not is_interceptable(request):
            debug(f"Bypassing cache for {request.method} {request.url}")
            return await self._executor.passthrough(request)

        async with self._controller.gate.shared():
            if not self._controller.is_controlled(client_id):
                return await self._executor.passthrough(request)
            route = self._classifier.classify(request)
            debug(f"{request.method} {request.url} -> {route.value}")
            return await self._executor.execute(request, route)
