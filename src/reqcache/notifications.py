"""Push notification dispatch.

A push message arrives as loosely structured JSON (``{title?, body?, url?}``)
and becomes a :class:`~reqcache.models.Notification` with an ``open`` and a
``close`` action. Choosing ``open``, or clicking the notification itself,
navigates to the payload's URL; ``close`` does nothing further.

Bad push data must never take the layer down: :meth:`NotificationDispatcher.dispatch`
drops a payload it cannot decode and returns ``None``.

Showing notifications and opening windows is delegated to a
:class:`NotificationHost`. :class:`ConsoleHost` is the default: it reports
through :mod:`reqcache.output` and records what it was asked to do.
"""

from __future__ import annotations

import json
from typing import Any, Optional, Protocol, Union

from pydantic import ValidationError

from reqcache.exceptions import MalformedPushPayload
from reqcache.models import (
    NavigationRequest,
    Notification,
    NotificationAction,
    NotificationDefaults,
    PushPayload,
)
from reqcache.output import debug, info

ACTION_OPEN = "open"
ACTION_CLOSE = "close"

RawPayload = Union[bytes, str, dict[str, Any], None]


class NotificationHost(Protocol):
    """Where notifications are shown and navigations happen."""

    async def show_notification(self, notification: Notification) -> None: ...

    async def open_window(self, navigation: NavigationRequest) -> None: ...


class ConsoleHost:
    """Default host: prints to stderr and keeps a record of every call."""

    def __init__(self) -> None:
        self.shown: list[Notification] = []
        self.navigations: list[NavigationRequest] = []

    async def show_notification(self, notification: Notification) -> None:
        self.shown.append(notification)
        info(f"Notification: {notification.title}: {notification.body}")

    async def open_window(self, navigation: NavigationRequest) -> None:
        self.navigations.append(navigation)
        info(f"Navigate: {navigation.url}")


def decode_payload(raw: RawPayload) -> PushPayload:
    """Decode a push message into a :class:`~reqcache.models.PushPayload`.

    ``None`` and an empty body are an empty payload.

    Raises:
        MalformedPushPayload: If *raw* is not UTF-8, not JSON, not a JSON
            object, or has fields of the wrong type.
    """
    if raw is None:
        return PushPayload()
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedPushPayload(f"Payload is not UTF-8: {exc}") from exc
    if isinstance(raw, str):
        if not raw.strip():
            return PushPayload()
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MalformedPushPayload(f"Payload is not JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise MalformedPushPayload(f"Payload must be a JSON object, got {type(raw).__name__}")
    try:
        return PushPayload.model_validate(raw)
    except ValidationError as exc:
        raise MalformedPushPayload(f"Invalid payload fields: {exc}") from exc


class NotificationDispatcher:
    """Turns push payloads into notifications and actions into navigations.

    Args:
        defaults: Values for fields missing from a payload.
        host: Notification host; a fresh :class:`ConsoleHost` when omitted.
    """

    def __init__(
        self,
        defaults: Optional[NotificationDefaults] = None,
        host: Optional[NotificationHost] = None,
    ) -> None:
        self._defaults = defaults or NotificationDefaults()
        self._host: NotificationHost = host if host is not None else ConsoleHost()

    @property
    def host(self) -> NotificationHost:
        return self._host

    def build(self, payload: PushPayload) -> Notification:
        """Fill defaults into *payload* and attach the open/close actions.

        Actions carried by the payload follow open and close; one reusing
        a name already present is dropped.
        """
        url = payload.url or self._defaults.url
        actions = [
            NotificationAction(action=ACTION_OPEN, title="Open"),
            NotificationAction(action=ACTION_CLOSE, title="Close"),
        ]
        for extra in payload.actions or []:
            if extra.action not in {known.action for known in actions}:
                actions.append(extra)
        return Notification(
            title=payload.title or self._defaults.title,
            body=payload.body or self._defaults.body,
            url=url,
            icon=self._defaults.icon,
            actions=actions,
            data={"url": url},
        )

    async def dispatch(self, raw: RawPayload) -> Optional[Notification]:
        """Show a notification for *raw*; a malformed payload is a no-op."""
        try:
            payload = decode_payload(raw)
        except MalformedPushPayload as exc:
            debug(f"Dropping push message: {exc}")
            return None
        notification = self.build(payload)
        await self._host.show_notification(notification)
        return notification

    async def handle_action(
        self, notification: Notification, action: str = ""
    ) -> Optional[NavigationRequest]:
        """Route a notification click.

        ``open`` and a click on the notification body (empty *action*)
        navigate to the notification URL; ``close`` and unknown actions do
        nothing.
        """
        if action not in (ACTION_OPEN, ""):
            if action != ACTION_CLOSE:
                debug(f"Ignoring unknown notification action {action!r}")
            return None
        navigation = NavigationRequest(url=notification.url)
        await self._host.open_window(navigation)
        return navigation
