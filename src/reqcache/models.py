"""Canonical Pydantic models shared across all reqcache modules.

This is the single source of truth for data shapes in the project. The models
fall into three groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`CacheSettings`, :class:`NotificationDefaults`,
    :class:`OutputConfig`, and :class:`GlobalConfig`.

**Cache models** -- what the stores hold and how the layer labels traffic:
    :class:`RouteClass`, :class:`CachedResponse`, :class:`RegistryState`,
    and :class:`LifecycleState`.

**Push models** -- transient, never persisted:
    :class:`PushPayload`, :class:`NotificationAction`, :class:`Notification`,
    and :class:`NavigationRequest`.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Headers describing the wire encoding of the body; the stored body is
# already decoded so they would lie about it on replay.
_HOP_HEADERS = frozenset({"content-encoding", "content-length", "transfer-encoding"})

DEFAULT_STATIC_MANIFEST = [
    "/",
    "/index.html",
    "/styles.css",
    "/script.js",
    "/manifest.json",
    "/icon-144.png",
    "/icon-192.png",
    "/icon-512.png",
    "/offline.html",
]


# --- Configuration ---


class CacheSettings(BaseModel):
    """Everything that defines one generation of the cache layer.

    A deploy bumps ``generation``; the store names derived from ``app_id`` and
    ``generation`` then change, which is what drives cleanup of the previous
    generation during activation.

    Example::

        CacheSettings(
            origin="https://knower.life",
            generation=4,
            api_prefixes=["/api/chat", "/api/analyze"],
        )
    """

    app_id: str = Field(default="knower-life", description="Prefix of every store name")
    generation: int = Field(default=1, ge=1, description="Deploy generation number")
    origin: str = Field(
        default="http://localhost:8000",
        description="Scheme and host the static manifest is served from",
    )
    static_manifest: list[str] = Field(
        default_factory=lambda: list(DEFAULT_STATIC_MANIFEST),
        description="Root-relative paths provisioned at install",
    )
    api_prefixes: list[str] = Field(
        default_factory=lambda: ["/api/chat", "/api/analyze"],
        description="Path prefixes always served network-first",
    )
    api_hosts: list[str] = Field(
        default_factory=list,
        description="Hosts whose every request is an API call",
    )
    offline_document: Optional[str] = Field(
        default="/offline.html", description="Navigation fallback page"
    )
    root_document: str = Field(default="/", description="Second-choice navigation fallback")
    max_dynamic_entries: int = Field(
        default=50, ge=0, description="Eviction ceiling of the dynamic store"
    )
    timeout: float = Field(default=10.0, gt=0, description="Network timeout in seconds")
    cache_api_responses: bool = Field(
        default=True, description="Write successful API responses to the dynamic store"
    )
    revalidate_on_hit: bool = Field(
        default=False, description="Refresh static hits in the background"
    )
    skip_waiting: bool = Field(
        default=True, description="Activate right after a successful install"
    )
    store_dir: Optional[str] = Field(
        default=None, description="Store root; defaults to the XDG cache directory"
    )

    @field_validator("origin")
    @classmethod
    def _normalize_origin(cls, value: str) -> str:
        url = httpx.URL(value)
        if url.scheme not in ("http", "https") or not url.host:
            raise ValueError(f"origin must be an absolute http(s) URL, got {value!r}")
        # Lower-case host, no default port, no path: the form request keys use.
        return f"{url.scheme}://{url.netloc.decode('ascii')}"

    @field_validator("static_manifest", "api_prefixes")
    @classmethod
    def _root_relative(cls, value: list[str]) -> list[str]:
        for path in value:
            if not path.startswith("/"):
                raise ValueError(f"path must be root-relative: {path!r}")
        return value

    @property
    def static_store_name(self) -> str:
        return f"{self.app_id}-static-v{self.generation}"

    @property
    def dynamic_store_name(self) -> str:
        return f"{self.app_id}-dynamic-v{self.generation}"

    def absolute_url(self, path: str) -> str:
        """Resolve a root-relative *path* against :attr:`origin`."""
        return f"{self.origin}{path}"


class NotificationDefaults(BaseModel):
    """Values used for fields missing from a push payload."""

    title: str = "KNOWER LIFE"
    body: str = "You have a new notification"
    url: str = "/"
    icon: str = "/icon-192.png"


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/reqcache/config.json``.

    Loaded and saved by :func:`~reqcache.config.load_global_config` and
    :func:`~reqcache.config.save_global_config`. See
    :func:`~reqcache.config.resolve_config` for how environment variables
    and CLI flags override it.
    """

    cache: CacheSettings = Field(default_factory=CacheSettings)
    notifications: NotificationDefaults = Field(default_factory=NotificationDefaults)
    output: OutputConfig = Field(default_factory=OutputConfig)


# --- Cache models ---


class RouteClass(str, enum.Enum):
    """How the classifier labels a request; selects the fetch strategy."""

    STATIC_ASSET = "static-asset"
    API_ENDPOINT = "api-endpoint"
    OTHER = "other"


class LifecycleState(str, enum.Enum):
    """States of :class:`~reqcache.lifecycle.LifecycleController`."""

    IDLE = "idle"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVE = "active"


class CachedResponse(BaseModel):
    """An immutable response captured from the network.

    The body is stored decoded, so encoding headers are dropped at capture
    time. Headers keep their order and duplicates.
    """

    model_config = ConfigDict(frozen=True)

    status_code: int
    headers: list[tuple[str, str]] = Field(default_factory=list)
    body: bytes = b""
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> CachedResponse:
        """Capture an already-read :class:`httpx.Response`."""
        headers = [
            (name, value)
            for name, value in response.headers.multi_items()
            if name.lower() not in _HOP_HEADERS
        ]
        return cls(status_code=response.status_code, headers=headers, body=response.content)

    def to_httpx(self, request: httpx.Request, source: str = "cache") -> httpx.Response:
        """Rebuild an :class:`httpx.Response` answering *request*."""
        headers = list(self.headers)
        headers.append(("x-reqcache-source", source))
        return httpx.Response(
            status_code=self.status_code,
            headers=headers,
            content=self.body,
            request=request,
        )


class RegistryState(BaseModel):
    """The current generation pointer.

    Written once at the end of activation and read-only until the next
    deploy cycle.
    """

    generation: int
    static_store: str
    dynamic_store: str
    activated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def for_settings(cls, settings: CacheSettings) -> RegistryState:
        return cls(
            generation=settings.generation,
            static_store=settings.static_store_name,
            dynamic_store=settings.dynamic_store_name,
        )

    @property
    def store_names(self) -> tuple[str, str]:
        """Lookup order for a cache match: static store first."""
        return (self.static_store, self.dynamic_store)


# --- Push models ---


class NotificationAction(BaseModel):
    """A button shown on a notification."""

    action: str
    title: str


class PushPayload(BaseModel):
    """Decoded push message; every field is optional."""

    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    body: Optional[str] = None
    url: Optional[str] = None
    actions: Optional[list[NotificationAction]] = None


class Notification(BaseModel):
    """A notification ready to be shown by a notifier."""

    title: str
    body: str
    url: str
    icon: Optional[str] = None
    actions: list[NotificationAction] = Field(default_factory=list)
    data: dict[str, Any] = Field(default_factory=dict)


class NavigationRequest(BaseModel):
    """A request to focus or open a client window at ``url``."""

    url: str
