"""Request classification via an explicit, ordered rule table.

Every intercepted request is labelled with a
:class:`~reqcache.models.RouteClass`, which selects the fetch strategy.
Rules are evaluated top-down and the first match wins, so the tie-break
between an API prefix and a manifest entry is the table order and nothing
else::

    1. API path prefix or API host -> api-endpoint
    2. same-origin manifest path   -> static-asset
    3. anything else               -> other

Only requests that pass :func:`is_interceptable` reach the classifier;
the rest go straight to the network.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import httpx

from reqcache.models import CacheSettings, RouteClass

_CACHEABLE_METHODS = frozenset({"GET", "HEAD"})
_FETCHABLE_SCHEMES = frozenset({"http", "https"})


def is_interceptable(request: httpx.Request) -> bool:
    """Return True if the cache layer may handle *request* at all.

    Non-fetchable schemes and methods with side effects bypass the layer.
    """
    return (
        request.url.scheme in _FETCHABLE_SCHEMES
        and request.method.upper() in _CACHEABLE_METHODS
    )


def _matches_prefix(path: str, prefix: str) -> bool:
    """Segment-aware prefix test: ``/api/chat`` covers ``/api/chat/x``, not ``/api/chatter``."""
    if prefix.endswith("/"):
        return path.startswith(prefix)
    return path == prefix or path.startswith(prefix + "/")


def _origin_of(url: httpx.URL) -> str:
    origin = f"{url.scheme}://{url.host}"
    if url.port is not None:
        origin = f"{origin}:{url.port}"
    return origin


@dataclass(frozen=True)
class RouteRule:
    """One row of the rule table."""

    name: str
    route: RouteClass
    predicate: Callable[[httpx.URL], bool]


class RequestClassifier:
    """Stateless classifier built from :class:`~reqcache.models.CacheSettings`.

    Args:
        settings: Supplies the origin, static manifest, API prefixes, and API
            hosts the rules are built from.
    """

    def __init__(self, settings: CacheSettings) -> None:
        self._origin = _origin_of(httpx.URL(settings.origin))
        self._api_prefixes = tuple(settings.api_prefixes)
        self._api_hosts = frozenset(h.lower() for h in settings.api_hosts)
        self._manifest_exact = frozenset(settings.static_manifest)
        # Directory entries other than the root act as prefixes.
        self._manifest_prefixes = tuple(
            p for p in settings.static_manifest if p.endswith("/") and p != "/"
        )
        self._rules: tuple[RouteRule, ...] = (
            RouteRule("api-prefix", RouteClass.API_ENDPOINT, self._is_api),
            RouteRule("static-manifest", RouteClass.STATIC_ASSET, self._is_static),
        )

    @property
    def rules(self) -> tuple[RouteRule, ...]:
        return self._rules

    def classify(self, request: httpx.Request) -> RouteClass:
        """Return the route class of the first matching rule, else ``OTHER``."""
        for rule in self._rules:
            if rule.predicate(request.url):
                return rule.route
        return RouteClass.OTHER

    def is_same_origin(self, url: httpx.URL) -> bool:
        return _origin_of(url) == self._origin

    def _is_api(self, url: httpx.URL) -> bool:
        if url.host.lower() in self._api_hosts:
            return True
        return any(_matches_prefix(url.path, prefix) for prefix in self._api_prefixes)

    def _is_static(self, url: httpx.URL) -> bool:
        if not self.is_same_origin(url):
            return False
        path = url.path
        if path in self._manifest_exact:
            return True
        return any(path.startswith(prefix) for prefix in self._manifest_prefixes)
