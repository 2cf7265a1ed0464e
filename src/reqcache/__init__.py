"""reqcache -- an intercepting, generation-versioned request cache for httpx clients.

The layer sits between a client application and the network. It answers
static assets cache-first from a store provisioned at install time, sends
everything else network-first with write-through to a dynamic store, and
substitutes an offline document or a synthetic ``503`` when both fail. Each
deploy installs a fresh generation of stores and deletes the previous one
during activation.

Typical workflow::

    reqcache config set cache.origin https://knower.life
    reqcache --generation 4 install   # provision and activate generation 4
    reqcache status                   # inspect stores and entry counts

Modules:
    layer: :class:`~reqcache.layer.CacheLayer`, the assembled layer.
    transport: the ``httpx`` transport client applications mount.
    storage: durable named stores and FIFO eviction.
    lifecycle: install/activate state machine and the generation pointer.
    strategies: cache-first and network-first.
    notifications: push message dispatch.
    app: Typer CLI entry point.
"""

__version__ = "0.3.0"
