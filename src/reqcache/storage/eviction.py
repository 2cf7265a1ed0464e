"""FIFO size enforcement for the dynamic store.

Eviction runs during activation rather than after every write, so between
activations the dynamic store may temporarily grow past its ceiling.
Entries are removed strictly in insertion order; access recency and entry
size play no part.
"""

from __future__ import annotations

from reqcache.output import debug
from reqcache.storage.registry import CacheStoreRegistry


async def enforce_limit(
    registry: CacheStoreRegistry, store: str, max_entries: int
) -> list[str]:
    """Trim *store* to at most *max_entries* entries, oldest first.

    Args:
        registry: Registry owning the store.
        store: Store name.
        max_entries: Ceiling to enforce; ``0`` empties the store.

    Returns:
        The evicted request identities, oldest first.
    """
    if max_entries < 0:
        raise ValueError("max_entries must be >= 0")

    keys = await registry.keys(store)
    excess = len(keys) - max_entries
    if excess <= 0:
        return []

    evicted = keys[:excess]
    for key in evicted:
        await registry.delete(store, key)
    debug(f"Evicted {len(evicted)} entries from {store} (limit {max_entries})")
    return evicted
