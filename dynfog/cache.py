"""Per-observer memo of computed visible regions.

Generally only one token moves at a time, so most passes can reuse every
other observer's region from the previous pass. An entry is only reusable
while its observer stands exactly where it stood when the entry was written
and nothing structural (obstructions, map, map size) changed since; the
session clears the whole cache on structural changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

from shapely.geometry.base import BaseGeometry

from .geometry import Point, same_position


@dataclass
class CacheEntry:
    region: BaseGeometry
    position: Point


Disposer = Callable[[str, CacheEntry], None]


class ShadowCache:
    """Observer id -> (unclipped visible region, position it was computed at).

    The cache owns its entries. Shapely geometries are immutable, so regions
    returned by ``get``/``lookup`` can be shared without copying. Entries that
    are overwritten, pruned or invalidated are handed to the optional
    ``dispose`` callback before being dropped.
    """

    def __init__(self, dispose: Disposer | None = None) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._dispose = dispose

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, observer_id: str) -> bool:
        return observer_id in self._entries

    def get(self, observer_id: str) -> CacheEntry | None:
        return self._entries.get(observer_id)

    def lookup(self, observer_id: str, position: Point) -> BaseGeometry | None:
        """Cached region if the observer has not moved, else None."""
        entry = self._entries.get(observer_id)
        if entry is None or not same_position(entry.position, position):
            return None
        return entry.region

    def put(
        self, observer_id: str, region: BaseGeometry, position: Point
    ) -> None:
        old = self._entries.get(observer_id)
        if old is not None:
            self._release(observer_id, old)
        self._entries[observer_id] = CacheEntry(region, position)

    def invalidate_all(self, dispose: Disposer | None = None) -> None:
        for observer_id, entry in self._entries.items():
            self._release(observer_id, entry, dispose)
        self._entries.clear()

    def prune(self, current_ids: Iterable[str]) -> None:
        """Drop entries for observers that are gone."""
        keep = set(current_ids)
        for observer_id in [k for k in self._entries if k not in keep]:
            self._release(observer_id, self._entries.pop(observer_id))

    def _release(
        self,
        observer_id: str,
        entry: CacheEntry,
        dispose: Disposer | None = None,
    ) -> None:
        dispose = dispose or self._dispose
        if dispose is not None:
            dispose(observer_id, entry)
