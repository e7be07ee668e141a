"""Boundary with the host scene store.

The engine only needs a narrow slice of the host API: read a snapshot,
add/update/delete items, set scene metadata and be told when something
changed. ``SceneStore`` names that slice; ``InMemoryStore`` is a complete
in-process implementation used by the tests and the benchmark script.
"""

from __future__ import annotations

import copy
from typing import Callable, Iterable, Protocol

from .types import SceneItem, SceneSnapshot

ItemUpdater = Callable[[list[SceneItem]], None]
Listener = Callable[[], None]


class SceneStore(Protocol):
    def get_snapshot(self) -> SceneSnapshot:
        """Current items, scene metadata and grid settings."""
        ...

    def add_items(self, items: list[SceneItem]) -> None: ...

    def update_items(
        self,
        ids: Iterable[str],
        updater: ItemUpdater,
        fast: bool = False,
    ) -> None:
        """Mutate the given items in place via ``updater``.

        ``fast`` asks the host for a lightweight update that only swaps
        geometry; stores without one may treat it as a normal update.
        """
        ...

    def delete_items(self, ids: Iterable[str]) -> None: ...

    def set_metadata(self, updates: dict) -> None:
        """Merge into scene metadata; a value of None removes the key."""
        ...

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns an unsubscribe callable."""
        ...


class InMemoryStore:
    """Dict-backed ``SceneStore``.

    Every mutation notifies listeners synchronously, the way host change
    events would arrive, and is counted in ``mutations`` so tests can check
    whether a pass wrote anything.
    """

    def __init__(
        self,
        items: Iterable[SceneItem] = (),
        metadata: dict | None = None,
        grid_dpi: float = 150.0,
        grid_scale: float = 5.0,
        ready: bool = True,
    ) -> None:
        self._items: dict[str, SceneItem] = {i.id: i for i in items}
        self.metadata: dict = dict(metadata or {})
        self.grid_dpi = grid_dpi
        self.grid_scale = grid_scale
        self.ready = ready
        self.mutations = 0
        self.fast_updates = 0
        self._listeners: list[Listener] = []

    @property
    def items(self) -> list[SceneItem]:
        return list(self._items.values())

    def item(self, item_id: str) -> SceneItem:
        return self._items[item_id]

    def get_snapshot(self) -> SceneSnapshot:
        return SceneSnapshot(
            items=copy.deepcopy(self.items),
            metadata=copy.deepcopy(self.metadata),
            grid_dpi=self.grid_dpi,
            grid_scale=self.grid_scale,
            ready=self.ready,
        )

    def add_items(self, items: list[SceneItem]) -> None:
        if not items:
            return
        for item in items:
            self._items[item.id] = copy.deepcopy(item)
        self._changed()

    def update_items(
        self,
        ids: Iterable[str],
        updater: ItemUpdater,
        fast: bool = False,
    ) -> None:
        targets = [self._items[i] for i in ids if i in self._items]
        if not targets:
            return
        updater(targets)
        if fast:
            self.fast_updates += 1
        self._changed()

    def delete_items(self, ids: Iterable[str]) -> None:
        removed = [i for i in ids if self._items.pop(i, None) is not None]
        if removed:
            self._changed()

    def set_metadata(self, updates: dict) -> None:
        for key, value in updates.items():
            if value is None:
                self.metadata.pop(key, None)
            else:
                self.metadata[key] = value
        self._changed()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        self.mutations += 1
        for listener in list(self._listeners):
            listener()
