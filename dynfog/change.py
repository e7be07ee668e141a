"""Decide whether a scene change warrants recomputing fog, and whether
cached per-observer regions survive it.

Host notifications fire for every item edit anywhere in the scene, most of
which don't matter to us (moving a prop, editing a note). We reduce each
snapshot to a handful of comparison keys and only recompute when one of
them changes. Only some keys are structural: if the map, the obstruction
set or the map size changed, every cached region is stale; a moved observer
or a flipped toggle leaves the other observers' regions valid.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

from .types import SceneItem, SceneView


@dataclass(frozen=True)
class SceneKeys:
    map_identity: str
    vision_enabled: bool
    autodetect_enabled: bool
    fow_enabled: bool
    fow_color: str
    persistence_enabled: bool
    obstructions: str
    observers: str
    map_size: tuple[float, float] | None

    def structural(self) -> tuple:
        return (self.map_identity, self.obstructions, self.map_size)


@dataclass(frozen=True)
class ChangeDecision:
    should_recompute: bool
    invalidate_cache: bool


def _serialize(items: list[SceneItem]) -> str:
    return json.dumps([i.to_dict() for i in items], sort_keys=True)


def scene_keys(view: SceneView) -> SceneKeys:
    settings = view.settings
    if settings.autodetect_enabled:
        map_identity = _serialize(view.map_images)
    elif view.background is not None:
        map_identity = _serialize([view.background])
    else:
        map_identity = ""
    bounds = view.map_bounds()
    return SceneKeys(
        map_identity=map_identity,
        vision_enabled=settings.vision_enabled,
        autodetect_enabled=settings.autodetect_enabled,
        fow_enabled=settings.fow_enabled,
        fow_color=settings.fow_color,
        persistence_enabled=settings.persistence_enabled,
        obstructions=_serialize(view.obstruction_items),
        observers=_serialize(view.observer_items),
        map_size=bounds.size if bounds is not None else None,
    )


class ChangeDetector:
    def __init__(self) -> None:
        self._previous: SceneKeys | None = None

    @property
    def previous(self) -> SceneKeys | None:
        return self._previous

    def reset(self) -> None:
        self._previous = None

    def check(self, view: SceneView, force: bool = False) -> ChangeDecision:
        """Compare ``view`` with the last recomputed scene.

        The first call always recomputes. When a recompute is signalled,
        the current keys become the baseline for the next call.
        """
        keys = scene_keys(view)
        previous = self._previous
        if previous is not None and keys == previous and not force:
            return ChangeDecision(False, False)

        invalidate = previous is None or keys.structural() != (
            previous.structural()
        )
        self._previous = keys
        return ChangeDecision(True, invalidate)
