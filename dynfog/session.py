"""Compute session: the single entry point that turns scene changes into fog.

A ``VisionSession`` owns all state that outlives a pass: the busy flag, the
change detector's previous keys and the shadow cache. One pass reads a
snapshot, decides via the change detector whether anything relevant moved,
computes each observer's visible region (reusing cached ones where the
observer stood still), plans the fog mutations and writes them back:

    read snapshot -> change gate -> per-observer regions -> fog plan -> write

Only one pass runs at a time. A call that arrives while a pass is in flight
(typically a store notification fired by our own writes) is dropped, not
queued; the next relevant change triggers a fresh pass.

The first pass over a ready scene (at startup, or after the host switched
scenes) initializes it: the largest map image is flagged as background if
none is, and fog items left over from earlier sessions are removed.

Failures in boolean composition abort the pass before anything is written,
so the store keeps the last good fog.
"""

from __future__ import annotations

import logging
from typing import Callable

from shapely.geometry.base import BaseGeometry

from .cache import ShadowCache
from .change import ChangeDetector
from .compose import CompositionError, clip_to_vision, vision_radius
from .compose import visible_region as compute_visible_region
from .fog import FogPlan, apply_plan, clear_fog_plan, plan_fog
from .store import SceneStore
from .timing import PerformanceReport, Timer
from .types import (
    SceneItem,
    SceneSnapshot,
    SceneView,
    meta_key,
    pick_default_background,
)

logger = logging.getLogger(__name__)


class VisionSession:
    def __init__(self, store: SceneStore) -> None:
        self.store = store
        self.cache = ShadowCache()
        self.detector = ChangeDetector()
        self.busy = False
        self.last_report: PerformanceReport | None = None
        self._scene_ready = False
        self._unsubscribe: Callable[[], None] | None = None

    def attach(self) -> None:
        """Re-evaluate on every store change notification."""
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self.evaluate)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def evaluate(self, force: bool = False) -> PerformanceReport | None:
        """Recompute fog if the scene changed (or ``force`` is set).

        Returns the pass's performance report, or None if no pass ran:
        busy, scene not ready, nothing to compute against, nothing changed,
        or the pass aborted.
        """
        if self.busy:
            logger.debug("Pass in progress, dropping change event")
            return None

        self.busy = True
        try:
            return self._evaluate(force)
        finally:
            self.busy = False

    def reset(self) -> PerformanceReport | None:
        """Forget all revealed areas and recompute from scratch."""
        if self.busy:
            return None
        self.busy = True
        try:
            view = SceneView.from_snapshot(self.store.get_snapshot())
            apply_plan(self.store, clear_fog_plan(view))
        finally:
            self.busy = False
        return self.evaluate(force=True)

    def ensure_background(self) -> SceneItem | None:
        """Flag the largest map image as background if none is flagged."""
        snapshot = self.store.get_snapshot()
        view = SceneView.from_snapshot(snapshot)
        if view.background is not None:
            return view.background
        image = pick_default_background(snapshot.items)
        if image is None:
            return None

        def _flag(items: list[SceneItem]) -> None:
            for item in items:
                item.metadata[meta_key("isBackgroundImage")] = True

        self.store.update_items([image.id], _flag)
        return image

    def _init_scene(self, snapshot: SceneSnapshot) -> None:
        """First look at a ready scene: pick a background if none is flagged
        and drop fog left over from an earlier session."""
        logger.info("Scene ready, initializing fog")
        self.ensure_background()
        plan = clear_fog_plan(SceneView.from_snapshot(snapshot))
        self._write(plan)

    def _evaluate(self, force: bool) -> PerformanceReport | None:
        await_timer = Timer().start()
        snapshot = self.store.get_snapshot()
        await_timer.pause()
        compute_timer = Timer().start()

        if not snapshot.ready:
            # Scene switched away; cached regions belong to the old scene.
            self.cache.invalidate_all()
            self.detector.reset()
            self._scene_ready = False
            return None

        if not self._scene_ready:
            self._scene_ready = True
            self._init_scene(snapshot)
            snapshot = self.store.get_snapshot()
            force = True

        view = SceneView.from_snapshot(snapshot)
        if view.background is None and not view.settings.autodetect_enabled:
            return None

        decision = self.detector.check(view, force=force)
        if not decision.should_recompute:
            return None
        if decision.invalidate_cache:
            self.cache.invalidate_all()

        report = PerformanceReport()
        observers = view.observers
        bounds = view.map_bounds()

        if not view.settings.vision_enabled or not observers or bounds is None:
            plan = clear_fog_plan(view)
        else:
            shapes = view.obstructions
            regions: dict[str, BaseGeometry] = {}
            try:
                for observer in observers:
                    region = self.cache.lookup(observer.id, observer.position)
                    if region is not None:
                        report.cache_hits += 1
                    else:
                        report.cache_misses += 1
                        region = compute_visible_region(
                            observer.position, shapes, bounds
                        )
                        self.cache.put(observer.id, region, observer.position)
                    if observer.vision_range is not None:
                        radius = vision_radius(
                            observer.vision_range,
                            view.grid_dpi,
                            view.grid_scale,
                        )
                        region = clip_to_vision(
                            region, observer.position, radius
                        )
                    regions[observer.id] = region
            except CompositionError as e:
                logger.error("Couldn't compute fog: %s", e)
                # Next evaluation starts over instead of trusting this one.
                self.detector.reset()
                self.cache.invalidate_all()
                return None
            self.cache.prune(o.id for o in observers)
            plan = plan_fog(regions, view, bounds)

        compute_timer.pause()
        await_timer.resume()
        self._write(plan)

        report.communication_time_ms = await_timer.stop()
        report.compute_time_ms = compute_timer.stop()
        self.last_report = report
        logger.info("Fog pass: %s", report.to_dict())
        return report

    def _write(self, plan: FogPlan) -> None:
        if not plan.is_empty():
            apply_plan(self.store, plan)
