"""Turn per-observer visible regions into persisted fog items.

Each visible region becomes a fog item in the host store. Items are content
addressed: a region's digest is a hash of its canonical geometry, and at most
one item exists per digest, so observers that see exactly the same area
(e.g. two tokens in the same closed room) share one item tagged with both.

With persistence off, items whose digest is no longer produced by any
observer are deleted once the new ones are in place. With persistence on
they are left alone, so areas once revealed stay revealed.

With fog of war on, a single overlay item covers everything no observer
currently sees (map rectangle minus the union of all regions). It is
updated in place rather than recreated, since delete+add flickers on the
host.

All decisions are made up front in a ``FogPlan``; nothing touches the store
until ``apply_plan``.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field

import numpy as np
import shapely
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from .compose import bounds_rect
from .store import SceneStore
from .types import (
    DRAWING_LAYER,
    FOG_ITEM_NAME,
    FOG_LAYER,
    OVERLAY_NAME,
    MapBounds,
    SceneItem,
    SceneView,
    meta_key,
)

logger = logging.getLogger(__name__)

OVERLAY_ID = "dynfog-overlay"
OVERLAY_OPACITY = 0.5
FOG_Z_INDEX = 3

# Coordinates are snapped to this grid before hashing so that regions that
# differ only by floating point noise share a digest.
DIGEST_GRID = 1e-3


def _polygons(region: BaseGeometry) -> list:
    if region.is_empty:
        return []
    if region.geom_type == "Polygon":
        return [region]
    if hasattr(region, "geoms"):
        return [p for g in region.geoms for p in _polygons(g)]
    return []


def region_digest(region: BaseGeometry) -> str:
    """SHA-1 over the region's canonical WKT."""
    canonical = shapely.set_precision(region.simplify(0), DIGEST_GRID)
    canonical = shapely.normalize(canonical)
    wkt = shapely.to_wkt(canonical, rounding_precision=3, trim=True)
    return hashlib.sha1(wkt.encode("utf-8")).hexdigest()


def region_commands(region: BaseGeometry) -> list[list]:
    """Host path commands for a region, one closed subpath per ring.

    Holes are separate subpaths; the host renders with the evenodd rule.
    """
    commands: list[list] = []
    for poly in _polygons(region):
        for ring in (poly.exterior, *poly.interiors):
            coords = np.asarray(ring.coords)[:-1]
            if len(coords) < 3:
                continue
            commands.append(["M", float(coords[0, 0]), float(coords[0, 1])])
            commands.extend(["L", float(x), float(y)] for x, y in coords[1:])
            commands.append(["Z"])
    return commands


def fog_item(digest: str, owners: list[str], commands: list[list]) -> SceneItem:
    metadata = {
        meta_key("isVisionFog"): True,
        meta_key("digest"): digest,
        meta_key("owners"): list(owners),
    }
    # Per-observer tags, used by host layer rules to decide who sees what.
    metadata.update({meta_key(owner): True for owner in owners})
    return SceneItem(
        id=f"dynfog-{digest}",
        layer=FOG_LAYER,
        name=FOG_ITEM_NAME,
        type="PATH",
        metadata=metadata,
        commands=commands,
        visible=False,
        z_index=FOG_Z_INDEX,
        style={
            "fillColor": "#000000",
            "strokeColor": "#000000",
            "fillRule": "evenodd",
        },
    )


def overlay_item(commands: list[list], color: str) -> SceneItem:
    return SceneItem(
        id=OVERLAY_ID,
        layer=DRAWING_LAYER,
        name=OVERLAY_NAME,
        type="PATH",
        metadata={meta_key("isFogOverlay"): True},
        commands=commands,
        visible=True,
        style={
            "fillColor": color,
            "fillOpacity": OVERLAY_OPACITY,
            "fillRule": "evenodd",
            "strokeColor": "#000000",
            "strokeWidth": 0,
        },
    )


@dataclass
class OverlayUpdate:
    id: str
    commands: list[list]
    color: str


@dataclass
class FogPlan:
    add: list[SceneItem] = field(default_factory=list)
    overlay_add: SceneItem | None = None
    overlay_update: OverlayUpdate | None = None
    delete: list[str] = field(default_factory=list)
    # Digests produced by this pass, new or already stored.
    current: set[str] = field(default_factory=set)

    def is_empty(self) -> bool:
        return not (
            self.add or self.overlay_add or self.overlay_update or self.delete
        )


def plan_fog(
    regions: dict[str, BaseGeometry],
    view: SceneView,
    bounds: MapBounds,
) -> FogPlan:
    """Work out the store mutations for one pass.

    Args:
        regions: observer id -> visible region (already range-clipped).
        view: the scene as read at the start of the pass; supplies the
            existing fog items, overlay and settings.
        bounds: the map rectangle the overlay covers.
    """
    settings = view.settings
    plan = FogPlan()

    groups: dict[str, tuple[BaseGeometry, list[str]]] = {}
    for observer_id, region in regions.items():
        digest = region_digest(region)
        if digest in groups:
            groups[digest][1].append(observer_id)
        else:
            groups[digest] = (region, [observer_id])
    plan.current = set(groups)

    stored: set[str] = set()
    for item in view.fog_items:
        if item.digest in stored:
            # Duplicate of an item we already keep.
            plan.delete.append(item.id)
        else:
            stored.add(item.digest)

    for digest, (region, owners) in groups.items():
        if digest not in stored:
            plan.add.append(fog_item(digest, owners, region_commands(region)))

    if settings.fow_enabled:
        seen = unary_union(list(regions.values()))
        unseen = bounds_rect(bounds).difference(seen)
        commands = region_commands(unseen)
        if view.overlay is not None:
            plan.overlay_update = OverlayUpdate(
                view.overlay.id, commands, settings.fow_color
            )
        else:
            plan.overlay_add = overlay_item(commands, settings.fow_color)
    elif view.overlay is not None:
        plan.delete.append(view.overlay.id)

    if not settings.persistence_enabled:
        plan.delete.extend(
            item.id
            for item in view.fog_items
            if item.digest not in plan.current and item.id not in plan.delete
        )

    logger.debug(
        "Fog plan: %d regions, %d distinct, %d added, %d deleted",
        len(regions),
        len(groups),
        len(plan.add),
        len(plan.delete),
    )
    return plan


def clear_fog_plan(view: SceneView) -> FogPlan:
    """Remove every fog item, legacy trail fog and the overlay."""
    plan = FogPlan(delete=[item.id for item in view.fog_items])
    plan.delete.extend(item.id for item in view.trailing_fog)
    if view.overlay is not None:
        plan.delete.append(view.overlay.id)
    return plan


def apply_plan(store: SceneStore, plan: FogPlan) -> None:
    """Issue the plan's mutations: new items first, deletions last, so
    there is never a moment where an area is covered by neither the old nor
    the new fog."""
    if plan.add:
        store.add_items(plan.add)

    if plan.overlay_update is not None:
        update = plan.overlay_update

        def _replace_geometry(items: list[SceneItem]) -> None:
            for item in items:
                item.commands = update.commands
                item.style["fillColor"] = update.color

        store.update_items([update.id], _replace_geometry, fast=True)
    elif plan.overlay_add is not None:
        store.add_items([plan.overlay_add])

    if plan.delete:
        store.delete_items(plan.delete)
