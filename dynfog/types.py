"""Data types for host scene items and the typed view derived from them.

The host store hands us generic items carrying string-keyed metadata. Rather
than re-reading those keys throughout the algorithm, ``SceneView`` classifies
each item once per pass into the few kinds the engine cares about:
obstruction shapes, observers, map images and the fog items we own.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from .geometry import Point, transform_point

METADATA_PREFIX = "com.dynamic-fog"

FOG_ITEM_NAME = "Fog of War"
OVERLAY_NAME = "Megafog"
DEFAULT_FOW_COLOR = "#000000"

MAP_LAYER = "MAP"
CHARACTER_LAYER = "CHARACTER"
FOG_LAYER = "FOG"
DRAWING_LAYER = "DRAWING"


def meta_key(name: str) -> str:
    """Namespaced metadata key, e.g. ``meta_key("hasVision")``."""
    return f"{METADATA_PREFIX}/{name}"


def _xy(d: dict | None, default: float = 0.0) -> Point:
    if not d:
        return (default, default)
    return (float(d.get("x", default)), float(d.get("y", default)))


@dataclass
class SceneItem:
    id: str
    layer: str
    name: str = ""
    type: str = "SHAPE"
    position: Point = (0.0, 0.0)
    scale: Point = (1.0, 1.0)
    metadata: dict = field(default_factory=dict)
    points: list[Point] = field(default_factory=list)
    closed: bool = False
    image_width: float = 0.0
    image_height: float = 0.0
    image_dpi: float = 0.0
    commands: list[list] = field(default_factory=list)
    visible: bool = True
    z_index: int = 0
    style: dict = field(default_factory=dict)

    @staticmethod
    def from_dict(d: dict) -> SceneItem:
        image = d.get("image") or {}
        style = dict(d.get("style") or {})
        return SceneItem(
            id=d["id"],
            layer=d["layer"],
            name=d.get("name", ""),
            type=d.get("type", "SHAPE"),
            position=_xy(d.get("position")),
            scale=_xy(d.get("scale"), 1.0),
            metadata=dict(d.get("metadata") or {}),
            points=[_xy(p) for p in d.get("points", [])],
            # Shapes are closed unless the host style says otherwise.
            closed=style.pop("closed", True) is not False,
            image_width=float(image.get("width", 0.0)),
            image_height=float(image.get("height", 0.0)),
            image_dpi=float((d.get("grid") or {}).get("dpi", 0.0)),
            commands=list(d.get("commands", [])),
            visible=d.get("visible", True),
            z_index=d.get("zIndex", 0),
            style=style,
        )

    def to_dict(self) -> dict:
        d: dict = {
            "id": self.id,
            "name": self.name,
            "layer": self.layer,
            "type": self.type,
            "position": {"x": self.position[0], "y": self.position[1]},
            "scale": {"x": self.scale[0], "y": self.scale[1]},
            "metadata": self.metadata,
            "visible": self.visible,
            "zIndex": self.z_index,
            "style": {**self.style, "closed": self.closed},
        }
        if self.points:
            d["points"] = [{"x": x, "y": y} for x, y in self.points]
        if self.type == "IMAGE":
            d["image"] = {
                "width": self.image_width,
                "height": self.image_height,
            }
            d["grid"] = {"dpi": self.image_dpi}
        if self.commands:
            d["commands"] = self.commands
        return d

    def flag(self, name: str) -> bool:
        return bool(self.metadata.get(meta_key(name)))


@dataclass
class SceneSnapshot:
    items: list[SceneItem] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)
    grid_dpi: float = 150.0
    grid_scale: float = 5.0
    ready: bool = True

    @staticmethod
    def from_dict(d: dict) -> SceneSnapshot:
        return SceneSnapshot(
            items=[SceneItem.from_dict(i) for i in d.get("items", [])],
            metadata=dict(d.get("metadata") or {}),
            grid_dpi=float(d.get("grid_dpi", 150.0)),
            grid_scale=float(d.get("grid_scale", 5.0)),
            ready=d.get("ready", True),
        )


@dataclass
class SceneSettings:
    """Scene-level toggles, stored by the host as namespaced metadata."""

    vision_enabled: bool = False
    autodetect_enabled: bool = False
    fow_enabled: bool = False
    fow_color: str = DEFAULT_FOW_COLOR
    persistence_enabled: bool = False

    @staticmethod
    def from_metadata(metadata: dict) -> SceneSettings:
        return SceneSettings(
            vision_enabled=metadata.get(meta_key("visionEnabled")) is True,
            autodetect_enabled=(
                metadata.get(meta_key("autodetectEnabled")) is True
            ),
            fow_enabled=metadata.get(meta_key("fowEnabled")) is True,
            fow_color=metadata.get(meta_key("fowColor")) or DEFAULT_FOW_COLOR,
            persistence_enabled=(
                metadata.get(meta_key("persistenceEnabled")) is True
            ),
        )


@dataclass(frozen=True)
class MapBounds:
    """Axis-aligned rectangle in which visibility is computed."""

    offset: Point
    size: tuple[float, float]
    scale: tuple[float, float] = (1.0, 1.0)

    @property
    def left(self) -> float:
        return self.offset[0]

    @property
    def top(self) -> float:
        return self.offset[1]

    @property
    def right(self) -> float:
        return self.offset[0] + self.size[0] * self.scale[0]

    @property
    def bottom(self) -> float:
        return self.offset[1] + self.size[1] * self.scale[1]

    def corners(self) -> list[Point]:
        """Corner k is where edge k ends, walking clockwise.

        Edges: 0 top, 1 right, 2 bottom, 3 left.
        """
        return [
            (self.right, self.top),
            (self.right, self.bottom),
            (self.left, self.bottom),
            (self.left, self.top),
        ]

    @staticmethod
    def from_background(image: SceneItem, grid_dpi: float) -> MapBounds:
        ratio = grid_dpi / image.image_dpi if image.image_dpi else 1.0
        return MapBounds(
            offset=image.position,
            size=(image.image_width * ratio, image.image_height * ratio),
            scale=image.scale,
        )

    @staticmethod
    def from_map_images(
        images: list[SceneItem], grid_dpi: float
    ) -> MapBounds | None:
        """Bounding box around every map image (autodetect mode)."""
        if not images:
            return None
        boxes = []
        for image in images:
            b = MapBounds.from_background(image, grid_dpi)
            boxes.append((b.left, b.top, b.right, b.bottom))
        arr = np.array(boxes, dtype=float)
        left, top = arr[:, 0].min(), arr[:, 1].min()
        right, bottom = arr[:, 2].max(), arr[:, 3].max()
        return MapBounds(
            offset=(float(left), float(top)),
            size=(float(right - left), float(bottom - top)),
        )


@dataclass(frozen=True)
class ObstructionSegment:
    start: Point
    end: Point
    one_sided: str | None = None  # None, "left" or "right"
    shape_id: str = ""


@dataclass
class ObstructionShape:
    """An obstruction polyline or polygon, already in map space."""

    id: str
    points: list[Point]
    closed: bool = False
    one_sided: str | None = None

    @staticmethod
    def from_item(item: SceneItem) -> ObstructionShape:
        one_sided = item.metadata.get(meta_key("oneSided"))
        if one_sided not in ("left", "right"):
            one_sided = None
        return ObstructionShape(
            id=item.id,
            points=[
                transform_point(p, item.position, item.scale)
                for p in item.points
            ],
            closed=item.closed,
            one_sided=one_sided,
        )

    def segments(self) -> list[ObstructionSegment]:
        pts = list(self.points)
        if self.closed and len(pts) > 2 and pts[0] != pts[-1]:
            pts.append(pts[0])
        return [
            ObstructionSegment(
                start=pts[i],
                end=pts[i + 1],
                one_sided=self.one_sided,
                shape_id=self.id,
            )
            for i in range(len(pts) - 1)
        ]


@dataclass
class Observer:
    id: str
    position: Point
    vision_range: float | None = None  # None = unlimited

    @staticmethod
    def from_item(item: SceneItem) -> Observer:
        raw = item.metadata.get(meta_key("visionRange"))
        # False is the "unlimited" checkbox; other falsy values mean unset.
        vision_range = float(raw) if raw else None
        return Observer(
            id=item.id, position=item.position, vision_range=vision_range
        )


@dataclass
class FogItem:
    id: str
    digest: str
    owners: list[str] = field(default_factory=list)

    @staticmethod
    def from_item(item: SceneItem) -> FogItem:
        return FogItem(
            id=item.id,
            digest=item.metadata.get(meta_key("digest"), ""),
            owners=list(item.metadata.get(meta_key("owners"), [])),
        )


def is_background_image(item: SceneItem) -> bool:
    return item.layer == MAP_LAYER and item.flag("isBackgroundImage")


def is_active_obstruction(item: SceneItem) -> bool:
    return item.flag("isVisionLine") and not item.flag("disabled")


def is_observer(item: SceneItem) -> bool:
    return item.layer == CHARACTER_LAYER and item.flag("hasVision")


def is_fog_item(item: SceneItem) -> bool:
    return item.flag("isVisionFog")


def is_overlay(item: SceneItem) -> bool:
    return item.name == OVERLAY_NAME or item.flag("isFogOverlay")


def is_trailing_fog(item: SceneItem) -> bool:
    return item.flag("isTrailingFog")


def is_map_image(item: SceneItem) -> bool:
    return item.layer == MAP_LAYER and item.type == "IMAGE"


@dataclass
class SceneView:
    """Typed per-pass view of a snapshot.

    ``observer_items`` / ``obstruction_items`` keep the raw items so the
    change detector can serialize exactly what the host sent.
    """

    settings: SceneSettings
    grid_dpi: float
    grid_scale: float
    background: SceneItem | None
    map_images: list[SceneItem]
    observer_items: list[SceneItem]
    obstruction_items: list[SceneItem]
    fog_items: list[FogItem]
    overlay: SceneItem | None
    trailing_fog: list[SceneItem] = field(default_factory=list)

    @staticmethod
    def from_snapshot(snapshot: SceneSnapshot) -> SceneView:
        items = snapshot.items
        backgrounds = [i for i in items if is_background_image(i)]
        overlays = [i for i in items if is_overlay(i)]
        return SceneView(
            settings=SceneSettings.from_metadata(snapshot.metadata),
            grid_dpi=snapshot.grid_dpi,
            grid_scale=snapshot.grid_scale,
            background=backgrounds[0] if backgrounds else None,
            map_images=[i for i in items if is_map_image(i)],
            observer_items=[i for i in items if is_observer(i)],
            obstruction_items=[i for i in items if is_active_obstruction(i)],
            fog_items=[FogItem.from_item(i) for i in items if is_fog_item(i)],
            overlay=overlays[0] if overlays else None,
            trailing_fog=[i for i in items if is_trailing_fog(i)],
        )

    @property
    def observers(self) -> list[Observer]:
        return [Observer.from_item(i) for i in self.observer_items]

    @property
    def obstructions(self) -> list[ObstructionShape]:
        return [ObstructionShape.from_item(i) for i in self.obstruction_items]

    def map_bounds(self) -> MapBounds | None:
        if self.settings.autodetect_enabled:
            return MapBounds.from_map_images(self.map_images, self.grid_dpi)
        if self.background is None:
            return None
        return MapBounds.from_background(self.background, self.grid_dpi)


def pick_default_background(items: list[SceneItem]) -> SceneItem | None:
    """Largest map image by grid-cell area, used when none is flagged."""
    best = None
    best_area = -1.0
    for item in items:
        if not is_map_image(item):
            continue
        dpi = item.image_dpi or 1.0
        area = item.image_width * item.image_height / (dpi * dpi)
        if area > best_area:
            best, best_area = item, area
    return best
