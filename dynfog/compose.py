"""Boolean composition of shadow polygons into an observer's visible region.

The visible region starts as the whole map rectangle. Each obstruction
shape's shadows are unioned, the shape's own interior is cut back out of
them (a closed shape must not shadow itself), and the result is subtracted
from the running area. Working shape-by-shape keeps the interior correction
local: another shape's shadow can still cover this shape's interior.

Finite vision ranges are applied afterwards by intersecting with a circle,
so the cached unclipped region survives a change of range.
"""

from __future__ import annotations

import shapely
from shapely.geometry import Point as ShapelyPoint
from shapely.geometry import Polygon as ShapelyPolygon
from shapely.geometry import box
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from .geometry import Point
from .shadow import cast_shadow, shape_interior
from .types import MapBounds, ObstructionShape


class DynfogError(Exception):
    pass


class CompositionError(DynfogError):
    """Boolean composition produced an empty or malformed region."""


_POLYGONAL = ("Polygon", "MultiPolygon")


def bounds_rect(bounds: MapBounds) -> ShapelyPolygon:
    return box(bounds.left, bounds.top, bounds.right, bounds.bottom)


def _polygonal(geom: BaseGeometry) -> BaseGeometry:
    """Drop line and point parts left over from repair or differencing."""
    if geom.geom_type != "GeometryCollection":
        return geom
    return unary_union([g for g in geom.geoms if g.geom_type in _POLYGONAL])


def _to_polygon(points: list[Point]) -> BaseGeometry | None:
    poly = ShapelyPolygon(points)
    if not poly.is_valid:
        poly = _polygonal(shapely.make_valid(poly))
    if poly.is_empty or poly.area <= 0:
        return None
    return poly


def shadows_by_shape(
    observer: Point,
    shapes: list[ObstructionShape],
    bounds: MapBounds,
) -> dict[str, list[list[Point]]]:
    """Cast every segment of every shape; skipped segments are dropped."""
    result: dict[str, list[list[Point]]] = {}
    for shape in shapes:
        polys = []
        for segment in shape.segments():
            pointset = cast_shadow(observer, segment, bounds)
            if pointset is not None:
                polys.append(pointset)
        if polys:
            result[shape.id] = polys
    return result


def compose_visible_region(
    bounds: MapBounds,
    shadows: dict[str, list[list[Point]]],
    interiors: dict[str, BaseGeometry | None] | None = None,
) -> BaseGeometry:
    """Map rectangle minus every shape's shadow.

    Raises:
        CompositionError: if the result is empty or not a valid polygonal
            geometry.
    """
    interiors = interiors or {}
    area: BaseGeometry = bounds_rect(bounds)
    for shape_id, pointsets in shadows.items():
        polys = [
            p
            for p in (_to_polygon(ps) for ps in pointsets)
            if p is not None
        ]
        if not polys:
            continue
        shadow = unary_union(polys)
        interior = interiors.get(shape_id)
        if interior is not None:
            shadow = shadow.difference(interior)
        area = area.difference(shadow)

    if area.is_empty or not area.is_valid:
        raise CompositionError(
            f"visible region is {'empty' if area.is_empty else 'invalid'}"
        )
    # Differences can leave slivers as lines or points in a collection.
    if area.geom_type == "GeometryCollection":
        area = _polygonal(area)
        if area.is_empty:
            raise CompositionError("visible region has no polygonal part")
    return area


def visible_region(
    observer: Point,
    shapes: list[ObstructionShape],
    bounds: MapBounds,
) -> BaseGeometry:
    """Unclipped visible region for one observer."""
    shadows = shadows_by_shape(observer, shapes, bounds)
    interiors = {
        shape.id: shape_interior(shape)
        for shape in shapes
        if shape.id in shadows
    }
    return compose_visible_region(bounds, shadows, interiors)


def vision_radius(
    vision_range: float, grid_dpi: float, grid_scale: float
) -> float:
    """Range in scene distance units to a radius in map pixels.

    The extra half cell lets an observer see the whole cell at the edge of
    its range.
    """
    return grid_dpi * (vision_range / grid_scale + 0.5)


def clip_to_vision(
    region: BaseGeometry, position: Point, radius: float | None
) -> BaseGeometry:
    if radius is None:
        return region
    circle = ShapelyPoint(position).buffer(radius)
    return region.intersection(circle)
