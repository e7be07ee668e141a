"""Shadow casting: the region a single obstruction segment hides from one
observer.

For an observer at O and a segment S->E, the shadow is the part of the map
rectangle on the far side of the segment. It is built by projecting the rays
O->S and O->E out to the rectangle boundary, then walking the rectangle
corners between the two projections:

    [S, proj(S), corner..., proj(E), E]

The walk direction comes from the sign of the observer's signed area
relative to the segment, so the polygon always wraps around the side of the
rectangle facing away from the observer. Segments are clipped to the
rectangle first; walls drawn past the map edge only cast the shadow of
their part on the map.

One-sided obstructions only block from one side. With
``s = signed_area(O, S, E)``, a ``"right"`` segment lets observers with
``s > 0`` see through it, and a ``"left"`` segment does the same for
``s < 0``.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from shapely.geometry import LineString, box
from shapely.geometry import Polygon as ShapelyPolygon

from .geometry import (
    Point,
    is_close,
    mod,
    same_position,
    signed_area,
    square_distance,
)
from .types import MapBounds, ObstructionSegment, ObstructionShape

logger = logging.getLogger(__name__)

# Edge indices, walking clockwise in y-down coordinates.
EDGE_TOP = 0
EDGE_RIGHT = 1
EDGE_BOTTOM = 2
EDGE_LEFT = 3


def is_see_through(segment: ObstructionSegment, s: float) -> bool:
    """True if a one-sided segment casts nothing for this signed area."""
    if segment.one_sided == "right":
        return s > 0
    if segment.one_sided == "left":
        return s < 0
    return False


def project_to_bounds(
    observer: Point, endpoint: Point, bounds: MapBounds
) -> Point | None:
    """Extend the ray observer->endpoint until it hits the bounds boundary.

    The ray can reach either a vertical edge (chosen by the sign of its x
    component) or a horizontal one (sign of y); the hit nearer to the
    endpoint is the one the ray actually crosses first. Axis-parallel rays
    only have one candidate. Returns None if observer and endpoint coincide.
    """
    vx = endpoint[0] - observer[0]
    vy = endpoint[1] - observer[1]
    xlim = bounds.left if vx < 0 else bounds.right
    ylim = bounds.top if vy < 0 else bounds.bottom

    options: list[Point] = []
    if vx != 0:
        m = vy / vx
        b = endpoint[1] - m * endpoint[0]
        options.append((xlim, m * xlim + b))
    if vy != 0:
        n = vx / vy
        c = n * endpoint[1] - endpoint[0]
        options.append((n * ylim - c, ylim))

    if not options:
        return None
    return min(options, key=lambda p: square_distance(p, endpoint))


def edge_of(p: Point, bounds: MapBounds) -> int:
    """Which bounds edge a boundary point lies on.

    Corners resolve to the horizontal edge.
    """
    if is_close(p[1], bounds.top):
        return EDGE_TOP
    if is_close(p[1], bounds.bottom):
        return EDGE_BOTTOM
    if is_close(p[0], bounds.left):
        return EDGE_LEFT
    return EDGE_RIGHT


def corner_walk(
    first_edge: int, last_edge: int, direction: int, bounds: MapBounds
) -> list[Point]:
    """Corners passed when walking the boundary from one edge to another.

    ``direction`` is +1 for clockwise and -1 for counter-clockwise. Corner k
    is where edge k ends clockwise, so going clockwise from edge e the next
    corner is k = e, and going counter-clockwise it is k = e - 1.
    """
    corners = bounds.corners()
    if direction == 1:
        k = first_edge
        stop = last_edge
    else:
        k = first_edge - 1
        stop = mod(last_edge - 1, 4)
    walked: list[Point] = []
    while mod(k, 4) != stop:
        walked.append(corners[mod(k, 4)])
        k += direction
    return walked


def _inside(p: Point, bounds: MapBounds) -> bool:
    left, right = sorted((bounds.left, bounds.right))
    top, bottom = sorted((bounds.top, bounds.bottom))
    return left <= p[0] <= right and top <= p[1] <= bottom


def clip_to_bounds(
    segment: ObstructionSegment, bounds: MapBounds
) -> ObstructionSegment | None:
    """The part of ``segment`` inside the bounds, keeping its direction.

    Projection and the corner walk assume both endpoints lie inside the
    rectangle. Returns None if less than a line's worth of the segment is
    left after clipping.
    """
    if _inside(segment.start, bounds) and _inside(segment.end, bounds):
        return segment
    line = LineString([segment.start, segment.end])
    clipped = line.intersection(
        box(bounds.left, bounds.top, bounds.right, bounds.bottom)
    )
    if clipped.is_empty or clipped.geom_type != "LineString":
        return None
    coords = list(clipped.coords)
    start = (float(coords[0][0]), float(coords[0][1]))
    end = (float(coords[-1][0]), float(coords[-1][1]))
    if square_distance(start, segment.start) > square_distance(
        end, segment.start
    ):
        start, end = end, start
    return replace(segment, start=start, end=end)


def cast_shadow(
    observer: Point, segment: ObstructionSegment, bounds: MapBounds
) -> list[Point] | None:
    """Shadow polygon (as a point list) cast by ``segment``, or None.

    None means the segment contributes nothing: it is see-through from this
    side, it has zero length, it lies outside the bounds, or the observer
    sits on one of its endpoints.
    """
    if same_position(segment.start, segment.end):
        return None

    s = signed_area(observer, segment.start, segment.end)
    if is_see_through(segment, s):
        return None

    clipped = clip_to_bounds(segment, bounds)
    if clipped is None or same_position(clipped.start, clipped.end):
        return None
    start, end = clipped.start, clipped.end

    proj_start = project_to_bounds(observer, start, bounds)
    proj_end = project_to_bounds(observer, end, bounds)
    if proj_start is None or proj_end is None:
        logger.debug("Skipping degenerate segment %s -> %s", start, end)
        return None

    direction = -1 if s > 0 else 1
    corners = corner_walk(
        edge_of(proj_start, bounds),
        edge_of(proj_end, bounds),
        direction,
        bounds,
    )
    return [start, proj_start, *corners, proj_end, end]


def shape_interior(shape: ObstructionShape) -> ShapelyPolygon | None:
    """Interior of a closed obstruction, which its own shadows must not
    cover. Open polylines have no interior."""
    if not shape.closed or len(shape.points) < 3:
        return None
    poly = ShapelyPolygon(shape.points)
    if not poly.is_valid:
        poly = poly.buffer(0)
    if poly.is_empty:
        return None
    return poly
