"""Point and segment math shared by the shadow caster and the cache.

Points are plain ``(x, y)`` tuples in map space. Map space follows the host
convention: x grows to the right, y grows downward.
"""

from __future__ import annotations

Point = tuple[float, float]

# Tolerance used when deciding which bounds edge a projection landed on.
EDGE_TOLERANCE = 1e-6


def square_distance(a: Point, b: Point) -> float:
    dx = a[0] - b[0]
    dy = a[1] - b[1]
    return dx * dx + dy * dy


def is_close(a: float, b: float, tol: float = EDGE_TOLERANCE) -> bool:
    return abs(a - b) <= tol * max(1.0, abs(a), abs(b))


def same_position(p: Point, q: Point) -> bool:
    """True if two positions are equal up to floating point noise."""
    return is_close(p[0], q[0]) and is_close(p[1], q[1])


def signed_area(p: Point, start: Point, end: Point) -> float:
    """Cross product (p - start) x (end - start).

    The sign tells which side of the directed line start->end ``p`` is on;
    zero when the three points are collinear. One-sided obstructions are
    filtered on this sign.
    """
    return (p[0] - start[0]) * (end[1] - start[1]) - (p[1] - start[1]) * (
        end[0] - start[0]
    )


def mod(a: int, n: int) -> int:
    """Floor modulo, always in [0, n) for positive n."""
    return a % n


def transform_point(
    p: Point, position: Point, scale: tuple[float, float]
) -> Point:
    """Shape-local point to map space: scale first, then translate."""
    return (p[0] * scale[0] + position[0], p[1] * scale[1] + position[1])
