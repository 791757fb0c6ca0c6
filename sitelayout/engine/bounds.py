"""Bounding-volume checks for placed elements.

The central question this module answers: "does this element still touch
the terrain?" The placement pipeline calls ``footprint_overlaps_terrain``
on every drag movement. Elements are approximated by their scaled
bounding box, rotated about the vertical axis:

  * **Footprint** — the box's horizontal rectangle, ``width * sx`` by
    ``depth * sz``, centered on the element position and rotated by the
    element's y rotation (degrees). ``footprint_corners`` returns its four
    corners in terrain-local world space.
  * **Terrain overlap** — a footprint is on the terrain when its
    intersection with ``[0, width] x [0, depth]`` has non-zero area.
    Touching an edge from outside does not count.
  * **Element overlap** — separating-axis test between two footprints
    (``footprints_overlap``). Overlaps are advisory only
    (``find_overlaps``); the editor never rejects a placement because of
    them.

Also provides ``element_at`` for hit testing a world point.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

from shapely.geometry import Point
from shapely.geometry import Polygon as ShapelyPolygon
from shapely.geometry import box

from .types import PlacedElement, Vec3

Corners = list[tuple[float, float]]


def obb_corners(
    cx: float,
    cz: float,
    half_w: float,
    half_d: float,
    rot_rad: float,
) -> Corners:
    """Compute the 4 corners of a rotated rectangle."""
    cos_r = math.cos(rot_rad)
    sin_r = math.sin(rot_rad)
    result: Corners = []
    for sx, sz in ((-1, -1), (1, -1), (1, 1), (-1, 1)):
        lx = sx * half_w
        lz = sz * half_d
        result.append(
            (
                cx + lx * cos_r - lz * sin_r,
                cz + lx * sin_r + lz * cos_r,
            )
        )
    return result


def footprint_corners(
    position: Vec3,
    dimensions: Vec3,
    scale: Vec3,
    rotation: Vec3 = (0.0, 0.0, 0.0),
) -> Corners:
    """World-space corners of an element's scaled, y-rotated footprint."""
    return obb_corners(
        position[0],
        position[2],
        dimensions[0] * scale[0] / 2,
        dimensions[2] * scale[2] / 2,
        math.radians(rotation[1]),
    )


def element_corners(element: PlacedElement) -> Corners:
    return footprint_corners(
        element.position, element.dimensions, element.scale, element.rotation
    )


def footprint_overlaps_terrain(
    corners: Corners, width: float, depth: float
) -> bool:
    """True if the footprint shares a non-zero area with the terrain."""
    footprint = ShapelyPolygon(corners)
    if footprint.area == 0.0:
        # Degenerate (zero-scale) footprints reduce to their center.
        cx = sum(c[0] for c in corners) / len(corners)
        cz = sum(c[1] for c in corners) / len(corners)
        return 0.0 <= cx <= width and 0.0 <= cz <= depth
    return footprint.intersection(box(0.0, 0.0, width, depth)).area > 0.0


def _extent(
    corners: Corners, axis: tuple[float, float]
) -> tuple[float, float]:
    """Span of a footprint's shadow along ``axis``."""
    dots = [x * axis[0] + z * axis[1] for x, z in corners]
    return min(dots), max(dots)


def footprints_overlap(a: Corners, b: Corners) -> bool:
    """True if two element footprints claim the same patch of ground.

    Separating-axis test over the edge normals of both rectangles. Elements
    laid edge to edge, such as a fence run along a parking pad, share a
    boundary but no area and do not count as overlapping.
    """
    for footprint in (a, b):
        # Opposite edges are parallel: two normals per footprint suffice.
        for (x0, z0), (x1, z1) in zip(footprint[:2], footprint[1:3]):
            axis = (z0 - z1, x1 - x0)
            if axis == (0.0, 0.0):
                continue
            lo_a, hi_a = _extent(a, axis)
            lo_b, hi_b = _extent(b, axis)
            if hi_a <= lo_b or hi_b <= lo_a:
                return False
    return True


def find_overlaps(
    elements: Sequence[PlacedElement],
) -> list[tuple[str, str]]:
    """Id pairs of elements whose footprints overlap, in element order."""
    corners = [element_corners(e) for e in elements]
    pairs: list[tuple[str, str]] = []
    for i in range(len(elements)):
        for j in range(i + 1, len(elements)):
            if footprints_overlap(corners[i], corners[j]):
                pairs.append((elements[i].id, elements[j].id))
    return pairs


def element_at(
    elements: Iterable[PlacedElement], x: float, z: float
) -> PlacedElement | None:
    """Topmost element whose footprint covers world ``(x, z)``.

    Later elements are drawn on top, so they are tested first.
    """
    point = Point(x, z)
    for element in reversed(list(elements)):
        if ShapelyPolygon(element_corners(element)).covers(point):
            return element
    return None
