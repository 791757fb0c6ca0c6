"""Height-field terrain model: sampling, revisions and resampling.

A ``Terrain`` is an immutable revision of a regular ``resolution x
resolution`` grid of ``TerrainPoint`` records laid out row-major
(``index = row * resolution + col``). Point ``(row, col)`` sits at

    x = col * width / (resolution - 1)
    z = row * depth / (resolution - 1)

so the grid spans ``[0, width] x [0, depth]`` in terrain-local world
coordinates. Every edit (``apply_partial_update``, ``adjust_elevation``,
``flatten``) builds a new ``Terrain``; the previous revision is never
touched, which is what ``TerrainHistory`` relies on for undo.

Elevation lookups go through a cached numpy height array, so
``sample_elevation`` is a single cell lookup plus bilinear interpolation and
stays O(1) regardless of grid size. It is called on every drag movement.

Resampling policy when the resolution changes:

  * **bilinear** (default) — each new node samples the old surface, so
    ``sample_elevation`` at previously sampled points stays within
    tolerance and planar regions are reproduced exactly.
  * **nearest** — each new grid node copies the elevation of the closest
    old node (in normalized grid coordinates). No heights are invented, but
    sloped regions become stepped.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from enum import Enum
from functools import cached_property

import numpy as np

from .errors import InvalidTerrainError, OutOfBoundsError
from .types import MaterialType, TerrainPoint

logger = logging.getLogger(__name__)


_PATCH_FIELDS = frozenset(
    {"material_type", "resolution", "dimensions", "points"}
)


class ResampleMode(str, Enum):
    NEAREST = "nearest"
    BILINEAR = "bilinear"


@dataclass(frozen=True)
class Terrain:
    id: str
    project_id: str
    points: tuple[TerrainPoint, ...]
    resolution: int
    dimensions: tuple[float, float]
    material_type: MaterialType = MaterialType.SOIL

    @property
    def width(self) -> float:
        return self.dimensions[0]

    @property
    def depth(self) -> float:
        return self.dimensions[1]

    @property
    def cell_size(self) -> tuple[float, float]:
        """Grid spacing along x and z (0 for a single-point grid)."""
        if self.resolution <= 1:
            return (0.0, 0.0)
        n = self.resolution - 1
        return (self.width / n, self.depth / n)

    def validate(self) -> None:
        """Raise ``InvalidTerrainError`` if this revision is malformed."""
        if self.width <= 0 or self.depth <= 0:
            raise InvalidTerrainError(
                f"Terrain {self.id!r} has non-positive dimensions "
                f"{self.dimensions}"
            )
        if self.resolution < 1:
            raise InvalidTerrainError(
                f"Terrain {self.id!r} has resolution {self.resolution} < 1"
            )
        expected = self.resolution * self.resolution
        if len(self.points) != expected:
            raise InvalidTerrainError(
                f"Terrain {self.id!r} has {len(self.points)} points, "
                f"expected {expected} for resolution {self.resolution}"
            )

    @cached_property
    def heights(self) -> np.ndarray:
        """Elevations as a read-only ``(resolution, resolution)`` array,
        indexed ``[row, col]``."""
        expected = self.resolution * self.resolution
        if self.resolution < 1 or len(self.points) != expected:
            raise InvalidTerrainError(
                f"Terrain {self.id!r} point count {len(self.points)} does "
                f"not match resolution {self.resolution}"
            )
        arr = np.array([p.y for p in self.points], dtype=np.float64)
        arr = arr.reshape(self.resolution, self.resolution)
        arr.setflags(write=False)
        return arr

    @staticmethod
    def from_dict(d: dict) -> Terrain:
        width, depth = d["dimensions"]
        return Terrain(
            id=d["id"],
            project_id=d.get("project_id", ""),
            points=tuple(TerrainPoint.from_dict(p) for p in d["points"]),
            resolution=int(d["resolution"]),
            dimensions=(float(width), float(depth)),
            material_type=MaterialType(d.get("material_type", "soil")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "points": [p.to_dict() for p in self.points],
            "resolution": self.resolution,
            "dimensions": list(self.dimensions),
            "material_type": self.material_type.value,
        }


def grid_points(
    heights: np.ndarray, dimensions: tuple[float, float]
) -> tuple[TerrainPoint, ...]:
    """Lay out a square height array as row-major terrain points."""
    resolution = heights.shape[0]
    width, depth = dimensions
    if resolution > 1:
        xs = np.linspace(0.0, width, resolution)
        zs = np.linspace(0.0, depth, resolution)
    else:
        xs = zs = np.zeros(1)
    return tuple(
        TerrainPoint(
            x=float(xs[col]), y=float(heights[row, col]), z=float(zs[row])
        )
        for row in range(resolution)
        for col in range(resolution)
    )


def make_terrain(
    id: str,
    project_id: str,
    resolution: int,
    dimensions: tuple[float, float],
    material_type: MaterialType = MaterialType.SOIL,
    heights: np.ndarray | None = None,
) -> Terrain:
    """Build a grid terrain; flat when ``heights`` is omitted."""
    if resolution < 1:
        raise InvalidTerrainError(
            f"resolution must be >= 1, got {resolution}"
        )
    if heights is None:
        heights = np.zeros((resolution, resolution))
    heights = np.asarray(heights, dtype=np.float64)
    if heights.shape != (resolution, resolution):
        raise InvalidTerrainError(
            f"heights shape {heights.shape} does not match resolution "
            f"{resolution}"
        )
    terrain = Terrain(
        id=id,
        project_id=project_id,
        points=grid_points(heights, dimensions),
        resolution=resolution,
        dimensions=(float(dimensions[0]), float(dimensions[1])),
        material_type=MaterialType(material_type),
    )
    terrain.validate()
    return terrain


def sample_elevation(terrain: Terrain, x: float, z: float) -> float:
    """Bilinearly interpolated elevation at world ``(x, z)``.

    Coordinates outside ``[0, width] x [0, depth]`` are clamped to the
    nearest in-bounds point, since drag input routinely overshoots the
    terrain. Raises ``OutOfBoundsError`` only for non-positive dimensions.
    """
    width, depth = terrain.dimensions
    if width <= 0 or depth <= 0:
        raise OutOfBoundsError(
            f"Cannot sample terrain {terrain.id!r} with dimensions "
            f"{terrain.dimensions}"
        )
    heights = terrain.heights
    res = terrain.resolution
    if res == 1:
        return float(heights[0, 0])

    cell_w, cell_d = terrain.cell_size
    x = min(max(x, 0.0), width)
    z = min(max(z, 0.0), depth)
    col = min(max(math.floor(x / cell_w), 0), res - 2)
    row = min(max(math.floor(z / cell_d), 0), res - 2)
    tx = x / cell_w - col
    tz = z / cell_d - row

    h00 = heights[row, col]
    h01 = heights[row, col + 1]
    h10 = heights[row + 1, col]
    h11 = heights[row + 1, col + 1]
    near = h00 + (h01 - h00) * tx
    far = h10 + (h11 - h10) * tx
    return float(near + (far - near) * tz)


def resample_heights(
    heights: np.ndarray,
    resolution: int,
    mode: ResampleMode = ResampleMode.BILINEAR,
) -> np.ndarray:
    """Resample a square height grid to ``resolution x resolution``."""
    old = heights.shape[0]
    if old == 1 or resolution == 1:
        # Degenerate grids carry a single meaningful value.
        return np.full((resolution, resolution), float(heights[0, 0]))

    if ResampleMode(mode) is ResampleMode.NEAREST:
        idx = np.rint(np.linspace(0, old - 1, resolution)).astype(int)
        return heights[np.ix_(idx, idx)].copy()

    old_u = np.linspace(0.0, 1.0, old)
    new_u = np.linspace(0.0, 1.0, resolution)
    # Separable: interpolate along columns, then along rows.
    by_col = np.array([np.interp(new_u, old_u, row) for row in heights])
    return np.array([np.interp(new_u, old_u, col) for col in by_col.T]).T


def apply_partial_update(
    terrain: Terrain,
    patch: dict,
    resample: ResampleMode = ResampleMode.BILINEAR,
) -> Terrain:
    """Merge a partial terrain change into a new revision.

    Recognized keys: ``material_type``, ``resolution``, ``dimensions``,
    ``points``. Explicit ``points`` win over regeneration; otherwise a
    resolution change resamples the height grid and a dimension change
    stretches the existing grid over the new extent.
    """
    unknown = set(patch) - _PATCH_FIELDS
    if unknown:
        raise InvalidTerrainError(
            f"Unsupported terrain fields: {sorted(unknown)}"
        )

    resolution = int(patch.get("resolution", terrain.resolution))
    if "dimensions" in patch:
        w, d = patch["dimensions"]
        dimensions = (float(w), float(d))
    else:
        dimensions = terrain.dimensions
    try:
        material = MaterialType(
            patch.get("material_type", terrain.material_type)
        )
    except ValueError as e:
        raise InvalidTerrainError(str(e)) from e

    if resolution < 1:
        raise InvalidTerrainError(
            f"resolution must be >= 1, got {resolution}"
        )
    if dimensions[0] <= 0 or dimensions[1] <= 0:
        raise InvalidTerrainError(
            f"dimensions must be positive, got {dimensions}"
        )

    if "points" in patch:
        points = tuple(
            p if isinstance(p, TerrainPoint) else TerrainPoint.from_dict(p)
            for p in patch["points"]
        )
    elif resolution != terrain.resolution:
        heights = resample_heights(terrain.heights, resolution, resample)
        points = grid_points(heights, dimensions)
    elif dimensions != terrain.dimensions:
        points = grid_points(terrain.heights, dimensions)
    else:
        points = terrain.points

    updated = replace(
        terrain,
        points=points,
        resolution=resolution,
        dimensions=dimensions,
        material_type=material,
    )
    updated.validate()
    logger.info(
        f"Terrain {terrain.id} revised: resolution {terrain.resolution}->"
        f"{resolution}, dimensions {terrain.dimensions}->{dimensions}, "
        f"material {material.value}"
    )
    return updated


def adjust_elevation(
    terrain: Terrain,
    amount: float,
    strength: float = 0.5,
    center: tuple[float, float] | None = None,
    radius: float | None = None,
) -> Terrain:
    """Raise (positive ``amount``) or lower the terrain.

    Each affected point moves by ``amount * strength`` and never drops below
    zero. With ``center`` and ``radius`` only points within that horizontal
    distance are affected.
    """
    heights = terrain.heights.copy()
    delta = amount * strength
    if center is not None and radius is not None:
        xs = np.array([p.x for p in terrain.points]).reshape(heights.shape)
        zs = np.array([p.z for p in terrain.points]).reshape(heights.shape)
        mask = np.hypot(xs - center[0], zs - center[1]) <= radius
        heights[mask] = np.maximum(0.0, heights[mask] + delta)
    else:
        heights = np.maximum(0.0, heights + delta)
    return replace(terrain, points=grid_points(heights, terrain.dimensions))


def flatten(terrain: Terrain) -> Terrain:
    return replace(
        terrain,
        points=tuple(replace(p, y=0.0) for p in terrain.points),
    )


class TerrainHistory:
    """Linear undo/redo over retained terrain revisions."""

    def __init__(self, initial: Terrain, max_revisions: int = 50) -> None:
        if max_revisions < 1:
            raise ValueError("max_revisions must be >= 1")
        self._revisions: list[Terrain] = [initial]
        self._index = 0
        self._max = max_revisions

    @property
    def current(self) -> Terrain:
        return self._revisions[self._index]

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._revisions) - 1

    def push(self, terrain: Terrain) -> Terrain:
        """Accept a new revision, discarding any redo tail."""
        del self._revisions[self._index + 1 :]
        self._revisions.append(terrain)
        if len(self._revisions) > self._max:
            del self._revisions[: len(self._revisions) - self._max]
        self._index = len(self._revisions) - 1
        return terrain

    def undo(self) -> Terrain:
        if self.can_undo:
            self._index -= 1
        return self.current

    def redo(self) -> Terrain:
        if self.can_redo:
            self._index += 1
        return self.current
