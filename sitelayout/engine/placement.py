"""Placement transform pipeline: drag gesture -> validated 3D transform.

Every drag movement runs the same three steps against the active terrain:

  1. **Projection** — the camera collaborator maps the screen point to a
     world ``(x, z)`` on the terrain's horizontal plane, or ``None`` when the
     ray misses. The pipeline treats the projector as an opaque callable.
     Optional grid snapping is applied to the projected coordinates.
  2. **Elevation snap** — ``y = sample_elevation(terrain, x, z)``, so the
     element always rests on the surface. Recomputed on every movement.
  3. **Bounds validation** — the element's scaled, y-rotated footprint must
     share a non-zero area with the terrain extent (``bounds.py``).
     Overlapping other elements is allowed.

The last result is stored on the ``GestureState`` as its ``candidate``
(``None`` when rejected). On release, ``commit`` turns the candidate into a
new ``PlacedElement`` or a repositioned copy of the dragged one (same id).

Rejections in steps 1-3 never raise out of the pipeline: they become a
``None`` candidate, which the scene treats as a cancel. Only setup errors
escape — an unknown template id (``NotFoundError``, raised by ``arm`` before
any gesture exists) and a malformed terrain (``InvalidTerrainError``).

Rotation is never derived from the drag. ``rotate``, ``rescale`` and
``move_to`` are the explicit edits used by property panels.
"""

from __future__ import annotations

import logging
import math
import uuid
from collections.abc import Callable
from dataclasses import replace

from .bounds import footprint_corners, footprint_overlaps_terrain
from .catalog import ElementCatalog
from .config import EditorSettings
from .errors import NotFoundError, OutOfBoundsPlacement
from .terrain import Terrain, sample_elevation
from .types import (
    GesturePhase,
    GestureState,
    InputKind,
    PlacedElement,
    PlacementCandidate,
    ScreenPoint,
    Vec3,
)

logger = logging.getLogger(__name__)

Projector = Callable[[ScreenPoint], "tuple[float, float] | None"]
IdFactory = Callable[[], str]


def new_element_id() -> str:
    return uuid.uuid4().hex


def snap_to_grid(
    value: float, grid_size: float, threshold: float | None = None
) -> float:
    """Snap a coordinate to the nearest grid line.

    With a threshold, only values whose remainder past a grid line is below
    the threshold are snapped; others pass through unchanged.
    """
    if grid_size <= 0:
        raise ValueError(f"grid_size must be positive, got {grid_size}")
    if threshold is not None and abs(math.fmod(value, grid_size)) >= threshold:
        return value
    return math.floor(value / grid_size + 0.5) * grid_size


def _on_terrain(corners, terrain: Terrain) -> bool:
    return footprint_overlaps_terrain(corners, terrain.width, terrain.depth)


def quantize_angle(value: float, granularity: float = 15.0) -> float:
    """Quantize angle to nearest multiple of granularity degrees."""
    if granularity <= 0:
        return value
    return round(value / granularity) * granularity


class PlacementPipeline:
    def __init__(
        self,
        catalog: ElementCatalog,
        settings: EditorSettings | None = None,
    ) -> None:
        self.catalog = catalog
        self.settings = settings or EditorSettings()

    # -- gesture lifecycle --

    def arm(
        self,
        terrain: Terrain,
        input_kind: InputKind,
        origin: ScreenPoint,
        template_id: str | None = None,
        element: PlacedElement | None = None,
    ) -> GestureState:
        """Validate the drag subject and terrain, then arm a gesture.

        Exactly one of ``template_id`` (first placement) or ``element``
        (reposition) must be given.
        """
        if (template_id is None) == (element is None):
            raise ValueError("arm() needs exactly one of template_id/element")
        if template_id is not None:
            self.catalog.get_template(template_id)
        terrain.validate()
        return GestureState(
            active_input_kind=input_kind,
            origin_screen_point=origin,
            current_screen_point=origin,
            dragged_template_id=template_id,
            dragged_element_id=element.id if element is not None else None,
            phase=GesturePhase.ARMED,
        )

    def update(
        self,
        gesture: GestureState,
        terrain: Terrain,
        screen_point: ScreenPoint,
        project: Projector,
        element: PlacedElement | None = None,
    ) -> PlacementCandidate | None:
        """Resolve one drag movement and store the result on the gesture."""
        gesture.current_screen_point = screen_point
        gesture.phase = GesturePhase.DRAGGING
        rotation, scale, dimensions = self._subject_shape(gesture, element)
        gesture.candidate = self.resolve(
            terrain, project(screen_point), rotation, scale, dimensions
        )
        return gesture.candidate

    def commit(
        self,
        gesture: GestureState,
        element: PlacedElement | None = None,
        id_factory: IdFactory = new_element_id,
    ) -> PlacedElement | None:
        """Turn the gesture's last valid candidate into a placed element.

        Returns None when the last movement was rejected. A reposition keeps
        the dragged element's id, so committing twice never duplicates it.
        """
        gesture.phase = GesturePhase.COMMITTING
        candidate = gesture.candidate
        if candidate is None:
            return None
        if gesture.dragged_element_id is not None:
            if element is None or element.id != gesture.dragged_element_id:
                raise NotFoundError(
                    f"Dragged element {gesture.dragged_element_id!r} is not "
                    f"in the scene"
                )
            return replace(element, position=candidate.position)

        template = self.catalog.get_template(gesture.dragged_template_id)
        return PlacedElement(
            id=id_factory(),
            template_id=template.id,
            position=candidate.position,
            rotation=candidate.rotation,
            scale=candidate.scale,
            dimensions=candidate.dimensions,
        )

    # -- transform resolution --

    def resolve(
        self,
        terrain: Terrain,
        world_xz: tuple[float, float] | None,
        rotation: Vec3,
        scale: Vec3,
        dimensions: Vec3,
    ) -> PlacementCandidate | None:
        """Snap, elevate and bounds-check a projected point.

        Returns None for a projection miss or a footprint with no terrain
        overlap. Terrain precondition errors propagate.
        """
        try:
            return self._resolve(
                terrain, world_xz, rotation, scale, dimensions
            )
        except OutOfBoundsPlacement as e:
            logger.debug(f"Placement rejected: {e}")
            return None

    def _resolve(
        self,
        terrain: Terrain,
        world_xz: tuple[float, float] | None,
        rotation: Vec3,
        scale: Vec3,
        dimensions: Vec3,
    ) -> PlacementCandidate:
        if world_xz is None:
            raise OutOfBoundsPlacement("projection missed the terrain plane")
        x, z = world_xz
        snap = self.settings.grid_snap
        if snap.enabled:
            x = snap_to_grid(x, snap.grid_size, snap.snap_threshold)
            z = snap_to_grid(z, snap.grid_size, snap.snap_threshold)

        position = (x, sample_elevation(terrain, x, z), z)
        corners = footprint_corners(position, dimensions, scale, rotation)
        if not _on_terrain(corners, terrain):
            raise OutOfBoundsPlacement(
                f"footprint at ({x:.2f}, {z:.2f}) is off the "
                f"{terrain.width}x{terrain.depth} terrain"
            )
        return PlacementCandidate(
            position=position,
            rotation=rotation,
            scale=scale,
            dimensions=dimensions,
        )

    def _subject_shape(
        self, gesture: GestureState, element: PlacedElement | None
    ) -> tuple[Vec3, Vec3, Vec3]:
        if gesture.dragged_element_id is not None:
            if element is None or element.id != gesture.dragged_element_id:
                raise NotFoundError(
                    f"Dragged element {gesture.dragged_element_id!r} is not "
                    f"in the scene"
                )
            return element.rotation, element.scale, element.dimensions
        template = self.catalog.get_template(gesture.dragged_template_id)
        return (0.0, 0.0, 0.0), template.default_scale, template.dimensions

    # -- explicit edits --

    def move_to(
        self, element: PlacedElement, terrain: Terrain, x: float, z: float
    ) -> PlacedElement | None:
        candidate = self.resolve(
            terrain,
            (x, z),
            element.rotation,
            element.scale,
            element.dimensions,
        )
        if candidate is None:
            return None
        return replace(element, position=candidate.position)

    def rotate(
        self, element: PlacedElement, terrain: Terrain, rotation: Vec3
    ) -> PlacedElement | None:
        return self._revalidate(element, terrain, rotation=rotation)

    def rescale(
        self, element: PlacedElement, terrain: Terrain, scale: Vec3
    ) -> PlacedElement | None:
        if any(s <= 0 for s in scale):
            raise ValueError(f"scale components must be positive: {scale}")
        return self._revalidate(element, terrain, scale=scale)

    def _revalidate(
        self, element: PlacedElement, terrain: Terrain, **changes
    ) -> PlacedElement | None:
        """Apply a rotation/scale change if the result stays on the terrain.

        The element keeps its horizontal position; elevation is left as is.
        """
        updated = replace(element, **changes)
        corners = footprint_corners(
            updated.position,
            updated.dimensions,
            updated.scale,
            updated.rotation,
        )
        if not _on_terrain(corners, terrain):
            logger.debug(f"Edit of {element.id} rejected: off terrain")
            return None
        return updated
