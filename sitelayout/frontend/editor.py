"""Headless site editor session.

``SiteEditor`` is the seam between a host UI and the placement engine. The
host forwards raw pointer/touch/pen events with ``handle_tick`` and calls
the explicit commands (rotate, delete, terrain edits, undo) from its
buttons and keyboard shortcuts; the editor turns them into arbitration,
placement and scene transitions and schedules persistence saves.

A drag starts in one of two ways:

  * the host calls ``press_template`` when a library item is pressed, so
    the next armed gesture places a new element from that template;
  * the host calls ``press_element``, or presses on the terrain with no
    pending subject, in which case the element under the press point (if
    any) is repositioned.

Presses that never satisfy their activation constraint arrive as taps and
select the element under the point, or clear the selection.
"""

import logging
import uuid
from collections.abc import Callable, Iterable
from concurrent.futures import Executor

from ..engine.arbitration import (
    ArbitrationEvent,
    InputArbiter,
    RawInputEvent,
)
from ..engine.bounds import (
    element_corners,
    find_overlaps,
    footprint_overlaps_terrain,
)
from ..engine.catalog import ElementCatalog
from ..engine.config import EditorSettings
from ..engine.errors import InvalidTransitionError, PersistenceUnavailable
from ..engine.persistence import SiteData, SiteRepository, SiteStore
from ..engine.placement import (
    IdFactory,
    PlacementPipeline,
    Projector,
    new_element_id,
    quantize_angle,
)
from ..engine.scene import SceneState, SceneStateMachine
from ..engine.terrain import (
    Terrain,
    TerrainHistory,
    adjust_elevation,
    apply_partial_update,
    flatten,
)
from ..engine.types import (
    PlacedElement,
    ScreenPoint,
    SiteSettings,
    Vec3,
)
from .catalogs import ENVIRONMENT_CATALOG

logger = logging.getLogger(__name__)


class SiteEditor:
    def __init__(
        self,
        terrain: Terrain,
        project: Projector,
        catalog: ElementCatalog | None = None,
        settings: EditorSettings | None = None,
        elements: Iterable[PlacedElement] = (),
        site_id: str | None = None,
        site_settings: SiteSettings | None = None,
        store: SiteStore | None = None,
        executor: Executor | None = None,
        on_unavailable: Callable[[PersistenceUnavailable], None]
        | None = None,
        id_factory: IdFactory = new_element_id,
    ):
        terrain.validate()
        self.project = project
        self.catalog = catalog if catalog is not None else ENVIRONMENT_CATALOG
        self.settings = settings or EditorSettings()
        self.site_id = site_id or uuid.uuid4().hex
        self.site_settings = site_settings or SiteSettings()
        self.arbiter = InputArbiter(self.settings.input_sources)
        self.pipeline = PlacementPipeline(self.catalog, self.settings)
        self.scene = SceneStateMachine(elements)
        self.history = TerrainHistory(
            terrain, self.settings.max_terrain_revisions
        )
        self.repository = SiteRepository(
            store,
            self.site_id,
            terrain.project_id,
            executor=executor,
            on_unavailable=on_unavailable,
        )
        self._id_factory = id_factory
        # ("template" | "element", id) for the next armed gesture.
        self._pending: tuple[str, str] | None = None

    @classmethod
    def from_site(cls, site: SiteData, project: Projector, **kwargs):
        if site.terrain is None:
            raise ValueError(f"Site {site.id} has no terrain")
        return cls(
            site.terrain,
            project,
            elements=site.elements,
            site_id=site.id,
            site_settings=site.settings,
            **kwargs,
        )

    # -- state --

    @property
    def terrain(self) -> Terrain:
        return self.history.current

    @property
    def state(self) -> SceneState:
        return self.scene.state

    @property
    def elements(self) -> list[PlacedElement]:
        return self.scene.elements

    @property
    def selected(self) -> PlacedElement | None:
        return self.scene.selected

    def site_data(self) -> SiteData:
        return SiteData(
            id=self.site_id,
            project_id=self.terrain.project_id,
            terrain=self.terrain,
            elements=self.scene.elements,
            settings=self.site_settings,
        )

    # -- input --

    def press_template(self, template_id: str) -> None:
        """Arm a library press: the next drag places ``template_id``."""
        self.catalog.get_template(template_id)
        self._pending = ("template", template_id)

    def press_element(self, element_id: str) -> None:
        """Arm a scene press: the next drag repositions ``element_id``."""
        self.scene.get(element_id)
        self._pending = ("element", element_id)

    def handle_tick(
        self, events: Iterable[RawInputEvent], now_ms: float | None = None
    ) -> list[ArbitrationEvent]:
        """Feed one tick of raw input events through the editor."""
        out = self.arbiter.tick(events, now_ms)
        for ev in out:
            if ev.type == "armed":
                self._start_drag(ev)
            elif ev.type == "moved":
                if self.scene.state is SceneState.DRAGGING:
                    self._update_drag(ev.point)
            elif ev.type == "released":
                if self.scene.state is SceneState.DRAGGING:
                    self._update_drag(ev.point)
                    self._commit_drag()
            elif ev.type == "cancelled":
                self._cancel_drag()
            elif ev.type == "tap":
                self._tap(ev.point)
        return out

    def cancel(self) -> ArbitrationEvent | None:
        """Abort the current drag (escape key) without committing."""
        ev = self.arbiter.cancel()
        self._cancel_drag()
        return ev

    def _start_drag(self, ev: ArbitrationEvent) -> None:
        subject = self._pending
        self._pending = None
        if subject is None:
            hit = self._element_under(ev.origin)
            if hit is None:
                return
            subject = ("element", hit.id)

        if self.scene.state is SceneState.EDITING:
            self.scene.finish_edit()
        self.scene.deselect()

        kind, subject_id = subject
        if kind == "template":
            gesture = self.pipeline.arm(
                self.terrain, ev.kind, ev.origin, template_id=subject_id
            )
        else:
            gesture = self.pipeline.arm(
                self.terrain,
                ev.kind,
                ev.origin,
                element=self.scene.get(subject_id),
            )
        self.scene.start_drag(gesture)
        self._update_drag(ev.point)

    def _update_drag(self, point: ScreenPoint) -> None:
        gesture = self.scene.gesture
        element = None
        if gesture.is_reposition:
            element = self.scene.get(gesture.dragged_element_id)
        self.pipeline.update(
            gesture, self.terrain, point, self.project, element
        )

    def _commit_drag(self) -> PlacedElement | None:
        gesture = self.scene.gesture
        element = None
        if gesture.is_reposition:
            element = self.scene.get(gesture.dragged_element_id)
        placed = self.pipeline.commit(gesture, element, self._id_factory)
        if placed is None:
            logger.info("Drop rejected: last position was off the terrain")
            self.scene.cancel_drag()
            return None
        self.scene.commit(placed)
        self._save_elements()
        return placed

    def _cancel_drag(self) -> None:
        self._pending = None
        if self.scene.state is SceneState.DRAGGING:
            self.scene.cancel_drag()

    def _tap(self, point: ScreenPoint) -> None:
        self._pending = None
        if self.scene.state is SceneState.DRAGGING:
            return
        if self.scene.state is SceneState.EDITING:
            self.scene.finish_edit()
        hit = self._element_under(point)
        if hit is not None:
            self.scene.select(hit.id)
        else:
            self.scene.deselect()

    def _element_under(self, point: ScreenPoint) -> PlacedElement | None:
        world = self.project(point)
        if world is None:
            return None
        return self.scene.hit_test(*world)

    # -- element commands --

    def rotate_selected(self, step_deg: float | None = None):
        """Rotate the selection about y.

        With no ``step_deg`` the selection turns by one granularity step and
        lands on the rotation grid; an explicit step is applied as given.
        Returns the rotated element (unchanged, with no undo step, for a
        zero turn), or None when nothing is selected or the rotated
        footprint would leave the terrain.
        """
        element = self.scene.selected
        if element is None:
            return None
        rx, ry, rz = element.rotation
        if step_deg is None:
            granularity = self.settings.rotation_granularity_deg
            new_ry = quantize_angle(ry + granularity, granularity) % 360.0
        else:
            new_ry = (ry + step_deg) % 360.0
        if new_ry == ry:
            return element
        updated = self.pipeline.rotate(
            element, self.terrain, (rx, new_ry, rz)
        )
        if updated is None:
            return None
        self._replace_selected(updated)
        return updated

    def delete_selected(self) -> PlacedElement | None:
        element = self.scene.selected
        if element is None:
            return None
        removed = self.scene.delete(element.id)
        self._save_elements()
        return removed

    def begin_edit(self) -> PlacedElement:
        return self.scene.begin_edit()

    def apply_edit(
        self,
        position: tuple[float, float] | None = None,
        rotation: Vec3 | None = None,
        scale: Vec3 | None = None,
    ) -> PlacedElement | None:
        """Apply property-panel edits to the element being edited.

        ``position`` is a world ``(x, z)``; elevation is re-sampled. All
        changes are applied together or not at all: returns None (and
        leaves the element unchanged) if any of them is rejected.
        """
        if self.scene.state is not SceneState.EDITING:
            raise InvalidTransitionError(
                f"Cannot apply an edit while {self.scene.state.value}"
            )
        updated = self.scene.selected
        if scale is not None:
            updated = self.pipeline.rescale(updated, self.terrain, scale)
        if updated is not None and rotation is not None:
            updated = self.pipeline.rotate(updated, self.terrain, rotation)
        if updated is not None and position is not None:
            updated = self.pipeline.move_to(updated, self.terrain, *position)
        if updated is None:
            return None
        self._replace_selected(updated)
        return updated

    def finish_edit(self) -> None:
        self.scene.finish_edit()

    def undo(self) -> bool:
        """Undo the latest element change (add, move, edit or delete)."""
        if self.scene.state is SceneState.DRAGGING:
            self.cancel()
        undone = self.scene.undo()
        if undone:
            self._save_elements()
        return undone

    def _replace_selected(self, updated: PlacedElement) -> None:
        # Stay in editing when called from the property panel.
        editing = self.scene.state is SceneState.EDITING
        if not editing:
            self.scene.begin_edit()
        self.scene.finish_edit(updated)
        if editing:
            self.scene.begin_edit()
        self._save_elements()

    # -- terrain commands --

    def update_terrain(self, patch: dict) -> Terrain:
        """Apply a partial terrain change as a new revision.

        Raises InvalidTerrainError for a malformed patch, leaving the
        current revision in place.
        """
        revised = apply_partial_update(
            self.terrain, patch, self.settings.resample_mode
        )
        return self._push_terrain(revised)

    def adjust_terrain(
        self,
        amount: float,
        strength: float = 0.5,
        center: tuple[float, float] | None = None,
        radius: float | None = None,
    ) -> Terrain:
        revised = adjust_elevation(
            self.terrain, amount, strength, center, radius
        )
        return self._push_terrain(revised)

    def flatten_terrain(self) -> Terrain:
        return self._push_terrain(flatten(self.terrain))

    def undo_terrain(self) -> Terrain:
        if not self.history.can_undo:
            return self.terrain
        terrain = self.history.undo()
        self.repository.save_terrain(terrain)
        return terrain

    def redo_terrain(self) -> Terrain:
        if not self.history.can_redo:
            return self.terrain
        terrain = self.history.redo()
        self.repository.save_terrain(terrain)
        return terrain

    def _push_terrain(self, terrain: Terrain) -> Terrain:
        self.history.push(terrain)
        self.repository.save_terrain(terrain)
        return terrain

    # -- checks --

    def overlap_warnings(self) -> list[tuple[str, str]]:
        """Id pairs of overlapping elements. Advisory only."""
        return find_overlaps(self.scene.elements)

    def out_of_bounds_elements(self) -> list[PlacedElement]:
        """Elements left off the terrain, e.g. after it was shrunk."""
        return [
            e
            for e in self.scene.elements
            if not footprint_overlaps_terrain(
                element_corners(e), self.terrain.width, self.terrain.depth
            )
        ]

    def discard_out_of_bounds(self) -> list[PlacedElement]:
        stale = self.out_of_bounds_elements()
        if not stale:
            return []
        if self.scene.state is SceneState.DRAGGING:
            self.cancel()
        for e in stale:
            self.scene.delete(e.id)
        logger.info(f"Discarded {len(stale)} out-of-bounds elements")
        self._save_elements()
        return stale

    # -- persistence --

    def save(self) -> None:
        """Schedule a full snapshot save (terrain, elements, settings)."""
        self.repository.save_terrain(self.terrain)
        self._save_elements()
        self.repository.save_settings(self.site_settings)

    def close(self) -> None:
        self.repository.close()

    def _save_elements(self) -> None:
        self.repository.save_elements(self.scene.elements)
