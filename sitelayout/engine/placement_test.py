"""Tests for the drag-to-placement transform pipeline."""

import numpy as np
import pytest

from sitelayout.engine.catalog import ElementCatalog
from sitelayout.engine.config import EditorSettings, GridSnap
from sitelayout.engine.errors import InvalidTerrainError, NotFoundError
from sitelayout.engine.placement import (
    PlacementPipeline,
    quantize_angle,
    snap_to_grid,
)
from sitelayout.engine.terrain import Terrain, make_terrain
from sitelayout.engine.types import (
    ElementTemplate,
    ElementType,
    GesturePhase,
    InputKind,
    PlacedElement,
    TerrainPoint,
)

TREE = ElementTemplate(
    id="tree-large",
    name="Large Tree",
    type=ElementType.VEGETATION,
    category="trees",
)
PARKING = ElementTemplate(
    id="parking",
    name="Parking Area",
    type=ElementType.HARDSCAPE,
    category="paving",
    default_scale=(5.0, 0.1, 5.0),
)
CATALOG = ElementCatalog([TREE, PARKING])


def identity(point):
    """Camera stand-in: screen coordinates are world (x, z)."""
    return point


def miss(point):
    return None


def _flat():
    return make_terrain("t1", "p1", 10, (50, 50))


def _slope():
    xs = np.linspace(0.0, 50.0, 10)
    x, z = np.meshgrid(xs, xs)
    return make_terrain("t1", "p1", 10, (50, 50), heights=0.5 * x + 0.25 * z)


def _ids():
    counter = iter(range(1000))
    return lambda: f"el-{next(counter)}"


def _drag(pipeline, terrain, template_id, *points, project=identity):
    gesture = pipeline.arm(
        terrain, InputKind.MOUSE, points[0], template_id=template_id
    )
    for p in points:
        pipeline.update(gesture, terrain, p, project)
    return gesture


class TestSnapToGrid:
    def test_rounds_to_nearest(self):
        assert snap_to_grid(3.2, 1.0) == 3.0
        assert snap_to_grid(3.5, 1.0) == 4.0
        assert snap_to_grid(3.49, 1.0) == 3.0
        assert snap_to_grid(7.4, 2.5) == 7.5

    def test_threshold(self):
        assert snap_to_grid(3.2, 1.0, threshold=0.3) == 3.0
        assert snap_to_grid(3.8, 1.0, threshold=0.3) == 3.8

    def test_bad_grid(self):
        with pytest.raises(ValueError):
            snap_to_grid(1.0, 0.0)


def test_quantize_angle():
    assert quantize_angle(22.0, 15.0) == 15.0
    assert quantize_angle(23.0, 15.0) == 30.0
    assert quantize_angle(-50.0, 45.0) == -45.0
    assert quantize_angle(12.3, 0) == 12.3


class TestArm:
    def test_template_gesture(self):
        pipeline = PlacementPipeline(CATALOG)
        g = pipeline.arm(
            _flat(), InputKind.TOUCH, (1, 2), template_id="tree-large"
        )
        assert g.phase is GesturePhase.ARMED
        assert g.active_input_kind is InputKind.TOUCH
        assert g.origin_screen_point == (1, 2)
        assert g.candidate is None
        assert not g.is_reposition

    def test_unknown_template(self):
        pipeline = PlacementPipeline(CATALOG)
        with pytest.raises(NotFoundError):
            pipeline.arm(_flat(), InputKind.MOUSE, (0, 0), template_id="x")

    def test_needs_exactly_one_subject(self):
        pipeline = PlacementPipeline(CATALOG)
        element = PlacedElement("e1", "tree-large", (1, 0, 1))
        with pytest.raises(ValueError):
            pipeline.arm(_flat(), InputKind.MOUSE, (0, 0))
        with pytest.raises(ValueError):
            pipeline.arm(
                _flat(),
                InputKind.MOUSE,
                (0, 0),
                template_id="tree-large",
                element=element,
            )

    def test_degenerate_terrain(self):
        bad = Terrain(
            id="t1",
            project_id="p1",
            points=(TerrainPoint(0, 0, 0),),
            resolution=1,
            dimensions=(0.0, 50.0),
        )
        pipeline = PlacementPipeline(CATALOG)
        with pytest.raises(InvalidTerrainError):
            pipeline.arm(
                bad, InputKind.MOUSE, (0, 0), template_id="tree-large"
            )


class TestPlacement:
    def test_tree_on_flat_terrain(self):
        pipeline = PlacementPipeline(CATALOG)
        g = _drag(pipeline, _flat(), "tree-large", (3.2, 4.8))
        assert g.phase is GesturePhase.DRAGGING
        placed = pipeline.commit(g, id_factory=_ids())
        assert g.phase is GesturePhase.COMMITTING
        assert placed.id == "el-0"
        assert placed.template_id == "tree-large"
        assert placed.position == pytest.approx((3.2, 0.0, 4.8))
        assert placed.rotation == (0.0, 0.0, 0.0)
        assert placed.scale == (1.0, 1.0, 1.0)

    def test_parking_off_terrain(self):
        pipeline = PlacementPipeline(CATALOG)
        g = _drag(pipeline, _flat(), "parking", (60, 60))
        assert g.candidate is None
        assert pipeline.commit(g) is None

    def test_projection_miss(self):
        pipeline = PlacementPipeline(CATALOG)
        g = _drag(pipeline, _flat(), "tree-large", (3, 3), project=miss)
        assert g.candidate is None

    def test_elevation_follows_every_move(self):
        pipeline = PlacementPipeline(CATALOG)
        terrain = _slope()
        g = pipeline.arm(
            terrain, InputKind.MOUSE, (0, 0), template_id="tree-large"
        )
        for x, z in [(10, 10), (20, 5), (3.2, 4.8)]:
            c = pipeline.update(g, terrain, (x, z), identity)
            assert c.position[1] == pytest.approx(0.5 * x + 0.25 * z)

    def test_last_move_decides(self):
        pipeline = PlacementPipeline(CATALOG)
        g = _drag(pipeline, _flat(), "tree-large", (10, 10), (70, 70))
        assert pipeline.commit(g) is None
        g = _drag(pipeline, _flat(), "tree-large", (70, 70), (10, 10))
        assert pipeline.commit(g).position == pytest.approx((10, 0, 10))

    def test_partial_overlap_accepted(self):
        pipeline = PlacementPipeline(CATALOG)
        g = _drag(pipeline, _flat(), "parking", (51, 25))
        assert g.candidate is not None
        assert g.candidate.scale == (5.0, 0.1, 5.0)

    def test_grid_snap(self):
        settings = EditorSettings(grid_snap=GridSnap(enabled=True))
        pipeline = PlacementPipeline(CATALOG, settings)
        g = _drag(pipeline, _flat(), "tree-large", (3.2, 4.8))
        assert g.candidate.position == pytest.approx((3.0, 0.0, 5.0))


class TestReposition:
    def _element(self):
        return PlacedElement(
            id="e1",
            template_id="tree-large",
            position=(5.0, 0.0, 5.0),
            rotation=(0.0, 30.0, 0.0),
            scale=(2.0, 2.0, 2.0),
        )

    def test_keeps_id_and_shape(self):
        pipeline = PlacementPipeline(CATALOG)
        terrain = _slope()
        element = self._element()
        g = pipeline.arm(terrain, InputKind.MOUSE, (5, 5), element=element)
        pipeline.update(g, terrain, (12, 8), identity, element)
        moved = pipeline.commit(g, element)
        assert moved.id == "e1"
        assert moved.rotation == element.rotation
        assert moved.scale == element.scale
        assert moved.position == pytest.approx((12, 8.0, 8))

    def test_commit_is_idempotent(self):
        pipeline = PlacementPipeline(CATALOG)
        terrain = _flat()
        element = self._element()
        g = pipeline.arm(terrain, InputKind.MOUSE, (5, 5), element=element)
        pipeline.update(g, terrain, (12, 8), identity, element)
        first = pipeline.commit(g, element)
        second = pipeline.commit(g, element)
        assert first == second

    def test_missing_element(self):
        pipeline = PlacementPipeline(CATALOG)
        terrain = _flat()
        element = self._element()
        g = pipeline.arm(terrain, InputKind.MOUSE, (5, 5), element=element)
        with pytest.raises(NotFoundError):
            pipeline.update(g, terrain, (12, 8), identity)


class TestExplicitEdits:
    def test_move_to_resamples_elevation(self):
        pipeline = PlacementPipeline(CATALOG)
        element = PlacedElement("e1", "tree-large", (5.0, 3.75, 5.0))
        moved = pipeline.move_to(element, _slope(), 20, 10)
        assert moved.position == pytest.approx((20, 12.5, 10))
        assert pipeline.move_to(element, _slope(), 80, 80) is None

    def test_rotate(self):
        pipeline = PlacementPipeline(CATALOG)
        element = PlacedElement("e1", "tree-large", (5.0, 0.0, 5.0))
        rotated = pipeline.rotate(element, _flat(), (0.0, 45.0, 0.0))
        assert rotated.rotation == (0.0, 45.0, 0.0)
        assert rotated.position == element.position

    def test_rescale_off_terrain_rejected(self):
        pipeline = PlacementPipeline(CATALOG)
        # Hanging 0.1 over the east edge; shrinking lifts it off entirely.
        element = PlacedElement("e1", "tree-large", (50.4, 0.0, 25.0))
        assert pipeline.rescale(element, _flat(), (2.0, 1.0, 2.0)) is not None
        assert pipeline.rescale(element, _flat(), (0.1, 1.0, 0.1)) is None

    def test_rescale_must_be_positive(self):
        pipeline = PlacementPipeline(CATALOG)
        element = PlacedElement("e1", "tree-large", (5.0, 0.0, 5.0))
        with pytest.raises(ValueError):
            pipeline.rescale(element, _flat(), (1.0, 0.0, 1.0))
