"""Scene/selection state machine and the committed element set.

States and transitions:

    idle     --start_drag-->  dragging
    dragging --commit------>  selected
    dragging --cancel_drag->  idle
    selected --begin_edit-->  editing
    editing  --finish_edit->  selected
    selected --deselect---->  idle

``select`` works from idle or selected; ``delete`` removes an element and
returns to idle from any state (discarding an in-flight gesture). Any
other transition raises ``InvalidTransitionError``.

The scene owns the single ``GestureState`` of an in-progress drag; render
code reads it through ``gesture`` and never keeps its own copy. The
committed set only changes on ``commit``, ``finish_edit`` and ``delete``,
so a cancelled or rejected drag can never leave a partial element behind.

Each committed change records a ``SceneUndo`` token (what changed and the
previous element, if any). ``undo`` reverts the latest one without
keeping copies of the whole scene.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from .bounds import element_at
from .errors import InvalidTransitionError, NotFoundError
from .types import GestureState, PlacedElement

logger = logging.getLogger(__name__)


class SceneState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    SELECTED = "selected"
    EDITING = "editing"


@dataclass
class SceneUndo:
    action: str  # "add", "update", "delete"
    element_id: str
    old_element: PlacedElement | None = None
    old_index: int = -1


class SceneStateMachine:
    def __init__(self, elements: Iterable[PlacedElement] = ()) -> None:
        self._elements: dict[str, PlacedElement] = {}
        for e in elements:
            if e.id in self._elements:
                raise ValueError(f"Duplicate element id: {e.id}")
            self._elements[e.id] = e
        self.state = SceneState.IDLE
        self.gesture: GestureState | None = None
        self.selected_id: str | None = None
        self.hovered_id: str | None = None
        self._undo: list[SceneUndo] = []

    # -- queries --

    @property
    def elements(self) -> list[PlacedElement]:
        return list(self._elements.values())

    @property
    def selected(self) -> PlacedElement | None:
        if self.selected_id is None:
            return None
        return self._elements.get(self.selected_id)

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    def __len__(self) -> int:
        return len(self._elements)

    def __contains__(self, element_id: object) -> bool:
        return element_id in self._elements

    def get(self, element_id: str) -> PlacedElement:
        try:
            return self._elements[element_id]
        except KeyError:
            raise NotFoundError(
                f"Unknown placed element: {element_id!r}"
            ) from None

    def hit_test(self, x: float, z: float) -> PlacedElement | None:
        return element_at(self._elements.values(), x, z)

    # -- transitions --

    def _require(self, *states: SceneState, action: str) -> None:
        if self.state not in states:
            raise InvalidTransitionError(
                f"Cannot {action} while {self.state.value}"
            )

    def start_drag(self, gesture: GestureState) -> None:
        self._require(SceneState.IDLE, action="start a drag")
        if (
            gesture.dragged_element_id is not None
            and gesture.dragged_element_id not in self._elements
        ):
            raise NotFoundError(
                f"Unknown placed element: {gesture.dragged_element_id!r}"
            )
        self.gesture = gesture
        self.state = SceneState.DRAGGING

    def commit(self, element: PlacedElement) -> PlacedElement:
        """Upsert the dragged element and select it."""
        self._require(SceneState.DRAGGING, action="commit")
        self._record_upsert(element)
        self._elements[element.id] = element
        self.gesture = None
        self.selected_id = element.id
        self.state = SceneState.SELECTED
        logger.info(
            f"Committed element {element.id} ({element.template_id}) at "
            f"{element.position}"
        )
        return element

    def cancel_drag(self) -> None:
        self._require(SceneState.DRAGGING, action="cancel a drag")
        self.gesture = None
        self.state = SceneState.IDLE

    def select(self, element_id: str) -> PlacedElement:
        self._require(SceneState.IDLE, SceneState.SELECTED, action="select")
        element = self.get(element_id)
        self.selected_id = element_id
        self.state = SceneState.SELECTED
        return element

    def deselect(self) -> None:
        if self.state is SceneState.IDLE:
            return
        self._require(SceneState.SELECTED, action="deselect")
        self.selected_id = None
        self.state = SceneState.IDLE

    def begin_edit(self) -> PlacedElement:
        self._require(SceneState.SELECTED, action="begin editing")
        self.state = SceneState.EDITING
        return self.get(self.selected_id)

    def finish_edit(self, updated: PlacedElement | None = None) -> None:
        """Leave editing, optionally replacing the selected element."""
        self._require(SceneState.EDITING, action="finish editing")
        if updated is not None:
            if updated.id != self.selected_id:
                raise ValueError(
                    f"Edited element {updated.id} is not the selection "
                    f"{self.selected_id}"
                )
            self._record_upsert(updated)
            self._elements[updated.id] = updated
        self.state = SceneState.SELECTED

    def delete(self, element_id: str) -> PlacedElement:
        """Remove an element; always ends in idle."""
        element = self.get(element_id)
        index = list(self._elements).index(element_id)
        del self._elements[element_id]
        self._undo.append(SceneUndo("delete", element_id, element, index))
        self.gesture = None
        self.selected_id = None
        if self.hovered_id == element_id:
            self.hovered_id = None
        self.state = SceneState.IDLE
        logger.info(f"Deleted element {element_id}")
        return element

    def hover(self, element_id: str | None) -> None:
        if element_id is not None and element_id not in self._elements:
            raise NotFoundError(f"Unknown placed element: {element_id!r}")
        self.hovered_id = element_id

    def undo(self) -> bool:
        """Revert the latest committed change. Returns False if none."""
        if self.state is SceneState.DRAGGING:
            raise InvalidTransitionError("Cannot undo while dragging")
        if not self._undo:
            return False
        step = self._undo.pop()
        if step.action == "add":
            self._elements.pop(step.element_id, None)
        elif step.action == "update":
            self._elements[step.element_id] = step.old_element
        elif step.action == "delete":
            items = list(self._elements.items())
            items.insert(step.old_index, (step.element_id, step.old_element))
            self._elements = dict(items)
        self.selected_id = None
        self.hovered_id = None
        self.state = SceneState.IDLE
        return True

    def _record_upsert(self, element: PlacedElement) -> None:
        old = self._elements.get(element.id)
        if old is None:
            self._undo.append(SceneUndo("add", element.id))
        else:
            self._undo.append(SceneUndo("update", element.id, old))

    # -- serialization --

    def snapshot(self) -> list[dict]:
        return [e.to_dict() for e in self._elements.values()]
