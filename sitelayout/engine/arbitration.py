"""Input arbitration: pick exactly one authoritative drag stream.

Three sources can report raw activity at the same time: a coarse pointer
(mouse), a touch surface and a precision pointer (pen/stylus). Each has an
activation constraint that must be met before its movement counts as a
drag rather than noise:

  * **mouse** — 10 units of displacement from the press point.
  * **pointer** — 8 units of displacement.
  * **touch** — a 250 ms hold during which the finger drifts at most 5
    units. Drifting further before the delay elapses aborts the press
    (it was a scroll, not a drag).

Once any source satisfies its constraint it is *armed* and every other
source is ignored until that gesture is released or cancelled. Activation
is checked after every raw event, so the first source to qualify wins; when
several qualify on the same event the winner is chosen by priority
``mouse > pointer > touch`` (the declaration order of ``InputKind``). A
press released before activation is reported as a ``tap`` and never arms.

``constraint_satisfied`` and ``arbitrate`` are pure functions over press
trackers; ``InputArbiter`` owns the trackers and folds one tick of raw
events at a time. There is no drag timeout.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum

from .types import InputKind, ScreenPoint

logger = logging.getLogger(__name__)

PRIORITY: tuple[InputKind, ...] = (
    InputKind.MOUSE,
    InputKind.POINTER,
    InputKind.TOUCH,
)


class InputAction(str, Enum):
    DOWN = "down"
    MOVE = "move"
    UP = "up"
    CANCEL = "cancel"


@dataclass(frozen=True)
class ActivationConstraint:
    distance: float | None = None
    delay_ms: float | None = None
    tolerance: float | None = None

    @staticmethod
    def from_dict(d: dict | None) -> ActivationConstraint:
        if not d:
            return ActivationConstraint()
        return ActivationConstraint(
            distance=d.get("distance"),
            delay_ms=d.get("delay_ms"),
            tolerance=d.get("tolerance"),
        )

    def to_dict(self) -> dict:
        d: dict = {}
        if self.distance is not None:
            d["distance"] = self.distance
        if self.delay_ms is not None:
            d["delay_ms"] = self.delay_ms
        if self.tolerance is not None:
            d["tolerance"] = self.tolerance
        return d


@dataclass(frozen=True)
class InputSource:
    kind: InputKind
    constraint: ActivationConstraint


DEFAULT_SOURCES: tuple[InputSource, ...] = (
    InputSource(InputKind.MOUSE, ActivationConstraint(distance=10.0)),
    InputSource(InputKind.POINTER, ActivationConstraint(distance=8.0)),
    InputSource(
        InputKind.TOUCH, ActivationConstraint(delay_ms=250.0, tolerance=5.0)
    ),
)


@dataclass(frozen=True)
class RawInputEvent:
    kind: InputKind
    action: InputAction
    point: ScreenPoint
    timestamp_ms: float = 0.0


@dataclass
class PressTracker:
    """One in-progress press on a source that has not armed yet."""

    origin: ScreenPoint
    current: ScreenPoint
    down_ms: float
    max_drift: float = 0.0  # during the hold window only

    @property
    def displacement(self) -> float:
        return _distance(self.origin, self.current)


@dataclass(frozen=True)
class ArbitrationEvent:
    type: str  # "armed", "moved", "released", "cancelled", "tap"
    kind: InputKind
    point: ScreenPoint
    origin: ScreenPoint | None = None


def _distance(a: ScreenPoint, b: ScreenPoint) -> float:
    return math.hypot(b[0] - a[0], b[1] - a[1])


def _drifted(constraint: ActivationConstraint, tracker: PressTracker) -> bool:
    return (
        constraint.tolerance is not None
        and tracker.max_drift > constraint.tolerance
    )


def constraint_satisfied(
    constraint: ActivationConstraint, tracker: PressTracker, now_ms: float
) -> bool:
    """True if a press meets its source's activation constraint."""
    if constraint.delay_ms is not None:
        if _drifted(constraint, tracker):
            return False
        return now_ms - tracker.down_ms >= constraint.delay_ms
    if constraint.distance is not None:
        return tracker.displacement >= constraint.distance
    return True


def arbitrate(
    sources: Sequence[InputSource],
    trackers: Mapping[InputKind, PressTracker],
    now_ms: float,
) -> InputKind | None:
    """The source to arm this tick, or None if none qualifies."""
    qualifying = [
        s.kind
        for s in sources
        if s.kind in trackers
        and constraint_satisfied(s.constraint, trackers[s.kind], now_ms)
    ]
    if not qualifying:
        return None
    return min(qualifying, key=PRIORITY.index)


class InputArbiter:
    def __init__(self, sources: Sequence[InputSource] = DEFAULT_SOURCES):
        self.sources = tuple(sources)
        self._constraints = {s.kind: s.constraint for s in self.sources}
        self._trackers: dict[InputKind, PressTracker] = {}
        self._active: InputKind | None = None
        self._origin: ScreenPoint | None = None
        self._current: ScreenPoint | None = None
        self._now = 0.0

    @property
    def active_kind(self) -> InputKind:
        return self._active if self._active is not None else InputKind.NONE

    @property
    def is_armed(self) -> bool:
        return self._active is not None

    def tick(
        self, events: Iterable[RawInputEvent], now_ms: float | None = None
    ) -> list[ArbitrationEvent]:
        """Fold one tick of raw events into arbitration events.

        Activation is checked after every event, so a press that qualifies
        and is released within the same tick still arms before its ``UP``
        is reported as ``released``. Sources that qualify on the same event
        are tie-broken by priority.
        """
        events = list(events)
        if now_ms is None:
            now_ms = max(
                (e.timestamp_ms for e in events), default=self._now
            )
        clock = self._now
        self._now = max(self._now, now_ms)

        out: list[ArbitrationEvent] = []
        for ev in events:
            if ev.kind not in self._constraints:
                logger.debug(f"Ignoring event from unknown source {ev.kind}")
                continue
            clock = min(max(clock, ev.timestamp_ms), self._now)
            if self._active is not None:
                if ev.kind is self._active:
                    self._handle_active(ev, out)
                continue
            self._track(ev, out)
            self._try_arm(clock, out)

        if self._active is None:
            self._try_arm(self._now, out)
        return out

    def _try_arm(self, now_ms: float, out: list[ArbitrationEvent]) -> None:
        winner = arbitrate(self.sources, self._trackers, now_ms)
        if winner is None:
            return
        tracker = self._trackers[winner]
        self._active = winner
        self._origin = tracker.origin
        self._current = tracker.current
        # Other sources are ignored until this gesture resolves.
        self._trackers.clear()
        logger.debug(f"Armed {winner.value} gesture")
        out.append(
            ArbitrationEvent("armed", winner, tracker.current, tracker.origin)
        )

    def cancel(self) -> ArbitrationEvent | None:
        """Cancel the armed gesture (e.g. escape key), if any."""
        self._trackers.clear()
        if self._active is None:
            return None
        event = ArbitrationEvent(
            "cancelled", self._active, self._current, self._origin
        )
        self._resolve()
        return event

    def _resolve(self) -> None:
        self._active = None
        self._origin = None
        self._current = None
        self._trackers.clear()

    def _handle_active(
        self, ev: RawInputEvent, out: list[ArbitrationEvent]
    ) -> None:
        kind = ev.kind
        if ev.action is InputAction.MOVE:
            self._current = ev.point
            out.append(ArbitrationEvent("moved", kind, ev.point, self._origin))
        elif ev.action is InputAction.UP:
            out.append(
                ArbitrationEvent("released", kind, ev.point, self._origin)
            )
            self._resolve()
        elif ev.action is InputAction.CANCEL:
            out.append(
                ArbitrationEvent("cancelled", kind, ev.point, self._origin)
            )
            self._resolve()

    def _track(self, ev: RawInputEvent, out: list[ArbitrationEvent]) -> None:
        kind = ev.kind
        if ev.action is InputAction.DOWN:
            self._trackers[kind] = PressTracker(
                origin=ev.point, current=ev.point, down_ms=ev.timestamp_ms
            )
            return

        tracker = self._trackers.get(kind)
        if tracker is None:
            return
        if ev.action is InputAction.MOVE:
            tracker.current = ev.point
            constraint = self._constraints[kind]
            if (
                constraint.delay_ms is None
                or ev.timestamp_ms - tracker.down_ms < constraint.delay_ms
            ):
                tracker.max_drift = max(
                    tracker.max_drift, tracker.displacement
                )
        elif ev.action is InputAction.UP:
            del self._trackers[kind]
            if not _drifted(self._constraints[kind], tracker):
                out.append(ArbitrationEvent("tap", kind, ev.point))
        elif ev.action is InputAction.CANCEL:
            del self._trackers[kind]
