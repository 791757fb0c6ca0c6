"""Data types matching the sitelayout JSON schema."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

Vec3 = tuple[float, float, float]
ScreenPoint = tuple[float, float]


def _vec3(v: Any, default: Vec3 = (0.0, 0.0, 0.0)) -> Vec3:
    if v is None:
        return default
    x, y, z = v
    return (float(x), float(y), float(z))


class MaterialType(str, Enum):
    SOIL = "soil"
    GRASS = "grass"
    CONCRETE = "concrete"
    PAVEMENT = "pavement"


class ElementType(str, Enum):
    VEGETATION = "vegetation"
    INFRASTRUCTURE = "infrastructure"
    UTILITY = "utility"
    HARDSCAPE = "hardscape"


class InputKind(str, Enum):
    """Input source kinds, declared in arbitration priority order."""

    MOUSE = "mouse"
    POINTER = "pointer"
    TOUCH = "touch"
    NONE = "none"


class GesturePhase(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    DRAGGING = "dragging"
    COMMITTING = "committing"


@dataclass(frozen=True)
class TerrainPoint:
    x: float
    y: float
    z: float

    @staticmethod
    def from_dict(d: dict) -> TerrainPoint:
        return TerrainPoint(
            x=float(d.get("x", 0.0)),
            y=float(d.get("y", 0.0)),
            z=float(d.get("z", 0.0)),
        )

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "z": self.z}


@dataclass(frozen=True)
class ElementTemplate:
    id: str
    name: str
    type: ElementType
    category: str
    description: str = ""
    model_ref: str = ""
    default_scale: Vec3 = (1.0, 1.0, 1.0)
    dimensions: Vec3 = (1.0, 1.0, 1.0)

    @staticmethod
    def from_dict(d: dict) -> ElementTemplate:
        return ElementTemplate(
            id=d["id"],
            name=d.get("name", d["id"]),
            type=ElementType(d["type"]),
            category=d.get("category", ""),
            description=d.get("description", ""),
            model_ref=d.get("model_ref", ""),
            default_scale=_vec3(d.get("default_scale"), (1.0, 1.0, 1.0)),
            dimensions=_vec3(d.get("dimensions"), (1.0, 1.0, 1.0)),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "category": self.category,
            "description": self.description,
            "model_ref": self.model_ref,
            "default_scale": list(self.default_scale),
            "dimensions": list(self.dimensions),
        }


@dataclass(frozen=True)
class PlacedElement:
    id: str
    template_id: str
    position: Vec3
    rotation: Vec3 = (0.0, 0.0, 0.0)
    scale: Vec3 = (1.0, 1.0, 1.0)
    dimensions: Vec3 = (1.0, 1.0, 1.0)
    properties: dict = field(default_factory=dict, compare=False)

    @staticmethod
    def from_dict(d: dict) -> PlacedElement:
        return PlacedElement(
            id=d["id"],
            template_id=d["template_id"],
            position=_vec3(d["position"]),
            rotation=_vec3(d.get("rotation")),
            scale=_vec3(d.get("scale"), (1.0, 1.0, 1.0)),
            dimensions=_vec3(d.get("dimensions"), (1.0, 1.0, 1.0)),
            properties=dict(d.get("properties", {})),
        )

    def to_dict(self) -> dict:
        d: dict = {
            "id": self.id,
            "template_id": self.template_id,
            "position": list(self.position),
            "rotation": list(self.rotation),
            "scale": list(self.scale),
            "dimensions": list(self.dimensions),
        }
        if self.properties:
            d["properties"] = dict(self.properties)
        return d


@dataclass(frozen=True)
class PlacementCandidate:
    """A validated transform produced by one drag movement."""

    position: Vec3
    rotation: Vec3
    scale: Vec3
    dimensions: Vec3


@dataclass
class GestureState:
    active_input_kind: InputKind
    origin_screen_point: ScreenPoint
    current_screen_point: ScreenPoint
    dragged_template_id: str | None = None
    dragged_element_id: str | None = None
    phase: GesturePhase = GesturePhase.ARMED
    candidate: PlacementCandidate | None = None

    @property
    def is_reposition(self) -> bool:
        return self.dragged_element_id is not None


@dataclass
class SiteSettings:
    sun_path: bool = False
    shadows: bool = True
    ground_preparation: bool = False

    @staticmethod
    def from_dict(d: dict | None) -> SiteSettings:
        if not d:
            return SiteSettings()
        return SiteSettings(
            sun_path=bool(d.get("sun_path", False)),
            shadows=bool(d.get("shadows", True)),
            ground_preparation=bool(d.get("ground_preparation", False)),
        )

    def to_dict(self) -> dict:
        return {
            "sun_path": self.sun_path,
            "shadows": self.shadows,
            "ground_preparation": self.ground_preparation,
        }
