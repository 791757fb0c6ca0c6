"""Editor settings: input thresholds, snapping and terrain revision policy.

Settings are plain dataclasses loaded from a JSON dict, mirroring how the
placement engine's other records are read. Every field has a default, so
``EditorSettings()`` is a complete configuration and a settings file only
needs the keys it overrides::

    {
      "input_sources": {"touch": {"delay_ms": 300, "tolerance": 4}},
      "grid_snap": {"enabled": true, "grid_size": 0.5},
      "resample_mode": "nearest"
    }
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

from .arbitration import DEFAULT_SOURCES, ActivationConstraint, InputSource
from .terrain import ResampleMode


@dataclass
class GridSnap:
    enabled: bool = False
    grid_size: float = 1.0
    # None snaps unconditionally; otherwise only values whose remainder
    # is below the threshold snap down to the grid line.
    snap_threshold: float | None = None

    @staticmethod
    def from_dict(d: dict | None) -> GridSnap:
        if not d:
            return GridSnap()
        return GridSnap(
            enabled=bool(d.get("enabled", False)),
            grid_size=float(d.get("grid_size", 1.0)),
            snap_threshold=d.get("snap_threshold"),
        )

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "grid_size": self.grid_size,
            "snap_threshold": self.snap_threshold,
        }


@dataclass
class EditorSettings:
    input_sources: tuple[InputSource, ...] = DEFAULT_SOURCES
    grid_snap: GridSnap = field(default_factory=GridSnap)
    resample_mode: ResampleMode = ResampleMode.BILINEAR
    rotation_granularity_deg: float = 15.0
    max_terrain_revisions: int = 50

    @staticmethod
    def from_dict(d: dict | None) -> EditorSettings:
        if not d:
            return EditorSettings()
        overrides = d.get("input_sources", {})
        unknown = set(overrides) - {s.kind.value for s in DEFAULT_SOURCES}
        if unknown:
            raise ValueError(f"Unknown input sources: {sorted(unknown)}")
        sources = tuple(
            InputSource(
                s.kind,
                ActivationConstraint.from_dict(overrides[s.kind.value])
                if s.kind.value in overrides
                else s.constraint,
            )
            for s in DEFAULT_SOURCES
        )
        max_revisions = int(d.get("max_terrain_revisions", 50))
        if max_revisions < 1:
            raise ValueError("max_terrain_revisions must be >= 1")
        return EditorSettings(
            input_sources=sources,
            grid_snap=GridSnap.from_dict(d.get("grid_snap")),
            resample_mode=ResampleMode(d.get("resample_mode", "bilinear")),
            rotation_granularity_deg=float(
                d.get("rotation_granularity_deg", 15.0)
            ),
            max_terrain_revisions=max_revisions,
        )

    def to_dict(self) -> dict:
        return {
            "input_sources": {
                s.kind.value: s.constraint.to_dict()
                for s in self.input_sources
            },
            "grid_snap": self.grid_snap.to_dict(),
            "resample_mode": self.resample_mode.value,
            "rotation_granularity_deg": self.rotation_granularity_deg,
            "max_terrain_revisions": self.max_terrain_revisions,
        }


def load_settings(path: Path) -> EditorSettings:
    """Load editor settings from a JSON file."""
    with open(path) as f:
        return EditorSettings.from_dict(json.load(f))
