"""Tests for editor settings loading."""

import json

import pytest

from sitelayout.engine.arbitration import DEFAULT_SOURCES
from sitelayout.engine.config import EditorSettings, GridSnap, load_settings
from sitelayout.engine.terrain import ResampleMode
from sitelayout.engine.types import InputKind


def _constraint(settings, kind):
    return next(s.constraint for s in settings.input_sources if s.kind is kind)


def test_defaults():
    s = EditorSettings()
    assert s.input_sources == DEFAULT_SOURCES
    assert _constraint(s, InputKind.MOUSE).distance == 10
    assert _constraint(s, InputKind.POINTER).distance == 8
    touch = _constraint(s, InputKind.TOUCH)
    assert (touch.delay_ms, touch.tolerance) == (250, 5)
    assert not s.grid_snap.enabled
    assert s.resample_mode is ResampleMode.BILINEAR


def test_empty_dict_is_defaults():
    assert EditorSettings.from_dict({}) == EditorSettings()
    assert EditorSettings.from_dict(None) == EditorSettings()


def test_partial_override():
    s = EditorSettings.from_dict(
        {
            "input_sources": {"touch": {"delay_ms": 300, "tolerance": 4}},
            "grid_snap": {"enabled": True, "grid_size": 0.5},
            "resample_mode": "nearest",
        }
    )
    touch = _constraint(s, InputKind.TOUCH)
    assert (touch.delay_ms, touch.tolerance) == (300, 4)
    assert _constraint(s, InputKind.MOUSE).distance == 10
    assert s.grid_snap == GridSnap(enabled=True, grid_size=0.5)
    assert s.resample_mode is ResampleMode.NEAREST


def test_source_order_is_priority_order():
    s = EditorSettings.from_dict({"input_sources": {"touch": {}}})
    assert [src.kind for src in s.input_sources] == [
        InputKind.MOUSE,
        InputKind.POINTER,
        InputKind.TOUCH,
    ]


def test_unknown_source():
    with pytest.raises(ValueError, match="gamepad"):
        EditorSettings.from_dict({"input_sources": {"gamepad": {}}})


def test_bad_revision_limit():
    with pytest.raises(ValueError):
        EditorSettings.from_dict({"max_terrain_revisions": 0})


def test_dict_roundtrip():
    s = EditorSettings.from_dict(
        {
            "grid_snap": {
                "enabled": True,
                "grid_size": 2.0,
                "snap_threshold": 0.25,
            },
            "rotation_granularity_deg": 45,
            "max_terrain_revisions": 10,
        }
    )
    assert EditorSettings.from_dict(s.to_dict()) == s


def test_load_settings(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"input_sources": {"mouse": {"distance": 4}}}))
    s = load_settings(path)
    assert _constraint(s, InputKind.MOUSE).distance == 4
