from __future__ import annotations

from pathlib import Path

from bunghole.services.window_state import WindowBounds, WindowBoundsStore


def test_missing_file_uses_default_bounds(tmp_path: Path) -> None:
    assert WindowBoundsStore(tmp_path / "defaults.json").load() == WindowBounds()


def test_bounds_round_trip(tmp_path: Path) -> None:
    store = WindowBoundsStore(tmp_path / "defaults.json")
    bounds = WindowBounds(width=1200, height=800, x=40, y=25)

    store.save(bounds)

    assert store.load() == bounds


def test_invalid_values_fall_back_per_field() -> None:
    bounds = WindowBounds.from_payload({"width": "wide", "height": "640", "x": None})

    assert bounds == WindowBounds(width=900, height=640, x=0, y=0)
