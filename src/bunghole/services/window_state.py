"""Main window geometry remembered across launches (``defaults.json``)."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Mapping

from ..utils.file_io import read_json, write_json

__all__ = ["WindowBounds", "WindowBoundsStore"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class WindowBounds:
    width: int = 900
    height: int = 700
    x: int = 0
    y: int = 0

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "WindowBounds":
        defaults = cls()
        values: dict[str, int] = {}
        for name in ("width", "height", "x", "y"):
            raw = payload.get(name, getattr(defaults, name))
            try:
                values[name] = int(raw)
            except (TypeError, ValueError):
                values[name] = getattr(defaults, name)
        return cls(**values)


class WindowBoundsStore:
    def __init__(self, path: Path) -> None:
        self._path = path

    def load(self) -> WindowBounds:
        payload = read_json(self._path)
        if not isinstance(payload, Mapping):
            return WindowBounds()
        return WindowBounds.from_payload(payload)

    def save(self, bounds: WindowBounds) -> None:
        write_json(self._path, asdict(bounds), indent=None)
        LOGGER.debug("Window bounds saved: %s", bounds)
