"""Atomic JSON persistence helpers for the files kept under the app data folder."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

__all__ = ["read_json", "write_json", "discard_file"]

LOGGER = logging.getLogger(__name__)


def read_json(path: Path | str) -> Any | None:
    """Return the decoded document at ``path``.

    Missing files and undecodable content both yield ``None``; the caller
    decides what its defaults are.
    """

    target = Path(path)
    try:
        text = target.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as exc:
        LOGGER.warning("Unable to read %s: %s", target, exc)
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        LOGGER.warning("%s is not valid JSON: %s", target, exc)
        return None


def write_json(path: Path | str, payload: Any, *, indent: int | None = 2) -> Path:
    """Replace ``path`` with ``payload`` in one step (temp file + ``os.replace``)."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    body = json.dumps(payload, indent=indent, ensure_ascii=False)
    descriptor, tmp_name = tempfile.mkstemp(
        dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(descriptor, "w", encoding="utf-8") as handle:
            handle.write(body)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    finally:
        if os.path.exists(tmp_name):  # pragma: no cover - cleanup path
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
    return target


def discard_file(path: Path | str) -> bool:
    """Delete ``path`` if present; return whether something was removed."""

    target = Path(path)
    try:
        target.unlink()
    except FileNotFoundError:
        return False
    LOGGER.debug("Removed stale file %s", target)
    return True
