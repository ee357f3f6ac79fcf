"""Bounded most-recently-used list of alignment files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Mapping

from ..utils.file_io import read_json, write_json

__all__ = ["RecentFilesLedger", "MAX_RECENT_FILES"]

LOGGER = logging.getLogger(__name__)
MAX_RECENT_FILES = 5


class RecentFilesLedger:
    """Persists up to five distinct paths, most recent first, as ``{"files": [...]}``.

    Repeated entries and entries whose file has disappeared are dropped when
    the list is read, but the pruned list is only written back by the next
    :meth:`record`.
    """

    def __init__(
        self,
        path: Path,
        *,
        exists: Callable[[str], bool] | None = None,
        limit: int = MAX_RECENT_FILES,
    ) -> None:
        self._path = path
        self._exists = exists or (lambda candidate: Path(candidate).exists())
        self._limit = max(1, limit)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[str]:
        payload = read_json(self._path)
        if not isinstance(payload, Mapping):
            return []
        files = payload.get("files")
        if not isinstance(files, list):
            return []
        unique: list[str] = []
        for entry in files:
            if isinstance(entry, str) and entry not in unique and self._exists(entry):
                unique.append(entry)
        return unique[: self._limit]

    def record(self, path: Path | str) -> list[str]:
        entry = str(path)
        files = [candidate for candidate in self.load() if candidate != entry]
        files.insert(0, entry)
        del files[self._limit :]
        write_json(self._path, {"files": files}, indent=None)
        LOGGER.debug("Recent files updated: %s", files)
        return files
