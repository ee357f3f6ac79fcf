"""Locations of the documents the client persists between sessions."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

__all__ = ["AppPaths", "default_app_data_dir", "default_downloads_dir"]

_APP_DATA_ENV = "BUNGHOLE_APP_DATA"


def default_app_data_dir() -> Path:
    override = os.environ.get(_APP_DATA_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".bunghole"


def default_downloads_dir() -> Path:
    downloads = Path.home() / "Downloads"
    return downloads if downloads.is_dir() else Path.home()


@dataclass(slots=True, frozen=True)
class AppPaths:
    """The three wholesale-written JSON documents plus the log and download folders."""

    root: Path
    downloads: Path

    @classmethod
    def resolve(cls, root: Path | str | None = None, *, downloads: Path | str | None = None) -> "AppPaths":
        base = Path(root).expanduser() if root else default_app_data_dir()
        target = Path(downloads).expanduser() if downloads else default_downloads_dir()
        return cls(root=base, downloads=target)

    @property
    def preferences(self) -> Path:
        return self.root / "preferences.json"

    @property
    def recent_files(self) -> Path:
        return self.root / "recent.json"

    @property
    def window_bounds(self) -> Path:
        return self.root / "defaults.json"

    @property
    def secret_key(self) -> Path:
        return self.root / "preferences.key"

    @property
    def logs(self) -> Path:
        return self.root / "logs"
