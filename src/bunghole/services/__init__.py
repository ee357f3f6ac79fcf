"""Persistence services: preferences, recent files and window geometry."""

from .paths import AppPaths
from .preferences import Preferences, PreferencesStore, SecretVault
from .recent_files import MAX_RECENT_FILES, RecentFilesLedger
from .window_state import WindowBounds, WindowBoundsStore

__all__ = [
    "AppPaths",
    "MAX_RECENT_FILES",
    "Preferences",
    "PreferencesStore",
    "RecentFilesLedger",
    "SecretVault",
    "WindowBounds",
    "WindowBoundsStore",
]
