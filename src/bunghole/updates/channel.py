"""Check, offer, download and hand off application updates."""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from enum import Enum
from pathlib import Path
from typing import Callable

import httpx

from ..errors import StreamError, UpdateCheckError, UserCancelled
from ..orchestration.events import (
    EventBus,
    InstallerLaunched,
    UpdateAvailable,
    UpdateDownloaded,
    UpdateFailed,
    UpdateNotAvailable,
)
from ..orchestration.models import DecisionProvider
from .descriptor import RELEASES_URL, UpdateDescriptor, fetch_descriptor, is_newer
from .downloader import UpdateDownloader

__all__ = ["UpdateState", "UpdateChannel", "OSHandoff"]

LOGGER = logging.getLogger(__name__)


class UpdateState(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    UP_TO_DATE = "up-to-date"
    OFFERING = "offering"
    DOWNLOADING = "downloading"
    DOWNLOADED = "downloaded"
    INSTALLING = "installing"


class OSHandoff:
    """Passes a downloaded installer to the operating system.

    Windows and macOS open the package and the application quits so the
    installer can replace it; on Linux the file is shown in its folder.
    """

    def __init__(self, platform: str | None = None) -> None:
        self._platform = platform or sys.platform

    @property
    def quits_after_launch(self) -> bool:
        return self._platform.startswith(("win", "darwin"))

    def launch(self, path: Path) -> bool:
        """Hand ``path`` to the OS; return whether the application should now quit."""

        if self._platform.startswith("win"):
            os.startfile(str(path))  # type: ignore[attr-defined]
        elif self._platform.startswith("darwin"):
            subprocess.Popen(["open", str(path)])
        else:
            subprocess.Popen(["xdg-open", str(path.parent)])
        return self.quits_after_launch


class UpdateChannel:
    def __init__(
        self,
        client: httpx.AsyncClient,
        bus: EventBus,
        decisions: DecisionProvider,
        downloader: UpdateDownloader,
        *,
        current_version: str,
        handoff: OSHandoff | None = None,
        releases_url: str = RELEASES_URL,
        platform: str | None = None,
        on_quit: Callable[[], None] | None = None,
    ) -> None:
        self._client = client
        self._bus = bus
        self._decisions = decisions
        self._downloader = downloader
        self._current_version = current_version
        self._handoff = handoff or OSHandoff(platform)
        self._releases_url = releases_url
        self._platform = platform
        self._on_quit = on_quit
        self._state = UpdateState.IDLE
        self._busy = False
        self.latest: UpdateDescriptor | None = None

    @property
    def state(self) -> UpdateState:
        return self._state

    @property
    def current_version(self) -> str:
        return self._current_version

    async def check(self, *, manual: bool = False) -> UpdateState:
        """Look for a newer release and walk it through offer, download and hand-off.

        A background check (``manual=False``) never reports failures or
        "up to date" to the user. Only one check runs at a time; a manual
        request made meanwhile is answered with :class:`UpdateFailed`.
        """

        if self._busy:
            LOGGER.info("Update check already running (%s); ignoring request", self._state.value)
            if manual:
                self._bus.publish(UpdateFailed("An update check is already in progress."))
            return self._state
        self._busy = True
        try:
            return await self._check(manual)
        finally:
            self._busy = False

    async def _check(self, manual: bool) -> UpdateState:
        self._state = UpdateState.CHECKING
        try:
            descriptor = await fetch_descriptor(
                self._client, url=self._releases_url, platform=self._platform
            )
        except UpdateCheckError as exc:
            self._state = UpdateState.IDLE
            if manual:
                LOGGER.warning("Update check failed: %s", exc)
                self._bus.publish(UpdateFailed(str(exc)))
            else:
                LOGGER.debug("Background update check failed: %s", exc)
            return self._state

        self.latest = descriptor
        if not is_newer(self._current_version, descriptor.latest_version):
            LOGGER.info("Version %s is current", self._current_version)
            self._state = UpdateState.UP_TO_DATE
            if manual:
                self._bus.publish(UpdateNotAvailable(self._current_version))
            return self._state

        LOGGER.info("Update available: %s -> %s", self._current_version, descriptor.latest_version)
        self._state = UpdateState.OFFERING
        self._bus.publish(
            UpdateAvailable(self._current_version, descriptor.latest_version, descriptor.download_url)
        )
        try:
            accepted = await self._decisions.confirm_download(descriptor)
        except UserCancelled:
            accepted = False
        if not accepted:
            LOGGER.debug("Update to %s declined", descriptor.latest_version)
            self._state = UpdateState.IDLE
            return self._state
        return await self.install(descriptor)

    async def install(self, descriptor: UpdateDescriptor) -> UpdateState:
        self._state = UpdateState.DOWNLOADING
        try:
            path = await self._downloader.download(descriptor)
        except StreamError as exc:
            LOGGER.warning("Update download failed: %s", exc)
            self._state = UpdateState.IDLE
            self._bus.publish(UpdateFailed(str(exc)))
            return self._state

        self._state = UpdateState.DOWNLOADED
        self._bus.publish(UpdateDownloaded(str(path), descriptor.latest_version))

        self._state = UpdateState.INSTALLING
        try:
            quitting = self._handoff.launch(path)
        except OSError as exc:
            LOGGER.error("Unable to open %s: %s", path, exc)
            self._state = UpdateState.DOWNLOADED
            self._bus.publish(UpdateFailed(str(exc)))
            return self._state

        self._bus.publish(InstallerLaunched(str(path), quitting))
        if quitting and self._on_quit is not None:
            self._on_quit()
        return self._state
