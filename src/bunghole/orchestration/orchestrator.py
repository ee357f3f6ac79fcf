"""Single owner of the client-side state: session, operations, preferences, updates."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Mapping

import httpx

from .. import __version__
from ..errors import WorkerProcessError
from ..services.paths import AppPaths
from ..services.preferences import Preferences, PreferencesStore
from ..services.recent_files import RecentFilesLedger
from ..services.window_state import WindowBounds, WindowBoundsStore
from ..updates.channel import OSHandoff, UpdateChannel, UpdateState
from ..updates.downloader import UpdateDownloader
from ..worker.process import WorkerProcess
from ..worker.transport import WorkerClient
from .ai_review import AIReviewer
from .document_ops import DocumentCommands
from .events import EventBus, PreferencesChanged, WorkerExited
from .models import CloseOutcome, DecisionProvider, OperationKind, OperationStatus
from .poller import OperationPoller, Ticker
from .session import SessionGuard

__all__ = ["Orchestrator"]

LOGGER = logging.getLogger(__name__)


class Orchestrator:
    """Wires the worker client, poller, session guard and update channel together.

    The presentation layer keeps one instance, subscribes to :attr:`bus` and
    answers prompts through the :class:`DecisionProvider` it passed in.
    """

    def __init__(
        self,
        paths: AppPaths,
        decisions: DecisionProvider,
        *,
        preferences_store: PreferencesStore | None = None,
        preferences: Preferences | None = None,
        client: WorkerClient | None = None,
        worker: WorkerProcess | None = None,
        http: httpx.AsyncClient | None = None,
        bus: EventBus | None = None,
        ticker: Ticker | None = None,
        install_dir: Path | None = None,
        handoff: OSHandoff | None = None,
        platform: str | None = None,
        on_quit: Callable[[], None] | None = None,
        version: str = __version__,
    ) -> None:
        self.paths = paths
        self.bus = bus or EventBus()
        self._decisions = decisions
        self._install_dir = install_dir
        self._on_quit = on_quit
        self._store = preferences_store or PreferencesStore(paths.preferences, install_dir=install_dir)
        self._preferences = preferences if preferences is not None else self._store.load()

        self.client = client or WorkerClient()
        self.worker = worker
        self._http = http or httpx.AsyncClient()
        self.recent_files = RecentFilesLedger(paths.recent_files)
        self.window_bounds = WindowBoundsStore(paths.window_bounds)
        self._bounds = self.window_bounds.load()
        self._bounds_dirty = False

        self.poller = OperationPoller(self.client, self.bus, ticker=ticker)
        self.guard = SessionGuard(
            self.client,
            self.poller,
            self.bus,
            decisions=decisions,
            ledger=self.recent_files,
            settings=self,
            xml_filter_dir=install_dir / "xmlfilter" if install_dir is not None else None,
            on_quit=self._quit,
        )
        self.commands = DocumentCommands(self.guard, self.bus, self)
        self.ai = AIReviewer(self.guard, self.bus, self)
        self.updates = UpdateChannel(
            self._http,
            self.bus,
            decisions,
            UpdateDownloader(self._http, paths.downloads, bus=self.bus),
            current_version=version,
            handoff=handoff,
            platform=platform,
            on_quit=self._quit,
        )

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------
    @property
    def preferences(self) -> Preferences:
        return self._preferences

    def update_preferences(self, preferences: Preferences) -> None:
        """Replace the preferences wholesale and persist them."""

        self._preferences = preferences
        self._store.save(preferences)
        self.bus.publish(PreferencesChanged(preferences))

    # ------------------------------------------------------------------
    # Window geometry
    # ------------------------------------------------------------------
    @property
    def bounds(self) -> WindowBounds:
        return self._bounds

    def window_bounds_changed(self, bounds: WindowBounds) -> None:
        """Remember the main window geometry; written by :meth:`shutdown`."""

        if bounds != self._bounds:
            self._bounds = bounds
            self._bounds_dirty = True

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------
    async def ensure_worker(self) -> None:
        """Start the supervised worker if needed and wait until it answers."""

        worker = self.worker
        if worker is None:
            return
        if worker.crashed:
            raise WorkerProcessError(f"Worker exited unexpectedly (code {worker.returncode})")
        if not worker.is_ready:
            await worker.ready()

    def attach_worker(self, worker: WorkerProcess) -> None:
        self.worker = worker

    def worker_exited(self, returncode: int) -> None:
        """Exit callback for :class:`WorkerProcess`.

        Live operations fail on their next status call.
        """

        live = [kind.value for kind in OperationKind if self.poller.is_live(kind)]
        LOGGER.error("Worker stopped with code %s (live operations: %s)", returncode, live or "none")
        self.bus.publish(WorkerExited(returncode))

    # ------------------------------------------------------------------
    # Entry points used by the window
    # ------------------------------------------------------------------
    def operation_status(self, kind: OperationKind) -> OperationStatus | None:
        return self.poller.status(kind)

    def recent(self) -> list[str]:
        return self.recent_files.load()

    async def open_document(self, path: str | Path) -> bool:
        await self.ensure_worker()
        return await self.guard.open_document(path)

    async def close_document(self) -> CloseOutcome:
        await self.ensure_worker()
        return await self.guard.close_document()

    async def create_alignment(self, params: Mapping[str, Any]) -> bool:
        await self.ensure_worker()
        return await self.guard.create_alignment(params)

    async def request_quit(self) -> bool:
        return await self.guard.request_quit()

    async def check_for_updates(self, *, manual: bool = False) -> UpdateState:
        return await self.updates.check(manual=manual)

    async def shutdown(self) -> None:
        if self._bounds_dirty:
            self.window_bounds.save(self._bounds)
            self._bounds_dirty = False
        await self.poller.cancel_all()
        await self.client.aclose()
        await self._http.aclose()
        if self.worker is not None:
            await self.worker.terminate()

    def _quit(self) -> None:
        if self._on_quit is not None:
            self._on_quit()
