"""Owner of the single open alignment document and of the close/quit protocol."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Mapping, Protocol

import httpx

from ..errors import ApplicationError, NoDocumentError, TransportError, UserCancelled
from ..services.preferences import Preferences
from ..services.recent_files import RecentFilesLedger
from ..worker import endpoints
from ..worker.transport import WorkerClient, unwrap
from .events import (
    DirtyStateChanged,
    DocumentClosed,
    DocumentOpened,
    DocumentRenamed,
    DocumentSaved,
    EventBus,
    FileInfoChanged,
    OperationFailed,
    QuitRequested,
    RecentFilesChanged,
    RefreshRequested,
)
from .models import CloseDecision, CloseOutcome, DecisionProvider, Session, StatusKind
from .poller import OperationPoller, alignment_operation, load_operation, save_operation

__all__ = ["PreferenceAccess", "SessionGuard"]

LOGGER = logging.getLogger(__name__)


class PreferenceAccess(Protocol):
    """Read the current preferences and replace them wholesale."""

    @property
    def preferences(self) -> Preferences: ...

    def update_preferences(self, preferences: Preferences) -> None: ...


class SessionGuard:
    """Serializes document lifecycle requests against the worker.

    Every request that needs an open document raises :class:`NoDocumentError`
    before anything is sent. Quit requests that arrive while the document is
    dirty are parked in ``quit_pending`` and completed by the close protocol.
    """

    def __init__(
        self,
        client: WorkerClient,
        poller: OperationPoller,
        bus: EventBus,
        *,
        decisions: DecisionProvider,
        ledger: RecentFilesLedger,
        settings: PreferenceAccess,
        xml_filter_dir: Path | None = None,
        on_quit: Callable[[], None] | None = None,
    ) -> None:
        self._client = client
        self._poller = poller
        self._bus = bus
        self._decisions = decisions
        self._ledger = ledger
        self._settings = settings
        self._xml_filter_dir = xml_filter_dir
        self._on_quit = on_quit
        self._session: Session | None = None
        self._quit_pending = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def has_document(self) -> bool:
        return self._session is not None

    @property
    def is_dirty(self) -> bool:
        return self._session is not None and self._session.is_dirty

    @property
    def quit_pending(self) -> bool:
        return self._quit_pending

    def require_session(self) -> Session:
        if self._session is None:
            raise NoDocumentError("No alignment file is open")
        return self._session

    def mark_dirty(self) -> None:
        session = self.require_session()
        if not session.is_dirty:
            session.is_dirty = True
            self._bus.publish(DirtyStateChanged(True))

    def _mark_clean(self) -> None:
        if self._session is not None and self._session.is_dirty:
            self._session.is_dirty = False
            self._bus.publish(DirtyStateChanged(False))

    # ------------------------------------------------------------------
    # Fast calls
    # ------------------------------------------------------------------
    async def call(
        self,
        endpoint: str,
        payload: Mapping[str, Any] | None = None,
        *,
        timeout: float | None | object = httpx.USE_CLIENT_DEFAULT,
    ) -> dict[str, Any] | None:
        """One round trip; failures are published once and ``None`` is returned."""

        result = await self._client.send(endpoint, payload, timeout=timeout)
        try:
            return unwrap(result, endpoint=endpoint)
        except (TransportError, ApplicationError) as exc:
            self.report_failure(endpoint, exc)
            return None

    def report_failure(self, endpoint: str, error: Exception) -> None:
        message = error.reason if isinstance(error, ApplicationError) else str(error)
        LOGGER.warning("%s failed: %s", endpoint, message)
        self._bus.publish(OperationFailed(endpoint.lstrip("/"), message))

    async def reload_file_info(self) -> dict[str, Any] | None:
        session = self.require_session()
        info = await self.call(endpoints.GET_FILE_INFO)
        if info is None:
            return None
        session.source_lang = _language_code(info.get("srcLang"))
        session.target_lang = _language_code(info.get("tgtLang"))
        self._bus.publish(FileInfoChanged(info, session.source_lang, session.target_lang))
        return info

    # ------------------------------------------------------------------
    # Open / close
    # ------------------------------------------------------------------
    async def open_document(self, path: str | Path) -> bool:
        """Close whatever is open, then load ``path``; ``True`` once it is the session."""

        target = str(path)
        if self._session is not None:
            outcome = await self.close_document()
            if not outcome.proceed:
                LOGGER.info("Not opening %s: close %s", target, outcome.value)
                return False

        async def _loaded(_snapshot: dict[str, Any]) -> None:
            await self._adopt(target)

        handle = self._poller.start(load_operation(target), on_success=_loaded)
        status = await handle.wait()
        return status.kind is StatusKind.SUCCEEDED

    async def _adopt(self, path: str) -> None:
        self._session = Session(file_path=path)
        LOGGER.info("Opened %s", path)
        self._bus.publish(DocumentOpened(path))
        self._bus.publish(DirtyStateChanged(False))
        self._remember(path)
        await self.reload_file_info()

    async def close_document(self) -> CloseOutcome:
        session = self._session
        if session is None:
            return CloseOutcome.NOTHING_OPEN

        if session.is_dirty:
            try:
                decision = await self._decisions.confirm_unsaved_changes(session.file_path)
            except UserCancelled:
                decision = CloseDecision.CANCEL
            if decision is CloseDecision.CANCEL:
                LOGGER.debug("Close of %s cancelled", session.file_path)
                self._quit_pending = False
                return CloseOutcome.CANCELLED
            if decision is CloseDecision.SAVE:
                quitting = self._quit_pending
                if not await self.save_document():
                    return CloseOutcome.FAILED
                if quitting:
                    return CloseOutcome.CLOSED
                return await self.close_document()
            self._mark_clean()

        if self._quit_pending:
            self._complete_quit()
            return CloseOutcome.CLOSED

        if await self.call(endpoints.CLOSE_FILE) is None:
            return CloseOutcome.FAILED
        self._session = None
        LOGGER.info("Closed %s", session.file_path)
        self._bus.publish(DocumentClosed(session.file_path))
        self._bus.publish(RefreshRequested("clear-file"))
        return CloseOutcome.CLOSED

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------
    async def save_document(self) -> bool:
        session = self.require_session()

        async def _saved(_snapshot: dict[str, Any]) -> None:
            self._mark_clean()
            self._bus.publish(DocumentSaved(session.file_path))

        handle = self._poller.start(save_operation(), on_success=_saved)
        status = await handle.wait()
        if status.kind is not StatusKind.SUCCEEDED:
            self._quit_pending = False
            return False
        if self._quit_pending:
            self._complete_quit()
        return True

    async def save_document_as(self, path: str | Path) -> bool:
        session = self.require_session()
        target = str(path)
        if await self.call(endpoints.RENAME_FILE, {"file": target}) is None:
            return False
        session.file_path = target
        self._bus.publish(DocumentRenamed(target))
        saved = await self.save_document()
        self._remember(target)
        return saved

    # ------------------------------------------------------------------
    # Alignment
    # ------------------------------------------------------------------
    async def create_alignment(self, params: Mapping[str, Any]) -> bool:
        """Build a new alignment file, then open it and adopt its languages as defaults."""

        preferences = self._settings.preferences
        payload = dict(params)
        payload["catalog"] = preferences.catalog
        payload["srx"] = preferences.srx
        if self._xml_filter_dir is not None:
            payload["xmlfilter"] = str(self._xml_filter_dir)

        async def _aligned(_snapshot: dict[str, Any]) -> None:
            await self.open_document(str(payload.get("alignmentFile", "")))
            current = self._settings.preferences
            updated = current.with_default_languages(
                str(payload.get("srcLang") or ""), str(payload.get("tgtLang") or "")
            )
            if updated is not current:
                self._settings.update_preferences(updated)

        handle = self._poller.start(alignment_operation(payload), on_success=_aligned)
        status = await handle.wait()
        return status.kind is StatusKind.SUCCEEDED

    # ------------------------------------------------------------------
    # Quit
    # ------------------------------------------------------------------
    async def request_quit(self) -> bool:
        """Return ``True`` when the process may exit right away.

        With unsaved changes the quit is deferred: the close protocol runs and,
        if it ends in a close, :class:`QuitRequested` is published and the quit
        callback runs. ``False`` is returned in that case either way.
        """

        if not self.is_dirty:
            return True
        self._quit_pending = True
        await self.close_document()
        return False

    def _complete_quit(self) -> None:
        self._quit_pending = False
        LOGGER.info("Quit confirmed")
        self._bus.publish(QuitRequested())
        if self._on_quit is not None:
            try:
                self._on_quit()
            except Exception:
                LOGGER.exception("Quit callback failed")

    def _remember(self, path: str) -> None:
        try:
            files = self._ledger.record(path)
        except OSError as exc:
            LOGGER.warning("Unable to update recent files: %s", exc)
            return
        self._bus.publish(RecentFilesChanged(files))


def _language_code(value: Any) -> str:
    if isinstance(value, Mapping):
        return str(value.get("code") or "")
    return str(value or "")
