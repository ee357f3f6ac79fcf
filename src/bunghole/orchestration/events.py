"""Notifications published by the orchestration core for the presentation layer.

The window code subscribes to these events on an :class:`EventBus` instead of
being called directly, so the core never imports any UI toolkit.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, TypeVar
from weakref import WeakMethod

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")
Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for every published notification."""


# Events published many times per second are not logged individually.
_QUIET_EVENT_TYPES: set[type] = set()


# =============================================================================
# Operation lifecycle
# =============================================================================


@dataclass(slots=True)
class OperationBegan(Event):
    """A long-running operation was accepted; conflicting actions should be disabled."""

    kind: str
    message: str = ""


@dataclass(slots=True)
class ProgressChanged(Event):
    """New progress text for the status line (empty string clears it)."""

    kind: str
    message: str


@dataclass(slots=True)
class OperationSucceeded(Event):
    kind: str
    result: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class OperationFailed(Event):
    """Shown once to the user as a blocking error message."""

    kind: str
    message: str


_QUIET_EVENT_TYPES.add(ProgressChanged)


# =============================================================================
# Document session
# =============================================================================


@dataclass(slots=True)
class DocumentOpened(Event):
    path: str


@dataclass(slots=True)
class DocumentClosed(Event):
    path: str


@dataclass(slots=True)
class DocumentSaved(Event):
    path: str


@dataclass(slots=True)
class DocumentRenamed(Event):
    path: str


@dataclass(slots=True)
class DirtyStateChanged(Event):
    is_dirty: bool


@dataclass(slots=True)
class FileInfoChanged(Event):
    info: dict[str, Any]
    source_lang: str = ""
    target_lang: str = ""


@dataclass(slots=True)
class RefreshRequested(Event):
    """Ask the view to reload rows (``refresh-page``) or empty itself (``clear-file``)."""

    reason: str = "refresh-page"


@dataclass(slots=True)
class ExportCompleted(Event):
    format: str
    path: str


@dataclass(slots=True)
class AIReviewCompleted(Event):
    improved: int
    remaining_uncertain: int
    overall_confidence: float


@dataclass(slots=True)
class RecentFilesChanged(Event):
    files: list[str]


@dataclass(slots=True)
class PreferencesChanged(Event):
    preferences: Any


@dataclass(slots=True)
class QuitRequested(Event):
    """Deferred termination may now proceed."""


@dataclass(slots=True)
class WorkerExited(Event):
    returncode: int


# =============================================================================
# Self-update
# =============================================================================


@dataclass(slots=True)
class UpdateAvailable(Event):
    current_version: str
    latest_version: str
    download_url: str


@dataclass(slots=True)
class UpdateNotAvailable(Event):
    current_version: str


@dataclass(slots=True)
class DownloadProgress(Event):
    """``fraction`` is ``None`` when the size is unknown or the indicator must be reset."""

    received: int
    total: int | None
    fraction: float | None


@dataclass(slots=True)
class UpdateDownloaded(Event):
    path: str
    version: str


@dataclass(slots=True)
class UpdateFailed(Event):
    message: str


@dataclass(slots=True)
class InstallerLaunched(Event):
    path: str
    quitting: bool


_QUIET_EVENT_TYPES.add(DownloadProgress)


class EventBus(Generic[E]):
    """Synchronous publish/subscribe keyed by event class.

    Bound methods are held weakly so a closed window does not keep receiving
    events; plain functions and lambdas are held strongly. A handler that
    raises is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._handlers: defaultdict[type, list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        self._handlers[event_type].append(_HandlerRef.create(handler))
        logger.debug("Subscribed %s to %s", _handler_name(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        for index, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(index)
                return

    def publish(self, event: E) -> None:
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        if event_type not in _QUIET_EVENT_TYPES:
            logger.debug("Publishing %s to %d handler(s)", event_type.__name__, len(handlers or ()))
        if not handlers:
            return

        alive: list[_HandlerRef] = []
        for handler_ref in list(handlers):
            handler = handler_ref.resolve()
            if handler is None:
                continue
            alive.append(handler_ref)
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s raised exception for event %s",
                    _handler_name(handler),
                    event_type.__name__,
                )
        if len(alive) != len(handlers):
            self._handlers[event_type] = [ref for ref in self._handlers[event_type] if ref.resolve() is not None]

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: Any, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> "_HandlerRef":
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref
        return self._ref()

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        return resolved is not None and resolved == handler


def _handler_name(handler: Handler) -> str:
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    return getattr(handler, "__name__", repr(handler))


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "OperationBegan",
    "ProgressChanged",
    "OperationSucceeded",
    "OperationFailed",
    "DocumentOpened",
    "DocumentClosed",
    "DocumentSaved",
    "DocumentRenamed",
    "DirtyStateChanged",
    "FileInfoChanged",
    "RefreshRequested",
    "ExportCompleted",
    "AIReviewCompleted",
    "RecentFilesChanged",
    "PreferencesChanged",
    "QuitRequested",
    "WorkerExited",
    "UpdateAvailable",
    "UpdateNotAvailable",
    "DownloadProgress",
    "UpdateDownloaded",
    "UpdateFailed",
    "InstallerLaunched",
]
