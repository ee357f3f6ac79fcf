"""Plain data carried between the poller, the session guard and the presentation layer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

__all__ = [
    "OperationKind",
    "StatusKind",
    "OperationStatus",
    "Session",
    "CloseDecision",
    "CloseOutcome",
    "DecisionProvider",
]


class OperationKind(str, Enum):
    """Long-running worker operations; at most one of each may be live."""

    ALIGNMENT = "alignment"
    LOAD = "load"
    SAVE = "save"


class StatusKind(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def live(self) -> bool:
        return self in (StatusKind.PENDING, StatusKind.RUNNING)


@dataclass(slots=True, frozen=True)
class OperationStatus:
    """Snapshot of one operation as last reported by the worker."""

    kind: StatusKind
    message: str = ""
    error_detail: str | None = None

    @property
    def live(self) -> bool:
        return self.kind.live


@dataclass(slots=True)
class Session:
    """The single open document. Only the session guard mutates it."""

    file_path: str
    is_dirty: bool = False
    source_lang: str = ""
    target_lang: str = ""


class CloseDecision(str, Enum):
    """Answer to the unsaved-changes prompt."""

    DISCARD = "discard"
    CANCEL = "cancel"
    SAVE = "save"


class CloseOutcome(str, Enum):
    CLOSED = "closed"
    NOTHING_OPEN = "nothing-open"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def proceed(self) -> bool:
        """Whether a follow-up action (open, new, quit) may continue."""

        return self in (CloseOutcome.CLOSED, CloseOutcome.NOTHING_OPEN)


class DecisionProvider(Protocol):
    """Blocking prompts answered by the presentation layer."""

    async def confirm_unsaved_changes(self, path: str) -> CloseDecision:
        """Ask whether to discard, keep editing or save before closing ``path``.

        Raising :class:`~bunghole.errors.UserCancelled` counts as ``CANCEL``.
        """

    async def confirm_download(self, descriptor: Any) -> bool:
        """Ask whether the offered update should be downloaded."""
