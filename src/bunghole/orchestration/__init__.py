"""Client-side orchestration: operation polling, the document session and its events.

:class:`~bunghole.orchestration.orchestrator.Orchestrator` is imported from its
module directly since it also pulls in the update channel.
"""

from .events import EventBus
from .models import CloseDecision, CloseOutcome, DecisionProvider, OperationKind, OperationStatus, Session, StatusKind
from .poller import IntervalTicker, OperationPoller, OperationSpec, PollHandle, PollState
from .session import SessionGuard

__all__ = [
    "CloseDecision",
    "CloseOutcome",
    "DecisionProvider",
    "EventBus",
    "IntervalTicker",
    "OperationKind",
    "OperationPoller",
    "OperationSpec",
    "OperationStatus",
    "PollHandle",
    "PollState",
    "Session",
    "SessionGuard",
    "StatusKind",
]
