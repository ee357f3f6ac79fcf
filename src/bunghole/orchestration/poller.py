"""Start-then-poll state machine shared by the align, load and save operations."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Protocol

from ..errors import BungholeError, OperationInProgressError
from ..worker import endpoints
from ..worker.transport import Err, WorkerClient, application_error
from .events import EventBus, OperationBegan, OperationFailed, OperationSucceeded, ProgressChanged
from .models import OperationKind, OperationStatus, StatusKind

__all__ = [
    "OperationSpec",
    "PollState",
    "Ticker",
    "IntervalTicker",
    "OperationPoller",
    "PollHandle",
    "alignment_operation",
    "load_operation",
    "save_operation",
]

LOGGER = logging.getLogger(__name__)

Continuation = Callable[[dict[str, Any]], Awaitable[None]]

ALIGN_INTERVAL = 0.5
LOAD_INTERVAL = 0.5
SAVE_INTERVAL = 0.2


@dataclass(slots=True, frozen=True)
class OperationSpec:
    """Everything that differs between one long-running worker operation and another."""

    kind: OperationKind
    start_endpoint: str
    status_endpoint: str
    interval: float
    busy_key: str
    error_key: str
    initial_message: str = ""
    payload: Mapping[str, Any] = field(default_factory=dict)
    progress_key: str = "status"


def alignment_operation(params: Mapping[str, Any], *, message: str = "Preparing files...") -> OperationSpec:
    return OperationSpec(
        kind=OperationKind.ALIGNMENT,
        start_endpoint=endpoints.ALIGN_FILES,
        status_endpoint=endpoints.ALIGNMENT_STATUS,
        interval=ALIGN_INTERVAL,
        busy_key="aligning",
        error_key="alignError",
        initial_message=message,
        payload=dict(params),
    )


def load_operation(path: str, *, message: str = "Loading file...") -> OperationSpec:
    return OperationSpec(
        kind=OperationKind.LOAD,
        start_endpoint=endpoints.OPEN_FILE,
        status_endpoint=endpoints.LOADING_STATUS,
        interval=LOAD_INTERVAL,
        busy_key="loading",
        error_key="loadError",
        initial_message=message,
        payload={"file": path},
    )


def save_operation(*, message: str = "Saving file...") -> OperationSpec:
    return OperationSpec(
        kind=OperationKind.SAVE,
        start_endpoint=endpoints.SAVE_FILE,
        status_endpoint=endpoints.SAVING_STATUS,
        interval=SAVE_INTERVAL,
        busy_key="saving",
        error_key="saveError",
        initial_message=message,
    )


class PollState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Ticker(Protocol):
    async def wait(self, interval: float) -> None:
        """Return when the next status call is due."""


class IntervalTicker:
    """Wall-clock ticker; the wait starts after the previous status call returned."""

    async def wait(self, interval: float) -> None:
        await asyncio.sleep(interval)


class PollHandle:
    """Caller-side view of one started operation."""

    def __init__(self, spec: OperationSpec, task: asyncio.Task[OperationStatus]) -> None:
        self.spec = spec
        self._task = task

    @property
    def kind(self) -> OperationKind:
        return self.spec.kind

    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        """Stop polling and discard the outcome; no terminal event is published."""

        self._task.cancel()

    async def wait(self) -> OperationStatus:
        """Return the terminal status (``FAILED`` with empty detail when cancelled)."""

        try:
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise
            return OperationStatus(StatusKind.FAILED, "", "cancelled")


class OperationPoller:
    """Runs one operation per kind at a time and publishes its lifecycle on the bus.

    Every started operation ends with exactly one of :class:`OperationSucceeded`
    or :class:`OperationFailed`, unless it is cancelled through its handle.
    """

    def __init__(self, client: WorkerClient, bus: EventBus, *, ticker: Ticker | None = None) -> None:
        self._client = client
        self._bus = bus
        self._ticker = ticker or IntervalTicker()
        self._statuses: dict[OperationKind, OperationStatus] = {}
        self._states: dict[OperationKind, PollState] = {}
        self._handles: dict[OperationKind, PollHandle] = {}

    def status(self, kind: OperationKind) -> OperationStatus | None:
        return self._statuses.get(kind)

    def state(self, kind: OperationKind) -> PollState:
        return self._states.get(kind, PollState.IDLE)

    def is_live(self, kind: OperationKind) -> bool:
        status = self._statuses.get(kind)
        return status is not None and status.live

    def start(self, spec: OperationSpec, *, on_success: Continuation | None = None) -> PollHandle:
        if self.is_live(spec.kind):
            raise OperationInProgressError(spec.kind.value)
        self._statuses[spec.kind] = OperationStatus(StatusKind.PENDING, spec.initial_message)
        self._states[spec.kind] = PollState.STARTING
        task = asyncio.ensure_future(self._run(spec, on_success))
        handle = PollHandle(spec, task)
        self._handles[spec.kind] = handle
        task.add_done_callback(lambda finished: self._finished(spec.kind, handle, finished))
        return handle

    async def cancel_all(self) -> None:
        handles = list(self._handles.values())
        for handle in handles:
            handle.cancel()
        for handle in handles:
            await handle.wait()

    async def _run(self, spec: OperationSpec, on_success: Continuation | None) -> OperationStatus:
        try:
            return await self._drive(spec, on_success)
        except BungholeError as exc:
            return self._fail(spec.kind, str(exc))
        except Exception as exc:
            LOGGER.exception("%s operation raised unexpectedly", spec.kind.value)
            return self._fail(spec.kind, str(exc) or type(exc).__name__)

    async def _drive(self, spec: OperationSpec, on_success: Continuation | None) -> OperationStatus:
        kind = spec.kind
        LOGGER.debug("Starting %s operation via %s", kind.value, spec.start_endpoint)
        result = await self._client.send(spec.start_endpoint, spec.payload)
        if isinstance(result, Err):
            return self._fail(kind, str(result.error))
        rejection = application_error(result.payload, endpoint=spec.start_endpoint)
        if rejection is not None:
            return self._fail(kind, rejection.reason)

        self._states[kind] = PollState.POLLING
        self._statuses[kind] = OperationStatus(StatusKind.RUNNING, spec.initial_message)
        self._bus.publish(OperationBegan(kind.value, spec.initial_message))

        while True:
            await self._ticker.wait(spec.interval)
            result = await self._client.send(spec.status_endpoint)
            if isinstance(result, Err):
                return self._fail(kind, str(result.error))
            snapshot = result.payload
            if snapshot.get(spec.busy_key):
                message = _progress_text(snapshot, spec.progress_key)
                self._statuses[kind] = OperationStatus(StatusKind.RUNNING, message)
                self._bus.publish(ProgressChanged(kind.value, message))
                continue
            break

        error = snapshot.get(spec.error_key)
        if error:
            return self._fail(kind, str(error))
        if snapshot.get(endpoints.STATUS_FIELD) == endpoints.ERROR:
            return self._fail(kind, str(snapshot.get(endpoints.REASON_FIELD) or "Unknown error"))

        if on_success is not None:
            await on_success(snapshot)
        status = OperationStatus(StatusKind.SUCCEEDED)
        self._statuses[kind] = status
        self._states[kind] = PollState.SUCCEEDED
        self._bus.publish(ProgressChanged(kind.value, ""))
        self._bus.publish(OperationSucceeded(kind.value, dict(snapshot)))
        return status

    def _fail(self, kind: OperationKind, message: str) -> OperationStatus:
        LOGGER.warning("%s operation failed: %s", kind.value, message)
        status = OperationStatus(StatusKind.FAILED, "", message)
        self._statuses[kind] = status
        self._states[kind] = PollState.FAILED
        self._bus.publish(ProgressChanged(kind.value, ""))
        self._bus.publish(OperationFailed(kind.value, message))
        return status

    def _finished(self, kind: OperationKind, handle: PollHandle, task: asyncio.Task[OperationStatus]) -> None:
        if self._handles.get(kind) is not handle:
            return
        del self._handles[kind]
        self._states[kind] = PollState.IDLE
        if task.cancelled():
            LOGGER.debug("%s operation cancelled; outcome discarded", kind.value)
            self._statuses.pop(kind, None)


def _progress_text(snapshot: Mapping[str, Any], key: str) -> str:
    value = snapshot.get(key)
    if not value or value in (endpoints.SUCCESS, endpoints.ERROR):
        return ""
    return str(value)
