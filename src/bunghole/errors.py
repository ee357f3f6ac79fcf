"""Exception hierarchy shared by the worker client, the session guard and the updater."""

from __future__ import annotations

__all__ = [
    "BungholeError",
    "TransportError",
    "WorkerUnavailableError",
    "ProtocolStatusError",
    "MalformedResponseError",
    "ApplicationError",
    "UserCancelled",
    "StreamError",
    "UpdateCheckError",
    "NoDocumentError",
    "OperationInProgressError",
    "WorkerProcessError",
]


class BungholeError(Exception):
    """Root of every error raised by this package."""


class TransportError(BungholeError):
    """The worker could not be reached or did not answer with usable JSON."""


class WorkerUnavailableError(TransportError):
    """Connection refused, reset or timed out: the worker is not (or no longer) up."""


class ProtocolStatusError(TransportError):
    """The worker answered with a non-200 HTTP status."""

    def __init__(self, status_code: int, reason_phrase: str = "") -> None:
        self.status_code = status_code
        self.reason_phrase = reason_phrase or str(status_code)
        super().__init__(f"sendRequest() error: {self.reason_phrase}")


class MalformedResponseError(TransportError):
    """The response body could not be decoded into a JSON object."""


class ApplicationError(BungholeError):
    """The worker was reached but rejected the request (``status: "Error"``)."""

    def __init__(self, reason: str, *, endpoint: str | None = None) -> None:
        self.reason = reason or "Unknown error"
        self.endpoint = endpoint
        super().__init__(self.reason)


class UserCancelled(BungholeError):
    """The user declined a blocking prompt; a valid outcome, not a failure."""


class StreamError(BungholeError):
    """An update download was interrupted."""


class UpdateCheckError(BungholeError):
    """The remote version descriptor could not be fetched or understood."""


class NoDocumentError(BungholeError):
    """A document operation was requested while no document is open."""


class OperationInProgressError(BungholeError):
    """An operation of the same kind is still pending or running."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(f"A {kind} operation is already in progress")


class WorkerProcessError(BungholeError):
    """The worker process failed to start, became unhealthy or exited."""
