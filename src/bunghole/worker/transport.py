"""Single-attempt JSON exchange with the worker over loopback HTTP."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Union

import httpx

from ..errors import (
    ApplicationError,
    MalformedResponseError,
    ProtocolStatusError,
    TransportError,
    WorkerUnavailableError,
)
from . import endpoints

__all__ = [
    "Ok",
    "Err",
    "TransportResult",
    "WorkerClient",
    "WorkerClientSettings",
    "application_error",
    "unwrap",
]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Ok:
    """Decoded JSON object returned by the worker."""

    payload: dict[str, Any]

    @property
    def ok(self) -> bool:
        return True


@dataclass(slots=True, frozen=True)
class Err:
    """Transport-level failure; the request's effect on the worker is unknown."""

    error: TransportError

    @property
    def ok(self) -> bool:
        return False


TransportResult = Union[Ok, Err]


@dataclass(slots=True)
class WorkerClientSettings:
    host: str = "127.0.0.1"
    port: int = 8040
    request_timeout: float | None = 60.0

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


class WorkerClient:
    """Posts JSON to the worker and normalizes every failure into :class:`Err`.

    The client never looks at the application-level ``status`` field; callers
    use :func:`application_error` or :func:`unwrap` for that.
    """

    def __init__(
        self,
        settings: WorkerClientSettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or WorkerClientSettings()
        self._client = client or httpx.AsyncClient(
            base_url=self._settings.base_url,
            timeout=self._settings.request_timeout,
        )

    @property
    def settings(self) -> WorkerClientSettings:
        return self._settings

    async def send(
        self,
        endpoint: str,
        payload: Mapping[str, Any] | None = None,
        *,
        timeout: float | None | object = httpx.USE_CLIENT_DEFAULT,
    ) -> TransportResult:
        body = dict(payload or {})
        LOGGER.debug("POST %s", endpoint)
        try:
            response = await self._client.post(endpoint, json=body, timeout=timeout)  # type: ignore[arg-type]
        except httpx.TransportError as exc:
            LOGGER.debug("Worker unreachable for %s: %s", endpoint, exc)
            return Err(WorkerUnavailableError(str(exc) or type(exc).__name__))

        if response.status_code != 200:
            LOGGER.debug("Worker answered %s for %s", response.status_code, endpoint)
            return Err(ProtocolStatusError(response.status_code, response.reason_phrase))

        try:
            decoded = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            return Err(MalformedResponseError(str(exc)))
        if not isinstance(decoded, dict):
            return Err(MalformedResponseError(f"Expected a JSON object from {endpoint}"))
        return Ok(decoded)

    async def aclose(self) -> None:
        await self._client.aclose()


def application_error(payload: Mapping[str, Any], *, endpoint: str | None = None) -> ApplicationError | None:
    """Return the worker's rejection, or ``None`` when ``status`` is ``Success``."""

    if payload.get(endpoints.STATUS_FIELD) == endpoints.SUCCESS:
        return None
    reason = payload.get(endpoints.REASON_FIELD)
    return ApplicationError(str(reason) if reason else "Unknown error", endpoint=endpoint)


def unwrap(
    result: TransportResult,
    *,
    endpoint: str | None = None,
    require_success: bool = True,
) -> dict[str, Any]:
    """Return the payload or raise the transport/application error it carries."""

    if isinstance(result, Err):
        raise result.error
    if require_success:
        rejection = application_error(result.payload, endpoint=endpoint)
        if rejection is not None:
            raise rejection
    return result.payload
