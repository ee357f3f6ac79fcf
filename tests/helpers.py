"""Shared test doubles: a scripted worker, tickers, prompt answers and an event recorder.

Import from here instead of redefining these in individual test modules.
"""

from __future__ import annotations

import asyncio
import json
from collections import defaultdict, deque
from typing import Any, Iterable

import httpx

from bunghole.orchestration.events import Event, EventBus
from bunghole.orchestration.models import CloseDecision
from bunghole.services.preferences import Preferences
from bunghole.worker.transport import WorkerClient, WorkerClientSettings

SUCCESS = {"status": "Success"}


class ScriptedWorker:
    """In-process stand-in for the worker's HTTP server.

    Each endpoint answers from a queue of scripted replies; the last reply of
    a queue is repeated. A reply may be a dict (sent as JSON with status 200),
    an :class:`httpx.Response`, or an exception instance to raise. Unscripted
    endpoints answer ``{"status": "Success"}``.

    Example:
        worker = ScriptedWorker()
        worker.on("/saveFile", SUCCESS)
        worker.on("/savingStatus", {"saving": True}, {"saving": False, "saveError": ""})
        client = worker.client()
    """

    def __init__(self) -> None:
        self._replies: dict[str, deque[Any]] = defaultdict(deque)
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def on(self, endpoint: str, *replies: Any) -> "ScriptedWorker":
        self._replies[endpoint].extend(replies)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        endpoint = request.url.path
        body = json.loads(request.content or b"{}")
        self.calls.append((endpoint, body))
        queue = self._replies.get(endpoint)
        if not queue:
            reply: Any = SUCCESS
        elif len(queue) > 1:
            reply = queue.popleft()
        else:
            reply = queue[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(200, json=reply)

    def client(self) -> WorkerClient:
        settings = WorkerClientSettings()
        transport = httpx.MockTransport(self.handler)
        return WorkerClient(
            settings,
            client=httpx.AsyncClient(transport=transport, base_url=settings.base_url),
        )

    @property
    def endpoints(self) -> list[str]:
        return [endpoint for endpoint, _ in self.calls]

    def payloads(self, endpoint: str) -> list[dict[str, Any]]:
        return [body for name, body in self.calls if name == endpoint]


class ImmediateTicker:
    """Ticks as soon as it is awaited and records the requested intervals."""

    def __init__(self) -> None:
        self.intervals: list[float] = []

    async def wait(self, interval: float) -> None:
        self.intervals.append(interval)
        await asyncio.sleep(0)


class BlockingTicker:
    """Never ticks; ``entered`` is set once a poll is waiting on it."""

    def __init__(self) -> None:
        self.entered = asyncio.Event()

    async def wait(self, interval: float) -> None:
        self.entered.set()
        await asyncio.Event().wait()


class ScriptedDecisions:
    """Answers prompts from pre-recorded lists and records what was asked."""

    def __init__(self, close: Iterable[CloseDecision | Exception] = (), *, download: bool = False) -> None:
        self._close = list(close)
        self._download = download
        self.close_prompts: list[str] = []
        self.download_prompts: list[Any] = []

    async def confirm_unsaved_changes(self, path: str) -> CloseDecision:
        self.close_prompts.append(path)
        answer = self._close.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def confirm_download(self, descriptor: Any) -> bool:
        self.download_prompts.append(descriptor)
        return self._download


class PreferenceHolder:
    """Minimal preference owner that records wholesale replacements."""

    def __init__(self, preferences: Preferences | None = None) -> None:
        self.preferences = preferences or Preferences(catalog="/opt/bunghole/catalog/catalog.xml", srx="/opt/bunghole/srx/default.srx")
        self.saved: list[Preferences] = []

    def update_preferences(self, preferences: Preferences) -> None:
        self.preferences = preferences
        self.saved.append(preferences)


class EventRecorder:
    """Subscribes to the given event types and keeps everything published."""

    def __init__(self, bus: EventBus, *event_types: type[Event]) -> None:
        self.events: list[Event] = []
        for event_type in event_types:
            bus.subscribe(event_type, self.events.append)

    def of(self, event_type: type[Event]) -> list[Any]:
        return [event for event in self.events if isinstance(event, event_type)]

    def names(self) -> list[str]:
        return [type(event).__name__ for event in self.events]
