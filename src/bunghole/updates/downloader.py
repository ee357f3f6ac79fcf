"""Streams a release artifact to the downloads folder with byte-level progress."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

import httpx

from ..errors import StreamError
from ..orchestration.events import DownloadProgress, EventBus
from ..utils.file_io import discard_file
from .descriptor import UpdateDescriptor

__all__ = ["UpdateDownloader", "ProgressCallback"]

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[int, "int | None"], None]

DOWNLOAD_TIMEOUT = httpx.Timeout(30.0, read=60.0)


class UpdateDownloader:
    """Downloads to ``<destination>/<url basename>``, replacing any earlier copy.

    There is no resume: every attempt starts from zero and an interrupted
    attempt leaves no file behind.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        destination: Path,
        *,
        bus: EventBus | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self._client = client
        self._destination = destination
        self._bus = bus
        self._on_progress = on_progress

    def target_for(self, descriptor: UpdateDescriptor) -> Path:
        return self._destination / descriptor.file_name

    async def download(self, descriptor: UpdateDescriptor) -> Path:
        target = self.target_for(descriptor)
        discard_file(target)
        target.parent.mkdir(parents=True, exist_ok=True)

        received = 0
        LOGGER.info("Downloading %s to %s", descriptor.download_url, target)
        try:
            async with self._client.stream(
                "GET", descriptor.download_url, follow_redirects=True, timeout=DOWNLOAD_TIMEOUT
            ) as response:
                if response.status_code != 200:
                    raise StreamError(f"Download failed: HTTP {response.status_code} {response.reason_phrase}")
                total = _content_length(response)
                with target.open("wb") as handle:
                    async for chunk in response.aiter_bytes():
                        if not chunk:
                            continue
                        handle.write(chunk)
                        received += len(chunk)
                        self._report(received, total)
        except (httpx.HTTPError, OSError, StreamError) as exc:
            discard_file(target)
            self._reset()
            if isinstance(exc, StreamError):
                raise
            raise StreamError(f"Download interrupted after {received} bytes: {exc}") from exc

        LOGGER.info("Downloaded %d bytes", received)
        return target

    def _report(self, received: int, total: int | None) -> None:
        fraction = received / total if total else None
        if self._on_progress is not None:
            self._on_progress(received, total)
        if self._bus is not None:
            self._bus.publish(DownloadProgress(received, total, fraction))

    def _reset(self) -> None:
        if self._bus is not None:
            self._bus.publish(DownloadProgress(0, None, None))


def _content_length(response: httpx.Response) -> int | None:
    raw = response.headers.get("content-length")
    try:
        value = int(raw) if raw is not None else None
    except ValueError:
        return None
    return value if value and value > 0 else None
