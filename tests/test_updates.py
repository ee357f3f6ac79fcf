"""Tests for release lookup, artifact download and the update channel."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator, Callable

import httpx
import pytest

from bunghole.errors import StreamError, UpdateCheckError
from bunghole.orchestration.events import (
    DownloadProgress,
    EventBus,
    InstallerLaunched,
    UpdateAvailable,
    UpdateDownloaded,
    UpdateFailed,
    UpdateNotAvailable,
)
from bunghole.updates.channel import UpdateChannel, UpdateState
from bunghole.updates.descriptor import (
    RELEASES_URL,
    UpdateDescriptor,
    fetch_descriptor,
    is_newer,
    parse_release,
    select_asset,
)
from bunghole.updates.downloader import UpdateDownloader

from tests.helpers import EventRecorder, ScriptedDecisions

DOWNLOAD_URL = "https://github.com/hnorjordet/Bunghole/releases/download/v2.12.0/Bunghole-2.12.0.dmg"

RELEASE = {
    "tag_name": "v2.12.0",
    "assets": [
        {"name": "Bunghole-2.12.0.exe", "browser_download_url": "https://example.invalid/Bunghole-2.12.0.exe"},
        {"name": "Bunghole-2.12.0.dmg", "browser_download_url": DOWNLOAD_URL},
        {"name": "Bunghole-2.12.0.AppImage", "browser_download_url": "https://example.invalid/Bunghole.AppImage"},
    ],
}


class ChunkStream(httpx.AsyncByteStream):
    """Response body delivered in fixed chunks, optionally failing afterwards."""

    def __init__(self, chunks: list[bytes], *, error: Exception | None = None) -> None:
        self._chunks = chunks
        self._error = error

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for chunk in self._chunks:
            yield chunk
        if self._error is not None:
            raise self._error


class FakeHandoff:
    def __init__(self, *, quits: bool = True, error: Exception | None = None) -> None:
        self.quits = quits
        self.error = error
        self.launched: list[Path] = []

    def launch(self, path: Path) -> bool:
        if self.error is not None:
            raise self.error
        self.launched.append(path)
        return self.quits


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _descriptor() -> UpdateDescriptor:
    return UpdateDescriptor(latest_version="2.12.0", download_url=DOWNLOAD_URL, asset_name="Bunghole-2.12.0.dmg")


# ----------------------------------------------------------------------
# Release lookup
# ----------------------------------------------------------------------


def test_parse_release_strips_tag_prefix_and_picks_platform_asset() -> None:
    descriptor = parse_release(RELEASE, platform="darwin")

    assert descriptor.latest_version == "2.12.0"
    assert descriptor.download_url == DOWNLOAD_URL
    assert descriptor.file_name == "Bunghole-2.12.0.dmg"


@pytest.mark.parametrize(
    ("platform", "name"),
    [
        ("win32", "Bunghole-2.12.0.exe"),
        ("darwin", "Bunghole-2.12.0.dmg"),
        ("linux", "Bunghole-2.12.0.AppImage"),
    ],
)
def test_select_asset_per_platform(platform: str, name: str) -> None:
    assert select_asset(RELEASE["assets"], platform)["name"] == name


def test_select_asset_without_match() -> None:
    assert select_asset(RELEASE["assets"], "sunos5") is None
    assert select_asset([{"name": "Bunghole.dmg"}], "darwin") is None


@pytest.mark.parametrize(
    "payload",
    [
        {"assets": RELEASE["assets"]},
        {"tag_name": "nightly", "assets": RELEASE["assets"]},
        {"tag_name": "v2.12.0", "assets": []},
    ],
)
def test_parse_release_rejects_incomplete_releases(payload: dict) -> None:
    with pytest.raises(UpdateCheckError):
        parse_release(payload, platform="darwin")


def test_is_newer_compares_versions_numerically() -> None:
    assert is_newer("2.9.0", "2.10.0")
    assert not is_newer("2.11.0", "2.11.0")
    assert not is_newer("2.11.0", "2.10.3")
    assert not is_newer("2.11.0", "not-a-version")


def test_fetch_descriptor_maps_http_errors() -> None:
    async def run():
        async with _client(lambda request: httpx.Response(503)) as client:
            await fetch_descriptor(client, platform="darwin")

    with pytest.raises(UpdateCheckError):
        asyncio.run(run())


def test_fetch_descriptor_reads_release_feed() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=RELEASE)

    async def run():
        async with _client(handler) as client:
            return await fetch_descriptor(client, platform="darwin")

    descriptor = asyncio.run(run())

    assert descriptor.latest_version == "2.12.0"
    assert str(seen[0].url) == RELEASES_URL


# ----------------------------------------------------------------------
# Download
# ----------------------------------------------------------------------


def test_download_reports_byte_fractions(tmp_path: Path, bus: EventBus) -> None:
    chunks = [b"a" * 100, b"b" * 100, b"c" * 200]
    recorder = EventRecorder(bus, DownloadProgress)
    callbacks: list[tuple[int, int | None]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-length": "400"}, stream=ChunkStream(chunks))

    async def run():
        async with _client(handler) as client:
            downloader = UpdateDownloader(
                client, tmp_path, bus=bus, on_progress=lambda received, total: callbacks.append((received, total))
            )
            return await downloader.download(_descriptor())

    path = asyncio.run(run())

    assert path == tmp_path / "Bunghole-2.12.0.dmg"
    assert path.read_bytes() == b"".join(chunks)
    assert [event.fraction for event in recorder.events] == [0.25, 0.5, 1.0]
    assert callbacks == [(100, 400), (200, 400), (400, 400)]


def test_download_without_length_reports_indeterminate_progress(tmp_path: Path, bus: EventBus) -> None:
    recorder = EventRecorder(bus, DownloadProgress)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, stream=ChunkStream([b"x" * 10, b"y" * 10]))

    async def run():
        async with _client(handler) as client:
            await UpdateDownloader(client, tmp_path, bus=bus).download(_descriptor())

    asyncio.run(run())

    assert [(event.received, event.total, event.fraction) for event in recorder.events] == [
        (10, None, None),
        (20, None, None),
    ]


def test_download_replaces_stale_copy(tmp_path: Path) -> None:
    stale = tmp_path / "Bunghole-2.12.0.dmg"
    stale.write_bytes(b"old" * 1000)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"fresh")

    async def run():
        async with _client(handler) as client:
            return await UpdateDownloader(client, tmp_path).download(_descriptor())

    assert asyncio.run(run()).read_bytes() == b"fresh"


def test_interrupted_download_leaves_no_file(tmp_path: Path, bus: EventBus) -> None:
    recorder = EventRecorder(bus, DownloadProgress)

    def handler(request: httpx.Request) -> httpx.Response:
        stream = ChunkStream([b"a" * 100], error=httpx.ReadError("connection reset"))
        return httpx.Response(200, headers={"content-length": "400"}, stream=stream)

    async def run():
        async with _client(handler) as client:
            await UpdateDownloader(client, tmp_path, bus=bus).download(_descriptor())

    with pytest.raises(StreamError):
        asyncio.run(run())

    assert not (tmp_path / "Bunghole-2.12.0.dmg").exists()
    assert [event.fraction for event in recorder.events] == [0.25, None]
    assert recorder.events[-1].received == 0


def test_http_error_status_is_a_stream_error(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    async def run():
        async with _client(handler) as client:
            await UpdateDownloader(client, tmp_path).download(_descriptor())

    with pytest.raises(StreamError, match="404"):
        asyncio.run(run())
    assert list(tmp_path.iterdir()) == []


# ----------------------------------------------------------------------
# Channel
# ----------------------------------------------------------------------


def _release_handler(*, tag: str = "v2.12.0", download: Callable[[], httpx.Response] | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.github.com":
            return httpx.Response(200, json={**RELEASE, "tag_name": tag})
        if download is not None:
            return download()
        return httpx.Response(200, content=b"installer")

    return handler


def _run_channel(handler, tmp_path: Path, bus: EventBus, decisions: ScriptedDecisions, *, manual: bool, handoff=None):
    quits: list[bool] = []

    async def run():
        async with _client(handler) as client:
            channel = UpdateChannel(
                client,
                bus,
                decisions,
                UpdateDownloader(client, tmp_path, bus=bus),
                current_version="2.11.0",
                handoff=handoff or FakeHandoff(),
                platform="darwin",
                on_quit=lambda: quits.append(True),
            )
            state = await channel.check(manual=manual)
            return channel, state

    channel, state = asyncio.run(run())
    return channel, state, quits


def test_manual_check_reports_up_to_date(tmp_path: Path, bus: EventBus) -> None:
    recorder = EventRecorder(bus, UpdateAvailable, UpdateNotAvailable, UpdateFailed)
    decisions = ScriptedDecisions()

    _, state, _ = _run_channel(_release_handler(tag="v2.11.0"), tmp_path, bus, decisions, manual=True)

    assert state is UpdateState.UP_TO_DATE
    assert recorder.names() == ["UpdateNotAvailable"]
    assert decisions.download_prompts == []


def test_background_check_is_silent_when_current(tmp_path: Path, bus: EventBus) -> None:
    recorder = EventRecorder(bus, UpdateNotAvailable, UpdateFailed)

    _, state, _ = _run_channel(_release_handler(tag="v2.11.0"), tmp_path, bus, ScriptedDecisions(), manual=False)

    assert state is UpdateState.UP_TO_DATE
    assert recorder.events == []


def test_declined_offer_downloads_nothing(tmp_path: Path, bus: EventBus) -> None:
    recorder = EventRecorder(bus, UpdateAvailable, UpdateDownloaded)
    decisions = ScriptedDecisions(download=False)

    channel, state, _ = _run_channel(_release_handler(), tmp_path, bus, decisions, manual=True)

    assert state is UpdateState.IDLE
    assert recorder.names() == ["UpdateAvailable"]
    assert recorder.events[0].latest_version == "2.12.0"
    assert decisions.download_prompts == [channel.latest]
    assert list(tmp_path.iterdir()) == []


def test_accepted_offer_downloads_and_hands_off(tmp_path: Path, bus: EventBus) -> None:
    recorder = EventRecorder(bus, UpdateAvailable, UpdateDownloaded, InstallerLaunched, UpdateFailed)
    handoff = FakeHandoff(quits=True)

    _, state, quits = _run_channel(
        _release_handler(), tmp_path, bus, ScriptedDecisions(download=True), manual=False, handoff=handoff
    )

    target = tmp_path / "Bunghole-2.12.0.dmg"
    assert state is UpdateState.INSTALLING
    assert recorder.names() == ["UpdateAvailable", "UpdateDownloaded", "InstallerLaunched"]
    assert handoff.launched == [target]
    assert target.read_bytes() == b"installer"
    assert quits == [True]


def test_handoff_without_quit_keeps_running(tmp_path: Path, bus: EventBus) -> None:
    _, _, quits = _run_channel(
        _release_handler(), tmp_path, bus, ScriptedDecisions(download=True), manual=True, handoff=FakeHandoff(quits=False)
    )

    assert quits == []


def test_failed_handoff_keeps_downloaded_file(tmp_path: Path, bus: EventBus) -> None:
    recorder = EventRecorder(bus, UpdateFailed, InstallerLaunched)

    _, state, quits = _run_channel(
        _release_handler(),
        tmp_path,
        bus,
        ScriptedDecisions(download=True),
        manual=True,
        handoff=FakeHandoff(error=OSError("no handler for .dmg")),
    )

    assert state is UpdateState.DOWNLOADED
    assert recorder.names() == ["UpdateFailed"]
    assert (tmp_path / "Bunghole-2.12.0.dmg").exists()
    assert quits == []


def test_failed_download_returns_to_idle(tmp_path: Path, bus: EventBus) -> None:
    recorder = EventRecorder(bus, UpdateFailed, UpdateDownloaded)

    _, state, _ = _run_channel(
        _release_handler(download=lambda: httpx.Response(500)),
        tmp_path,
        bus,
        ScriptedDecisions(download=True),
        manual=False,
    )

    assert state is UpdateState.IDLE
    assert recorder.names() == ["UpdateFailed"]


def test_check_failure_only_reported_when_manual(tmp_path: Path, bus: EventBus) -> None:
    recorder = EventRecorder(bus, UpdateFailed)

    def offline(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline")

    _, background_state, _ = _run_channel(offline, tmp_path, bus, ScriptedDecisions(), manual=False)
    assert background_state is UpdateState.IDLE
    assert recorder.events == []

    _, manual_state, _ = _run_channel(offline, tmp_path, bus, ScriptedDecisions(), manual=True)
    assert manual_state is UpdateState.IDLE
    assert len(recorder.events) == 1


def test_concurrent_checks_run_one_flow(tmp_path: Path, bus: EventBus) -> None:
    recorder = EventRecorder(bus, UpdateAvailable, UpdateFailed, InstallerLaunched)
    handoff = FakeHandoff(quits=False)

    class GatedDecisions(ScriptedDecisions):
        def __init__(self) -> None:
            super().__init__(download=True)
            self.asked = asyncio.Event()
            self.answer = asyncio.Event()

        async def confirm_download(self, descriptor) -> bool:
            self.download_prompts.append(descriptor)
            self.asked.set()
            await self.answer.wait()
            return True

    async def run():
        decisions = GatedDecisions()
        async with _client(_release_handler()) as client:
            channel = UpdateChannel(
                client,
                bus,
                decisions,
                UpdateDownloader(client, tmp_path, bus=bus),
                current_version="2.11.0",
                handoff=handoff,
                platform="darwin",
            )
            background = asyncio.ensure_future(channel.check(manual=False))
            await decisions.asked.wait()
            manual_state = await channel.check(manual=True)
            decisions.answer.set()
            background_state = await background
            again = await channel.check(manual=True)
            return decisions, manual_state, background_state, again

    decisions, manual_state, background_state, again = asyncio.run(run())

    assert manual_state is UpdateState.OFFERING
    assert background_state is UpdateState.INSTALLING
    assert len(decisions.download_prompts) == 2
    assert handoff.launched == [tmp_path / "Bunghole-2.12.0.dmg"] * 2
    assert again is UpdateState.INSTALLING
    assert recorder.names() == [
        "UpdateAvailable",
        "UpdateFailed",
        "InstallerLaunched",
        "UpdateAvailable",
        "InstallerLaunched",
    ]
    assert recorder.events[1].message == "An update check is already in progress."
