"""Latest-release lookup against the GitHub releases API."""

from __future__ import annotations

import logging
import re
import sys
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import httpx
from packaging import version

from ..errors import UpdateCheckError

__all__ = [
    "RELEASES_URL",
    "UpdateDescriptor",
    "fetch_descriptor",
    "is_newer",
    "parse_release",
    "platform_extensions",
    "select_asset",
]

LOGGER = logging.getLogger(__name__)

RELEASES_URL = "https://api.github.com/repos/hnorjordet/Bunghole/releases/latest"
API_TIMEOUT = 15.0
_TAG_PREFIX = re.compile(r"^v", re.IGNORECASE)

_PLATFORM_EXTENSIONS = {
    "win32": (".exe", ".msi"),
    "darwin": (".dmg", ".pkg"),
    "linux": (".appimage", ".deb", ".tar.gz"),
}


@dataclass(slots=True, frozen=True)
class UpdateDescriptor:
    """What the release feed says is current; never persisted."""

    latest_version: str
    download_url: str
    asset_name: str = ""

    @property
    def file_name(self) -> str:
        """Last path segment of the download URL."""

        path = httpx.URL(self.download_url).path
        return path.rsplit("/", 1)[-1] or self.asset_name


def platform_extensions(platform: str | None = None) -> tuple[str, ...]:
    current = platform or sys.platform
    for prefix, extensions in _PLATFORM_EXTENSIONS.items():
        if current.startswith(prefix):
            return extensions
    return ()


def select_asset(assets: Iterable[Mapping[str, Any]], platform: str | None = None) -> Mapping[str, Any] | None:
    """Pick the first asset matching the platform, in extension preference order."""

    candidates = [asset for asset in assets if asset.get("browser_download_url")]
    for extension in platform_extensions(platform):
        for asset in candidates:
            if str(asset.get("name", "")).lower().endswith(extension):
                return asset
    return None


def parse_release(payload: Mapping[str, Any], platform: str | None = None) -> UpdateDescriptor:
    tag = str(payload.get("tag_name") or "").strip()
    if not tag:
        raise UpdateCheckError("Release has no tag")
    latest = _TAG_PREFIX.sub("", tag)
    try:
        version.parse(latest)
    except version.InvalidVersion as exc:
        raise UpdateCheckError(f"Unrecognized release tag {tag!r}") from exc

    assets = payload.get("assets") or []
    asset = select_asset(assets if isinstance(assets, list) else [], platform)
    if asset is None:
        raise UpdateCheckError(f"No release asset for {platform or sys.platform}")
    return UpdateDescriptor(
        latest_version=latest,
        download_url=str(asset["browser_download_url"]),
        asset_name=str(asset.get("name", "")),
    )


def is_newer(current: str, latest: str) -> bool:
    try:
        return version.parse(latest) > version.parse(current)
    except version.InvalidVersion:
        LOGGER.warning("Cannot compare versions %r and %r", current, latest)
        return False


async def fetch_descriptor(
    client: httpx.AsyncClient,
    *,
    url: str = RELEASES_URL,
    platform: str | None = None,
) -> UpdateDescriptor:
    try:
        response = await client.get(
            url,
            headers={"Accept": "application/vnd.github+json"},
            timeout=API_TIMEOUT,
        )
        response.raise_for_status()
        payload = response.json()
    except httpx.HTTPError as exc:
        raise UpdateCheckError(f"Unable to reach the release feed: {exc}") from exc
    except ValueError as exc:
        raise UpdateCheckError("Release feed returned invalid JSON") from exc
    if not isinstance(payload, Mapping):
        raise UpdateCheckError("Release feed returned an unexpected document")
    return parse_release(payload, platform)
