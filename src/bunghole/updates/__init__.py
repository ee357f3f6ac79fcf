"""Self-update: release lookup, artifact download and installer hand-off."""

from .channel import OSHandoff, UpdateChannel, UpdateState
from .descriptor import UpdateDescriptor, fetch_descriptor, is_newer, parse_release, select_asset
from .downloader import UpdateDownloader

__all__ = [
    "OSHandoff",
    "UpdateChannel",
    "UpdateDescriptor",
    "UpdateDownloader",
    "UpdateState",
    "fetch_descriptor",
    "is_newer",
    "parse_release",
    "select_asset",
]
