"""Single round-trip commands against the open alignment: edits, lookups and exports."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

from ..worker import endpoints
from .events import EventBus, ExportCompleted, RefreshRequested
from .session import PreferenceAccess, SessionGuard

__all__ = ["DocumentCommands"]

LOGGER = logging.getLogger(__name__)

_EXPORTS = {
    "tmx": endpoints.EXPORT_TMX,
    "csv": endpoints.EXPORT_CSV,
    "excel": endpoints.EXPORT_EXCEL,
}


class DocumentCommands:
    """Edits the open document through the guard.

    Every edit that the worker accepts marks the session dirty and asks the
    view to refresh; a rejected edit leaves the session untouched.
    """

    def __init__(self, guard: SessionGuard, bus: EventBus, settings: PreferenceAccess) -> None:
        self._guard = guard
        self._bus = bus
        self._settings = settings

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------
    async def replace_text(self, params: Mapping[str, Any]) -> bool:
        return await self._edit(endpoints.REPLACE_TEXT, params)

    async def save_segment(self, params: Mapping[str, Any]) -> bool:
        return await self._edit(endpoints.SAVE_DATA, params)

    async def split_segment(self, params: Mapping[str, Any]) -> bool:
        return await self._edit(endpoints.SPLIT_SEGMENT, params)

    async def segment_down(self, params: Mapping[str, Any]) -> bool:
        return await self._edit(endpoints.SEGMENT_DOWN, params)

    async def segment_up(self, params: Mapping[str, Any]) -> bool:
        return await self._edit(endpoints.SEGMENT_UP, params)

    async def merge_next(self, params: Mapping[str, Any]) -> bool:
        return await self._edit(endpoints.MERGE_NEXT, params)

    async def remove_segment(self, params: Mapping[str, Any]) -> bool:
        return await self._edit(endpoints.REMOVE_SEGMENT, params)

    async def remove_tags(self) -> bool:
        return await self._edit(endpoints.REMOVE_TAGS)

    async def set_languages(self, src_lang: str, tgt_lang: str) -> bool:
        return await self._edit(
            endpoints.SET_LANGUAGES,
            {"srcLang": src_lang, "tgtLang": tgt_lang},
            reload_info=True,
        )

    async def remove_duplicates(self) -> bool:
        return await self._edit(endpoints.REMOVE_DUPLICATES, reload_info=True)

    async def toggle_manual_mark(self, segment_id: str) -> bool:
        return await self._edit(endpoints.TOGGLE_MANUAL_MARK, {"segmentId": segment_id})

    async def move_target_up(self, segment_id: str) -> bool:
        return await self._edit(endpoints.MOVE_TARGET_UP, {"segmentId": segment_id})

    async def move_target_down(self, segment_id: str) -> bool:
        return await self._edit(endpoints.MOVE_TARGET_DOWN, {"segmentId": segment_id})

    async def _edit(
        self,
        endpoint: str,
        params: Mapping[str, Any] | None = None,
        *,
        reload_info: bool = False,
    ) -> bool:
        self._guard.require_session()
        if await self._guard.call(endpoint, params) is None:
            return False
        self._guard.mark_dirty()
        if reload_info:
            await self._guard.reload_file_info()
        else:
            self._bus.publish(RefreshRequested("refresh-page"))
        return True

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    async def get_rows(self, params: Mapping[str, Any]) -> dict[str, Any] | None:
        self._guard.require_session()
        return await self._guard.call(endpoints.GET_ROWS, params)

    async def get_file_info(self) -> dict[str, Any] | None:
        return await self._guard.reload_file_info()

    async def get_languages(self) -> dict[str, Any] | None:
        """Worker language list plus the user's default pair and interface language."""

        data = await self._guard.call(endpoints.GET_LANGUAGES)
        if data is None:
            return None
        preferences = self._settings.preferences
        data["srcLang"] = preferences.src_lang
        data["tgtLang"] = preferences.tgt_lang
        data["appLang"] = preferences.app_lang
        return data

    async def get_types(self) -> dict[str, Any] | None:
        return await self._guard.call(endpoints.GET_TYPES)

    async def get_charsets(self) -> dict[str, Any] | None:
        return await self._guard.call(endpoints.GET_CHARSETS)

    async def get_file_type(self, path: str | Path) -> dict[str, Any] | None:
        return await self._guard.call(endpoints.GET_FILE_TYPE, {"file": str(path)})

    async def system_info(self) -> dict[str, Any] | None:
        return await self._guard.call(endpoints.SYSTEM_INFO)

    # ------------------------------------------------------------------
    # Exports
    # ------------------------------------------------------------------
    async def export_tmx(self, path: str | Path) -> bool:
        return await self._export("tmx", path)

    async def export_csv(self, path: str | Path) -> bool:
        return await self._export("csv", path)

    async def export_excel(self, path: str | Path) -> bool:
        return await self._export("excel", path)

    async def _export(self, fmt: str, path: str | Path) -> bool:
        self._guard.require_session()
        target = str(path)
        if await self._guard.call(_EXPORTS[fmt], {"file": target}) is None:
            return False
        LOGGER.info("Exported %s to %s", fmt.upper(), target)
        self._bus.publish(ExportCompleted(fmt, target))
        return True
