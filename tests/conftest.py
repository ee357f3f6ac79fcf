"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from bunghole.orchestration.events import EventBus
from bunghole.services.recent_files import RecentFilesLedger

from tests.helpers import ImmediateTicker, PreferenceHolder, ScriptedWorker


@pytest.fixture
def worker() -> ScriptedWorker:
    return ScriptedWorker()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def ticker() -> ImmediateTicker:
    return ImmediateTicker()


@pytest.fixture
def settings() -> PreferenceHolder:
    return PreferenceHolder()


@pytest.fixture
def ledger(tmp_path: Path) -> RecentFilesLedger:
    return RecentFilesLedger(tmp_path / "recent.json", exists=lambda _path: True)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in (
        "BUNGHOLE_SRC_LANG",
        "BUNGHOLE_TGT_LANG",
        "BUNGHOLE_APP_LANG",
        "BUNGHOLE_THEME",
        "BUNGHOLE_CLAUDE_API_KEY",
        "BUNGHOLE_ENABLE_AI",
        "BUNGHOLE_DEBUG",
        "BUNGHOLE_DEBUG_LOGGING",
        "BUNGHOLE_WORKER_PORT",
        "BUNGHOLE_INSTALL_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("BUNGHOLE_APP_DATA", str(tmp_path / "appdata"))
    monkeypatch.setenv("BUNGHOLE_LOG_DIR", str(tmp_path / "logs"))
