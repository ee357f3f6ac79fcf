"""Application bootstrap for the Bunghole desktop client."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import os
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Sequence, TextIO, cast, get_type_hints

from . import __version__
from .errors import UserCancelled
from .orchestration.events import UpdateAvailable, UpdateFailed, UpdateNotAvailable
from .orchestration.models import CloseDecision
from .orchestration.orchestrator import Orchestrator
from .services.paths import AppPaths
from .services.preferences import Preferences, PreferencesStore, redact_secret
from .services.window_state import WindowBounds
from .utils import logging as logging_utils
from .worker.process import WorkerLaunchSpec, WorkerProcess
from .worker.transport import WorkerClient, WorkerClientSettings

_LOGGER = logging.getLogger(__name__)
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_ENV_PREFIX = "BUNGHOLE_"


@dataclass(slots=True)
class QtRuntime:
    """Container returned by :func:`create_qapp`."""

    app: Any
    loop: asyncio.AbstractEventLoop


def configure_logging(debug: bool = False, *, force: bool = False) -> Path:
    level = logging.DEBUG if debug else logging.INFO
    log_path = logging_utils.setup_logging(level, force=force)
    _LOGGER.debug("Logging to %s (level=%s)", log_path, logging.getLevelName(level))
    _install_qt_message_handler()
    return log_path


def load_preferences(
    store: PreferencesStore,
    *,
    overrides: Mapping[str, Any] | None = None,
) -> Preferences:
    """Load persisted preferences; unreadable storage falls back to defaults."""

    try:
        return store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load preferences from %s: %s", store.path, exc)
        return store.defaults()


def create_qapp(preferences: Preferences) -> QtRuntime:
    """Create a QApplication driven by a qasync event loop."""

    try:
        from PySide6.QtWidgets import QApplication
    except ImportError as exc:  # pragma: no cover - depends on desktop extra
        raise RuntimeError("PySide6 must be installed to launch the Bunghole desktop client.") from exc
    try:
        from qasync import QEventLoop
    except ImportError as exc:  # pragma: no cover - depends on desktop extra
        raise RuntimeError("qasync is required to run the async Qt event loop.") from exc

    app = cast(Any, QApplication.instance() or QApplication(sys.argv))
    app.setApplicationName("Bunghole")
    app.setApplicationVersion(__version__)

    loop = QEventLoop(app)
    asyncio.set_event_loop(loop)
    with contextlib.suppress(AttributeError):
        app.aboutToQuit.connect(loop.stop)  # type: ignore[attr-defined]

    if preferences.theme in ("dark", "highcontrast"):
        app.setStyle("Fusion")
    return QtRuntime(app=app, loop=loop)


class QtDecisions:
    """Answers the orchestrator's prompts with modal message boxes."""

    def __init__(self, parent: Any = None) -> None:
        self._parent = parent

    async def confirm_unsaved_changes(self, path: str) -> CloseDecision:
        from PySide6.QtWidgets import QMessageBox

        box = QMessageBox(self._parent)
        box.setIcon(QMessageBox.Icon.Question)
        box.setWindowTitle("Save changes?")
        box.setText(f"{Path(path).name} has unsaved changes.")
        discard = box.addButton("Don't Save", QMessageBox.ButtonRole.DestructiveRole)
        cancel = box.addButton(QMessageBox.StandardButton.Cancel)
        save = box.addButton(QMessageBox.StandardButton.Save)
        box.setDefaultButton(save)
        box.exec()
        clicked = box.clickedButton()
        if clicked is None:
            raise UserCancelled("Unsaved-changes prompt dismissed")
        if clicked is discard:
            return CloseDecision.DISCARD
        if clicked is cancel:
            return CloseDecision.CANCEL
        return CloseDecision.SAVE

    async def confirm_download(self, descriptor: Any) -> bool:
        from PySide6.QtWidgets import QMessageBox

        answer = QMessageBox.question(
            self._parent,
            "Update available",
            f"Version {descriptor.latest_version} is available. Download it now?",
        )
        return answer == QMessageBox.StandardButton.Yes


class ReportOnlyDecisions:
    """Prompts for non-interactive runs: keep documents open and never download."""

    async def confirm_unsaved_changes(self, path: str) -> CloseDecision:
        return CloseDecision.CANCEL

    async def confirm_download(self, descriptor: Any) -> bool:
        return False


def build_orchestrator(
    preferences: Preferences,
    store: PreferencesStore,
    paths: AppPaths,
    decisions: Any,
    *,
    install_dir: Path,
    port: int,
    on_quit: Any = None,
    start_worker: bool = True,
) -> Orchestrator:
    client = WorkerClient(WorkerClientSettings(port=port))
    orchestrator = Orchestrator(
        paths,
        decisions,
        preferences_store=store,
        preferences=preferences,
        client=client,
        install_dir=install_dir,
        on_quit=on_quit,
    )
    if start_worker:
        spec = WorkerLaunchSpec(install_dir=install_dir, port=port, app_lang=preferences.app_lang)
        orchestrator.attach_worker(WorkerProcess(spec, on_exit=orchestrator.worker_exited))
    return orchestrator


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point invoked by the ``bunghole`` console script."""

    args, passthrough = _parse_cli_args(argv)
    _rewrite_sys_argv(passthrough)

    debug = _env_flag("BUNGHOLE_DEBUG", default=False)
    configure_logging(debug)

    paths = AppPaths.resolve(args.app_data)
    install_dir = Path(args.install_dir or os.environ.get("BUNGHOLE_INSTALL_DIR") or Path.cwd()).expanduser()
    store = PreferencesStore(paths.preferences, install_dir=install_dir)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc

    preferences = load_preferences(store, overrides=cli_overrides or None)

    if args.dump_settings:
        _dump_settings(preferences, store, overrides=cli_overrides)
        return

    if preferences.debug_logging and not debug:
        configure_logging(True, force=True)

    port = _worker_port()

    if args.check_updates:
        ok = asyncio.run(_report_updates(preferences, store, paths, install_dir=install_dir, port=port))
        raise SystemExit(0 if ok else 1)

    runtime = create_qapp(preferences)
    orchestrator = build_orchestrator(
        preferences,
        store,
        paths,
        QtDecisions(),
        install_dir=install_dir,
        port=port,
        on_quit=runtime.app.quit,
    )
    _LOGGER.debug("Window bounds: %s", orchestrator.bounds)
    with contextlib.suppress(AttributeError):
        runtime.app.aboutToQuit.connect(lambda: _remember_window_bounds(runtime.app, orchestrator))

    loop = runtime.loop
    startup = loop.create_task(_startup(orchestrator, args.file))
    try:
        loop.run_forever()
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")
    finally:
        startup.cancel()
        with contextlib.suppress(RuntimeError):
            loop.run_until_complete(orchestrator.shutdown())
        _drain_event_loop(loop)
        loop.close()


async def _startup(orchestrator: Orchestrator, file: str | None) -> None:
    try:
        await orchestrator.ensure_worker()
    except Exception:
        _LOGGER.exception("Worker failed to start")
        return
    if file:
        await orchestrator.open_document(file)
    if orchestrator.preferences.check_updates_on_start:
        await orchestrator.check_for_updates(manual=False)


async def _report_updates(
    preferences: Preferences,
    store: PreferencesStore,
    paths: AppPaths,
    *,
    install_dir: Path,
    port: int,
    stream: TextIO | None = None,
) -> bool:
    """Run a manual update check without the desktop stack; ``False`` if it failed."""

    destination = stream or sys.stdout
    orchestrator = build_orchestrator(
        preferences,
        store,
        paths,
        ReportOnlyDecisions(),
        install_dir=install_dir,
        port=port,
        start_worker=False,
    )
    orchestrator.bus.subscribe(
        UpdateAvailable,
        lambda event: print(f"Version {event.latest_version} is available: {event.download_url}", file=destination),
    )
    orchestrator.bus.subscribe(
        UpdateNotAvailable,
        lambda event: print(f"Bunghole {event.current_version} is up to date.", file=destination),
    )
    failures: list[str] = []

    def _failed(event: UpdateFailed) -> None:
        failures.append(event.message)
        print(f"Update check failed: {event.message}", file=destination)

    orchestrator.bus.subscribe(UpdateFailed, _failed)
    try:
        await orchestrator.check_for_updates(manual=True)
        return not failures
    finally:
        await orchestrator.shutdown()


def _remember_window_bounds(app: Any, orchestrator: Orchestrator) -> None:
    window = app.activeWindow()
    if window is None:
        return
    geometry = window.geometry()
    orchestrator.window_bounds_changed(
        WindowBounds(width=geometry.width(), height=geometry.height(), x=geometry.x(), y=geometry.y())
    )


def _env_flag(
name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _worker_port() -> int:
    raw = os.environ.get("BUNGHOLE_WORKER_PORT")
    if not raw:
        return 8040
    try:
        return int(raw, 10)
    except ValueError:
        _LOGGER.warning("Ignoring invalid BUNGHOLE_WORKER_PORT=%r", raw)
        return 8040


def _drain_event_loop(loop: asyncio.AbstractEventLoop) -> None:
    """Cancel outstanding tasks and shut down async generators before closing."""

    if loop.is_closed():
        return

    async def _cleanup() -> None:
        current = asyncio.current_task()
        pending = [task for task in asyncio.all_tasks(loop) if not task.done() and task is not current]
        if pending:
            _LOGGER.debug("Cancelling %d pending task(s) before shutdown.", len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        with contextlib.suppress(RuntimeError, NotImplementedError):
            await loop.shutdown_asyncgens()

    try:
        loop.run_until_complete(_cleanup())
    except RuntimeError as exc:  # pragma: no cover - loop already stopping
        _LOGGER.debug("Unable to drain asyncio loop: %s", exc)


def _install_qt_message_handler() -> None:
    """Route Qt diagnostics into logging when PySide6 is installed."""

    try:
        from PySide6.QtCore import QtMsgType, qInstallMessageHandler
    except ImportError:  # pragma: no cover - desktop extra not installed
        return

    level_map = {
        QtMsgType.QtDebugMsg: logging.DEBUG,
        QtMsgType.QtInfoMsg: logging.INFO,
        QtMsgType.QtWarningMsg: logging.WARNING,
        QtMsgType.QtCriticalMsg: logging.ERROR,
        QtMsgType.QtFatalMsg: logging.CRITICAL,
    }

    def _handler(mode, context, message):  # type: ignore[no-untyped-def]
        del context
        logging.getLogger("PySide6").log(level_map.get(mode, logging.INFO), message)

    qInstallMessageHandler(_handler)


def _parse_cli_args(argv: Sequence[str] | None) -> tuple[argparse.Namespace, list[str]]:
    parser = argparse.ArgumentParser(
        prog="bunghole",
        description="Launch the Bunghole alignment client or inspect its configuration.",
    )
    parser.add_argument("file", nargs="?", help="Alignment file to open on startup.")
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective preferences (API key redacted) and exit.",
    )
    parser.add_argument(
        "--app-data",
        metavar="PATH",
        help="Folder holding preferences.json, recent.json and defaults.json (default ~/.bunghole).",
    )
    parser.add_argument(
        "--install-dir",
        metavar="PATH",
        help="Folder containing the bundled Java runtime, catalog and SRX files.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override a preference for this run (repeatable).",
    )
    parser.add_argument(
        "--check-updates",
        action="store_true",
        help="Check for a newer release, report it and exit.",
    )
    return parser.parse_known_args(argv)


def _rewrite_sys_argv(passthrough: Sequence[str]) -> None:
    program = sys.argv[0] if sys.argv else "bunghole"
    sys.argv = [program, *passthrough]


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    known = Preferences.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Preferences)
    for entry in items:
        key, sep, raw_value = entry.partition("=")
        key = key.strip()
        if not sep:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        if not key:
            raise ValueError("Override is missing a preference name.")
        if key not in known:
            raise ValueError(f"Unknown preference '{key}'.")
        overrides[key] = _coerce_value(type_hints.get(key, str), raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    if annotation is bool:
        lowered = raw_value.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"Cannot coerce '{raw_value}' to a boolean.")
    if annotation is int:
        return int(raw_value, 10)
    return raw_value


def _dump_settings(
    preferences: Preferences,
    store: PreferencesStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(preferences)
    payload["claude_api_key"] = redact_secret(preferences.claude_api_key)
    meta = {
        "path": str(store.path),
        "secret_backend": store.vault.strategy,
        "cli_overrides": sorted(overrides),
        "environment_variables": sorted(name for name in os.environ if name.startswith(_ENV_PREFIX)),
    }
    json.dump({"preferences": payload, "meta": meta}, destination, indent=2)
    destination.write("\n")
