"""Logging setup for the client and the output of the worker process."""

from __future__ import annotations

import asyncio
import logging
import logging.handlers
import os
from pathlib import Path

__all__ = ["setup_logging", "forward_stream"]

_LOG_FILENAME = "bunghole.log"
_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "qasync", "httpx", "httpcore")
_LOG_PATH: Path | None = None


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Install a rotating file handler (and a console handler) on the root logger.

    ``BUNGHOLE_LOG_DIR`` wins over ``log_dir``; without either the log lives
    in ``~/.bunghole/logs``. Repeated calls are ignored unless ``force`` is set,
    which is how ``--debug`` style switches raise the level after startup.
    """

    global _LOG_PATH
    if _LOG_PATH is not None and not force:
        return _LOG_PATH

    directory = _resolve_log_dir(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / _LOG_FILENAME
    formatter = logging.Formatter(fmt=_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    rotating = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handlers: list[logging.Handler] = [rotating]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    quiet_level = max(level, logging.WARNING)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    _LOG_PATH = log_path
    return log_path


async def forward_stream(
    reader: asyncio.StreamReader | None,
    logger: logging.Logger,
    level: int = logging.DEBUG,
) -> None:
    """Copy every line the worker prints into ``logger`` until EOF."""

    if reader is None:
        return
    while True:
        line = await reader.readline()
        if not line:
            return
        text = line.decode("utf-8", errors="replace").rstrip()
        if text:
            logger.log(level, text)


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    override = os.environ.get("BUNGHOLE_LOG_DIR")
    if override:
        return Path(override).expanduser()
    if log_dir:
        return Path(log_dir).expanduser()
    return Path.home() / ".bunghole" / "logs"
