"""Supervised handle around the Java worker process."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable

import httpx

from ..errors import WorkerProcessError
from ..utils.logging import forward_stream

__all__ = ["WorkerLaunchSpec", "WorkerProcess", "http_probe"]

LOGGER = logging.getLogger(__name__)
_OUTPUT_LOGGER = logging.getLogger("bunghole.worker.output")

Probe = Callable[[], Awaitable[bool]]
Spawner = Callable[..., Awaitable[Any]]


@dataclass(slots=True)
class WorkerLaunchSpec:
    """How to start the worker: ``java --module-path lib -m <module> -port N -lang L``."""

    install_dir: Path
    port: int = 8040
    app_lang: str = "en"
    module: str = "bunghole/com.norjordet.bunghole.BungholeServer"
    java_path: Path | None = None
    extra_args: list[str] = field(default_factory=list)

    def resolved_java(self) -> Path:
        if self.java_path is not None:
            return self.java_path
        binary = "java.exe" if sys.platform.startswith("win") else "java"
        return self.install_dir / "bin" / binary

    def command(self) -> list[str]:
        return [
            str(self.resolved_java()),
            "--module-path",
            "lib",
            "-m",
            self.module,
            "-port",
            str(self.port),
            "-lang",
            self.app_lang,
            *self.extra_args,
        ]


def http_probe(base_url: str, *, timeout: float = 2.0) -> Probe:
    """Return a probe that succeeds once anything answers HTTP at ``base_url``."""

    async def _probe() -> bool:
        try:
            async with httpx.AsyncClient(base_url=base_url, timeout=timeout) as client:
                await client.get("/")
        except httpx.TransportError:
            return False
        return True

    return _probe


class WorkerProcess:
    """Starts, health-checks, watches and stops the worker.

    ``crashed`` turns true when the process exits without :meth:`terminate`
    having been requested; the orchestrator checks it before each request.
    """

    def __init__(
        self,
        spec: WorkerLaunchSpec,
        *,
        probe: Probe | None = None,
        spawner: Spawner | None = None,
        startup_timeout: float = 30.0,
        probe_interval: float = 0.25,
        on_exit: Callable[[int], None] | None = None,
    ) -> None:
        self._spec = spec
        self._probe = probe or http_probe(f"http://127.0.0.1:{spec.port}")
        self._spawner = spawner or asyncio.create_subprocess_exec
        self._startup_timeout = startup_timeout
        self._probe_interval = probe_interval
        self._on_exit = on_exit
        self._process: Any | None = None
        self._watch_task: asyncio.Task[None] | None = None
        self._output_tasks: list[asyncio.Task[None]] = []
        self._stopping = False
        self._ready = False

    @property
    def spec(self) -> WorkerLaunchSpec:
        return self._spec

    @property
    def returncode(self) -> int | None:
        if self._process is None:
            return None
        return self._process.returncode

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def crashed(self) -> bool:
        return self._process is not None and self._process.returncode is not None and not self._stopping

    @property
    def is_ready(self) -> bool:
        return self._ready and self.running

    async def start(self) -> None:
        if self.running:
            return
        command = self._spec.command()
        LOGGER.info("Starting worker: %s", " ".join(command))
        self._stopping = False
        self._ready = False
        try:
            self._process = await self._spawner(
                *command,
                cwd=str(self._spec.install_dir),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise WorkerProcessError(f"Unable to launch worker: {exc}") from exc

        process = self._process
        self._output_tasks = [
            asyncio.create_task(forward_stream(getattr(process, "stdout", None), _OUTPUT_LOGGER)),
            asyncio.create_task(
                forward_stream(getattr(process, "stderr", None), _OUTPUT_LOGGER, logging.WARNING)
            ),
        ]
        self._watch_task = asyncio.create_task(self._watch(process))

    async def ready(self) -> None:
        """Block until the worker answers HTTP; raise if it dies or never comes up."""

        if self._process is None:
            await self.start()
        if self._ready and self.running:
            return
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._startup_timeout
        while True:
            if not self.running:
                raise WorkerProcessError(f"Worker exited during startup (code {self.returncode})")
            if await self._probe():
                self._ready = True
                LOGGER.info("Worker ready on port %s", self._spec.port)
                return
            if loop.time() >= deadline:
                raise WorkerProcessError(
                    f"Worker did not answer on port {self._spec.port} within {self._startup_timeout:.0f}s"
                )
            await asyncio.sleep(self._probe_interval)

    async def terminate(self, *, timeout: float = 5.0) -> int | None:
        process = self._process
        if process is None:
            return None
        self._stopping = True
        self._ready = False
        if process.returncode is None:
            LOGGER.info("Stopping worker")
            with contextlib.suppress(ProcessLookupError):
                process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout)
            except asyncio.TimeoutError:
                LOGGER.warning("Worker ignored SIGTERM; killing it")
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()
        for task in (self._watch_task, *self._output_tasks):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        return process.returncode

    async def _watch(self, process: Any) -> None:
        code = await process.wait()
        if self._stopping:
            LOGGER.debug("Worker exited with code %s", code)
            return
        self._ready = False
        LOGGER.error("Worker exited unexpectedly with code %s", code)
        if self._on_exit is not None:
            try:
                self._on_exit(code)
            except Exception:  # pragma: no cover - callback isolation
                LOGGER.exception("Worker exit callback failed")
