"""
livedoc/service.py
──────────────────
Wires the pieces together and owns their lifecycle:

    ChangeWatcher → DebounceCoalescer → BuildInvoker → ReloadBroadcaster
                                              ↓
                                      SnapshotPublisher → FastAPI app (uvicorn)
"""

from __future__ import annotations

import asyncio
import logging
import pathlib
import socket
import webbrowser
from typing import Any, Dict, Optional

import uvicorn

from livedoc.build.invoker import BuildInvoker
from livedoc.build.metadata import ProjectMetadata, resolve_project
from livedoc.build.snapshots import SnapshotPublisher
from livedoc.config import ConfigManager
from livedoc.errors import PortUnavailable
from livedoc.ingestion.coalescer import DebounceCoalescer
from livedoc.ingestion.watcher import ChangeWatcher
from livedoc.models import BuildResult
from livedoc.reload.broadcaster import ReloadBroadcaster
from livedoc.server.app import create_app

logger = logging.getLogger("livedoc")

# Seconds uvicorn gets to wind down after a fatal error in the rebuild loop
SHUTDOWN_TIMEOUT = 5.0


def bind_socket(host: str, port: int) -> socket.socket:
    """
    Bind the listen socket up front so a taken port fails before any build.

    Raises:
        PortUnavailable: If the address cannot be bound
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError as e:
        sock.close()
        raise PortUnavailable(f"Could not bind to {host}:{port}: {e}") from e
    return sock


def openable_address(host: str, port: int) -> str:
    """URL a browser on this machine can open for the given bind address."""
    if host in ("0.0.0.0", "::", ""):
        return f"http://localhost:{port}/"
    if ":" in host:
        return f"http://[{host}]:{port}/"
    return f"http://{host}:{port}/"


class LiveDocService:
    """
    The live-reload documentation server.

    Call ``prepare()`` to resolve the project and build the components, then
    ``await serve()`` to run until interrupted.
    """

    def __init__(self, config: ConfigManager, root: pathlib.Path):
        self.config = config
        self.root = pathlib.Path(root).resolve()
        self.project: Optional[ProjectMetadata] = None
        self.broadcaster = ReloadBroadcaster(send_timeout=config.get("reload.send_timeout", 2.0))
        self.publisher: Optional[SnapshotPublisher] = None
        self.invoker: Optional[BuildInvoker] = None
        self.watcher: Optional[ChangeWatcher] = None
        self.coalescer: Optional[DebounceCoalescer] = None
        self.server: Optional[uvicorn.Server] = None
        self.url: Optional[str] = None

    def prepare(self) -> ProjectMetadata:
        """
        Resolve the project and construct every component.

        Raises:
            ProjectError: If the project cannot be built
            CompilerNotFound: If the toolchain is missing
        """
        cfg = self.config
        self.project = project = resolve_project(
            self.root,
            command=cfg.get("build.command"),
            artifacts=cfg.get_path("build.artifacts"),
            package=cfg.get("build.package"),
        )

        self.publisher = SnapshotPublisher(
            cfg.get_path("build.snapshots", base=self.root),
            keep=cfg.get("build.keep_snapshots", 3),
        )
        self.invoker = BuildInvoker(
            project.command,
            cwd=project.root,
            artifact_dir=project.artifact_dir,
            publisher=self.publisher,
            stderr_tail=cfg.get("build.stderr_tail", 20),
        )
        self.watcher = ChangeWatcher(
            project.watch_root,
            ignore=cfg.get("watch.ignore", []),
            exclude=[project.artifact_dir, self.publisher.base_dir],
            queue_size=cfg.get("watch.queue_size", 1024),
            health_interval=cfg.get("watch.health_interval", 1.0),
        )
        self.coalescer = DebounceCoalescer(self._on_change, window=cfg.get("watch.debounce", 0.2))
        return project

    # ── rebuild loop ────────────────────────────────────────────────────────
    async def rebuild(self) -> BuildResult:
        """Build once; reload every connected tab if the build succeeded."""
        assert self.invoker is not None
        result = await self.invoker.run_build()
        if result.success:
            await self.broadcaster.notify_reload()
        return result

    async def _on_change(self) -> None:
        logger.info("Source files changed, recompiling...")
        await self.rebuild()

    async def run_loop(self) -> None:
        """
        Feed watcher events through the coalescer until cancelled.

        Raises:
            WatchLost: If the watch root goes away
            CompilerNotFound: If the compiler disappears between builds
        """
        assert self.watcher is not None and self.coalescer is not None
        pump = asyncio.create_task(self.coalescer.feed(self.watcher.events()), name="livedoc-watch")
        worker = asyncio.create_task(self.coalescer.run(), name="livedoc-rebuild")
        try:
            done, _ = await asyncio.wait({pump, worker}, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                task.result()
        finally:
            for task in (pump, worker):
                task.cancel()
            await asyncio.gather(pump, worker, return_exceptions=True)

    def status(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"builds": 0, "building": False, "last_build": None}
        if self.invoker is not None:
            payload["builds"] = self.invoker.builds
            payload["building"] = self.invoker.running
            if self.invoker.last_result is not None:
                payload["last_build"] = self.invoker.last_result.model_dump(mode="json")
        if self.project is not None:
            payload["project"] = self.project.name or str(self.project.root)
        return payload

    # ── lifecycle ───────────────────────────────────────────────────────────
    async def serve(self) -> None:
        """
        Run the server until interrupted.

        Raises:
            FatalError: For unrecoverable startup or runtime failures
        """
        if self.project is None:
            self.prepare()
        assert self.project is not None and self.publisher is not None
        assert self.watcher is not None

        host = self.config.get("server.host", "0.0.0.0")
        port = self.config.get("server.port", 8000)
        sock = bind_socket(host, port)
        self.url = openable_address(host, sock.getsockname()[1])

        try:
            self.watcher.start()

            logger.info("Compiling documentation for `%s`...", self.project.name or self.project.root)
            result = await self.rebuild()
            if not result.success:
                logger.warning("Initial build failed; serving will start once a build succeeds")

            loop_task = asyncio.create_task(self.run_loop(), name="livedoc-loop")

            logger.info("Starting documentation server on address %s:%s...", host, port)
            app = create_app(
                self.publisher.current,
                self.broadcaster,
                index_path=self.project.index_path,
                status=self.status,
            )
            self.server = uvicorn.Server(
                uvicorn.Config(
                    app,
                    log_level=self.config.get("server.log_level", "warning"),
                    lifespan="off",
                )
            )
            web_task = asyncio.create_task(self.server.serve(sockets=[sock]), name="livedoc-http")
            logger.info("Documentation server is running on %s", self.url)

            if self.config.get("server.open"):
                if webbrowser.open(self.url):
                    logger.info("Opened documentation in browser!")
                else:
                    logger.error("Failed to open documentation in browser")

            done, _ = await asyncio.wait({loop_task, web_task}, return_when=asyncio.FIRST_COMPLETED)
            if loop_task in done:
                # Fatal error in the rebuild loop: stop HTTP, then report it
                self.server.should_exit = True
                await self.broadcaster.close_all()
                try:
                    await asyncio.wait_for(web_task, timeout=SHUTDOWN_TIMEOUT)
                except asyncio.TimeoutError:
                    logger.warning("HTTP server did not stop in time")
                loop_task.result()
            else:
                loop_task.cancel()
                await asyncio.gather(loop_task, return_exceptions=True)
                web_task.result()
        finally:
            await self.shutdown()
            sock.close()

    async def shutdown(self) -> None:
        """Stop watching, kill any running build, drop clients, delete snapshots."""
        if self.watcher is not None:
            await asyncio.to_thread(self.watcher.stop)
        if self.invoker is not None:
            await self.invoker.aclose()
        await self.broadcaster.close_all()
        if self.publisher is not None:
            self.publisher.cleanup()
        logger.debug("Shut down cleanly")
