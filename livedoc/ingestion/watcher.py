"""
livedoc/ingestion/watcher.py
────────────────────────────
Recursive filesystem watcher.  A watchdog ``Observer`` runs in its own thread
and hands events over to the asyncio loop; ``ChangeWatcher.events()`` exposes
them as a lazy async stream of ``ChangeEvent``.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import pathlib
import time
from typing import AsyncIterator, Iterable, Optional, Sequence

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from livedoc.errors import WatchLost
from livedoc.models import ChangeEvent, ChangeKind

logger = logging.getLogger("livedoc.watcher")

_KINDS = {
    EVENT_TYPE_CREATED: ChangeKind.CREATED,
    EVENT_TYPE_MODIFIED: ChangeKind.MODIFIED,
    EVENT_TYPE_DELETED: ChangeKind.REMOVED,
    EVENT_TYPE_MOVED: ChangeKind.RENAMED,
}


def _decode(path) -> str:
    return path.decode() if isinstance(path, bytes) else str(path)


class _Handler(FileSystemEventHandler):
    """Converts watchdog events and forwards them to the owning watcher."""

    def __init__(self, watcher: "ChangeWatcher"):
        super().__init__()
        self.watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        try:
            change = self.watcher.convert(event)
        except Exception:
            logger.warning("Skipping unreadable filesystem event %r", event, exc_info=True)
            return
        if change is not None:
            self.watcher.push(change)


class ChangeWatcher:
    """
    Watches a directory tree and yields ``ChangeEvent`` objects.

    Paths inside *exclude* (e.g. the artifact directory) and paths with a
    component matching one of the *ignore* globs (e.g. ``.git``) never produce
    events.
    """

    def __init__(
        self,
        root: pathlib.Path,
        ignore: Sequence[str] = (),
        exclude: Iterable[pathlib.Path] = (),
        queue_size: int = 1024,
        health_interval: float = 1.0,
    ):
        self.root = pathlib.Path(root).resolve()
        self.ignore = tuple(ignore)
        self.exclude = tuple(pathlib.Path(p).resolve() for p in exclude)
        self.health_interval = health_interval
        self.dropped = 0
        self._queue_size = queue_size
        self._queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._observer: Optional[Observer] = None
        self._consumed = False

    # ── lifecycle ───────────────────────────────────────────────────────────
    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """
        Start observing the root recursively.

        Args:
            loop: Event loop that consumes events; defaults to the running loop

        Raises:
            WatchLost: If the root is not an existing directory
        """
        if not self.root.is_dir():
            raise WatchLost(f"Cannot watch {self.root}: not a directory")
        self._loop = loop or asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=self._queue_size)
        self._observer = Observer()
        try:
            self._observer.schedule(_Handler(self), str(self.root), recursive=True)
            self._observer.start()
        except OSError as e:
            raise WatchLost(f"Cannot watch {self.root}: {e}") from e
        logger.debug("Watching %s (ignoring %s)", self.root, ", ".join(self.ignore) or "nothing")

    def stop(self) -> None:
        """Stop the observer thread and wait for it to exit."""
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        if observer.is_alive():
            observer.join(timeout=5)

    # ── filtering / conversion ──────────────────────────────────────────────
    def is_ignored(self, path: str | pathlib.Path) -> bool:
        """
        Check whether a path should never trigger a rebuild.

        Args:
            path: Absolute path, or a path relative to the root

        Returns:
            True if the path is excluded or matches an ignore pattern
        """
        p = pathlib.Path(path)
        if not p.is_absolute():
            p = self.root / p
        for excluded in self.exclude:
            if p == excluded or excluded in p.parents:
                return True
        try:
            parts = p.relative_to(self.root).parts
        except ValueError:
            parts = p.parts
        return any(fnmatch.fnmatch(part, pattern) for part in parts for pattern in self.ignore)

    def convert(self, event: FileSystemEvent) -> Optional[ChangeEvent]:
        """
        Turn a watchdog event into a ``ChangeEvent``.

        Returns:
            The change, or None when the event is irrelevant (open/close
            notifications, directory metadata updates, ignored paths)
        """
        kind = _KINDS.get(event.event_type)
        if kind is None:
            return None
        if event.is_directory and kind is ChangeKind.MODIFIED:
            return None

        src = _decode(event.src_path)
        dest = _decode(event.dest_path) if kind is ChangeKind.RENAMED else None
        if dest is not None:
            if self.is_ignored(src) and self.is_ignored(dest):
                return None
        elif self.is_ignored(src):
            return None

        return ChangeEvent(path=src, kind=kind, timestamp=time.time(), dest_path=dest)

    # ── thread hand-off ─────────────────────────────────────────────────────
    def push(self, change: ChangeEvent) -> None:
        """Queue an event from the observer thread without blocking it."""
        if self._loop is None or self._loop.is_closed():
            return
        try:
            self._loop.call_soon_threadsafe(self._enqueue, change)
        except RuntimeError:
            # loop shut down between the check and the call
            pass

    def _enqueue(self, item) -> None:
        assert self._queue is not None
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            # Events already queued will trigger a rebuild that sees this change
            self.dropped += 1
            logger.debug("Event queue full, dropping %s", item)

    def _root_alive(self) -> bool:
        return self.root.is_dir() and self._observer is not None and self._observer.is_alive()

    # ── consumer side ───────────────────────────────────────────────────────
    async def events(self) -> AsyncIterator[ChangeEvent]:
        """
        Yield changes for as long as the process runs.

        The stream can only be consumed once.

        Raises:
            WatchLost: When the root disappears or the observer dies
            RuntimeError: If called twice, or before ``start()``
        """
        if self._consumed:
            raise RuntimeError("ChangeWatcher.events() can only be consumed once")
        if self._queue is None:
            raise RuntimeError("ChangeWatcher.start() must be called first")
        self._consumed = True

        while True:
            try:
                item = await asyncio.wait_for(self._queue.get(), timeout=self.health_interval)
            except asyncio.TimeoutError:
                if not self._root_alive():
                    raise WatchLost(f"Lost watch on {self.root}")
                continue

            if item.kind is ChangeKind.REMOVED and pathlib.Path(item.path) == self.root:
                raise WatchLost(f"Watch root {self.root} was removed")
            yield item
