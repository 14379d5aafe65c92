"""
livedoc/build/snapshots.py
──────────────────────────
Immutable copies of the compiler's output.  The server only ever reads a
published snapshot, so a rebuild rewriting the artifact directory in place
can never leak half-written pages into a response.
"""

from __future__ import annotations

import logging
import pathlib
import shutil
import tempfile
import threading
from typing import List, Optional

logger = logging.getLogger("livedoc.snapshots")


class SnapshotPublisher:
    """
    Publishes artifact directories as numbered snapshots under *base_dir*.

    ``current()`` always returns a complete snapshot: the copy is finished
    before the pointer moves.  The last *keep* snapshots are retained so
    requests that started on an older one can still finish.
    """

    def __init__(self, base_dir: Optional[pathlib.Path] = None, keep: int = 3):
        self._owns_base = base_dir is None
        if base_dir is None:
            base_dir = pathlib.Path(tempfile.mkdtemp(prefix="livedoc-"))
        self.base_dir = pathlib.Path(base_dir).resolve()
        self.keep = max(1, keep)
        self._serial = 0
        self._history: List[pathlib.Path] = []
        self._current: Optional[pathlib.Path] = None
        self._lock = threading.Lock()

    def current(self) -> Optional[pathlib.Path]:
        """Snapshot being served, or None before the first successful build."""
        return self._current

    def publish(self, source: pathlib.Path) -> pathlib.Path:
        """
        Copy *source* into a new snapshot and make it current.

        Args:
            source: The compiler's artifact directory

        Returns:
            Path of the new snapshot

        Raises:
            FileNotFoundError: If *source* is not a directory
        """
        source = pathlib.Path(source)
        if not source.is_dir():
            raise FileNotFoundError(f"Artifact directory {source} does not exist")

        with self._lock:
            self._serial += 1
            target = self.base_dir / f"{self._serial:06d}"
            staging = self.base_dir / f".{self._serial:06d}.partial"

        self.base_dir.mkdir(parents=True, exist_ok=True)
        shutil.rmtree(staging, ignore_errors=True)
        shutil.copytree(source, staging, symlinks=True)
        staging.rename(target)

        with self._lock:
            self._current = target
            self._history.append(target)
            stale, self._history = self._history[: -self.keep], self._history[-self.keep :]

        for old in stale:
            shutil.rmtree(old, ignore_errors=True)
        logger.debug("Published snapshot %s", target)
        return target

    def cleanup(self) -> None:
        """Delete every snapshot (and the base directory if we created it)."""
        with self._lock:
            self._current = None
            history, self._history = self._history, []
        for old in history:
            shutil.rmtree(old, ignore_errors=True)
        if self._owns_base:
            shutil.rmtree(self.base_dir, ignore_errors=True)
