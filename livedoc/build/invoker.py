"""
livedoc/build/invoker.py
────────────────────────
Runs the documentation compiler as a subprocess.

• Exactly one build may be in flight; overlapping calls raise
  ``BuildAlreadyRunning``.
• Output is forwarded to the ``livedoc.build`` logger, never parsed.
• A successful build is published as a snapshot before it is reported.
• The child process is terminated on cancellation and on ``aclose()``.
"""

from __future__ import annotations

import asyncio
import logging
import pathlib
import time
from typing import List, Optional, Sequence

from livedoc.build.snapshots import SnapshotPublisher
from livedoc.errors import BuildAlreadyRunning, CompilerNotFound, WatchLost
from livedoc.models import BuildResult

logger = logging.getLogger("livedoc.build")

# Seconds to wait after SIGTERM before resorting to SIGKILL
TERMINATE_GRACE = 5.0


class BuildInvoker:
    def __init__(
        self,
        command: Sequence[str],
        cwd: pathlib.Path,
        artifact_dir: pathlib.Path,
        publisher: Optional[SnapshotPublisher] = None,
        stderr_tail: int = 20,
    ):
        """
        Args:
            command: Compiler argv, e.g. ``["cargo", "doc", "--no-deps"]``
            cwd: Working directory of the compiler (the project root)
            artifact_dir: Directory the compiler writes its output to
            publisher: Snapshot store for successful outputs (optional)
            stderr_tail: Number of stderr lines kept in a failed result
        """
        if not command:
            raise ValueError("Build command must not be empty")
        self.command: List[str] = [str(c) for c in command]
        self.cwd = pathlib.Path(cwd)
        self.artifact_dir = pathlib.Path(artifact_dir)
        self.publisher = publisher
        self.stderr_tail = stderr_tail
        self.builds = 0
        self.last_result: Optional[BuildResult] = None
        self._proc: Optional[asyncio.subprocess.Process] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def run_build(self) -> BuildResult:
        """
        Run the compiler once.

        Returns:
            BuildResult describing the run

        Raises:
            BuildAlreadyRunning: If another build is still in flight
            CompilerNotFound: If the compiler executable does not exist
            WatchLost: If the project directory has gone away
        """
        if self._running:
            raise BuildAlreadyRunning("A documentation build is already running")
        self._running = True
        try:
            result = await self._run()
        finally:
            self._running = False
        self.builds += 1
        self.last_result = result
        return result

    async def _run(self) -> BuildResult:
        started = time.monotonic()
        if not self.cwd.is_dir():
            raise WatchLost(f"Project directory {self.cwd} no longer exists")
        logger.info("Compiling documentation: %s", " ".join(self.command))

        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self.command,
                cwd=str(self.cwd),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            if not self.cwd.is_dir():
                raise WatchLost(f"Project directory {self.cwd} no longer exists") from e
            raise CompilerNotFound(f"Documentation compiler not found: {self.command[0]}") from e

        proc = self._proc
        try:
            stdout, stderr = await proc.communicate()
        except BaseException:
            await self._terminate(proc)
            raise
        finally:
            self._proc = None

        duration = time.monotonic() - started
        out_lines = stdout.decode(errors="replace").splitlines()
        err_lines = stderr.decode(errors="replace").splitlines()
        for line in out_lines:
            logger.debug("[stdout] %s", line)
        # a failed build logs its stderr tail below instead
        err_level = logging.INFO if proc.returncode == 0 else logging.DEBUG
        for line in err_lines:
            logger.log(err_level, "[stderr] %s", line)

        if proc.returncode != 0:
            tail = "\n".join(err_lines[-self.stderr_tail :])
            logger.error(
                "Documentation build failed (exit status %s) after %.2fs:\n%s",
                proc.returncode,
                duration,
                tail,
            )
            return BuildResult(
                success=False,
                duration=duration,
                exit_status=proc.returncode,
                error=tail or f"exit status {proc.returncode}",
            )

        if not self.artifact_dir.is_dir():
            logger.error("Compiler exited 0 but %s does not exist", self.artifact_dir)
            return BuildResult(
                success=False,
                duration=duration,
                exit_status=proc.returncode,
                error=f"artifact directory {self.artifact_dir} missing",
            )

        artifact_path = self.artifact_dir
        if self.publisher is not None:
            try:
                artifact_path = await asyncio.to_thread(self.publisher.publish, self.artifact_dir)
            except OSError as e:
                logger.error("Could not snapshot %s: %s", self.artifact_dir, e)
                return BuildResult(
                    success=False,
                    duration=duration,
                    exit_status=proc.returncode,
                    error=f"snapshot failed: {e}",
                )

        logger.info("Documentation compiled in %.2fs", duration)
        return BuildResult(
            success=True,
            duration=duration,
            exit_status=proc.returncode,
            artifact_path=str(artifact_path),
        )

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        logger.debug("Terminating compiler (pid %s)", proc.pid)
        try:
            proc.terminate()
            try:
                await asyncio.wait_for(proc.wait(), timeout=TERMINATE_GRACE)
            except asyncio.TimeoutError:
                proc.kill()
                await proc.wait()
        except ProcessLookupError:
            pass

    async def aclose(self) -> None:
        """Terminate the running compiler, if any."""
        proc = self._proc
        if proc is not None:
            await self._terminate(proc)
