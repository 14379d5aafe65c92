from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import pytest
from conftest import python_command, wait_until

from livedoc.build.invoker import BuildInvoker
from livedoc.build.snapshots import SnapshotPublisher
from livedoc.errors import BuildAlreadyRunning, CompilerNotFound, WatchLost


def test_successful_build_publishes_a_snapshot(tmp_path: Path, site_builder) -> None:
    publisher = SnapshotPublisher(tmp_path / "snapshots")
    invoker = BuildInvoker(site_builder, cwd=tmp_path, artifact_dir=tmp_path / "out", publisher=publisher)

    result = asyncio.run(invoker.run_build())

    assert result.success is True
    assert result.exit_status == 0
    assert result.error is None
    snapshot = Path(result.artifact_path)
    assert snapshot == publisher.current()
    assert (snapshot / "index.html").read_text().startswith("<html>")
    assert invoker.builds == 1
    assert invoker.last_result == result


def test_failed_build_reports_stderr_tail(tmp_path: Path) -> None:
    command = python_command(
        "import sys\n"
        "for i in range(30):\n"
        "    print(f'error line {i}', file=sys.stderr)\n"
        "sys.exit(3)\n"
    )
    publisher = SnapshotPublisher(tmp_path / "snapshots")
    invoker = BuildInvoker(command, cwd=tmp_path, artifact_dir=tmp_path / "out", publisher=publisher, stderr_tail=5)

    result = asyncio.run(invoker.run_build())

    assert result.success is False
    assert result.exit_status == 3
    assert result.error.splitlines() == [f"error line {i}" for i in range(25, 30)]
    assert publisher.current() is None


def test_failed_build_keeps_previous_snapshot(tmp_path: Path, site_builder) -> None:
    publisher = SnapshotPublisher(tmp_path / "snapshots")
    good = BuildInvoker(site_builder, cwd=tmp_path, artifact_dir=tmp_path / "out", publisher=publisher)
    first = asyncio.run(good.run_build())

    # compiler that half-rewrites the output and then fails
    broken = BuildInvoker(
        python_command(
            "import pathlib, sys\n"
            "pathlib.Path('out/index.html').write_text('<html>half')\n"
            "sys.exit(1)\n"
        ),
        cwd=tmp_path,
        artifact_dir=tmp_path / "out",
        publisher=publisher,
    )
    second = asyncio.run(broken.run_build())

    assert second.success is False
    assert publisher.current() == Path(first.artifact_path)
    assert "<h1>Docs</h1>" in (publisher.current() / "index.html").read_text()


def test_zero_exit_without_artifacts_is_a_failure(tmp_path: Path) -> None:
    invoker = BuildInvoker(python_command("pass"), cwd=tmp_path, artifact_dir=tmp_path / "missing")

    result = asyncio.run(invoker.run_build())

    assert result.success is False
    assert "missing" in result.error


def test_missing_compiler_is_fatal(tmp_path: Path) -> None:
    invoker = BuildInvoker(["no-such-doc-compiler-xyz"], cwd=tmp_path, artifact_dir=tmp_path)

    with pytest.raises(CompilerNotFound):
        asyncio.run(invoker.run_build())
    assert not invoker.running


def test_missing_project_directory_is_reported_as_lost(tmp_path: Path) -> None:
    invoker = BuildInvoker(python_command("pass"), cwd=tmp_path / "renamed-away", artifact_dir=tmp_path)

    with pytest.raises(WatchLost, match="renamed-away"):
        asyncio.run(invoker.run_build())
    assert not invoker.running


def test_compiler_warnings_are_logged_on_success(tmp_path: Path, caplog) -> None:
    command = python_command(
        "import os, sys\n"
        "os.makedirs('out', exist_ok=True)\n"
        "print('warning: unused import', file=sys.stderr)\n"
    )
    invoker = BuildInvoker(command, cwd=tmp_path, artifact_dir=tmp_path / "out")

    with caplog.at_level(logging.INFO, logger="livedoc.build"):
        result = asyncio.run(invoker.run_build())

    assert result.success is True
    assert any(
        r.levelno == logging.INFO and "warning: unused import" in r.getMessage() for r in caplog.records
    )


def test_overlapping_builds_are_rejected(tmp_path: Path) -> None:
    invoker = BuildInvoker(
        python_command("import time; time.sleep(0.5)"),
        cwd=tmp_path,
        artifact_dir=tmp_path,
    )

    async def scenario() -> None:
        first = asyncio.create_task(invoker.run_build())
        await wait_until(lambda: invoker.running)
        with pytest.raises(BuildAlreadyRunning):
            await invoker.run_build()
        result = await first
        assert result.success is True

    asyncio.run(scenario())
    assert invoker.builds == 1


def test_cancellation_terminates_the_subprocess(tmp_path: Path) -> None:
    marker = tmp_path / "finished"
    invoker = BuildInvoker(
        python_command(f"import time, pathlib; time.sleep(5); pathlib.Path({str(marker)!r}).touch()"),
        cwd=tmp_path,
        artifact_dir=tmp_path,
    )

    async def scenario() -> None:
        task = asyncio.create_task(invoker.run_build())
        await wait_until(lambda: invoker._proc is not None)
        proc = invoker._proc
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert proc.returncode is not None

    asyncio.run(scenario())
    assert not invoker.running
    assert not marker.exists()


def test_aclose_stops_a_running_build(tmp_path: Path) -> None:
    invoker = BuildInvoker(python_command("import time; time.sleep(5)"), cwd=tmp_path, artifact_dir=tmp_path)

    async def scenario():
        task = asyncio.create_task(invoker.run_build())
        await wait_until(lambda: invoker._proc is not None)
        await invoker.aclose()
        return await asyncio.wait_for(task, timeout=5)

    result = asyncio.run(scenario())
    assert result.success is False


def test_empty_command_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        BuildInvoker([], cwd=tmp_path, artifact_dir=tmp_path)
