from __future__ import annotations

import asyncio
import sys
import time
from typing import Callable, List

import pytest

PYTHON = sys.executable


class FakeClient:
    """Stands in for a browser WebSocket."""

    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.fail = fail
        self.delay = delay
        self.messages: List[str] = []
        self.closed = False

    async def send_text(self, data: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConnectionResetError("client went away")
        self.messages.append(data)

    async def close(self, code: int = 1000) -> None:
        self.closed = True


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def python_command(code: str) -> List[str]:
    return [PYTHON, "-c", code]


@pytest.fixture
def site_builder():
    """Compiler that writes out/index.html and out/style.css."""
    return python_command(
        "import pathlib\n"
        "out = pathlib.Path('out'); out.mkdir(exist_ok=True)\n"
        "(out / 'index.html').write_text('<html><body><h1>Docs</h1></body></html>')\n"
        "(out / 'style.css').write_text('body {}')\n"
    )
