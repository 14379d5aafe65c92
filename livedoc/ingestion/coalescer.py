"""
livedoc/ingestion/coalescer.py
──────────────────────────────
Collapses bursts of ChangeEvents into single rebuild requests.

• The first event after idle opens a debounce window; each further event
  resets it.
• When the window elapses quietly, ``on_request`` is awaited exactly once.
• Events arriving during that call are remembered; a new window opens as
  soon as it returns, so they get exactly one follow-up rebuild.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncIterable, Awaitable, Callable

from livedoc.models import ChangeEvent

logger = logging.getLogger("livedoc.coalescer")


class DebounceCoalescer:
    def __init__(
        self,
        on_request: Callable[[], Awaitable[object]],
        window: float = 0.2,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            on_request: Coroutine function run once per rebuild request
            window: Debounce window in seconds
            clock: Monotonic time source
        """
        self.on_request = on_request
        self.window = window
        self.clock = clock
        self.requests = 0
        self.events_seen = 0
        self.building = False
        self._pending = False
        self._window_start = 0.0
        self._wake = asyncio.Event()

    @property
    def pending(self) -> bool:
        """True when a change has been seen that no rebuild has picked up yet."""
        return self._pending

    def notify(self, event: ChangeEvent) -> None:
        """Record a change. Never blocks."""
        self.events_seen += 1
        self._pending = True
        self._window_start = self.clock()
        self._wake.set()

    async def feed(self, events: AsyncIterable[ChangeEvent]) -> None:
        """Pump an event stream into ``notify`` until it ends or fails."""
        async for event in events:
            logger.debug("%s %s", event.kind.value, event.path)
            self.notify(event)

    async def _settle(self) -> None:
        while True:
            remaining = self._window_start + self.window - self.clock()
            if remaining <= 0:
                return
            await asyncio.sleep(remaining)

    async def run(self) -> None:
        """
        Worker loop. Runs until cancelled; an exception from ``on_request``
        propagates to the caller.
        """
        while True:
            await self._wake.wait()
            await self._settle()

            self._wake.clear()
            self._pending = False
            self.requests += 1
            self.building = True
            try:
                await self.on_request()
            finally:
                self.building = False

            if self._pending:
                # Changes made during the build get a fresh window from now
                self._window_start = max(self._window_start, self.clock())
