"""
livedoc/reload/broadcaster.py
─────────────────────────────
Registry of connected browser tabs and the reload fan-out.

All registry access (register / unregister / notify / close) is serialized
on one lock, so a connection is never notified while it is being torn down.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Dict, Protocol

logger = logging.getLogger("livedoc.reload")

RELOAD_MESSAGE = "reload"


class ClientConnection(Protocol):
    """Anything that can push text to a browser (a FastAPI WebSocket does)."""

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class ReloadBroadcaster:
    def __init__(self, send_timeout: float = 2.0):
        """
        Args:
            send_timeout: Seconds a single client may take to accept a message
                before it is dropped
        """
        self.send_timeout = send_timeout
        self.notifications = 0
        self._clients: Dict[int, ClientConnection] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._clients)

    async def register(self, connection: ClientConnection) -> int:
        """
        Add a client to the registry.

        Returns:
            Connection id to pass to ``unregister``
        """
        async with self._lock:
            conn_id = next(self._ids)
            self._clients[conn_id] = connection
        logger.debug("Client %d connected (%d total)", conn_id, len(self._clients))
        return conn_id

    async def unregister(self, conn_id: int) -> None:
        """Remove a client. Unknown ids are ignored."""
        async with self._lock:
            removed = self._clients.pop(conn_id, None)
        if removed is not None:
            logger.debug("Client %d disconnected (%d total)", conn_id, len(self._clients))

    async def _deliver(self, conn_id: int, connection: ClientConnection, message: str) -> bool:
        try:
            await asyncio.wait_for(connection.send_text(message), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.debug("Client %d timed out, dropping it", conn_id)
        except Exception as e:
            logger.debug("Client %d failed (%s), dropping it", conn_id, e)
        return False

    async def _disconnect(self, conn_id: int, connection: ClientConnection) -> None:
        # the tab reconnects on close and gets the next reload
        try:
            await asyncio.wait_for(connection.close(), timeout=self.send_timeout)
        except Exception as e:
            logger.debug("Closing client %d failed: %s", conn_id, e)

    async def notify_reload(self, message: str = RELOAD_MESSAGE) -> int:
        """
        Send *message* to every registered client.

        Clients that fail or time out are unregistered and closed; their
        failure is never raised to the caller.  With nobody connected the message is dropped.

        Returns:
            Number of clients that received the message
        """
        async with self._lock:
            self.notifications += 1
            if not self._clients:
                logger.debug("No clients connected, reload dropped")
                return 0

            targets = list(self._clients.items())
            outcomes = await asyncio.gather(
                *(self._deliver(conn_id, conn, message) for conn_id, conn in targets)
            )
            dead = [conn_id for (conn_id, _), ok in zip(targets, outcomes) if not ok]
            for conn_id in dead:
                await self._disconnect(conn_id, self._clients.pop(conn_id))

        delivered = len(targets) - len(dead)
        logger.info("Reload sent to %d client(s)", delivered)
        return delivered

    async def close_all(self) -> None:
        """Close every connection and empty the registry."""
        async with self._lock:
            clients, self._clients = self._clients, {}
        for conn_id, connection in clients.items():
            await self._disconnect(conn_id, connection)
