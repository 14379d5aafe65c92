"""Browser reload notification."""

from livedoc.reload.broadcaster import ClientConnection, ReloadBroadcaster

__all__ = ["ClientConnection", "ReloadBroadcaster"]
