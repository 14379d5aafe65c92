"""Filesystem change detection and debouncing."""

from livedoc.ingestion.coalescer import DebounceCoalescer
from livedoc.ingestion.watcher import ChangeWatcher

__all__ = ["ChangeWatcher", "DebounceCoalescer"]
