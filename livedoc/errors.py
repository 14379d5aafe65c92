"""
livedoc/errors.py
─────────────────
Error taxonomy.  Anything deriving from ``FatalError`` ends the process with a
non-zero exit code; everything else is logged and the loop keeps going.
"""

from __future__ import annotations


class LiveDocError(Exception):
    """Base class for every error raised by livedoc."""


class FatalError(LiveDocError):
    """An error the server cannot recover from."""


class WatchLost(FatalError):
    """The watch root was deleted or can no longer be observed."""


class CompilerNotFound(FatalError):
    """The documentation compiler executable does not exist."""


class PortUnavailable(FatalError):
    """The listen address could not be bound."""


class ProjectError(FatalError):
    """The target directory is not a buildable project."""


class BuildAlreadyRunning(LiveDocError):
    """``run_build`` was called while another build was still in flight."""
