from __future__ import annotations

import time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ChangeKind(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"


class ChangeEvent(BaseModel):
    """A single filesystem mutation observed under the watch root."""

    model_config = ConfigDict(frozen=True)

    path: str
    kind: ChangeKind
    timestamp: float = Field(default_factory=time.time)
    dest_path: Optional[str] = None


class BuildResult(BaseModel):
    """
    Outcome of one documentation compiler run.

    Attributes:
        success: True when the compiler exited 0 and produced its output
        timestamp: Wall-clock time the build finished
        duration: Seconds spent in the compiler
        exit_status: Process return code (None if it never started)
        error: Tail of stderr, or a short reason, when the build failed
        artifact_path: Snapshot now being served, on success
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    timestamp: float = Field(default_factory=time.time)
    duration: float = 0.0
    exit_status: Optional[int] = None
    error: Optional[str] = None
    artifact_path: Optional[str] = None
