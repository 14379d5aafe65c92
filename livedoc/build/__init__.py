"""Documentation compiler invocation and artifact publishing."""

from livedoc.build.invoker import BuildInvoker
from livedoc.build.metadata import ProjectMetadata, resolve_project
from livedoc.build.snapshots import SnapshotPublisher

__all__ = ["BuildInvoker", "ProjectMetadata", "SnapshotPublisher", "resolve_project"]
