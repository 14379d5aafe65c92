"""
livedoc/build/metadata.py
─────────────────────────
Works out what to build and where the output lands, for Cargo projects via
``cargo metadata`` and for any other toolchain from explicit settings.
"""

from __future__ import annotations

import json
import logging
import pathlib
import subprocess
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence

from livedoc.errors import CompilerNotFound, ProjectError

logger = logging.getLogger("livedoc.metadata")


@dataclass(frozen=True)
class ProjectMetadata:
    """Everything the server needs to know about the documented project."""

    root: pathlib.Path
    command: List[str]
    artifact_dir: pathlib.Path
    watch_root: pathlib.Path
    name: Optional[str] = None
    index_path: Optional[str] = None


def cargo_doc_command(package: str) -> List[str]:
    return ["cargo", "doc", "--no-deps", "--document-private-items", "--package", package]


def _select_package(metadata: Dict[str, Any], package: Optional[str]) -> Dict[str, Any]:
    packages = metadata.get("packages", [])
    if package is not None:
        for p in packages:
            if p.get("name") == package:
                return p
        raise ProjectError(
            f"Package `{package}` not found. "
            "Are you sure you pointed to the right crate root and package name?"
        )

    by_id = {p.get("id"): p for p in packages}
    resolve = metadata.get("resolve") or {}
    root_id = resolve.get("root")
    if root_id in by_id:
        return by_id[root_id]

    # `--no-deps` leaves resolve empty; a manifest dir equal to the workspace
    # root identifies the root package
    workspace_root = metadata.get("workspace_root")
    if workspace_root:
        for p in packages:
            manifest = pathlib.Path(p.get("manifest_path", ""))
            if manifest.parent == pathlib.Path(workspace_root):
                return p

    for member in metadata.get("workspace_default_members") or metadata.get("workspace_members") or []:
        if member in by_id:
            return by_id[member]

    raise ProjectError("No package was specified and there was no root package either")


def _select_target(package: Dict[str, Any]) -> Dict[str, Any]:
    targets = package.get("targets", [])
    for wanted in ("lib", "bin"):
        for target in targets:
            kinds = target.get("kind", [])
            if any(k == wanted or (wanted == "lib" and k.endswith("lib")) for k in kinds):
                return target
    if targets:
        return targets[0]
    raise ProjectError(f"Package `{package.get('name')}` has no targets!")


def parse_cargo_metadata(
    root: pathlib.Path, metadata: Dict[str, Any], package: Optional[str] = None
) -> ProjectMetadata:
    """
    Build ``ProjectMetadata`` from the JSON document ``cargo metadata`` prints.

    Args:
        root: Directory cargo was run in
        metadata: Parsed ``cargo metadata --format-version 1`` output
        package: Package to document; defaults to the root package

    Returns:
        ProjectMetadata for the selected package

    Raises:
        ProjectError: If no suitable package or target exists
    """
    pkg = _select_package(metadata, package)
    target = _select_target(pkg)
    name = pkg["name"]
    target_dir = pathlib.Path(metadata.get("target_directory") or root / "target")
    manifest_dir = pathlib.Path(pkg.get("manifest_path") or root / "Cargo.toml").parent

    return ProjectMetadata(
        root=root,
        command=cargo_doc_command(name),
        artifact_dir=target_dir / "doc",
        watch_root=manifest_dir,
        name=name,
        # rustdoc names the crate directory after the target, with `-` as `_`
        index_path=f"/{target['name'].replace('-', '_')}/",
    )


def resolve_cargo_project(root: pathlib.Path, package: Optional[str] = None) -> ProjectMetadata:
    """
    Run ``cargo metadata`` in *root* and select the package to document.

    Raises:
        CompilerNotFound: If ``cargo`` is not installed
        ProjectError: If cargo fails or the package cannot be found
    """
    root = pathlib.Path(root).resolve()
    logger.info("Getting cargo metadata...")
    try:
        proc = subprocess.run(
            ["cargo", "metadata", "--format-version", "1", "--no-deps"],
            cwd=str(root),
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as e:
        raise CompilerNotFound("`cargo` was not found on PATH") from e

    if proc.returncode != 0:
        raise ProjectError(f"Failed to get cargo metadata:\n{proc.stderr.strip()}")
    try:
        metadata = json.loads(proc.stdout)
    except json.JSONDecodeError as e:
        raise ProjectError(f"Unreadable cargo metadata: {e}") from e

    return parse_cargo_metadata(root, metadata, package)


def resolve_project(
    root: pathlib.Path,
    command: Optional[Sequence[str]] = None,
    artifacts: Optional[pathlib.Path] = None,
    package: Optional[str] = None,
) -> ProjectMetadata:
    """
    Resolve the project to document.

    With an explicit *command* the toolchain is treated as a black box and
    *artifacts* names its output directory.  Otherwise the project must be a
    Cargo crate.

    Raises:
        ProjectError: If the project cannot be built
    """
    root = pathlib.Path(root).resolve()
    if not root.is_dir():
        raise ProjectError(f"{root} is not a directory")

    if command:
        logger.info("Resolving project in %s...", root)
        if artifacts is None:
            raise ProjectError("A custom build command needs an artifact directory (--artifacts)")
        artifact_dir = artifacts if artifacts.is_absolute() else root / artifacts
        return ProjectMetadata(
            root=root,
            command=[str(c) for c in command],
            artifact_dir=artifact_dir.resolve(),
            watch_root=root,
        )

    if not (root / "Cargo.toml").exists():
        raise ProjectError(
            f"{root} has no Cargo.toml; pass --command and --artifacts for other toolchains"
        )
    meta = resolve_cargo_project(root, package)
    if artifacts is not None:
        artifact_dir = artifacts if artifacts.is_absolute() else root / artifacts
        meta = replace(meta, artifact_dir=artifact_dir.resolve())
    return meta
