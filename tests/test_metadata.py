from __future__ import annotations

import logging
from pathlib import Path

import pytest

from livedoc.build.metadata import parse_cargo_metadata, resolve_project
from livedoc.errors import ProjectError


def cargo_metadata(root: Path) -> dict:
    return {
        "packages": [
            {
                "name": "my-crate",
                "id": "my-crate 0.1.0 (path+file:///x)",
                "manifest_path": str(root / "Cargo.toml"),
                "targets": [
                    {"name": "my-crate", "kind": ["bin"]},
                    {"name": "my-crate", "kind": ["lib"]},
                ],
            },
            {
                "name": "helper",
                "id": "helper 0.1.0 (path+file:///x/helper)",
                "manifest_path": str(root / "helper" / "Cargo.toml"),
                "targets": [{"name": "helper-cli", "kind": ["bin"]}],
            },
        ],
        "workspace_members": [
            "my-crate 0.1.0 (path+file:///x)",
            "helper 0.1.0 (path+file:///x/helper)",
        ],
        "resolve": None,
        "target_directory": str(root / "target"),
        "workspace_root": str(root),
    }


def test_root_package_and_library_target_are_preferred(tmp_path: Path) -> None:
    meta = parse_cargo_metadata(tmp_path, cargo_metadata(tmp_path))

    assert meta.name == "my-crate"
    assert meta.command == [
        "cargo",
        "doc",
        "--no-deps",
        "--document-private-items",
        "--package",
        "my-crate",
    ]
    assert meta.artifact_dir == tmp_path / "target" / "doc"
    assert meta.index_path == "/my_crate/"
    assert meta.watch_root == tmp_path


def test_named_package_with_binary_target(tmp_path: Path) -> None:
    meta = parse_cargo_metadata(tmp_path, cargo_metadata(tmp_path), package="helper")

    assert meta.name == "helper"
    assert meta.index_path == "/helper_cli/"
    assert meta.watch_root == tmp_path / "helper"


def test_unknown_package_is_a_project_error(tmp_path: Path) -> None:
    with pytest.raises(ProjectError, match="not found"):
        parse_cargo_metadata(tmp_path, cargo_metadata(tmp_path), package="nope")


def test_virtual_workspace_falls_back_to_first_member(tmp_path: Path) -> None:
    data = cargo_metadata(tmp_path)
    data["workspace_root"] = str(tmp_path / "elsewhere")

    assert parse_cargo_metadata(tmp_path, data).name == "my-crate"


def test_custom_command_skips_cargo(tmp_path: Path, caplog) -> None:
    with caplog.at_level(logging.INFO, logger="livedoc.metadata"):
        meta = resolve_project(tmp_path, command=["mkdocs", "build"], artifacts=Path("site"))

    assert "Resolving project" in caplog.text

    assert meta.command == ["mkdocs", "build"]
    assert meta.artifact_dir == (tmp_path / "site").resolve()
    assert meta.watch_root == tmp_path.resolve()
    assert meta.index_path is None


def test_custom_command_needs_artifacts(tmp_path: Path) -> None:
    with pytest.raises(ProjectError):
        resolve_project(tmp_path, command=["mkdocs", "build"])


def test_directory_without_manifest_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ProjectError, match="Cargo.toml"):
        resolve_project(tmp_path)
    with pytest.raises(ProjectError):
        resolve_project(tmp_path / "missing", command=["x"], artifacts=Path("out"))
