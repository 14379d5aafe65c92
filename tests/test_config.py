from __future__ import annotations

from pathlib import Path

from livedoc.config import ConfigManager


def test_defaults_without_file(tmp_path: Path) -> None:
    config = ConfigManager(project_root=str(tmp_path))

    assert config.config_path is None
    assert config.get("server.host") == "0.0.0.0"
    assert config.get("server.port") == 8000
    assert config.get("watch.debounce") == 0.2
    assert ".git" in config.get("watch.ignore")
    assert "target" in config.get("watch.ignore")
    assert config.get("build.command") is None


def test_project_file_is_merged_per_section(tmp_path: Path) -> None:
    (tmp_path / "livedoc.yaml").write_text(
        "server:\n  port: 9000\nwatch:\n  debounce: 0.5\n",
        encoding="utf-8",
    )
    config = ConfigManager(project_root=str(tmp_path))

    assert config.get("server.port") == 9000
    assert config.get("server.host") == "0.0.0.0"
    assert config.get("watch.debounce") == 0.5
    assert config.get("watch.queue_size") == 1024


def test_defaults_are_not_shared_between_instances(tmp_path: Path) -> None:
    (tmp_path / "livedoc.yaml").write_text("server:\n  port: 9001\n", encoding="utf-8")
    ConfigManager(project_root=str(tmp_path))

    assert ConfigManager.DEFAULT_CONFIG["server"]["port"] == 8000
    assert ConfigManager().get("server.port") == 8000


def test_invalid_values_fall_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "custom.yaml"
    path.write_text(
        "server:\n  port: not-a-port\nwatch:\n  debounce: -1\n  ignore: .git\n",
        encoding="utf-8",
    )
    config = ConfigManager(config_path=str(path))

    assert config.get("server.port") == 8000
    assert config.get("watch.debounce") == 0.2
    assert config.get("watch.ignore") == ConfigManager.DEFAULT_CONFIG["watch"]["ignore"]


def test_string_command_is_split(tmp_path: Path) -> None:
    path = tmp_path / "custom.yaml"
    path.write_text("build:\n  command: mkdocs build --site-dir 'my site'\n", encoding="utf-8")
    config = ConfigManager(config_path=str(path))

    assert config.get("build.command") == ["mkdocs", "build", "--site-dir", "my site"]


def test_missing_or_broken_file_uses_defaults(tmp_path: Path) -> None:
    missing = ConfigManager(config_path=str(tmp_path / "nope.yaml"))
    assert missing.get("server.port") == 8000

    broken = tmp_path / "broken.yaml"
    broken.write_text("server: [unclosed\n", encoding="utf-8")
    assert ConfigManager(config_path=str(broken)).get("server.port") == 8000


def test_set_and_get_path(tmp_path: Path) -> None:
    config = ConfigManager()
    config.set("build.artifacts", "site")

    assert config.get_path("build.artifacts") == Path("site")
    assert config.get_path("build.artifacts", base=tmp_path) == tmp_path / "site"
    assert config.get_path("build.snapshots") is None
    assert config.get("no.such.key", "fallback") == "fallback"
