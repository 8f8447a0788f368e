"""
Tests for YAML configuration loading and merging.
"""

from pathlib import Path

from taskboard.config_loader import AppConfig, StorageConfig, deep_merge_dict, find_config_root, load_config


def test_defaults_without_files(tmp_path):
    config = load_config(tmp_path)

    assert config.server.port == 5555
    assert config.upstream.aggregator_url == ""
    assert config.cache.reference_ttl_seconds == 86400
    assert config.refresh_seconds_for("weather", 600) == 600


def test_single_file_overrides(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "server:\n  port: 6000\n"
        "cache:\n  refresh_seconds:\n    weather: 120\n",
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.server.port == 6000
    assert config.server.host == "127.0.0.1"
    assert config.refresh_seconds_for("weather", 600) == 120
    assert config.refresh_seconds_for("aggregator", 1800) == 1800


def test_directory_files_are_deep_merged_in_order(tmp_path):
    (tmp_path / "a.yaml").write_text("upstream:\n  timeout: 3\n  gh_binary: /usr/bin/gh\n", encoding="utf-8")
    (tmp_path / "b.yml").write_text("upstream:\n  timeout: 5\n", encoding="utf-8")

    config = load_config(tmp_path)

    assert config.upstream.timeout == 5
    assert config.upstream.gh_binary == "/usr/bin/gh"


def test_invalid_yaml_is_skipped(tmp_path):
    (tmp_path / "a.yaml").write_text("server:\n  port: 7000\n", encoding="utf-8")
    (tmp_path / "b.yaml").write_text("server: [unclosed\n", encoding="utf-8")
    (tmp_path / "c.yaml").write_text("- just\n- a list\n", encoding="utf-8")

    assert load_config(tmp_path).server.port == 7000


def test_find_config_root_prefers_config_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("TASKBOARD_ROOT", str(tmp_path))
    assert find_config_root() == tmp_path

    (tmp_path / "config.yaml").write_text("{}", encoding="utf-8")
    assert find_config_root() == tmp_path / "config.yaml"

    (tmp_path / "config").mkdir()
    assert find_config_root() == tmp_path / "config"


def test_relative_db_path_resolves_against_root(tmp_path, monkeypatch):
    monkeypatch.setenv("TASKBOARD_ROOT", str(tmp_path))

    assert StorageConfig().db_path == tmp_path / "data" / "taskboard.json"
    assert StorageConfig(data_dir="/srv/board").db_path == Path("/srv/board/taskboard.json")


def test_deep_merge_dict():
    base = {"a": {"b": 1, "c": 2}, "d": 1}

    assert deep_merge_dict(base, {"a": {"c": 3}, "e": 4}) == {"a": {"b": 1, "c": 3}, "d": 1, "e": 4}


def test_model_validate_from_dict():
    config = AppConfig.model_validate({"storage": {"db_file": "board.json"}})

    assert config.storage.db_file == "board.json"
    assert config.storage.data_dir == "data"
