from pathlib import Path

import pytest

from romsync.config.loader import (
    DEFAULT_CONFIG,
    ConfigError,
    get_config_value,
    get_database_path,
    load_config,
    merge_config,
)


@pytest.mark.unit
def test_load_config_merges_over_defaults(make_config, tmp_path):
    path = make_config({"download": {"sources": ["redump"]}, "filters": {"preset": "usa"}})

    cfg = load_config(str(path))

    assert cfg["paths"]["target"] == str(tmp_path / "collection")
    assert cfg["download"]["jobs"] == 2
    assert cfg["download"]["sources"] == ["redump"]
    assert cfg["download"]["retry_count"] == 3
    assert cfg["filters"]["preset"] == "usa"
    assert cfg["filters"]["include_homebrew"] is True


@pytest.mark.unit
def test_load_config_does_not_mutate_defaults(make_config):
    cfg = load_config(str(make_config({"download": {"systems": ["GB"]}})))
    cfg["download"]["sources"].append("other")

    assert DEFAULT_CONFIG["download"]["systems"] == []
    assert DEFAULT_CONFIG["download"]["sources"] == ["no-intro", "redump"]


@pytest.mark.unit
def test_load_config_missing_file_raises(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(str(tmp_path / "does-not-exist.yaml"))


@pytest.mark.unit
def test_load_config_invalid_yaml_raises(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("download: [unclosed")

    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_config(str(path))


@pytest.mark.unit
def test_load_config_rejects_non_mapping(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n")

    with pytest.raises(ConfigError, match="dictionary"):
        load_config(str(path))


@pytest.mark.unit
def test_load_config_empty_file_uses_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")

    assert load_config(str(path)) == DEFAULT_CONFIG


@pytest.mark.unit
def test_load_config_without_path_uses_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert load_config() == DEFAULT_CONFIG

    (tmp_path / "config.yaml").write_text("download:\n  jobs: 7\n")
    assert load_config()["download"]["jobs"] == 7


@pytest.mark.unit
def test_get_config_value():
    cfg = {"download": {"jobs": 3, "user_agent": None}}

    assert get_config_value(cfg, "download.jobs") == 3
    assert get_config_value(cfg, "download.missing", 9) == 9
    assert get_config_value(cfg, "download.user_agent", "fallback") == "fallback"
    assert get_config_value(cfg, "download.jobs.deeper", "x") == "x"


@pytest.mark.unit
def test_merge_config_replaces_lists():
    merged = merge_config({"a": {"b": [1, 2], "c": 1}}, {"a": {"b": [3]}})
    assert merged == {"a": {"b": [3], "c": 1}}


@pytest.mark.unit
def test_get_database_path(tmp_path):
    assert get_database_path({"paths": {"target": str(tmp_path)}}) == tmp_path / "romsync.db"
    explicit = tmp_path / "elsewhere" / "catalog.db"
    assert get_database_path({"paths": {"target": ".", "database": str(explicit)}}) == Path(explicit)
