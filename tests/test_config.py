"""Tests for workspace configuration."""

from pathlib import Path

import pytest

from gridedit import ConfigError, WorkspaceConfig, load_config
from gridedit.config import DEFAULT_WORKSPACE_PATH, WORKSPACE_ENV


@pytest.fixture(autouse=True)
def no_env_override(monkeypatch):
    monkeypatch.delenv(WORKSPACE_ENV, raising=False)


class TestDefaults:

    def test_defaults(self):
        config = WorkspaceConfig()
        assert config.workspace_dir == DEFAULT_WORKSPACE_PATH
        assert config.log_suffix == ".history"
        assert config.fsync is True

    def test_log_path(self, tmp_path):
        config = WorkspaceConfig(workspace_dir=tmp_path, log_suffix=".log")
        assert config.log_path(17) == tmp_path / "17.log"


class TestLoadConfig:

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(f"workspace_dir: {tmp_path / 'ws'}\nfsync: false\n")
        config = load_config(path)
        assert config.workspace_dir == tmp_path / "ws"
        assert config.fsync is False
        assert config.log_suffix == ".history"

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path) == WorkspaceConfig()

    def test_home_is_expanded(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("workspace_dir: ~/projects\n")
        assert load_config(path).workspace_dir == Path.home() / "projects"

    def test_environment_override(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("workspace_dir: /somewhere\n")
        monkeypatch.setenv(WORKSPACE_ENV, str(tmp_path / "env"))
        assert load_config(path).workspace_dir == tmp_path / "env"

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("colour: blue\n")
        with pytest.raises(ConfigError, match="colour"):
            load_config(path)

    def test_wrong_types(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("fsync: sometimes\n")
        with pytest.raises(ConfigError, match="fsync"):
            load_config(path)

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("workspace_dir: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "absent.yaml")
