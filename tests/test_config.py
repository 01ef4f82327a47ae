"""Tests for beadview.config."""

from pathlib import Path
from unittest.mock import patch

import pytest

from beadview.config import (
    GraphConfig,
    SourceConfig,
    find_project_root,
    get_beadview_dir,
    get_graph_config,
    get_logs_dir,
    get_source_config,
    load_config,
)
from beadview.exceptions import ConfigError


class TestLoadConfig:
    """Tests for load_config()."""

    def test_missing_file_is_empty(self, tmp_path):
        assert load_config(tmp_path / "config.yaml") == {}

    def test_reads_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("graph:\n  density: compact\n")
        assert load_config(path) == {"graph": {"density": "compact"}}

    def test_empty_file_is_empty(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path) == {}

    def test_invalid_yaml_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("graph: [unclosed\n")
        with pytest.raises(ConfigError, match="Cannot read"):
            load_config(path)

    def test_non_mapping_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    def test_default_path_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BEADVIEW_DIR", str(tmp_path))
        (tmp_path / "config.yaml").write_text("graph:\n  epic: bd-1\n")
        assert get_graph_config().epic == "bd-1"
        assert get_beadview_dir() == tmp_path
        assert get_logs_dir() == tmp_path / "logs"


class TestGraphConfig:
    """Tests for GraphConfig defaults and merging."""

    def test_defaults(self):
        config = get_graph_config({})
        assert config == GraphConfig()
        assert config.auto_refresh_interval == 5.0

    def test_overrides(self):
        config = get_graph_config({"graph": {
            "density": "detailed",
            "layout": "vertical",
            "refresh_on_event": True,
            "auto_refresh_interval": 30,
        }})
        assert config.density == "detailed"
        assert config.layout == "vertical"
        assert config.refresh_on_event
        assert config.auto_refresh_interval == 30.0

    def test_null_section_uses_defaults(self):
        assert get_graph_config({"graph": None}) == GraphConfig()

    def test_effective_interval(self):
        assert GraphConfig(auto_refresh_interval=0).effective_refresh_interval() is None
        assert GraphConfig(auto_refresh_interval=-3).effective_refresh_interval() is None
        assert GraphConfig(auto_refresh_interval=0.25).effective_refresh_interval() == 1.0
        assert GraphConfig(auto_refresh_interval=10).effective_refresh_interval() == 10


class TestSourceConfig:
    """Tests for SourceConfig and project root discovery."""

    def test_default_beads_dir_under_project(self, tmp_path):
        source = SourceConfig.from_dict({}, project_root=tmp_path)
        assert source.type == "br"
        assert source.beads_dir == tmp_path / ".beads"

    def test_relative_beads_dir(self, tmp_path):
        source = SourceConfig.from_dict({"type": "jsonl", "beads_dir": "data/beads"}, project_root=tmp_path)
        assert source.type == "jsonl"
        assert source.beads_dir == tmp_path / "data" / "beads"

    def test_absolute_beads_dir(self, tmp_path):
        source = SourceConfig.from_dict({"beads_dir": "/srv/beads"}, project_root=tmp_path)
        assert source.beads_dir == Path("/srv/beads")

    def test_find_project_root(self, tmp_path):
        (tmp_path / ".beads").mkdir()
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_project_root(nested) == tmp_path.resolve()

    def test_get_source_config(self, tmp_path):
        with patch("beadview.config.find_project_root", return_value=tmp_path):
            source = get_source_config({"source": {"type": "demo"}})
        assert source.type == "demo"
        assert source.beads_dir == tmp_path / ".beads"
