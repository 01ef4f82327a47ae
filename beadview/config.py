"""Configuration loading and constants for beadview."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

import yaml

from .exceptions import ConfigError


DensityName = Literal["compact", "standard", "detailed"]
SourceType = Literal["br", "jsonl", "demo"]

# Auto-refresh intervals below this many seconds are clamped up to it
MIN_AUTO_REFRESH_INTERVAL = 1.0

# Default graph pane settings (overridable in .beadview/config.yaml)
DEFAULT_GRAPH_CONFIG: dict[str, Any] = {
    "enabled": True,
    "density": "standard",
    "layout": "horizontal",
    "refresh_on_event": False,
    "auto_refresh_interval": 5.0,
    "epic": None,
}

# Default bead source settings
DEFAULT_SOURCE_CONFIG: dict[str, Any] = {
    "type": "br",
    "beads_dir": None,  # None means <project>/.beads
    "command": "br",
}


@dataclass
class GraphConfig:
    """Settings for the graph pane."""

    enabled: bool = True
    density: str = "standard"
    layout: str = "horizontal"  # "horizontal" or "vertical"
    refresh_on_event: bool = False
    auto_refresh_interval: float = 5.0  # seconds, 0 disables
    epic: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GraphConfig":
        """Create a GraphConfig from the `graph:` mapping of config.yaml."""
        merged = {**DEFAULT_GRAPH_CONFIG, **(data or {})}
        return cls(
            enabled=bool(merged["enabled"]),
            density=str(merged["density"] or "standard"),
            layout=str(merged["layout"] or "horizontal"),
            refresh_on_event=bool(merged["refresh_on_event"]),
            auto_refresh_interval=float(merged["auto_refresh_interval"] or 0),
            epic=merged["epic"] or None,
        )

    def effective_refresh_interval(self) -> float | None:
        """Auto-refresh interval in seconds, or None when disabled.

        Positive intervals below MIN_AUTO_REFRESH_INTERVAL are clamped up.
        """
        if self.auto_refresh_interval <= 0:
            return None
        return max(self.auto_refresh_interval, MIN_AUTO_REFRESH_INTERVAL)


@dataclass
class SourceConfig:
    """Where bead records come from."""

    type: str = "br"
    beads_dir: Path | None = None
    command: str = "br"

    @classmethod
    def from_dict(cls, data: dict[str, Any], project_root: Path | None = None) -> "SourceConfig":
        merged = {**DEFAULT_SOURCE_CONFIG, **(data or {})}
        beads_dir = merged["beads_dir"]
        if beads_dir:
            beads_dir = Path(beads_dir)
            if not beads_dir.is_absolute() and project_root is not None:
                beads_dir = project_root / beads_dir
        elif project_root is not None:
            beads_dir = project_root / ".beads"
        return cls(
            type=str(merged["type"]),
            beads_dir=beads_dir,
            command=str(merged["command"]),
        )


def find_project_root(start: Path | None = None) -> Path:
    """Find the project root by walking up to a directory with .beads or .git.

    Falls back to the starting directory when neither is found.
    """
    start = (start or Path.cwd()).resolve()
    current = start
    while current != current.parent:
        if (current / ".beads").is_dir() or (current / ".git").exists():
            return current
        current = current.parent
    return start


def get_beadview_dir() -> Path:
    """Get the .beadview directory in the project.

    Can be overridden via BEADVIEW_DIR environment variable (used by tests).
    """
    env_override = os.environ.get("BEADVIEW_DIR")
    if env_override:
        return Path(env_override)
    return find_project_root() / ".beadview"


def get_config_path() -> Path:
    """Get path to .beadview/config.yaml."""
    return get_beadview_dir() / "config.yaml"


def get_logs_dir() -> Path:
    """Get the logs directory."""
    return get_beadview_dir() / "logs"


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load .beadview/config.yaml.

    Returns:
        Parsed YAML config dict, or empty dict if the file does not exist

    Raises:
        ConfigError: If the file is not valid YAML or not a mapping
    """
    config_path = path or get_config_path()
    if not config_path.exists():
        return {}
    try:
        with open(config_path) as f:
            config = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError) as e:
        raise ConfigError(f"Cannot read {config_path}: {e}") from e
    if not isinstance(config, dict):
        raise ConfigError(f"{config_path} must contain a mapping, got {type(config).__name__}")
    return config


def get_graph_config(config: dict[str, Any] | None = None) -> GraphConfig:
    """Get graph pane settings merged over DEFAULT_GRAPH_CONFIG."""
    if config is None:
        config = load_config()
    return GraphConfig.from_dict(config.get("graph") or {})


def get_source_config(config: dict[str, Any] | None = None) -> SourceConfig:
    """Get bead source settings merged over DEFAULT_SOURCE_CONFIG."""
    if config is None:
        config = load_config()
    return SourceConfig.from_dict(config.get("source") or {}, project_root=find_project_root())
