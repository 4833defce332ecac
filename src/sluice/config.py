# Copyright (c) Syntropy Systems
"""Configuration management for sluice."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import cast

import yaml

CONFIG_FILENAME = "sluice.yaml"


@dataclass
class SluiceConfig:
    """Configuration for sluice tooling."""

    # Datafile (JSON or YAML) used when none is given on the command line
    datafile: Path | None = None

    # JSON file for sticky bucketing; None disables user profiles
    profile_store: Path | None = None

    # Log level name for the decision logger
    log_level: str = "WARNING"

    @property
    def log_level_value(self) -> int:
        """Numeric logging level, defaulting to WARNING for unknown names."""
        level = logging.getLevelName(self.log_level.upper())
        return level if isinstance(level, int) else logging.WARNING


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find the nearest sluice.yaml by walking up from start_path.

    Returns None if no config file is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        config_file = current / CONFIG_FILENAME
        if config_file.is_file():
            return config_file
        current = current.parent

    # Check root
    config_file = current / CONFIG_FILENAME
    if config_file.is_file():
        return config_file

    return None


def get_global_config_dir() -> Path:
    """Get the global sluice config directory (~/.sluice)."""
    return Path.home() / ".sluice"


def load_config(config_path: Path | None = None) -> SluiceConfig:
    """Load configuration from sluice.yaml or defaults.

    Looks for config in:
    1. Provided config_path
    2. Nearest sluice.yaml walking up from the cwd
    3. ~/.sluice/config.yaml
    4. Defaults

    Relative paths in the file resolve against the file's directory.
    """
    config = SluiceConfig()

    if config_path is None:
        config_path = find_config_file()
    if config_path is None:
        global_config = get_global_config_dir() / "config.yaml"
        if global_config.exists():
            config_path = global_config

    if config_path is None or not config_path.exists():
        return config

    with config_path.open() as f:
        data = cast("dict[str, object]", yaml.safe_load(f) or {})

    base_dir = config_path.resolve().parent

    datafile = data.get("datafile")
    if isinstance(datafile, str):
        config.datafile = base_dir / datafile
    profile_store = data.get("profile_store")
    if isinstance(profile_store, str):
        config.profile_store = base_dir / profile_store
    log_level = data.get("log_level")
    if isinstance(log_level, str):
        config.log_level = log_level

    return config
