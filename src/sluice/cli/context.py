# Copyright (c) Syntropy Systems
"""Shared loading helpers for sluice commands."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler

from sluice.config import load_config
from sluice.decision_service import DecisionService
from sluice.project_config import InvalidDatafileError, ProjectConfig
from sluice.user_profile import JsonFileUserProfileService

if TYPE_CHECKING:
    from pathlib import Path

console = Console()
err_console = Console(stderr=True)

LOGGER_NAME = "sluice"


def setup_logging(level: int) -> logging.Logger:
    """Route sluice logs through rich on stderr."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.addHandler(
            RichHandler(console=err_console, show_time=False, show_path=False)
        )
    return logger


def parse_pairs(pairs: Optional[list[str]], option: str) -> dict[str, object]:
    """Parse repeated key=value options. Values are read as YAML scalars."""
    parsed: dict[str, object] = {}
    for pair in pairs or []:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            console.print(f"[red]Error:[/red] {option} expects key=value, got '{pair}'")
            raise typer.Exit(1)
        try:
            parsed[key] = yaml.safe_load(raw) if raw else ""
        except yaml.YAMLError:
            parsed[key] = raw
    return parsed


def build_service(datafile: Optional[Path], verbose: bool = False) -> DecisionService:
    """Load config, datafile and profile store into a DecisionService."""
    config = load_config()
    logger = setup_logging(logging.DEBUG if verbose else config.log_level_value)

    path = datafile or config.datafile
    if path is None:
        console.print(
            "[red]Error:[/red] No datafile given. Pass --datafile or set "
            "'datafile' in sluice.yaml"
        )
        raise typer.Exit(1)

    try:
        project_config = ProjectConfig.from_file(path)
    except (OSError, InvalidDatafileError) as e:
        console.print(f"[red]Error loading datafile:[/red] {e}")
        raise typer.Exit(1) from e

    store = None
    if config.profile_store is not None:
        store = JsonFileUserProfileService(config.profile_store)

    return DecisionService(project_config, store, logger=logger)


def apply_forced_variations(
    service: DecisionService, user_id: str, forced: dict[str, object]
) -> None:
    """Apply experiment_key=variation_key overrides for one user."""
    for experiment_key, variation_key in forced.items():
        if not service.set_forced_variation(experiment_key, user_id, str(variation_key)):
            console.print(
                f"[red]Error:[/red] Cannot force '{variation_key}' "
                f"for experiment '{experiment_key}'"
            )
            raise typer.Exit(1)
