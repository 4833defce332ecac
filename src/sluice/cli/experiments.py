# Copyright (c) Syntropy Systems
"""sluice experiments command."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from sluice.cli.context import build_service, console


def experiments(
    datafile: Optional[Path] = typer.Option(
        None,
        "--datafile", "-d",
        help="Datafile path (defaults to 'datafile' in sluice.yaml)",
    ),
) -> None:
    """List experiments and feature flags in a datafile."""
    config = build_service(datafile).config

    table = Table(title="Experiments")
    table.add_column("Key")
    table.add_column("ID", style="dim")
    table.add_column("Status")
    table.add_column("Group")
    table.add_column("Variations")

    for experiment in config.experiment_key_map.values():
        status_style = "green" if experiment.is_running else "dim"
        table.add_row(
            experiment.key,
            experiment.id,
            f"[{status_style}]{experiment.status}[/{status_style}]",
            experiment.group_id or "-",
            ", ".join(v.key for v in experiment.variations),
        )
    console.print(table)

    if not config.feature_flag_key_map:
        return

    features = Table(title="Feature flags")
    features.add_column("Key")
    features.add_column("Experiments")
    features.add_column("Rollout")
    for flag in config.feature_flag_key_map.values():
        experiment_keys = []
        for experiment_id in flag.experiment_ids:
            experiment = config.get_experiment_from_id(experiment_id)
            experiment_keys.append(experiment.key if experiment else experiment_id)
        rollout = config.get_rollout(flag.rollout_id) if flag.rollout_id else None
        features.add_row(
            flag.key,
            ", ".join(experiment_keys) or "-",
            f"{flag.rollout_id} ({len(rollout.experiments)} rules)" if rollout else "-",
        )
    console.print(features)
