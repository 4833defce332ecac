# Copyright (c) Syntropy Systems
"""sluice variation command."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from sluice.cli.context import (
    apply_forced_variations,
    build_service,
    console,
    parse_pairs,
)


def variation(
    experiment_key: str = typer.Argument(..., help="Experiment key"),
    user_id: str = typer.Argument(..., help="User ID"),
    attr: Optional[list[str]] = typer.Option(
        None,
        "--attr", "-a",
        help="User attribute as key=value (repeatable)",
    ),
    force: Optional[list[str]] = typer.Option(
        None,
        "--force", "-f",
        help="Forced variation as experiment_key=variation_key (repeatable)",
    ),
    datafile: Optional[Path] = typer.Option(
        None,
        "--datafile", "-d",
        help="Datafile path (defaults to 'datafile' in sluice.yaml)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Show decision logs",
    ),
) -> None:
    """Show which variation a user gets for an experiment."""
    service = build_service(datafile, verbose)
    attributes = parse_pairs(attr, "--attr")
    apply_forced_variations(service, user_id, parse_pairs(force, "--force"))

    experiment = service.config.get_experiment_from_key(experiment_key)
    if experiment is None:
        console.print(f"[red]Error:[/red] Experiment '{experiment_key}' not found")
        raise typer.Exit(1)

    variation_id = service.get_variation(experiment_key, user_id, attributes)
    if variation_id is None:
        console.print(f"[yellow]No variation[/yellow] for user '{user_id}'")
        return

    chosen = service.config.get_variation_from_id(experiment, variation_id)
    key = chosen.key if chosen is not None else "?"
    console.print(f"Variation: [bold]{key}[/bold] ({variation_id})")
