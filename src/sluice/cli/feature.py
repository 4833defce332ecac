# Copyright (c) Syntropy Systems
"""sluice feature command."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from sluice.cli.context import (
    apply_forced_variations,
    build_service,
    console,
    parse_pairs,
)


def feature(
    feature_key: str = typer.Argument(..., help="Feature flag key"),
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
    """Show the feature decision for a user."""
    service = build_service(datafile, verbose)
    attributes = parse_pairs(attr, "--attr")
    apply_forced_variations(service, user_id, parse_pairs(force, "--force"))

    feature_flag = service.config.get_feature_flag(feature_key)
    if feature_flag is None:
        console.print(f"[red]Error:[/red] Feature flag '{feature_key}' not found")
        raise typer.Exit(1)

    decision = service.get_variation_for_feature(feature_flag, user_id, attributes)
    if decision is None or decision.variation is None:
        console.print(f"[yellow]No decision[/yellow] for user '{user_id}'")
        return

    table = Table(title=f"Feature: {feature_key}")
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("source", decision.source.value)
    table.add_row("experiment", decision.experiment.key if decision.experiment else "-")
    table.add_row("variation", decision.variation.key)
    table.add_row("variation id", decision.variation.id)
    console.print(table)
