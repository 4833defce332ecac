# Copyright (c) Syntropy Systems
"""sluice bucket command."""
from __future__ import annotations

import typer

from sluice.bucketer import generate_bucket_value
from sluice.cli.context import console


def bucket(
    bucketing_id: str = typer.Argument(..., help="User ID or bucketing ID"),
    entity_id: str = typer.Argument(..., help="Experiment or group ID"),
) -> None:
    """Print the bucket value (0-9999) for a bucketing ID and entity."""
    value = generate_bucket_value(f"{bucketing_id}{entity_id}")
    console.print(f"Bucket value: [bold]{value}[/bold]")
