# Copyright (c) Syntropy Systems
"""Main CLI entry point for sluice."""

import typer

from sluice.cli.bucket import bucket
from sluice.cli.experiments import experiments
from sluice.cli.feature import feature
from sluice.cli.variation import variation

app = typer.Typer(
    name="sluice",
    help=(
        "Experiment and feature flag decisions. Inspect which variation "
        "a user gets, and why."
    ),
    no_args_is_help=True,
    add_completion=False,
)

# Register commands
_ = app.command()(variation)
_ = app.command()(feature)
_ = app.command()(bucket)
_ = app.command()(experiments)


if __name__ == "__main__":
    app()
