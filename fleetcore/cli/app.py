"""Main Typer application — imports and registers all CLI commands.

Entry point: ``fleetcore`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import typer

from fleetcore.cli.commands.bootstrap import bootstrap_cmd, destroy_cmd
from fleetcore.cli.commands.inspect import classify_cmd, select_hardware_cmd
from fleetcore.cli.commands.machines import start_instance_cmd, status_cmd
from fleetcore.cli.commands.metadata import (
    image_sources_cmd,
    seed_cmd,
    validate_images_cmd,
)
from fleetcore.cli.context import configure_logging, load_settings

app = typer.Typer(
    name="fleetcore",
    help="Fleetcore: provisioning core of a multi-cloud fleet orchestrator.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
) -> None:
    """Configure logging from FLEETCORE_LOG_LEVEL (or --verbose)."""
    configure_logging("DEBUG" if verbose else load_settings().log_level)


# Register subcommands
app.command(name="bootstrap", help="Bootstrap the environment's control plane.")(bootstrap_cmd)
app.command(name="start-instance", help="Start a regular machine.")(start_instance_cmd)
app.command(name="destroy", help="Terminate instances and tear down the environment.")(destroy_cmd)
app.command(name="status", help="Show environment and control-plane state.")(status_cmd)
app.command(name="seed", help="Publish fake images and tools locally.")(seed_cmd)
app.command(name="image-sources", help="List image metadata sources.")(image_sources_cmd)
app.command(name="validate-images", help="List legal image ids.")(validate_images_cmd)
app.command(name="classify", help="Classify raw endpoints.")(classify_cmd)
app.command(name="select-hardware", help="Match constraints to an instance type.")(select_hardware_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
