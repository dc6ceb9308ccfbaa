"""``fleetcore bootstrap`` and ``fleetcore destroy``."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.panel import Panel

from fleetcore.cli.context import (
    build_orchestrator,
    console,
    fail,
    instance_table,
    load_settings,
)
from fleetcore.core.errors import ProvisioningError
from fleetcore.models.hardware import Constraint


def bootstrap_cmd(
    constraints: str = typer.Option(
        "",
        "--constraints",
        "-c",
        help="Hardware constraints, e.g. 'mem=2G cpu-cores=2'.",
    ),
    state_dir: Path = typer.Option(
        None, "--state-dir", help="Override FLEETCORE_STATE_DIR."
    ),
) -> None:
    """Start the first control-plane instance and record it."""
    try:
        constraint = Constraint.parse(constraints)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--constraints") from exc

    with build_orchestrator(load_settings(state_dir)) as orchestrator:
        try:
            record = orchestrator.bootstrap(constraint)
        except ProvisioningError as exc:
            fail(exc)

    console.print(instance_table(record, "Bootstrap instance"))
    console.print(
        Panel(
            f"[bold green]Environment {orchestrator.env.name!r} bootstrapped.[/bold green]",
            border_style="green",
        )
    )


def destroy_cmd(
    instance_ids: list[str] = typer.Argument(
        None, help="Instances to terminate. Defaults to the control-plane instances."
    ),
    state_dir: Path = typer.Option(
        None, "--state-dir", help="Override FLEETCORE_STATE_DIR."
    ),
) -> None:
    """Terminate instances and forget the environment once its controllers are gone."""
    with build_orchestrator(load_settings(state_dir)) as orchestrator:
        try:
            ids = list(instance_ids or orchestrator.bootstrap_state().state_instances)
            orchestrator.destroy(ids)
        except ProvisioningError as exc:
            fail(exc)
        console.print(f"[bold]Terminated:[/bold] {', '.join(ids) or '(none)'}")
        console.print(f"[dim]Environment state: {orchestrator.state.value}[/dim]")
