"""``fleetcore start-instance`` and ``fleetcore status``."""

from __future__ import annotations

import uuid
from pathlib import Path

import typer
from rich.table import Table

from fleetcore.cli.context import (
    build_orchestrator,
    console,
    fail,
    instance_table,
    load_settings,
)
from fleetcore.core.errors import ProvisioningError
from fleetcore.models.hardware import Constraint
from fleetcore.models.state import EnvironmentState


def start_instance_cmd(
    machine_id: str = typer.Argument(..., help="Machine id, e.g. '1'."),
    nonce: str = typer.Option(
        None, "--nonce", help="Provisioning nonce. Generated when omitted."
    ),
    constraints: str = typer.Option(
        "", "--constraints", "-c", help="Hardware constraints, e.g. 'mem=1024'."
    ),
    series: str = typer.Option(None, "--series", help="Override the default series."),
    state_dir: Path = typer.Option(
        None, "--state-dir", help="Override FLEETCORE_STATE_DIR."
    ),
) -> None:
    """Start a regular machine in a bootstrapped environment."""
    try:
        constraint = Constraint.parse(constraints)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--constraints") from exc

    with build_orchestrator(load_settings(state_dir)) as orchestrator:
        try:
            record = orchestrator.start_instance(
                machine_id, nonce or uuid.uuid4().hex, constraint, series=series
            )
        except ProvisioningError as exc:
            fail(exc)
    console.print(instance_table(record, f"Machine {machine_id}"))


def status_cmd(
    state_dir: Path = typer.Option(
        None, "--state-dir", help="Override FLEETCORE_STATE_DIR."
    ),
) -> None:
    """Show the environment state and its control-plane instances."""
    settings = load_settings(state_dir)
    with build_orchestrator(settings) as orchestrator:
        env_state = orchestrator.state
        console.print(f"[bold]Environment:[/bold] {settings.environment} ({env_state.value})")
        if env_state is not EnvironmentState.BOOTSTRAPPED:
            return
        try:
            state = orchestrator.bootstrap_state()
        except ProvisioningError as exc:
            fail(exc)

    table = Table(title="Control plane")
    table.add_column("Instance", style="cyan")
    table.add_column("Hardware")
    for instance_id, hardware in zip(state.state_instances, state.characteristics):
        table.add_row(instance_id, str(hardware))
    console.print(table)
