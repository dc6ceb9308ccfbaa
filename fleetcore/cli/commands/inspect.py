"""``fleetcore classify`` and ``fleetcore select-hardware``."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.table import Table

from fleetcore.backends.fake import TESTING_SCOPE_TABLE, TEST_INSTANCE_TYPES
from fleetcore.cli.context import console, fail
from fleetcore.core.address_classifier import classify_all
from fleetcore.core.errors import ProvisioningError
from fleetcore.core.hardware_selector import select
from fleetcore.models.addresses import DEFAULT_SCOPE_TABLE, ScopeTable
from fleetcore.models.hardware import Constraint


def classify_cmd(
    endpoints: list[str] = typer.Argument(..., help="Raw endpoints to classify."),
    table_path: Path = typer.Option(
        None, "--scope-table", help="YAML scope table. Defaults to the generic table."
    ),
    testing: bool = typer.Option(
        False, "--testing", help="Use the fake cloud's scope table."
    ),
) -> None:
    """Classify endpoints into typed, scope-tagged addresses."""
    if table_path is not None:
        scope_table = ScopeTable.from_yaml(table_path)
    elif testing:
        scope_table = TESTING_SCOPE_TABLE
    else:
        scope_table = DEFAULT_SCOPE_TABLE

    table = Table(title=f"Addresses ({scope_table.name} scope table)")
    table.add_column("Value", style="cyan")
    table.add_column("Type")
    table.add_column("Scope")
    for addr in classify_all(endpoints, scope_table):
        table.add_row(addr.value, addr.type.value, addr.scope.value)
    console.print(table)


def select_hardware_cmd(
    constraints: str = typer.Argument("", help="Constraints, e.g. 'mem=1024 arch=amd64'."),
) -> None:
    """Show which fake-cloud instance type a constraint selects."""
    try:
        constraint = Constraint.parse(constraints)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="constraints") from exc
    try:
        name, hardware = select(constraint, TEST_INSTANCE_TYPES)
    except ProvisioningError as exc:
        fail(exc)
    console.print(f"[bold]{name}[/bold] {hardware}")
