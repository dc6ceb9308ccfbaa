"""Shared wiring for CLI commands.

Commands run against the local environment: a ``LocalFileStorage`` control
bucket under ``settings.state_dir`` and the in-process ``FakeBackend``.
The bootstrap record and published metadata persist between invocations;
fake instances do not.
"""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from fleetcore.backends.base import LoggingNotifier
from fleetcore.backends.fake import FakeBackend
from fleetcore.config import ProvisioningSettings
from fleetcore.core.errors import ProvisioningError
from fleetcore.core.orchestrator import ProvisioningOrchestrator
from fleetcore.core.storage import LocalFileStorage
from fleetcore.models.state import InstanceRecord

console = Console()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def load_settings(state_dir: Path | None = None) -> ProvisioningSettings:
    settings = ProvisioningSettings()
    if state_dir is not None:
        settings = settings.model_copy(update={"state_dir": state_dir})
    return settings


def local_storage(settings: ProvisioningSettings) -> LocalFileStorage:
    return LocalFileStorage(settings.state_dir / "buckets", settings.control_bucket)


def build_orchestrator(settings: ProvisioningSettings) -> ProvisioningOrchestrator:
    backend = FakeBackend()
    table = settings.scope_table()
    if table is not None:
        backend.scope_table = table
    return ProvisioningOrchestrator(
        settings.environment_config(),
        backend,
        local_storage(settings),
        notifier=LoggingNotifier(),
        policy=settings.retry_policy(),
        operation_timeout=settings.operation_timeout_seconds,
    )


def fail(exc: ProvisioningError) -> None:
    """Print a provisioning error and exit with status 1."""
    console.print(f"[bold red]{exc.kind}:[/bold red] {exc}")
    raise typer.Exit(code=1)


def instance_table(record: InstanceRecord, title: str) -> Table:
    table = Table(title=title, show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Machine", record.machine_id)
    table.add_row("Instance", record.instance_id)
    table.add_row("Instance type", record.instance_type)
    table.add_row("Image", record.image_id)
    table.add_row("Hardware", str(record.hardware))
    for addr in record.addresses:
        table.add_row("Address", f"{addr.value} [dim]({addr.type.value}, {addr.scope.value})[/dim]")
    return table
