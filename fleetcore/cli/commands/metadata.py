"""``fleetcore seed``, ``image-sources`` and ``validate-images``."""

from __future__ import annotations

from pathlib import Path

import typer

from fleetcore.backends.fake import publish_images, upload_fake_tools
from fleetcore.cli.context import build_orchestrator, console, fail, load_settings
from fleetcore.core.errors import ProvisioningError
from fleetcore.core.metadata_resolver import image_sources
from fleetcore.models.metadata import LookupParams


def seed_cmd(
    version: str = typer.Option("1.16.0", "--tools-version", help="Fake tools version."),
    state_dir: Path = typer.Option(
        None, "--state-dir", help="Override FLEETCORE_STATE_DIR."
    ),
) -> None:
    """Publish test images and fake tools into the local control bucket."""
    with build_orchestrator(load_settings(state_dir)) as orchestrator:
        publish_images(orchestrator.storage)
        tools = upload_fake_tools(orchestrator.storage, version=version)
    console.print(
        f"[bold green]Seeded[/bold green] image index and {len(tools)} tools "
        f"into {orchestrator.storage.base_url}"
    )


def image_sources_cmd(
    state_dir: Path = typer.Option(
        None, "--state-dir", help="Override FLEETCORE_STATE_DIR."
    ),
) -> None:
    """List image metadata sources in lookup order."""
    with build_orchestrator(load_settings(state_dir)) as orchestrator:
        sources = image_sources(orchestrator.env, orchestrator.storage)
    for source in sources:
        console.print(
            f"{source.priority:>3}  [cyan]{source.base_url}[/cyan]  [dim]{source.description}[/dim]",
            soft_wrap=True,
        )


def validate_images_cmd(
    series: str = typer.Option(None, "--series", help="Defaults to the environment's series."),
    arch: str = typer.Option(None, "--arch", help="Restrict to one architecture."),
    state_dir: Path = typer.Option(
        None, "--state-dir", help="Override FLEETCORE_STATE_DIR."
    ),
) -> None:
    """Print the image ids legal for a series/arch in the environment's region."""
    with build_orchestrator(load_settings(state_dir)) as orchestrator:
        env = orchestrator.env
        params = LookupParams(
            series=series or env.default_series,
            arch=arch,
            region=env.region,
            endpoint=env.endpoint,
            sources=image_sources(env, orchestrator.storage),
        )
        try:
            ids = orchestrator.resolver.validate(params)
        except ProvisioningError as exc:
            fail(exc)
    for image_id in ids:
        console.print(image_id, soft_wrap=True)
