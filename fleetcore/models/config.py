"""Per-environment configuration model."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

DEFAULT_IMAGES_URL = "https://cloud-images.ubuntu.com/releases"


class EnvironmentConfig(BaseModel):
    """Everything the provisioning core needs to know about one environment.

    Built from ``ProvisioningSettings.environment_config()`` or directly in
    tests.
    """

    model_config = ConfigDict(frozen=True)

    name: str = "sample"
    region: str = "test"
    endpoint: str = "https://ec2.endpoint.com"
    control_bucket: str = "test-bucket"
    default_series: str = "precise"
    image_metadata_url: str = DEFAULT_IMAGES_URL
    tools_version: str | None = None  # newest available when None
    agent_binary: str = "fleetd"
