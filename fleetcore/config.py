"""Runtime configuration — env-driven.

Centralized settings using pydantic-settings.  Reads from a .env file and
FLEETCORE_* environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from fleetcore.core.retry import RetryPolicy
from fleetcore.models.addresses import ScopeTable
from fleetcore.models.config import DEFAULT_IMAGES_URL, EnvironmentConfig


class ProvisioningSettings(BaseSettings):
    """Provisioning settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export FLEETCORE_ENVIRONMENT=staging
        export FLEETCORE_LOG_LEVEL=DEBUG
        export FLEETCORE_STATE_DIR=/data/fleet

    Or via .env file::

        FLEETCORE_REGION=us-east-1
        FLEETCORE_CONTROL_BUCKET=my-env-bucket
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="FLEETCORE_",
        env_file_encoding="utf-8",
    )

    # Runtime
    environment: str = "sample"
    log_level: str = "INFO"
    debug: bool = False

    # Storage
    state_dir: Path = Path(".fleetcore")
    control_bucket: str = "test-bucket"

    # Cloud
    region: str = "test"
    endpoint: str = "https://ec2.endpoint.com"
    default_series: str = "precise"
    image_metadata_url: str = DEFAULT_IMAGES_URL
    tools_version: str | None = None
    scope_table_path: Path | None = None  # YAML scope table overriding the backend's

    # Retries and deadlines
    retry_attempts: int = 5
    retry_min_wait: float = 0.5
    retry_max_wait: float = 8.0
    call_timeout_seconds: float | None = 60.0
    operation_timeout_seconds: float | None = 600.0

    def environment_config(self) -> EnvironmentConfig:
        """The per-environment view of these settings."""
        return EnvironmentConfig(
            name=self.environment,
            region=self.region,
            endpoint=self.endpoint,
            control_bucket=self.control_bucket,
            default_series=self.default_series,
            image_metadata_url=self.image_metadata_url,
            tools_version=self.tools_version,
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            attempts=self.retry_attempts,
            min_wait=self.retry_min_wait,
            max_wait=self.retry_max_wait,
            call_timeout=self.call_timeout_seconds,
        )

    def scope_table(self) -> ScopeTable | None:
        """The configured scope table, or None to use the backend's."""
        if self.scope_table_path is None:
            return None
        return ScopeTable.from_yaml(self.scope_table_path)
