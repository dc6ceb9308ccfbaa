"""Shared test fixtures for Fleetcore."""

from __future__ import annotations

from pathlib import Path

import pytest

from fleetcore.backends.base import LoggingNotifier
from fleetcore.backends.fake import FakeBackend, publish_images, upload_fake_tools
from fleetcore.core.orchestrator import ProvisioningOrchestrator
from fleetcore.core.retry import RetryPolicy
from fleetcore.core.storage import LocalFileStorage, MemoryStorage
from fleetcore.models.config import EnvironmentConfig


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Retry policy that never sleeps and has no per-call timeout."""
    return RetryPolicy(attempts=3, multiplier=0, min_wait=0, max_wait=0, call_timeout=None)


@pytest.fixture
def env() -> EnvironmentConfig:
    """Provide the sample environment in the ``test`` region."""
    return EnvironmentConfig()


@pytest.fixture
def storage() -> MemoryStorage:
    """Provide an empty in-memory control bucket."""
    return MemoryStorage("test-bucket")


@pytest.fixture
def file_storage(tmp_dir: Path) -> LocalFileStorage:
    """Provide a directory-backed control bucket in a temp directory."""
    return LocalFileStorage(tmp_dir / "buckets", "test-bucket")


@pytest.fixture
def seeded_storage(storage: MemoryStorage) -> MemoryStorage:
    """Control bucket with the test images and fake tools published."""
    publish_images(storage)
    upload_fake_tools(storage)
    return storage


@pytest.fixture
def backend() -> FakeBackend:
    """Provide a fresh fake cloud."""
    return FakeBackend()


@pytest.fixture
def notifier() -> LoggingNotifier:
    return LoggingNotifier()


@pytest.fixture
def orchestrator(
    env: EnvironmentConfig,
    backend: FakeBackend,
    seeded_storage: MemoryStorage,
    notifier: LoggingNotifier,
    fast_policy: RetryPolicy,
) -> ProvisioningOrchestrator:
    """Provide an orchestrator wired to the fake cloud and seeded bucket."""
    return ProvisioningOrchestrator(
        env, backend, seeded_storage, notifier=notifier, policy=fast_policy
    )
