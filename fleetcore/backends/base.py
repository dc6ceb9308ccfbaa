"""Protocols the provisioning core talks to.

Any object with the right methods satisfies these protocols; a backend
does not need to inherit from anything.

Failure contract for implementations:

- raise ``BackendUnavailable`` for transport-level trouble (connection
  reset, 5xx).  The core retries these.
- raise ``AuthorizationFailed`` when the credential is rejected.  The core
  notifies the ``CredentialNotifier`` and gives up.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from fleetcore.models.addresses import ScopeTable
from fleetcore.models.hardware import InstanceType
from fleetcore.models.state import InstanceId

logger = logging.getLogger(__name__)


@runtime_checkable
class CloudBackend(Protocol):
    """Protocol for a compute backend."""

    scope_table: ScopeTable

    def launch_instance(
        self, instance_type: str, image_id: str, user_data: bytes
    ) -> tuple[InstanceId, list[str]]:
        """Start one instance and return its id and raw endpoints."""
        ...

    def terminate_instances(self, instance_ids: Sequence[InstanceId]) -> None:
        ...

    def list_instance_types(self, region: str) -> list[InstanceType]:
        """Return the instance-type catalog of ``region``."""
        ...

    def instance_state(self, instance_id: InstanceId) -> str:
        """Return the backend's status string, e.g. ``"running"``."""
        ...


@runtime_checkable
class CredentialNotifier(Protocol):
    """Protocol for reporting that the stored cloud credential is invalid."""

    def invalidate(self, reason: str) -> None:
        """Report the credential as invalid.  Raises on failure."""
        ...


@runtime_checkable
class IndexFetcher(Protocol):
    """Protocol for fetching a metadata index by URL."""

    def fetch(self, url: str) -> bytes | None:
        """Return the document, or ``None`` if it does not exist."""
        ...


class LoggingNotifier:
    """Notifier that logs and records the reasons it was given.

    Suitable for development; production should wire the controller's
    credential-invalidation endpoint.
    """

    def __init__(self) -> None:
        self.reasons: list[str] = []

    def invalidate(self, reason: str) -> None:
        logger.warning("Cloud credential invalidated: %s", reason)
        self.reasons.append(reason)
