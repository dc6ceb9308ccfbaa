"""Provisioning error kinds.

Every failure the core surfaces is a ``ProvisioningError`` subclass whose
``kind`` names it.  Only ``BackendUnavailable`` is retryable; everything
else propagates to the caller unchanged.
"""

from __future__ import annotations


class ProvisioningError(RuntimeError):
    """Base class for all provisioning failures."""

    kind = "provisioning-error"
    retryable = False


class NoMatchingHardware(ProvisioningError):
    """No catalog entry satisfies the requested constraint."""

    kind = "no-matching-hardware"


class NoMatchingImages(ProvisioningError):
    """No metadata source yields an image for the requested series/arch."""

    kind = "no-matching-images"


class NoMatchingTools(ProvisioningError):
    """No metadata source yields agent tools for the requested series/arch."""

    kind = "no-matching-tools"


class NotBootstrapped(ProvisioningError):
    """The environment has no bootstrap state record."""

    kind = "not-bootstrapped"


class AlreadyBootstrapped(ProvisioningError):
    """A bootstrap state record already exists (or another bootstrap won)."""

    kind = "already-bootstrapped"


class Timeout(ProvisioningError):
    """The caller's deadline expired before the operation completed."""

    kind = "timeout"


class BackendUnavailable(ProvisioningError):
    """Transport-level failure talking to the cloud or a metadata source."""

    kind = "backend-unavailable"
    retryable = True


class AuthorizationFailed(ProvisioningError):
    """The backend rejected the stored credential."""

    kind = "authorization-failed"


class CorruptState(ProvisioningError):
    """The stored bootstrap record cannot be decoded or is inconsistent."""

    kind = "corrupt-state"


class InvalidTransitionError(ProvisioningError):
    """Raised when a requested state transition is not valid."""

    kind = "invalid-transition"
