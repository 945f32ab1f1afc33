"""Exception hierarchy for the deployment engine.

Callers distinguish three kinds of failure: :class:`ValidationError` (bad
input or a precondition that does not hold), :class:`NotFoundError` (the
instance or service does not exist) and collaborator failures
(:class:`HookError`, :class:`ServiceManagerError`, :class:`ManifestError`,
and plain ``OSError`` from the filesystem).
"""
from __future__ import annotations


class DeploymentError(RuntimeError):
    """Base class for deployment engine failures."""


class ValidationError(DeploymentError):
    """Raised when input or a precondition is invalid."""


class InvalidNameError(ValidationError):
    """Raised for malformed instance names, bundle names or versions."""


class InstanceExistsError(ValidationError):
    """Raised when creating an instance whose name is already in use."""


class BundleNotFoundError(ValidationError):
    """Raised when no extracted bundle exists for a name and version."""


class VersionExistsError(ValidationError):
    """Raised when preparing a version that is already prepared."""


class VersionNotFoundError(ValidationError):
    """Raised when activating a version that was never prepared."""


class VersionActiveError(ValidationError):
    """Raised when upgrading an instance to its currently active version."""


class NotFoundError(DeploymentError):
    """Raised when a named resource does not exist."""


class InstanceNotFoundError(NotFoundError):
    """Raised when an instance does not exist."""


class ManifestError(DeploymentError):
    """Raised when a bundle manifest is missing or malformed."""


class HookError(DeploymentError):
    """Raised when a hook script fails."""

    def __init__(
        self,
        message: str,
        *,
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        """Record the exit status and captured output of the failed hook."""
        super().__init__(message)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class ServiceManagerError(DeploymentError):
    """Raised when the service manager fails an operation."""


class ServiceNotFoundError(ServiceManagerError, NotFoundError):
    """Raised when a service action targets an unknown service."""


__all__ = [
    "BundleNotFoundError",
    "DeploymentError",
    "HookError",
    "InstanceExistsError",
    "InstanceNotFoundError",
    "InvalidNameError",
    "ManifestError",
    "NotFoundError",
    "ServiceManagerError",
    "ServiceNotFoundError",
    "ValidationError",
    "VersionActiveError",
    "VersionExistsError",
    "VersionNotFoundError",
]
