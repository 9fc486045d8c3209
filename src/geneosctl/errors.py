"""Error taxonomy shared by the instance control core.

Low-level failures (``OSError`` from the filesystem, paramiko exceptions from
the network) are wrapped into one of these classes at the point where a
caller has to decide whether to skip, abort or report.
"""
from __future__ import annotations


class GeneosError(RuntimeError):
    """Base class for instance control failures."""


class NotFoundError(GeneosError):
    """Raised when an instance directory, process or version link is absent."""


class NotSupportedError(GeneosError):
    """Raised when an operation is undefined for a component type."""


class InvalidConfigError(GeneosError):
    """Raised when persisted or legacy configuration cannot be parsed."""


class InvalidNameError(GeneosError):
    """Raised when an instance name is malformed or reserved."""


class DisabledError(GeneosError):
    """Raised when an operation is refused because the instance is disabled."""


class NotDisabledError(GeneosError):
    """Raised when deleting an instance that has not been disabled."""


class PermissionDeniedError(GeneosError):
    """Raised when the caller may not control an instance."""


class RemoteUnavailableError(GeneosError):
    """Raised when a remote host session cannot be established or used."""


class AlreadyExistsError(GeneosError):
    """Raised when creating or installing over an existing target."""


__all__ = [
    "AlreadyExistsError",
    "DisabledError",
    "GeneosError",
    "InvalidConfigError",
    "InvalidNameError",
    "NotDisabledError",
    "NotFoundError",
    "NotSupportedError",
    "PermissionDeniedError",
    "RemoteUnavailableError",
]
