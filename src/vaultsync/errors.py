"""Exception hierarchy shared by every vault-sync component."""

from __future__ import annotations


class VaultSyncError(Exception):
    """Base class for all vault-sync errors."""


class ConfigError(VaultSyncError):
    """Configuration could not be loaded or failed validation."""


class EndpointError(VaultSyncError):
    """A call against a Vault endpoint failed.

    Attributes:
        operation: Name of the facade operation that failed.
        target: Mount/path (or endpoint URL) the call was about.
    """

    def __init__(self, operation: str, target: str, reason: object):
        self.operation = operation
        self.target = target
        self.reason = reason
        super().__init__(f"{operation} {target}: {reason}")
