"""
Exception classes raised by provisioning helpers.

Step actions catch these and turn them into failed outcomes; the runner
itself only ever sees the outcome and the step's policy.
"""

from typing import List, Optional


class ProvisionError(Exception):
    """Base exception for provisioning errors."""

    pass


class CommandError(ProvisionError):
    """Raised when an external command fails."""

    def __init__(
        self,
        message: str,
        cmd: Optional[List[str]] = None,
        returncode: Optional[int] = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.cmd = cmd or []
        self.returncode = returncode
        self.stderr = stderr


class PreconditionError(ProvisionError):
    """Raised when the host does not meet a requirement (e.g. OS version)."""

    pass


class ArtifactError(ProvisionError):
    """Raised when a derived artifact cannot be written."""

    pass


class ConfigError(ProvisionError):
    """Raised when configuration cannot be loaded or is invalid."""

    pass
