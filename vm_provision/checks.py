"""
Post-condition and precondition checks.

Each check returns a StepOutcome; when a run log is given, a passing check
also records a checkpoint ("wget is available.").
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from .errors import ProvisionError
from .host import SystemHost
from .runlog import RunLog
from .runner import StepOutcome


class CheckKind(Enum):
    COMMAND_PRESENT = auto()
    SERVICE_ACTIVE = auto()


@dataclass(frozen=True)
class VerificationCheck:
    kind: CheckKind
    target: str

    def evaluate(
        self, host: Optional[SystemHost] = None, log: Optional[RunLog] = None
    ) -> StepOutcome:
        if self.kind is CheckKind.COMMAND_PRESENT:
            return verify_command_present(self.target, host, log)
        return verify_service_active(self.target, host, log)


def command_present(name: str) -> VerificationCheck:
    return VerificationCheck(CheckKind.COMMAND_PRESENT, name)


def service_active(name: str) -> VerificationCheck:
    return VerificationCheck(CheckKind.SERVICE_ACTIVE, name)


def verify_command_present(
    name: str, host: Optional[SystemHost] = None, log: Optional[RunLog] = None
) -> StepOutcome:
    host = host or SystemHost()
    if not host.which(name):
        return StepOutcome.err(f"{name} is not installed or not available in PATH.")
    if log is not None:
        log.checkpoint(f"{name} is available.")
    return StepOutcome.ok()


def verify_service_active(
    name: str, host: Optional[SystemHost] = None, log: Optional[RunLog] = None
) -> StepOutcome:
    host = host or SystemHost()
    if not host.service_active(name):
        return StepOutcome.err(f"{name} service is not active.")
    if log is not None:
        log.checkpoint(f"{name} service is active.")
    return StepOutcome.ok()


def verify_os_version(
    expected: str, host: Optional[SystemHost] = None, log: Optional[RunLog] = None
) -> StepOutcome:
    host = host or SystemHost()
    try:
        actual = host.os_version()
    except ProvisionError as e:
        return StepOutcome.err(f"Could not determine OS version: {e}")
    if actual != expected:
        return StepOutcome.err(
            f"Unsupported OS version: {actual}. "
            f"This script is designed for Ubuntu {expected} LTS."
        )
    if log is not None:
        log.checkpoint(f"OS version verified: Ubuntu {actual}")
    return StepOutcome.ok()
