"""
vm_provision: provision an Ubuntu VM through an ordered, checkpointed list
of steps.
"""

__version__ = "1.0.0"

from .config import AppConfig, ProfileVariant
from .context import RunContext
from .runlog import LogEntry, LogKind, RunLog
from .runner import (
    RunResult,
    RunState,
    Step,
    StepOutcome,
    StepPolicy,
    StepRunner,
)
from .checks import verify_command_present, verify_os_version, verify_service_active

__all__ = [
    "AppConfig",
    "LogEntry",
    "LogKind",
    "ProfileVariant",
    "RunContext",
    "RunLog",
    "RunResult",
    "RunState",
    "Step",
    "StepOutcome",
    "StepPolicy",
    "StepRunner",
    "verify_command_present",
    "verify_os_version",
    "verify_service_active",
]
