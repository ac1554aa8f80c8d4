"""
Step runner: drives an ordered list of provisioning steps to completion or
to the first fatal failure.

Each step gets the same treatment: a "starting" checkpoint, its action,
then either a "succeeded" checkpoint, a tolerated-failure checkpoint, or an
error entry followed by a "FAILED" checkpoint that ends the run.
"""

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, List, Optional, Sequence, Set

from .context import RunContext

logger = logging.getLogger("vm_provision.runner")


# ----------------------------------------------------------------
# Data Structures
# ----------------------------------------------------------------
class StepPolicy(Enum):
    FATAL = auto()
    WARN_AND_CONTINUE = auto()


class RunState(Enum):
    NOT_STARTED = auto()
    RUNNING = auto()
    HALTED = auto()
    COMPLETED = auto()


@dataclass(frozen=True)
class StepOutcome:
    """Result of one step action: ok, or an error message."""

    success: bool
    message: str = ""

    @classmethod
    def ok(cls, message: str = "") -> "StepOutcome":
        return cls(True, message)

    @classmethod
    def err(cls, message: str) -> "StepOutcome":
        return cls(False, message)

    def __bool__(self) -> bool:
        return self.success


StepAction = Callable[[RunContext], StepOutcome]


@dataclass(frozen=True)
class Step:
    name: str
    action: StepAction
    policy: StepPolicy = StepPolicy.FATAL
    description: str = ""


@dataclass(frozen=True)
class RunResult:
    """
    Terminal outcome of a run.

    Attributes:
        success: True when every step succeeded or was tolerated
        step_name: Name of the step that failed fatally, if any
        message: The failing step's error message, if any
    """

    success: bool
    step_name: Optional[str] = None
    message: str = ""

    @classmethod
    def succeeded(cls) -> "RunResult":
        return cls(True)

    @classmethod
    def failure(cls, step_name: str, message: str) -> "RunResult":
        return cls(False, step_name, message)

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1


@dataclass
class StepRecord:
    name: str
    status: str = "pending"
    message: str = ""


# ----------------------------------------------------------------
# Runner
# ----------------------------------------------------------------
class StepRunner:
    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx
        self.state = RunState.NOT_STARTED
        self.current_index: Optional[int] = None
        self.records: List[StepRecord] = []
        self.result: Optional[RunResult] = None

    def run(self, steps: Sequence[Step]) -> RunResult:
        if self.state is not RunState.NOT_STARTED:
            raise RuntimeError("A StepRunner can only run once.")
        check_unique_names(steps)
        self.records = [StepRecord(step.name) for step in steps]
        log = self.ctx.log

        for index, step in enumerate(steps):
            self.state = RunState.RUNNING
            self.current_index = index
            record = self.records[index]

            log.checkpoint(f"starting {step.name}")
            outcome = self._invoke(step)

            if outcome.success:
                record.status = "success"
                record.message = outcome.message
                log.checkpoint(f"{step.name} succeeded")
                continue

            record.message = outcome.message
            if step.policy is StepPolicy.FATAL:
                record.status = "failed"
                log.error(outcome.message)
                log.checkpoint(f"FAILED: {outcome.message}")
                self.state = RunState.HALTED
                self.result = RunResult.failure(step.name, outcome.message)
                return self.result

            record.status = "tolerated"
            log.checkpoint(f"{step.name} failed (tolerated): {outcome.message}")

        self.state = RunState.COMPLETED
        self.result = RunResult.succeeded()
        return self.result

    def _invoke(self, step: Step) -> StepOutcome:
        try:
            outcome = step.action(self.ctx)
        except Exception as e:
            logger.debug(f"Step {step.name} raised", exc_info=True)
            return StepOutcome.err(str(e) or type(e).__name__)
        if not isinstance(outcome, StepOutcome):
            return StepOutcome.err(
                f"{step.name} returned {type(outcome).__name__}, expected StepOutcome"
            )
        return outcome

    def summary_rows(self) -> List[List[str]]:
        return [[r.name, r.status, r.message] for r in self.records]


def check_unique_names(steps: Sequence[Step]) -> None:
    seen: Set[str] = set()
    for step in steps:
        if step.name in seen:
            raise ValueError(f"Duplicate step name: {step.name}")
        seen.add(step.name)
