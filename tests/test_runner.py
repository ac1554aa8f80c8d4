"""
Tests for StepRunner ordering, halt semantics and log output.
"""

import re
import stat
from typing import List

import pytest

from vm_provision.context import RunContext
from vm_provision.runlog import LogKind, RunLog
from vm_provision.runner import (
    RunResult,
    RunState,
    Step,
    StepOutcome,
    StepPolicy,
    StepRunner,
)


def recording_step(
    name: str,
    calls: List[str],
    outcome: StepOutcome = StepOutcome.ok(),
    policy: StepPolicy = StepPolicy.FATAL,
) -> Step:
    def action(ctx: RunContext) -> StepOutcome:
        calls.append(name)
        return outcome

    return Step(name, action, policy)


def test_all_steps_succeed(ctx, run_log):
    calls: List[str] = []
    steps = [recording_step(n, calls) for n in ("A", "B", "C")]

    result = StepRunner(ctx).run(steps)

    assert result == RunResult.succeeded()
    assert calls == ["A", "B", "C"]
    assert run_log.checkpoints() == [
        "starting A",
        "A succeeded",
        "starting B",
        "B succeeded",
        "starting C",
        "C succeeded",
    ]
    assert run_log.errors() == []


def test_fatal_failure_halts_run(ctx, run_log):
    calls: List[str] = []
    steps = [
        recording_step("A", calls),
        recording_step("B", calls, StepOutcome.err("disk full")),
        recording_step("C", calls),
    ]
    runner = StepRunner(ctx)

    result = runner.run(steps)

    assert result == RunResult.failure("B", "disk full")
    assert result.exit_code == 1
    assert calls == ["A", "B"]
    assert runner.state is RunState.HALTED
    assert run_log.errors() == ["disk full"]
    assert run_log.checkpoints() == [
        "starting A",
        "A succeeded",
        "starting B",
        "FAILED: disk full",
    ]
    assert not any("C" in e.message for e in run_log.entries)


def test_error_entry_precedes_failed_checkpoint(ctx, run_log):
    steps = [Step("B", lambda ctx: StepOutcome.err("disk full"))]

    StepRunner(ctx).run(steps)

    kinds = [(e.kind, e.message) for e in run_log.entries]
    assert kinds[-2:] == [
        (LogKind.ERROR, "disk full"),
        (LogKind.CHECKPOINT, "FAILED: disk full"),
    ]


def test_tolerated_failure_continues(ctx, run_log):
    calls: List[str] = []
    steps = [
        recording_step("A", calls, StepOutcome.err("no snap"), StepPolicy.WARN_AND_CONTINUE),
        recording_step("B", calls),
    ]
    runner = StepRunner(ctx)

    result = runner.run(steps)

    assert result.success
    assert calls == ["A", "B"]
    assert "A failed (tolerated): no snap" in run_log.checkpoints()
    assert run_log.errors() == []
    assert runner.state is RunState.COMPLETED
    assert [r.status for r in runner.records] == ["tolerated", "success"]


def test_fatal_after_tolerated_failure(ctx):
    calls: List[str] = []
    steps = [
        recording_step("A", calls, StepOutcome.err("meh"), StepPolicy.WARN_AND_CONTINUE),
        recording_step("B", calls, StepOutcome.err("boom")),
        recording_step("C", calls),
    ]

    result = StepRunner(ctx).run(steps)

    assert result == RunResult.failure("B", "boom")
    assert calls == ["A", "B"]


def test_exception_in_action_is_a_step_failure(ctx, run_log):
    def explode(ctx: RunContext) -> StepOutcome:
        raise RuntimeError("unexpected")

    result = StepRunner(ctx).run([Step("X", explode)])

    assert result == RunResult.failure("X", "unexpected")
    assert run_log.errors() == ["unexpected"]


def test_non_outcome_return_is_a_failure(ctx):
    result = StepRunner(ctx).run([Step("X", lambda ctx: True)])

    assert not result.success
    assert "expected StepOutcome" in result.message


def test_state_machine(ctx):
    runner = StepRunner(ctx)
    seen = []

    def observe(ctx: RunContext) -> StepOutcome:
        seen.append((runner.state, runner.current_index))
        return StepOutcome.ok()

    assert runner.state is RunState.NOT_STARTED
    runner.run([Step("A", observe), Step("B", observe)])

    assert seen == [(RunState.RUNNING, 0), (RunState.RUNNING, 1)]
    assert runner.state is RunState.COMPLETED


def test_empty_step_list_succeeds(ctx, run_log):
    runner = StepRunner(ctx)
    assert runner.run([]).success
    assert runner.state is RunState.COMPLETED
    assert run_log.entries == ()


def test_duplicate_step_names_rejected(ctx):
    calls: List[str] = []
    steps = [recording_step("A", calls), recording_step("A", calls)]

    with pytest.raises(ValueError):
        StepRunner(ctx).run(steps)
    assert calls == []


def test_runner_runs_once(ctx):
    runner = StepRunner(ctx)
    runner.run([])
    with pytest.raises(RuntimeError):
        runner.run([])


def test_file_sinks_are_written_before_next_step(ctx, tmp_path):
    combined = tmp_path / "combined.log"
    checkpoints = tmp_path / "checkpoints.log"
    errors = tmp_path / "errors.log"
    log = RunLog.to_files(combined, checkpoints, errors, echo=False)
    ctx = RunContext(config=ctx.config, log=log, host=ctx.host)
    seen_by_b = []

    def step_b(ctx: RunContext) -> StepOutcome:
        seen_by_b.append(combined.read_text())
        return StepOutcome.err("disk full")

    steps = [
        Step("A", lambda ctx: StepOutcome.ok()),
        Step("B", step_b),
        Step("C", lambda ctx: StepOutcome.ok()),
    ]
    try:
        StepRunner(ctx).run(steps)
    finally:
        log.close()

    assert "A succeeded" in seen_by_b[0]
    assert "starting B" in seen_by_b[0]

    line = re.compile(r"^\[(CHECKPOINT|ERROR)\] \d{4}-\d\d-\d\d \d\d:\d\d:\d\d .+$")
    combined_lines = combined.read_text().splitlines()
    assert len(combined_lines) == 5
    assert all(line.match(l) for l in combined_lines)
    assert combined_lines[-2].startswith("[ERROR] ")
    assert combined_lines[-2].endswith(" disk full")

    error_lines = errors.read_text().splitlines()
    assert len(error_lines) == 1
    assert error_lines[0].endswith(" disk full")

    checkpoint_lines = checkpoints.read_text().splitlines()
    assert len(checkpoint_lines) == 4
    assert all(l.startswith("[CHECKPOINT] ") for l in checkpoint_lines)
    assert not any("C" in l.split(" ", 3)[3] for l in checkpoint_lines)


def test_file_sinks_append_across_runs(ctx, tmp_path):
    paths = [tmp_path / n for n in ("all.log", "cp.log", "err.log")]
    for _ in range(2):
        log = RunLog.to_files(*paths, echo=False)
        StepRunner(RunContext(config=ctx.config, log=log, host=ctx.host)).run(
            [Step("A", lambda ctx: StepOutcome.ok())]
        )
        log.close()

    assert len(paths[0].read_text().splitlines()) == 4


def test_entries_render_like_file_lines(run_log):
    run_log.checkpoint("hello 100%")
    entry = run_log.entries[0]
    assert re.match(
        r"^\[CHECKPOINT\] \d{4}-\d\d-\d\d \d\d:\d\d:\d\d hello 100%$", entry.render()
    )


def test_log_files_are_private(tmp_path):
    paths = [tmp_path / n for n in ("all.log", "cp.log", "err.log")]

    log = RunLog.to_files(*paths, echo=False)
    log.close()

    for path in paths:
        assert stat.S_IMODE(path.stat().st_mode) == 0o600


def test_reusing_a_logger_name_closes_its_handlers(tmp_path):
    first = RunLog(name="vm_provision.run.reused")
    handler = first.add_file_sink(tmp_path / "first.log")

    RunLog(name="vm_provision.run.reused")

    assert handler.stream is None
