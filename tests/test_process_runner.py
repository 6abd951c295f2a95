from __future__ import annotations

import io
import signal
import sys
import time

import pytest

from hypersearch.command import CommandLine
from hypersearch.errors import ProcessExitedNonZero, ProcessLaunchFailure, ProcessSignaled, ProcessTimeout
from hypersearch.process_runner import ProcessRunner


def _py(code: str) -> CommandLine:
    return CommandLine(steps=((sys.executable, "-c", code),))


def test_merges_stderr_into_output() -> None:
    progress = io.StringIO()
    lines = ProcessRunner(progress=progress).run(
        _py("import sys; print('to-stdout', flush=True); sys.stderr.write('to-stderr\\n')")
    )
    assert "to-stdout" in lines
    assert "to-stderr" in lines


def test_progress_dot_per_line_without_timeout() -> None:
    progress = io.StringIO()
    lines = ProcessRunner(progress=progress).run(_py("print('a'); print('b'); print('c')"))
    assert lines == ["a", "b", "c"]
    assert progress.getvalue().count(".") == 3


def test_no_progress_when_timeout_is_set() -> None:
    progress = io.StringIO()
    lines = ProcessRunner(progress=progress).run(_py("print('a')"), timeout_s=30)
    assert lines == ["a"]
    assert progress.getvalue() == ""


def test_nonzero_exit_is_reported_with_output() -> None:
    with pytest.raises(ProcessExitedNonZero) as ei:
        ProcessRunner(progress=io.StringIO()).run(_py("import sys; print('partial', flush=True); sys.exit(2)"))
    assert ei.value.exit_code == 2
    assert "partial" in ei.value.output
    assert "reproduce" in ei.value.describe()


def test_signal_death_is_classified() -> None:
    with pytest.raises(ProcessSignaled) as ei:
        ProcessRunner(progress=io.StringIO()).run(_py("import os, signal; os.kill(os.getpid(), signal.SIGKILL)"))
    assert ei.value.signal == int(signal.SIGKILL)
    assert ei.value.core_dumped is False
    assert "signal 9" in str(ei.value)


def test_timeout_kills_child_and_keeps_partial_output() -> None:
    start = time.time()
    with pytest.raises(ProcessTimeout) as ei:
        ProcessRunner(progress=io.StringIO()).run(
            _py("import time; print('started', flush=True); time.sleep(60)"),
            timeout_s=1.0,
        )
    assert time.time() - start < 30
    assert ei.value.timeout_s == 1.0
    assert "started" in ei.value.output


def test_chained_steps_run_through_the_shell() -> None:
    line = CommandLine(steps=(("echo", "average loss = 1"), ("echo", "average loss = 2")))
    lines = ProcessRunner(progress=io.StringIO()).run(line)
    assert lines == ["average loss = 1", "average loss = 2"]


def test_second_step_is_skipped_when_first_fails() -> None:
    line = CommandLine(steps=((sys.executable, "-c", "import sys; sys.exit(3)"), ("echo", "second")))
    with pytest.raises(ProcessExitedNonZero) as ei:
        ProcessRunner(progress=io.StringIO()).run(line)
    assert ei.value.exit_code == 3
    assert "second" not in ei.value.output


def test_negative_timeout_is_rejected() -> None:
    with pytest.raises(ValueError):
        ProcessRunner(progress=io.StringIO()).run(_py("pass"), timeout_s=-1)


def test_missing_program_raises_launch_failure() -> None:
    line = CommandLine(steps=(("no-such-program-xyz", "1"),))
    with pytest.raises(ProcessLaunchFailure) as ei:
        ProcessRunner(progress=io.StringIO()).run(line)
    assert "FileNotFoundError" in str(ei.value)
    assert ei.value.output == ()


def test_timeout_applies_after_child_closes_its_output() -> None:
    start = time.time()
    with pytest.raises(ProcessTimeout) as ei:
        ProcessRunner(progress=io.StringIO()).run(
            _py("import os, time; print('detached', flush=True); os.close(1); os.close(2); time.sleep(60)"),
            timeout_s=1.0,
        )
    assert time.time() - start < 30
    assert "detached" in ei.value.output
