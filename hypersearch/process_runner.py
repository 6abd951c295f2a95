"""
Single integration point with the external objective program.

The child runs in its own session so a timeout can kill the whole process group (the
`&&`-chained hold-out command runs under `/bin/sh`, and killing only the shell would leave
the training run alive and the output pipe open).
"""

from __future__ import annotations

from typing import List, Optional, TextIO

import logging
import os
import signal
import subprocess
import sys
import threading
import time

from hypersearch.command import CommandLine
from hypersearch.errors import (
    ProcessExitedNonZero,
    ProcessLaunchFailure,
    ProcessSignaled,
    ProcessTimeout,
)


class ProcessRunner:
    def __init__(self, *, progress: Optional[TextIO] = None, logger: Optional[logging.Logger] = None):
        self.progress = sys.stderr if progress is None else progress
        self.logger = logger or logging.getLogger("hypersearch")

    def run(self, command: CommandLine, timeout_s: float = 0.0) -> List[str]:
        """
        Run `command`, returning its merged stdout/stderr lines on exit status 0.

        Raises ProcessLaunchFailure, ProcessTimeout, ProcessSignaled or ProcessExitedNonZero
        otherwise.
        """
        timeout_s = float(timeout_s)
        if timeout_s < 0:
            raise ValueError(f"timeout must be >= 0 (got {timeout_s})")

        shown = command.display()
        self.logger.info("Running: %s", shown)
        try:
            proc = self._spawn(command)
        except OSError as e:
            raise ProcessLaunchFailure(command=shown, reason=f"{type(e).__name__}: {e}") from e
        deadline = None if timeout_s == 0 else time.monotonic() + timeout_s

        lines: List[str] = []
        show_progress = timeout_s == 0
        reader = threading.Thread(
            target=self._collect,
            args=(proc, lines, show_progress),
            name="hypersearch-output",
            daemon=True,
        )
        reader.start()
        reader.join(None if deadline is None else timeout_s)

        # The child may close its output and keep running, so reaping is bounded by the deadline too.
        status = None if reader.is_alive() else self._wait_status(proc, deadline)
        if status is None:
            self._kill_group(proc)
            reader.join()
            self._wait_status(proc)
            self.logger.info("Timed out after %.3fs: %s", timeout_s, shown)
            raise ProcessTimeout(command=shown, timeout_s=timeout_s, output=lines)

        if show_progress and lines:
            self.progress.write(" ")
            self.progress.flush()

        if os.WIFSIGNALED(status):
            raise ProcessSignaled(
                command=shown,
                signal=os.WTERMSIG(status),
                core_dumped=os.WCOREDUMP(status),
                output=lines,
            )
        code = os.WEXITSTATUS(status) if os.WIFEXITED(status) else status
        if code != 0:
            raise ProcessExitedNonZero(command=shown, exit_code=code, output=lines)
        return lines

    @staticmethod
    def _spawn(command: CommandLine) -> subprocess.Popen:
        common = dict(
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            text=True,
            errors="replace",
            start_new_session=True,
        )
        if command.needs_shell:
            return subprocess.Popen(command.shell_string(), shell=True, **common)
        return subprocess.Popen(command.argv, **common)

    def _collect(self, proc: subprocess.Popen, lines: List[str], show_progress: bool) -> None:
        assert proc.stdout is not None
        with proc.stdout:
            for raw in proc.stdout:
                lines.append(raw.rstrip("\r\n"))
                if show_progress:
                    self.progress.write(".")
                    self.progress.flush()

    @staticmethod
    def _kill_group(proc: subprocess.Popen) -> None:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass

    @staticmethod
    def _wait_status(proc: subprocess.Popen, deadline: Optional[float] = None) -> Optional[int]:
        """Raw wait status of `proc`, or None if it is still running at `deadline`."""
        # Reap with waitpid ourselves: Popen.returncode drops the core-dump bit.
        while True:
            pid, status = os.waitpid(proc.pid, 0 if deadline is None else os.WNOHANG)
            if pid != 0:
                proc.returncode = os.waitstatus_to_exitcode(status)
                return status
            if time.monotonic() >= deadline:
                return None
            time.sleep(0.01)
