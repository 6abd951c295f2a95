from __future__ import annotations

from typing import Optional, Sequence, Tuple


class HypersearchError(RuntimeError):
    """Base class for every fatal hypersearch failure."""


class UsageError(HypersearchError):
    """Malformed arguments or configuration."""


class ProcessFailure(HypersearchError):
    """
    The external objective command did not complete normally.

    `command` is the shell-readable rendering of what was run so the user can paste it
    into a terminal; `output` holds the merged stdout/stderr lines captured so far.
    """

    def __init__(self, message: str, *, command: str, output: Sequence[str] = ()):
        super().__init__(message)
        self.command = str(command)
        self.output: Tuple[str, ...] = tuple(output)

    def describe(self) -> str:
        lines = [str(self), f"command: {self.command}"]
        if self.output:
            lines.append("captured output:")
            lines.extend(f"    {ln}" for ln in self.output)
        else:
            lines.append("captured output: (none)")
        lines.append("Try running the command above manually to reproduce the failure.")
        return "\n".join(lines)


class ProcessLaunchFailure(ProcessFailure):
    """The command could not be started at all (missing or non-executable program)."""

    def __init__(self, *, command: str, reason: str):
        super().__init__(f"could not start command: {reason}", command=command)
        self.reason = str(reason)


class ProcessTimeout(ProcessFailure):
    def __init__(self, *, command: str, timeout_s: float, output: Sequence[str] = ()):
        super().__init__(f"command timed out after {timeout_s:g}s", command=command, output=output)
        self.timeout_s = float(timeout_s)


class ProcessSignaled(ProcessFailure):
    def __init__(self, *, command: str, signal: int, core_dumped: bool, output: Sequence[str] = ()):
        core = "with" if core_dumped else "without"
        super().__init__(f"command died from signal {signal} ({core} core dump)", command=command, output=output)
        self.signal = int(signal)
        self.core_dumped = bool(core_dumped)


class ProcessExitedNonZero(ProcessFailure):
    def __init__(self, *, command: str, exit_code: int, output: Sequence[str] = ()):
        super().__init__(f"command exited with status {exit_code}", command=command, output=output)
        self.exit_code = int(exit_code)


class LossParseFailure(ProcessFailure):
    """The command succeeded but printed no usable `average loss = <number>` line."""

    def __init__(self, *, command: str, output: Sequence[str] = (), detail: Optional[str] = None):
        msg = "could not find an 'average loss = <number>' line in the command output"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg, command=command, output=output)


class SearchNonConvergence(HypersearchError):
    def __init__(self, *, iterations: int, a: float, b: float):
        super().__init__(f"search did not converge after {iterations} iterations (bracket {a:g} .. {b:g})")
        self.iterations = int(iterations)
        self.a = float(a)
        self.b = float(b)
