from __future__ import annotations

from typing import Callable, List, Optional

import pytest

from hypersearch.command import CommandLine


class FakeRunner:
    """Stands in for ProcessRunner: computes output lines from the command instead of spawning."""

    def __init__(self, respond: Callable[[CommandLine], List[str]]):
        self.respond = respond
        self.commands: List[CommandLine] = []
        self.timeouts: List[float] = []

    def run(self, command: CommandLine, timeout_s: float = 0.0) -> List[str]:
        self.commands.append(command)
        self.timeouts.append(float(timeout_s))
        return self.respond(command)

    @property
    def calls(self) -> int:
        return len(self.commands)


def loss_runner(loss_fn: Callable[[float], float], *, arg_index: int = -1, extra: Optional[List[str]] = None) -> FakeRunner:
    """Runner whose loss is `loss_fn(float(argv[arg_index]))` of the first step."""

    def respond(command: CommandLine) -> List[str]:
        value = float(command.steps[0][arg_index])
        return list(extra or []) + [f"average loss = {loss_fn(value)!r}"]

    return FakeRunner(respond)


@pytest.fixture
def make_loss_runner():
    return loss_runner
