"""
Command templates for the external objective program.

A template is the program name plus its arguments, with every `%` standing in for the
candidate value. Most templates run as a plain argv list. Shell interpretation is used in
exactly two cases:

  - the template was declared with `shell=True` (tokens are joined with spaces and handed
    to `/bin/sh -c` unchanged, so `$((%*%))` or pipes behave as typed), and
  - hold-out mode, where the training run and the evaluation run are chained with `&&` so
    the evaluation only happens when training succeeded.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import os
import shlex
import tempfile
import uuid

from hypersearch.errors import UsageError


PLACEHOLDER = "%"


def format_param(value: float) -> str:
    """Text substituted for the placeholder (15 significant digits, no trailing zeros)."""
    return format(float(value), ".15g")


@dataclass(frozen=True)
class CommandLine:
    """One or more argv steps; multi-step lines run through the shell joined by `&&`."""

    steps: Tuple[Tuple[str, ...], ...]
    shell: bool = False

    @property
    def needs_shell(self) -> bool:
        return bool(self.shell) or len(self.steps) > 1

    @property
    def argv(self) -> List[str]:
        if self.needs_shell:
            raise ValueError("argv is only defined for single-step, non-shell command lines")
        return list(self.steps[0])

    def shell_string(self) -> str:
        parts = []
        for step in self.steps:
            # Shell templates are already written in shell syntax; plain argv steps need quoting.
            parts.append(" ".join(step) if self.shell else shlex.join(step))
        return " && ".join(parts)

    def display(self) -> str:
        return self.shell_string()


@dataclass(frozen=True)
class CommandTemplate:
    tokens: Tuple[str, ...]
    shell: bool = False

    def __post_init__(self) -> None:
        if not self.tokens:
            raise UsageError("command template is empty")
        if not any(PLACEHOLDER in t for t in self.tokens):
            raise UsageError(
                f"command template has no {PLACEHOLDER!r} placeholder: {' '.join(self.tokens)!r}"
            )

    @classmethod
    def from_args(cls, tokens: Sequence[str], *, shell: bool = False) -> "CommandTemplate":
        return cls(tokens=tuple(str(t) for t in tokens), shell=bool(shell))

    @property
    def executable(self) -> str:
        if self.shell:
            return self.words()[0]
        return self.tokens[0]

    def words(self) -> List[str]:
        """Whitespace-separated words of the template (shell templates may pack several per token)."""
        if not self.shell:
            return list(self.tokens)
        return " ".join(self.tokens).split()

    def substitute(self, value: float) -> Tuple[str, ...]:
        text = format_param(value)
        return tuple(t.replace(PLACEHOLDER, text) for t in self.tokens)


@dataclass(frozen=True)
class HoldoutSpec:
    """
    Evaluate every candidate on a held-out set after training.

    The training command persists a model with `model_flags[0] <path>` (unless the template
    already names one), then the same executable is re-run as
    `<exe> <test_flags...> <load_flag> <model> <data_flag> <test_set>`.
    Defaults follow the Vowpal Wabbit conventions (`-f`, `-t -i <model> -d <data>`).
    """

    test_set: str
    model_flags: Tuple[str, ...] = ("-f", "--final_regressor")
    test_flags: Tuple[str, ...] = ("-t",)
    load_flag: str = "-i"
    data_flag: str = "-d"
    scratch_dir: Optional[str] = None
    scratch_prefix: str = "hypersearch-"
    scratch_suffix: str = ".model"

    def find_model_path(self, template: CommandTemplate) -> Optional[str]:
        words = template.words()
        for i, w in enumerate(words):
            for flag in self.model_flags:
                if w == flag and i + 1 < len(words):
                    return words[i + 1]
                if flag.startswith("--") and w.startswith(flag + "="):
                    return w[len(flag) + 1 :]
        return None

    def new_scratch_path(self) -> str:
        base = self.scratch_dir or tempfile.gettempdir()
        name = f"{self.scratch_prefix}{os.getpid()}-{uuid.uuid4().hex[:12]}{self.scratch_suffix}"
        return os.path.join(base, name)


def build_command(
    template: CommandTemplate,
    value: float,
    *,
    holdout: Optional[HoldoutSpec] = None,
    model_path: Optional[str] = None,
    insert_model: bool = False,
) -> CommandLine:
    """
    Materialize the concrete command line for one candidate value.

    In hold-out mode `model_path` must be given; `insert_model=True` adds the model flag to the
    training step (used for scratch models the template does not mention).
    """
    train = list(template.substitute(value))
    if holdout is None:
        return CommandLine(steps=(tuple(train),), shell=template.shell)

    if model_path is None:
        raise ValueError("hold-out mode requires a model path")

    quote = shlex.quote if template.shell else (lambda s: s)
    if insert_model:
        train += [holdout.model_flags[0], quote(model_path)]

    test = [
        template.executable,
        *holdout.test_flags,
        holdout.load_flag,
        quote(model_path),
        holdout.data_flag,
        quote(holdout.test_set),
    ]
    return CommandLine(steps=(tuple(train), tuple(test)), shell=template.shell)
