from __future__ import annotations

import pytest

from hypersearch.command import CommandLine, CommandTemplate, HoldoutSpec, build_command, format_param
from hypersearch.errors import UsageError


def test_format_param_uses_short_general_form() -> None:
    assert format_param(4.0) == "4"
    assert format_param(0.5) == "0.5"
    assert format_param(1e-10) == "1e-10"
    assert format_param(0.1 + 0.2) == "0.3"


def test_every_placeholder_gets_the_same_value() -> None:
    t = CommandTemplate.from_args(["prog", "--l1=%", "%", "data.txt"])
    assert t.substitute(0.25) == ("prog", "--l1=0.25", "0.25", "data.txt")


def test_template_without_placeholder_is_rejected() -> None:
    with pytest.raises(UsageError):
        CommandTemplate.from_args(["prog", "--l1", "0.1"])
    with pytest.raises(UsageError):
        CommandTemplate.from_args([])


def test_single_step_runs_without_shell() -> None:
    line = build_command(CommandTemplate.from_args(["prog", "%"]), 2.0)
    assert not line.needs_shell
    assert line.argv == ["prog", "2"]


def test_shell_template_is_joined_verbatim() -> None:
    t = CommandTemplate.from_args(["echo", '"average loss = "', "$((%*%))"], shell=True)
    line = build_command(t, 4.0)
    assert line.needs_shell
    assert line.shell_string() == 'echo "average loss = " $((4*4))'
    with pytest.raises(ValueError):
        _ = line.argv


def test_argv_steps_are_quoted_when_chained() -> None:
    line = CommandLine(steps=(("prog", "a b"), ("prog", "-t")))
    assert line.needs_shell
    assert line.shell_string() == "prog 'a b' && prog -t"


def test_holdout_inserts_scratch_model_and_reuses_executable() -> None:
    t = CommandTemplate.from_args(["vw", "--l2", "%", "train.dat"])
    h = HoldoutSpec(test_set="test.dat")
    line = build_command(t, 0.5, holdout=h, model_path="/tmp/m.model", insert_model=True)
    assert line.steps == (
        ("vw", "--l2", "0.5", "train.dat", "-f", "/tmp/m.model"),
        ("vw", "-t", "-i", "/tmp/m.model", "-d", "test.dat"),
    )
    assert " && " in line.shell_string()


def test_holdout_requires_model_path() -> None:
    t = CommandTemplate.from_args(["vw", "%"])
    with pytest.raises(ValueError):
        build_command(t, 1.0, holdout=HoldoutSpec(test_set="x"))


def test_find_model_path_in_template() -> None:
    h = HoldoutSpec(test_set="t")
    assert h.find_model_path(CommandTemplate.from_args(["vw", "-f", "my.model", "--l1", "%"])) == "my.model"
    assert h.find_model_path(CommandTemplate.from_args(["vw", "--final_regressor=a.m", "%"])) == "a.m"
    assert h.find_model_path(CommandTemplate.from_args(["vw", "-f my.model --l1 %"], shell=True)) == "my.model"
    assert h.find_model_path(CommandTemplate.from_args(["vw", "--l1", "%"])) is None


def test_scratch_paths_are_unique(tmp_path) -> None:
    h = HoldoutSpec(test_set="t", scratch_dir=str(tmp_path))
    a, b = h.new_scratch_path(), h.new_scratch_path()
    assert a != b
    assert a.startswith(str(tmp_path)) and a.endswith(".model")
