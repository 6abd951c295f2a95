from __future__ import annotations

import argparse
import json
import os
import shutil
import sys
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from hypersearch.command import CommandTemplate
from hypersearch.driver import HypersearchConfig, run_hypersearch
from hypersearch.errors import HypersearchError, ProcessFailure, UsageError
from hypersearch.logs import setup_logger


DEFAULT_TOLERANCE = 0.001

# Keys a --config file may set; values become argparse defaults.
_CONFIG_KEYS = {
    "tolerance",
    "algorithm",
    "brent",
    "log_space",
    "test_set",
    "verbose",
    "timeout",
    "shell",
    "history_dir",
    "log_file",
}

# Options that consume the following token.
_VALUE_OPTIONS = {"-t", "--test-set", "--timeout", "--history-dir", "--log-file", "--config"}


def _load_any(path: Path) -> Mapping[str, Any]:
    if not path.is_file():
        raise UsageError(f"config file {path} does not exist")
    suf = path.suffix.lower()
    if suf in {".json"}:
        with path.open("r", encoding="utf-8") as f:
            obj = json.load(f)
    elif suf in {".yaml", ".yml"}:
        try:
            import yaml  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("YAML support requires PyYAML (pip install pyyaml).") from e
        with path.open("r", encoding="utf-8") as f:
            obj = yaml.safe_load(f)
    else:
        raise UsageError(f"Unsupported config format: {path.suffix} (use .json/.yaml/.yml)")
    if obj is None:
        return {}
    if not isinstance(obj, dict):
        raise UsageError(f"config file {path} must contain a mapping at the top level")
    return obj


def _config_defaults(path: Path) -> Dict[str, Any]:
    raw = _load_any(path)
    unknown = sorted(set(map(str, raw)) - _CONFIG_KEYS)
    if unknown:
        raise UsageError(f"unknown key(s) in {path}: {', '.join(unknown)}")
    out: Dict[str, Any] = dict(raw)
    algo = out.pop("algorithm", None)
    if algo is not None:
        algo = str(algo).lower()
        if algo not in ("golden", "brent"):
            raise UsageError(f"unknown algorithm in {path}: {algo!r} (use golden/brent)")
        out.setdefault("brent", algo == "brent")
    return out


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="hypersearch",
        usage="%(prog)s [options] lower_bound upper_bound [tolerance] command ...",
        description=(
            "Scalar hyperparameter search: find the value of the '%' placeholder in COMMAND "
            "that minimizes the 'average loss = <number>' the command prints."
        ),
        epilog=(
            "Options must come before the bounds. Tolerance must be in (0, 1); default %g.\n"
            "Example:\n"
            "  hypersearch 1e-10 5e-4 vw --l1 %% train.dat\n"
            "  hypersearch -t test.dat -L 0.01 10 vw --learning_rate %% train.dat" % DEFAULT_TOLERANCE
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("-b", "--brent", action="store_true", help="Use the Brent-style bracketing search instead of golden-section.")
    p.add_argument("-L", "--log-space", action="store_true", help="Search over log(value); bounds must be positive.")
    p.add_argument(
        "-t",
        "--test-set",
        default=None,
        help="Hold-out set: train with a model file, then score the model on this data (chained with &&).",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Log commands and evaluations to stderr.")
    p.add_argument("--timeout", type=float, default=0.0, help="Per-evaluation timeout in seconds (0 = none).")
    p.add_argument(
        "--shell",
        action="store_true",
        help="Run the command through /bin/sh (tokens joined with spaces), e.g. for pipes or $((...)).",
    )
    p.add_argument("--history-dir", default=None, help="Write history.jsonl/history.json of all evaluations here.")
    p.add_argument("--log-file", default=None, help="Also write a full INFO log to this file.")
    p.add_argument("--config", default=None, help="JSON/YAML file with defaults for the options above.")
    p.add_argument(
        "positionals",
        nargs=argparse.REMAINDER,
        metavar="lower_bound upper_bound [tolerance] command ...",
        help=argparse.SUPPRESS,
    )
    p.set_defaults(tolerance=DEFAULT_TOLERANCE)
    return p


def _as_float(text: str) -> Optional[float]:
    try:
        return float(text)
    except ValueError:
        return None


def split_positionals(items: Sequence[str], *, default_tolerance: float) -> Tuple[float, float, float, List[str]]:
    """`lower upper [tolerance] command...` -> (lower, upper, tolerance, command)."""
    items = list(items)
    if items and items[0] == "--":
        items = items[1:]
    if len(items) < 3:
        raise UsageError("expected: lower_bound upper_bound [tolerance] command ...")
    lo = _as_float(items[0])
    hi = _as_float(items[1])
    if lo is None or hi is None:
        raise UsageError(f"bounds must be numbers (got {items[0]!r} and {items[1]!r})")

    tol = float(default_tolerance)
    command = items[2:]
    maybe_tol = _as_float(items[2])
    if maybe_tol is not None and len(items) > 3:
        tol = maybe_tol
        command = items[3:]
    return lo, hi, tol, command


def _check_executable(template: CommandTemplate) -> None:
    exe = template.executable
    if shutil.which(exe) is not None:
        return
    if os.path.sep in exe and os.path.isfile(exe) and os.access(exe, os.X_OK):
        return
    raise UsageError(f"{exe!r} is not an executable on PATH")


def split_options(argv: Sequence[str]) -> Tuple[List[str], List[str]]:
    """
    Split argv at the lower bound: (options, positionals).

    argparse mistakes a negative bound such as `-1e-3` for an option, so the positionals are
    cut off here at the first numeric token that is not the value of an option.
    """
    items = list(argv)
    i = 0
    while i < len(items):
        tok = items[i]
        if tok == "--":
            return items[:i], items[i + 1 :]
        if _as_float(tok) is not None:
            return items[:i], items[i:]
        if not tok.startswith("-"):
            break
        i += 2 if tok in _VALUE_OPTIONS else 1
    return items, []


def parse_config(argv: Optional[Sequence[str]] = None) -> Tuple[HypersearchConfig, argparse.Namespace]:
    parser = build_arg_parser()
    options, positionals = split_options(sys.argv[1:] if argv is None else argv)
    args = parser.parse_args(options)
    if args.config:
        parser.set_defaults(**_config_defaults(Path(str(args.config))))
        args = parser.parse_args(options)
    positionals = list(args.positionals) + positionals

    lo, hi, tol, command = split_positionals(positionals, default_tolerance=float(args.tolerance))
    template = CommandTemplate.from_args(command, shell=bool(args.shell))
    if not args.shell:
        _check_executable(template)
    if args.test_set is not None and not Path(str(args.test_set)).is_file():
        raise UsageError(f"test set {args.test_set!r} does not exist")

    cfg = HypersearchConfig(
        lower_bound=lo,
        upper_bound=hi,
        command=template.tokens,
        tolerance=tol,
        algorithm="brent" if args.brent else "golden",
        log_space=bool(args.log_space),
        shell=bool(args.shell),
        timeout_s=float(args.timeout),
        test_set=None if args.test_set is None else str(args.test_set),
        history_dir=None if args.history_dir is None else Path(str(args.history_dir)).resolve(),
    )
    cfg.validate()
    return cfg, args


def main(argv: Optional[Sequence[str]] = None) -> None:
    try:
        cfg, args = parse_config(argv)
    except UsageError as e:
        build_arg_parser().print_usage(sys.stderr)
        sys.stderr.write(f"hypersearch: error: {e}\n")
        raise SystemExit(2)

    logger = setup_logger(
        verbose=bool(args.verbose),
        log_file=None if args.log_file is None else Path(str(args.log_file)).resolve(),
    )

    try:
        result = run_hypersearch(cfg, logger=logger)
    except ProcessFailure as e:
        logger.error("%s", e.describe())
        raise SystemExit(1)
    except HypersearchError as e:
        logger.error("%s", e)
        raise SystemExit(1)

    sys.stdout.write(f"{result.param:g}\t{result.loss:.6g}\n")
    sys.stdout.flush()


if __name__ == "__main__":
    main()
