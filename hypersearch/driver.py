from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Literal, Optional, TextIO, Tuple

import logging
import math
import sys

from hypersearch.command import CommandTemplate, HoldoutSpec, format_param
from hypersearch.errors import UsageError
from hypersearch.history import HistoryStore
from hypersearch.objective import ObjectiveEvaluator
from hypersearch.process_runner import ProcessRunner
from hypersearch.search import SearchOutcome, brent_search, golden_section_search


Algorithm = Literal["golden", "brent"]


@dataclass(frozen=True)
class HypersearchConfig:
    lower_bound: float
    upper_bound: float
    command: Tuple[str, ...]
    tolerance: float = 0.001
    algorithm: Algorithm = "golden"
    log_space: bool = False
    shell: bool = False
    timeout_s: float = 0.0
    test_set: Optional[str] = None
    history_dir: Optional[Path] = None

    def validate(self) -> None:
        lo = float(self.lower_bound)
        hi = float(self.upper_bound)
        if not (math.isfinite(lo) and math.isfinite(hi)):
            raise UsageError(f"bounds must be finite numbers (got {self.lower_bound!r}, {self.upper_bound!r})")
        if lo == hi:
            raise UsageError(f"lower and upper bound are equal ({lo:g}); nothing to search")
        tol = float(self.tolerance)
        if not (0.0 < tol < 1.0):
            raise UsageError(f"tolerance must be in the open interval (0, 1) (got {self.tolerance!r})")
        if float(self.timeout_s) < 0:
            raise UsageError(f"timeout must be >= 0 seconds (got {self.timeout_s!r})")
        if self.algorithm not in ("golden", "brent"):
            raise UsageError(f"unknown search algorithm: {self.algorithm!r}")
        if self.log_space and min(lo, hi) <= 0:
            raise UsageError("log-space search needs strictly positive bounds")
        CommandTemplate.from_args(self.command, shell=self.shell)

    @property
    def bounds(self) -> Tuple[float, float]:
        lo, hi = float(self.lower_bound), float(self.upper_bound)
        return (lo, hi) if lo < hi else (hi, lo)


@dataclass(frozen=True)
class HypersearchResult:
    param: float
    loss: float
    search_param: float
    search_loss: float
    reconciled: bool
    evaluations: int
    algorithm: Algorithm
    outcome: SearchOutcome = field(repr=False)


def run_hypersearch(
    cfg: HypersearchConfig,
    *,
    runner: Optional[ProcessRunner] = None,
    progress: Optional[TextIO] = None,
    logger: Optional[logging.Logger] = None,
) -> HypersearchResult:
    """
    Search `cfg.command`'s placeholder for the value with the lowest reported loss.

    The engine's answer is checked against the best value the evaluator has ever seen; the
    searches stop on approximate criteria, so the global best wins whenever it is strictly lower.
    """
    cfg.validate()
    log = logger or logging.getLogger("hypersearch")
    stream = sys.stderr if progress is None else progress

    template = CommandTemplate.from_args(cfg.command, shell=cfg.shell)
    holdout = None if cfg.test_set is None else HoldoutSpec(test_set=str(cfg.test_set))
    history = None
    if cfg.history_dir is not None:
        history = HistoryStore(Path(cfg.history_dir))
        history.reset()

    evaluator = ObjectiveEvaluator(
        template,
        runner=runner,
        timeout_s=float(cfg.timeout_s),
        holdout=holdout,
        history=history,
        progress=stream,
        logger=log,
    )

    low, high = cfg.bounds
    to_param: Callable[[float], float]
    if cfg.log_space:
        low, high = math.log(low), math.log(high)
        to_param = math.exp
    else:
        to_param = float

    def objective(x: float) -> float:
        return evaluator.evaluate(to_param(x))

    log.info(
        "Searching [%s, %s] with %s (tolerance=%g%s)",
        format_param(cfg.bounds[0]),
        format_param(cfg.bounds[1]),
        cfg.algorithm,
        float(cfg.tolerance),
        ", log space" if cfg.log_space else "",
    )

    try:
        if cfg.algorithm == "brent":
            outcome = brent_search(objective, low, high, float(cfg.tolerance), logger=log)
        else:
            outcome = golden_section_search(objective, low, high, float(cfg.tolerance), logger=log)

        search_param = to_param(outcome.param)
        search_loss = evaluator.evaluate(search_param)
    finally:
        evaluator.remove_scratch_model()

    param, loss, reconciled = search_param, search_loss, False
    best = evaluator.best
    if best.value is not None and best.loss < search_loss:
        stream.write(
            f"[BEST ] search ended at {format_param(search_param)} (loss {search_loss:.6g}); "
            f"using best seen {format_param(best.value)} (loss {best.loss:.6g})\n"
        )
        stream.flush()
        param, loss, reconciled = best.value, best.loss, True

    log.info(
        "Done after %d evaluations: param=%s loss=%.6g%s",
        evaluator.evaluations,
        format_param(param),
        loss,
        " (from best-ever record)" if reconciled else "",
    )
    return HypersearchResult(
        param=float(param),
        loss=float(loss),
        search_param=float(search_param),
        search_loss=float(search_loss),
        reconciled=reconciled,
        evaluations=int(evaluator.evaluations),
        algorithm=cfg.algorithm,
        outcome=outcome,
    )
