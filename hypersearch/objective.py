from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence, TextIO

import logging
import math
import re
import sys
import time

from hypersearch.command import CommandTemplate, HoldoutSpec, build_command, format_param
from hypersearch.errors import HypersearchError, LossParseFailure
from hypersearch.history import EvaluationRecord, HistoryStore
from hypersearch.process_runner import ProcessRunner


_LOSS_RE = re.compile(
    r"average\s+loss\s*=\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?|[-+]?(?:inf(?:inity)?|nan))",
    re.IGNORECASE,
)


def parse_average_loss(lines: Sequence[str]) -> Optional[float]:
    """
    Return the number on the *last* `average loss = <number>` line, or None if there is none.

    Scanning from the end matters for the train && hold-out chain: the training run prints
    its own average loss first, the hold-out run's loss comes later.
    """
    for line in reversed(lines):
        m = _LOSS_RE.search(line)
        if m:
            return float(m.group(1))
    return None


@dataclass
class BestRecord:
    value: Optional[float] = None
    loss: float = math.inf

    def offer(self, value: float, loss: float) -> bool:
        """Record (value, loss) if it is at least as good as the current best; ties go to the newcomer."""
        if loss <= self.loss:
            self.value = float(value)
            self.loss = float(loss)
            return True
        return False


class ObjectiveEvaluator:
    """
    value -> loss, by running the templated command once per distinct value.

    The cache uses the exact float as key; the search algorithms rely on re-evaluation being
    free and deterministic.
    """

    def __init__(
        self,
        template: CommandTemplate,
        *,
        runner: Optional[ProcessRunner] = None,
        timeout_s: float = 0.0,
        holdout: Optional[HoldoutSpec] = None,
        history: Optional[HistoryStore] = None,
        progress: Optional[TextIO] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.template = template
        self.progress = sys.stderr if progress is None else progress
        self.logger = logger or logging.getLogger("hypersearch")
        self.runner = runner or ProcessRunner(progress=self.progress, logger=self.logger)
        self.timeout_s = float(timeout_s)
        self.holdout = holdout
        self.history = history
        self.best = BestRecord()
        self.evaluations = 0
        self._cache: Dict[float, float] = {}

        self.model_path: Optional[str] = None
        self.scratch_model = False
        if holdout is not None:
            given = holdout.find_model_path(template)
            if given is None:
                self.model_path = holdout.new_scratch_path()
                self.scratch_model = True
            else:
                self.model_path = given

    @property
    def cache(self) -> Mapping[float, float]:
        return dict(self._cache)

    def __call__(self, value: float) -> float:
        return self.evaluate(value)

    def evaluate(self, value: float) -> float:
        value = float(value)
        if value in self._cache:
            return self._cache[value]

        command = build_command(
            self.template,
            value,
            holdout=self.holdout,
            model_path=self.model_path,
            insert_model=self.scratch_model,
        )
        shown = command.display()

        self.progress.write(f"[EVAL ] trying {format_param(value)} ")
        self.progress.flush()
        start = time.time()
        try:
            lines = self.runner.run(command, self.timeout_s)
            loss = parse_average_loss(lines)
            if loss is None:
                raise LossParseFailure(command=shown, output=lines)
            if not math.isfinite(loss):
                raise LossParseFailure(command=shown, output=lines, detail=f"loss is not finite: {loss}")
        except HypersearchError:
            self.progress.write("FAILED\n")
            self.progress.flush()
            raise
        finally:
            if self.scratch_model:
                self.remove_scratch_model()
        duration = time.time() - start
        self.evaluations += 1

        is_best = self.best.offer(value, loss)
        self.progress.write(f"{loss:.6g}{' (best)' if is_best else ''}\n")
        self.progress.flush()
        self.logger.info(
            "Evaluated param=%s loss=%.6g in %.2fs%s", format_param(value), loss, duration, " (best)" if is_best else ""
        )

        self._cache[value] = loss
        if self.history is not None:
            self.history.append(
                EvaluationRecord(
                    index=self.evaluations,
                    param=value,
                    loss=loss,
                    is_best=is_best,
                    command=shown,
                    duration_s=float(duration),
                )
            )
        return loss

    def remove_scratch_model(self) -> None:
        if not self.scratch_model or self.model_path is None:
            return
        p = Path(self.model_path)
        if p.exists():
            p.unlink()
            self.logger.info("Removed scratch model %s", str(p))
