from __future__ import annotations

from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence

import json
import time


@dataclass(frozen=True)
class EvaluationRecord:
    index: int
    param: float
    loss: float
    is_best: bool
    command: str
    duration_s: Optional[float] = None


class HistoryStore:
    """
    Append-only JSONL trace of one run's evaluations + a convenience JSON snapshot.

    The trace is write-only: a new run resets it, nothing is ever resumed from it.
    """

    def __init__(self, history_dir: Path):
        self.history_dir = history_dir
        self.history_jsonl = history_dir / "history.jsonl"
        self.history_json = history_dir / "history.json"

    def reset(self) -> None:
        self.history_dir.mkdir(parents=True, exist_ok=True)
        for p in (self.history_jsonl, self.history_json):
            if p.exists():
                p.unlink()

    def load(self) -> List[EvaluationRecord]:
        if not self.history_jsonl.exists():
            return []
        out: List[EvaluationRecord] = []
        with self.history_jsonl.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                d = json.loads(line)
                out.append(
                    EvaluationRecord(
                        index=int(d["index"]),
                        param=float(d["param"]),
                        loss=float(d["loss"]),
                        is_best=bool(d.get("is_best", False)),
                        command=str(d.get("command") or ""),
                        duration_s=None if d.get("duration_s") is None else float(d["duration_s"]),
                    )
                )
        return out

    def append(self, rec: EvaluationRecord) -> None:
        self.history_dir.mkdir(parents=True, exist_ok=True)
        with self.history_jsonl.open("a", encoding="utf-8") as f:
            f.write(json.dumps(asdict(rec), sort_keys=True) + "\n")
        records = self.load()
        payload = {
            "updated_unix_s": time.time(),
            "evaluation_count": len(records),
            "best": _best_payload(records),
            "evaluations": [asdict(r) for r in records],
        }
        with self.history_json.open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, sort_keys=True)


def _best_payload(records: Sequence[EvaluationRecord]) -> Optional[Mapping[str, Any]]:
    if not records:
        return None
    # Same tie rule as the evaluator: the latest of equal losses wins.
    best = records[0]
    for r in records[1:]:
        if r.loss <= best.loss:
            best = r
    return asdict(best)
