from __future__ import annotations

"""
Plot a hypersearch run from its `history.jsonl`.

Example:
  python -m hypersearch plot-history \
    --history runs/l1/history.jsonl \
    --outdir runs/l1/figs
"""

import argparse
import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple


def _load_jsonl(path: Path) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            rows.append(json.loads(line))
    return rows


def _extract(rows: Sequence[Mapping[str, Any]]) -> Tuple["np.ndarray", "np.ndarray", "np.ndarray"]:
    import numpy as np  # type: ignore

    index = np.asarray([int(r.get("index", i + 1)) for i, r in enumerate(rows)], dtype=int)
    param = np.asarray([float(r["param"]) for r in rows], dtype=float)
    loss = np.asarray([float(r["loss"]) for r in rows], dtype=float)
    return index, param, loss


def _best_so_far(y: "np.ndarray") -> "np.ndarray":
    import numpy as np  # type: ignore

    out = np.empty_like(y)
    best = float("inf")
    for i, v in enumerate(y.tolist()):
        if np.isfinite(v):
            best = min(best, float(v))
        out[i] = best
    return out


def _use_log_x(param: "np.ndarray", mode: str) -> bool:
    import numpy as np  # type: ignore

    if mode == "on":
        return True
    if mode == "off":
        return False
    # auto: positive values spanning more than two decades
    if param.size == 0 or float(np.min(param)) <= 0:
        return False
    return float(np.max(param)) / float(np.min(param)) > 100.0


def _save_loss_vs_param(
    index: "np.ndarray", param: "np.ndarray", loss: "np.ndarray", out_path: Path, *, log_x: bool, ylabel: str
) -> None:
    import matplotlib.pyplot as plt  # type: ignore
    import numpy as np  # type: ignore

    fig = plt.figure(figsize=(5.6, 3.4))
    ax = fig.add_subplot(1, 1, 1)
    sc = ax.scatter(param, loss, c=index, cmap="viridis", s=22, edgecolors="none")
    b = int(np.nanargmin(loss))
    ax.scatter([param[b]], [loss[b]], marker="*", s=140, color="#d62728", label=f"best {param[b]:g}")
    if log_x:
        ax.set_xscale("log")
    ax.set_xlabel("parameter")
    ax.set_ylabel(ylabel)
    ax.grid(True, alpha=0.25)
    ax.legend(frameon=False, loc="best")
    cb = fig.colorbar(sc, ax=ax)
    cb.set_label("evaluation")
    fig.tight_layout()
    fig.savefig(str(out_path), dpi=200, bbox_inches="tight")
    plt.close(fig)


def _save_best_so_far(index: "np.ndarray", loss: "np.ndarray", out_path: Path, *, ylabel: str) -> None:
    import matplotlib.pyplot as plt  # type: ignore

    fig = plt.figure(figsize=(5.6, 3.4))
    ax = fig.add_subplot(1, 1, 1)
    ax.plot(index, loss, color="#999999", linewidth=1.0, alpha=0.6, label="evaluation loss")
    ax.plot(index, _best_so_far(loss), color="#1f77b4", linewidth=2.0, label="best-so-far")
    ax.set_xlabel("Evaluation")
    ax.set_ylabel(ylabel)
    ax.grid(True, alpha=0.25)
    ax.legend(frameon=False, loc="best")
    fig.tight_layout()
    fig.savefig(str(out_path), dpi=200, bbox_inches="tight")
    plt.close(fig)


def main(argv: Optional[List[str]] = None) -> None:
    p = argparse.ArgumentParser(
        prog="hypersearch plot-history",
        description="Plot loss-vs-parameter and best-so-far curves from a hypersearch history.jsonl",
    )
    p.add_argument("--history", required=True, help="Path to history.jsonl")
    p.add_argument("--outdir", required=True, help="Directory to write figures into")
    p.add_argument("--log-x", choices=["auto", "on", "off"], default="auto", help="Log-scale parameter axis (default: auto)")
    p.add_argument("--ylabel", default="average loss", help="Y-axis label (default: average loss)")
    args = p.parse_args(argv)

    # Fail fast with a clear message if plotting deps are missing.
    try:
        import numpy as _np  # noqa: F401  # type: ignore
        import matplotlib.pyplot as _plt  # noqa: F401  # type: ignore
    except Exception as e:
        raise SystemExit(
            "Missing plotting dependencies (numpy/matplotlib). Install them with\n\n"
            "  pip install numpy matplotlib\n\n"
            f"Original import error: {type(e).__name__}: {e}"
        )

    history_path = Path(str(args.history)).resolve()
    outdir = Path(str(args.outdir)).resolve()
    outdir.mkdir(parents=True, exist_ok=True)

    rows = _load_jsonl(history_path)
    if not rows:
        raise SystemExit(f"No evaluations found in {history_path}")

    index, param, loss = _extract(rows)
    log_x = _use_log_x(param, str(args.log_x))
    _save_loss_vs_param(index, param, loss, outdir / "loss_vs_param.png", log_x=log_x, ylabel=str(args.ylabel))
    _save_best_so_far(index, loss, outdir / "best_so_far.png", ylabel=str(args.ylabel))

    print(f"Wrote figures to: {outdir}")


if __name__ == "__main__":
    main()
