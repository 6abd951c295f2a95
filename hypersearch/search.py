"""
One-dimensional searches over a black-box loss.

Both algorithms only see `f: float -> float`; they assume `f` is deterministic and that
calling it again with a value it has already seen is free (the evaluator memoizes).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

import logging
import math

from hypersearch.errors import SearchNonConvergence


Objective = Callable[[float], float]

RESPHI = 2.0 - (1.0 + math.sqrt(5.0)) / 2.0
GOLDEN_MAX_ITER = 200
BRENT_MAX_ITER = 50


@dataclass(frozen=True)
class SearchOutcome:
    param: float
    iterations: int
    converged: bool = True
    degenerate: bool = False


def golden_section_search(
    f: Objective,
    low: float,
    high: float,
    tol: float,
    *,
    max_iter: int = GOLDEN_MAX_ITER,
    logger: Optional[logging.Logger] = None,
) -> SearchOutcome:
    """
    Golden-section search for a minimum of `f` on [low, high].

    Stops when the bracket is narrower than `tol * (|mid| + |x|)` (relative to the size of
    the probed values) and returns the bracket centre. If the probe and the inner point
    have exactly the same loss the direction is undecidable and their midpoint is returned.
    """
    log = logger or logging.getLogger("hypersearch")
    low = float(low)
    high = float(high)
    mid = low + RESPHI * (high - low)

    for it in range(int(max_iter)):
        right_larger = (high - mid) > (mid - low)
        if right_larger:
            x = mid + RESPHI * (high - mid)
        else:
            x = mid - RESPHI * (mid - low)

        if abs(high - low) < tol * (abs(mid) + abs(x)):
            return SearchOutcome(param=(high + low) / 2.0, iterations=it)

        # Probe first, then the inner point: on a tie the evaluator's best-ever record keeps `mid`.
        fx = f(x)
        fmid = f(mid)
        if fx == fmid:
            log.warning(
                "Degenerate comparison: loss(%.15g) == loss(%.15g) == %.6g; returning their midpoint",
                x,
                mid,
                fx,
            )
            return SearchOutcome(param=(x + mid) / 2.0, iterations=it + 1, degenerate=True)

        if fx < fmid:
            if right_larger:
                low, mid, high = mid, x, high
            else:
                low, mid, high = low, x, mid
        else:
            if right_larger:
                low, mid, high = low, mid, x
            else:
                low, mid, high = x, mid, high

    log.warning(
        "Golden-section search hit the %d iteration cap (bracket %.15g .. %.15g); using the bracket centre",
        int(max_iter),
        low,
        high,
    )
    return SearchOutcome(param=(high + low) / 2.0, iterations=int(max_iter), converged=False)


def brent_search(
    f: Objective,
    a: float,
    b: float,
    tol: float,
    *,
    max_iter: int = BRENT_MAX_ITER,
    logger: Optional[logging.Logger] = None,
) -> SearchOutcome:
    """
    Brent-style bracketing search (inverse quadratic interpolation / secant / bisection).

    Works on a sign change of `f` between the endpoints. Losses rarely change sign, so when
    f(a) and f(b) do not bracket one the lower endpoint is returned right away.
    """
    log = logger or logging.getLogger("hypersearch")
    a = float(a)
    b = float(b)
    fa = f(a)
    fb = f(b)

    if fa * fb >= 0:
        log.info("No sign change between f(%.15g)=%.6g and f(%.15g)=%.6g; keeping the lower endpoint", a, fa, b, fb)
        return SearchOutcome(param=a if fa < fb else b, iterations=0)

    if abs(fa) < abs(fb):
        a, b, fa, fb = b, a, fb, fa

    c, fc = a, fa
    d = c
    mflag = True

    for it in range(int(max_iter)):
        if fb == 0 or abs(b - a) <= tol:
            return SearchOutcome(param=b, iterations=it)

        if fa != fc and fb != fc:
            s = (
                a * fb * fc / ((fa - fb) * (fa - fc))
                + b * fa * fc / ((fb - fa) * (fb - fc))
                + c * fa * fb / ((fc - fa) * (fc - fb))
            )
        else:
            s = b - fb * (b - a) / (fb - fa)

        lo, hi = sorted(((3.0 * a + b) / 4.0, b))
        if (
            not (lo < s < hi)
            or (mflag and abs(s - b) >= abs(b - c) / 2.0)
            or (not mflag and abs(s - b) >= abs(c - d) / 2.0)
            or (mflag and abs(b - c) < tol)
            or (not mflag and abs(c - d) < tol)
        ):
            s = (a + b) / 2.0
            mflag = True
        else:
            mflag = False

        fs = f(s)
        d = c
        c, fc = b, fb

        if fa * fs < 0:
            b, fb = s, fs
        else:
            a, fa = s, fs

        if abs(fa) < abs(fb):
            a, b, fa, fb = b, a, fb, fa

    raise SearchNonConvergence(iterations=int(max_iter), a=a, b=b)
