from __future__ import annotations

from pathlib import Path
from typing import Optional

import logging
import sys


LOGGER_NAME = "hypersearch"


def setup_logger(*, verbose: bool, log_file: Optional[Path] = None) -> logging.Logger:
    """
    Configure the package logger: stderr always (INFO when verbose, WARNING otherwise),
    plus a full INFO log file when `log_file` is given.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.INFO)
    logger.propagate = False

    # Re-running main() in one process (tests) must not stack handlers.
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")

    sh = logging.StreamHandler(stream=sys.stderr)
    sh.setLevel(logging.INFO if verbose else logging.WARNING)
    sh.setFormatter(fmt)
    logger.addHandler(sh)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_file), encoding="utf-8")
        fh.setLevel(logging.INFO)
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    return logger
