"""
Scalar hyperparameter search over an external command.

The command template carries a `%` placeholder; every candidate value is substituted in,
the command is run, and the last `average loss = <number>` line it prints is the loss.
"""

from __future__ import annotations

from hypersearch.command import CommandTemplate, HoldoutSpec
from hypersearch.driver import HypersearchConfig, HypersearchResult, run_hypersearch
from hypersearch.objective import ObjectiveEvaluator
from hypersearch.process_runner import ProcessRunner
from hypersearch.search import brent_search, golden_section_search

__all__ = [
    "CommandTemplate",
    "HoldoutSpec",
    "HypersearchConfig",
    "HypersearchResult",
    "ObjectiveEvaluator",
    "ProcessRunner",
    "brent_search",
    "golden_section_search",
    "run_hypersearch",
]
