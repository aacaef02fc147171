###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

"""
Single-GPU validation run: probe orchestration, log capture and PASS/FAIL classification.
"""

from .classifier import CheckResult, Verdict, classify_log, classify_outcomes, classify_run_dir
from .context import RunContext, sanitize_run_id
from .controller import RunController, RunState
from .errors import (
    EXIT_CONFIG_ERROR,
    EXIT_FAIL,
    EXIT_INTERRUPTED,
    EXIT_PASS,
    ConfigurationError,
    GpuValError,
    MissingDependencyError,
    ProbeExecutionError,
)
from .report import Summary

__all__ = [
    "CheckResult",
    "ConfigurationError",
    "EXIT_CONFIG_ERROR",
    "EXIT_FAIL",
    "EXIT_INTERRUPTED",
    "EXIT_PASS",
    "GpuValError",
    "MissingDependencyError",
    "ProbeExecutionError",
    "RunContext",
    "RunController",
    "RunState",
    "Summary",
    "Verdict",
    "classify_log",
    "classify_outcomes",
    "classify_run_dir",
    "sanitize_run_id",
]
