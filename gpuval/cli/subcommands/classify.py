###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

"""
Classify CLI subcommand: re-run the failure classifier over the logs of an
existing run folder without re-running any probe.

Example:
    gpuval classify logs/TICKET-1234_2025-06-01_101500 --output recheck.txt
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, List


def run(args: Any, extra_args: List[str]) -> int:
    from gpuval.core.utils import logger
    from gpuval.validation.classifier import classify_run_dir
    from gpuval.validation.errors import EXIT_CONFIG_ERROR
    from gpuval.validation.report import Summary, render_summary

    if extra_args:
        logger.warning(f"Ignoring extra CLI args: {extra_args}")

    run_dir = Path(args.run_dir)
    if not run_dir.is_dir():
        logger.error(f"ConfigurationError: run folder not found: {run_dir}")
        return EXIT_CONFIG_ERROR

    checks = classify_run_dir(run_dir, evidence_lines=args.evidence_lines)
    summary = Summary.build(checks, run_dir=run_dir.resolve())
    text = render_summary(summary)

    sys.stdout.write(text)
    sys.stdout.flush()
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
    return summary.exit_code


def register_subcommand(subparsers):
    parser = subparsers.add_parser(
        "classify",
        help="Re-classify the logs of an existing run folder.",
        description="Apply the PASS/FAIL classifier to the logs in a finished run folder.",
    )
    parser.add_argument("run_dir", type=str, help="Run folder, e.g. logs/<run-id>_<timestamp>.")
    parser.add_argument("--output", type=str, default=None, help="Also write the report to this file.")
    parser.add_argument(
        "--evidence-lines", type=int, default=20, help="Matching lines kept per failed check (default: 20)."
    )
    parser.set_defaults(func=run)
    return parser
