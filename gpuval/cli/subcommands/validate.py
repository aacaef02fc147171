###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

"""
Validate CLI subcommand.

Runs the full single-GPU validation sequence and exits with
0 (PASS), 2 (FAIL), 1 (configuration/dependency error) or 130 (interrupted).

Example:
    gpuval validate --run-id TICKET-1234 --gpu-index 0 --burn-seconds 3600
"""

from __future__ import annotations

import sys
from typing import Any, Dict, List, Optional


def _prompt_run_id() -> Optional[str]:
    if not sys.stdin.isatty():
        return None
    print("============================================================")
    print(" GPU Validation - Tech Run")
    print("============================================================")
    try:
        return input("Enter Run ID (ticket/asset/customer) : ")
    except EOFError:
        return None


def _overrides(args: Any) -> Dict[str, Any]:
    return {
        "kit_root": args.kit,
        "gpu_index": args.gpu_index,
        "durations": {
            "gpu_burn_seconds": args.burn_seconds,
            "vulkan_seconds": args.vulkan_seconds,
            "cuda_memtest_timeout": args.memtest_timeout,
        },
    }


def run(args: Any, extra_args: List[str]) -> int:
    import yaml

    from gpuval.core.config.loader import load_config
    from gpuval.core.utils import logger
    from gpuval.validation.controller import RunController
    from gpuval.validation.errors import EXIT_CONFIG_ERROR

    if extra_args:
        logger.warning(f"Ignoring extra CLI args: {extra_args}")

    try:
        cfg = load_config(args.config, _overrides(args))
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.error(f"ConfigurationError: {e}")
        return EXIT_CONFIG_ERROR

    run_id = args.run_id if args.run_id is not None else _prompt_run_id()
    return RunController(cfg, run_id).run()


def register_subcommand(subparsers):
    """
    Register the 'validate' subcommand to the main CLI parser.

    Args:
        subparsers: argparse subparsers object from main.py
    """
    parser = subparsers.add_parser(
        "validate",
        help="Run the full GPU validation sequence (bandwidth, burn-in, VRAM) and classify it.",
        description=(
            "Run bandwidthTest (cold), gpu_burn, bandwidthTest (hot), cuda_memtest and "
            "memtest_vulkan against one GPU while capturing kernel messages, then write "
            "a PASS/FAIL SUMMARY.txt into logs/<run-id>_<timestamp>/."
        ),
    )
    parser.add_argument("--run-id", type=str, default=None, help="Run ID (ticket/asset/customer). Prompted if omitted.")
    parser.add_argument("--gpu-index", type=int, default=None, help="GPU index to test (default: 0).")
    parser.add_argument("--burn-seconds", type=int, default=None, help="gpu-burn duration in seconds (default: 3600).")
    parser.add_argument(
        "--vulkan-seconds", type=int, default=None, help="memtest_vulkan duration in seconds (default: 1800)."
    )
    parser.add_argument(
        "--memtest-timeout",
        type=int,
        default=None,
        help="cuda_memtest timeout in seconds, 0 = none (default: 0).",
    )
    parser.add_argument("--kit", type=str, default=None, help="Kit root containing src/ and bin/ (default: $GPUVAL_KIT or cwd).")
    parser.add_argument("--config", type=str, default=None, help="Optional YAML file layered over the shipped defaults.")

    parser.set_defaults(func=run)

    return parser
