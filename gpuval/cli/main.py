###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

import argparse
import importlib
import pkgutil
import sys
from typing import Callable, Iterable

SUBCOMMAND_PACKAGE = "gpuval.cli.subcommands"


def _iter_subcommand_modules() -> Iterable[str]:
    """
    Discover every module inside `gpuval.cli.subcommands` (excluding those that
    start with `_`) and yield its full import path.
    """

    package = importlib.import_module(SUBCOMMAND_PACKAGE)
    prefix = package.__name__ + "."
    for _, module_name, is_pkg in pkgutil.walk_packages(package.__path__, prefix):
        leaf = module_name.split(".")[-1]
        if leaf.startswith("_") or is_pkg:
            continue
        yield module_name


def _load_subcommands(subparsers: argparse._SubParsersAction) -> None:
    """
    Dynamically import each discovered module and invoke its
    `register_subcommand(subparsers)` hook.
    """

    for module_path in _iter_subcommand_modules():
        module = importlib.import_module(module_path)
        register: Callable[[argparse._SubParsersAction], argparse.ArgumentParser] = getattr(
            module, "register_subcommand", None
        )
        if register is None:
            continue
        parser = register(subparsers)
        if parser is None:
            continue
        if not hasattr(parser, "get_default") or parser.get_default("func") is None:
            raise RuntimeError(
                f"Subcommand registered by '{module_path}' must call parser.set_defaults(func=...)"
            )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gpuval", description="Single-GPU hardware validation runs")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console log level for orchestrator messages (default: INFO).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    _load_subcommands(subparsers)
    return parser


def main(argv=None) -> int:
    """
    gpuval CLI entry.

    - validate: run the full probe sequence against one GPU and classify it.
    - classify: re-classify the logs of an existing run folder.
    """
    parser = build_parser()
    args, unknown_args = parser.parse_known_args(argv)

    from gpuval.core.utils import logger

    logger.setup_logger(logger.LoggerConfig(stderr_sink_level=args.log_level))

    rc = args.func(args, unknown_args)
    return int(rc or 0)


if __name__ == "__main__":
    sys.exit(main())
