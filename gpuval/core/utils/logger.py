###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

import inspect
import os
import sys
from dataclasses import dataclass
from typing import Any, Optional

from loguru import logger as loguru_logger

# Until setup_logger() runs, messages go through loguru's default stderr sink.
_logger = loguru_logger.bind(run_id="-", gpu_index="-")

_max_module_format_width = 23

LOGGING_BANNER = ">>>>>>>>>>"

stderr_sink_format = (
    "[<green>{time:YYYYMMDD HH:mm:ss}</>]"
    "[<cyan>gpu-{extra[gpu_index]}</>]"
    "<level>{extra[level_padded]}</level>"
    "<level>{message}</level>"
)
file_sink_format = (
    "[<green>{time:YYYYMMDD HH:mm:ss}</>]"
    "[<magenta>{extra[run_id]}</>]"
    "[<cyan>gpu-{extra[gpu_index]}</>]"
    "<level>{extra[level_padded]}</level>"
    "<level>{message}</level>"
)


@dataclass(frozen=True)
class LoggerConfig:
    stderr_sink_level: str = "INFO"
    file_sink_level: str = "DEBUG"
    run_id: str = "-"
    gpu_index: int = 0


def _format_level_with_padding(record) -> bool:
    """
    Add a formatted level field with padding outside brackets.

    INFO -> "[INFO]     ", CRITICAL -> "[CRITICAL] " (total 11 chars)
    """
    record["extra"]["level_padded"] = f"[{record['level'].name}]".ljust(11)
    return True


def setup_logger(cfg: LoggerConfig) -> None:
    """
    Replace every loguru sink with a single colored stderr sink.

    Safe to call more than once; the last call wins.
    """
    global _logger

    loguru_logger.remove()
    _logger = loguru_logger.bind(run_id=cfg.run_id, gpu_index=cfg.gpu_index)
    _logger.add(
        sys.stderr,
        level=cfg.stderr_sink_level.upper(),
        format=stderr_sink_format,
        colorize=True,
        backtrace=False,
        diagnose=False,
        filter=_format_level_with_padding,
    )


def bind_run(run_id: str, gpu_index: int) -> None:
    """Attach run identity to every subsequent message."""
    global _logger
    _logger = _logger.bind(run_id=run_id, gpu_index=gpu_index)


def add_file_sink(log_path: str, level: str = "DEBUG") -> int:
    """
    Add a plain-text file sink and return its handler id.

    The caller owns the handler and must pass the id to remove_sink().
    """
    os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)
    return _logger.add(
        log_path,
        level=level.upper(),
        format=file_sink_format,
        colorize=False,
        encoding="utf-8",
        enqueue=False,
        filter=_format_level_with_padding,
    )


def remove_sink(handler_id: Optional[int]) -> None:
    if handler_id is None:
        return
    try:
        loguru_logger.remove(handler_id)
    except ValueError:
        # Handler already removed
        pass


def module_format(module_name: str, line: int) -> str:
    """
    Format module location with dynamic width adjustment.

    Returns:
        Formatted string like "[--------controller.py:10] "
    """
    global _max_module_format_width

    location_str = f"{module_name}.py:{line}"
    if len(location_str) > _max_module_format_width:
        _max_module_format_width = len(location_str)

    return "[" + location_str.rjust(_max_module_format_width, "-") + "] "


def _caller_prefix() -> str:
    caller = inspect.stack()[2]
    module_name = caller.frame.f_globals["__name__"].split(".")[-1]
    return module_format(module_name, caller.lineno)


def debug(__message: str, *args: Any, **kwargs: Any) -> None:
    _logger.opt(depth=1).debug(f"{_caller_prefix()}: {__message}", *args, **kwargs)


def info(__message: str, *args: Any, **kwargs: Any) -> None:
    _logger.opt(depth=1).info(f"{_caller_prefix()}: {__message}", *args, **kwargs)


def warning(__message: str, *args: Any, **kwargs: Any) -> None:
    _logger.opt(depth=1).warning(f"{_caller_prefix()}: {__message}", *args, **kwargs)


def error(__message: str, *args: Any, **kwargs: Any) -> None:
    _logger.opt(depth=1).error(f"{_caller_prefix()}: {__message}", *args, **kwargs)


def log_kv(key: str, value: Any, width: int = 18, fillchar: str = " ") -> None:
    __message = f"{key}:".ljust(width, fillchar) + f"{value}"
    _logger.opt(depth=1).info(f"{_caller_prefix()}: {__message}")
