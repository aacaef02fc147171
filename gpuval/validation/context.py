###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

"""
Immutable run parameters.

A RunContext is built once from the merged configuration and handed to every
component; nothing downstream reads config or environment state on its own.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ConfigurationError

_UNSAFE_RUN_ID_CHARS = re.compile(r"[^A-Za-z0-9_-]+")
_EDGE_UNSAFE = re.compile(r"^[^A-Za-z0-9_-]+|[^A-Za-z0-9_-]+$")

TIMESTAMP_FORMAT = "%Y-%m-%d_%H%M%S"


def sanitize_run_id(raw: str) -> str:
    """
    Keep only alnum, underscore and dash. Runs of other characters collapse
    to a single "_" inside the identifier and are dropped at either end, so
    an identifier made of safe characters comes back unchanged.

    >>> sanitize_run_id(" ticket 42/rack-B ")
    'ticket_42_rack-B'
    """
    return _UNSAFE_RUN_ID_CHARS.sub("_", _EDGE_UNSAFE.sub("", raw))


def _as_int(name: str, value: Any, minimum: int) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    try:
        iv = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from None
    if iv < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {iv}")
    return iv


@dataclass(frozen=True)
class Durations:
    gpu_burn_seconds: int
    vulkan_seconds: int
    cuda_memtest_timeout: int  # 0 = unbounded


@dataclass(frozen=True)
class RunContext:
    run_id_raw: str
    run_id: str
    gpu_index: int
    durations: Durations
    kit_root: Path
    timestamp: str
    created_at: datetime = field(compare=False)
    # Matching lines kept per FAIL/REVIEW check in the report.
    evidence_lines: int = 20

    @property
    def run_dir(self) -> Path:
        return self.kit_root / "logs" / f"{self.run_id}_{self.timestamp}"

    @property
    def src_dir(self) -> Path:
        return self.kit_root / "src"

    @property
    def bin_dir(self) -> Path:
        return self.kit_root / "bin"

    def artifact(self, name: str) -> Path:
        return self.run_dir / name

    @classmethod
    def create(
        cls,
        run_id: Optional[str],
        kit_root: Any,
        gpu_index: Any = 0,
        gpu_burn_seconds: Any = 3600,
        vulkan_seconds: Any = 1800,
        cuda_memtest_timeout: Any = 0,
        evidence_lines: Any = 20,
        now: Optional[datetime] = None,
    ) -> "RunContext":
        """
        Validate raw inputs and build the context.

        Raises:
            ConfigurationError: empty/unsanitizable run id, bad kit layout or
                out-of-range parameters.
        """
        raw = (run_id or "").strip()
        if not raw:
            raise ConfigurationError("Run ID cannot be empty.")
        safe = sanitize_run_id(raw)
        if not safe:
            raise ConfigurationError(f"Run ID {raw!r} sanitized to empty. Use letters/numbers/_/-")

        root = Path(os.path.expanduser(str(kit_root or os.getcwd()))).resolve()
        if not (root / "src").is_dir():
            raise ConfigurationError(
                f"KIT path invalid: {root} (expected structure: KIT/src, KIT/bin, KIT/logs)"
            )

        durations = Durations(
            gpu_burn_seconds=_as_int("gpu_burn_seconds", gpu_burn_seconds, 1),
            vulkan_seconds=_as_int("vulkan_seconds", vulkan_seconds, 1),
            cuda_memtest_timeout=_as_int("cuda_memtest_timeout", cuda_memtest_timeout, 0),
        )
        created = now or datetime.now()
        return cls(
            run_id_raw=raw,
            run_id=safe,
            gpu_index=_as_int("gpu_index", gpu_index, 0),
            durations=durations,
            kit_root=root,
            timestamp=created.strftime(TIMESTAMP_FORMAT),
            created_at=created,
            evidence_lines=_as_int("report.evidence_lines", evidence_lines, 0),
        )

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], run_id: Optional[str], now: Optional[datetime] = None) -> "RunContext":
        durations = cfg.get("durations") or {}
        report = cfg.get("report") or {}
        return cls.create(
            run_id=run_id,
            kit_root=cfg.get("kit_root") or None,
            gpu_index=cfg.get("gpu_index", 0),
            gpu_burn_seconds=durations.get("gpu_burn_seconds", 3600),
            vulkan_seconds=durations.get("vulkan_seconds", 1800),
            cuda_memtest_timeout=durations.get("cuda_memtest_timeout", 0),
            evidence_lines=report.get("evidence_lines", 20),
            now=now,
        )

    def header_lines(self) -> list:
        return [
            f"Run ID: {self.run_id_raw} (sanitized: {self.run_id})",
            f"Run folder: {self.run_dir}",
            f"GPU index: {self.gpu_index}",
            f"gpu-burn: {self.durations.gpu_burn_seconds}s | "
            f"memtest_vulkan: {self.durations.vulkan_seconds}s | "
            f"cuda_memtest timeout: {self.durations.cuda_memtest_timeout}s",
            f"Started: {self.created_at.strftime('%Y-%m-%d %H:%M:%S')}",
        ]
