###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

"""
Probe descriptions and the fixed probe plan.

The plan order is part of the contract: bandwidth (cold) -> gpu_burn ->
bandwidth (hot) -> cuda_memtest -> memtest_vulkan. Probes run strictly one
after another so one probe's load never perturbs another's measurement.
"""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .context import RunContext
from .errors import ConfigurationError, ProbeExecutionError

# Probe categories; each maps to one entry of the fault rule table.
BANDWIDTH = "bandwidth"
BURN = "gpu_burn"
MEMTEST = "cuda_memtest"
VULKAN = "memtest_vulkan"
KERNEL = "dmesg"

BANDWIDTH_VARIANTS = ("baseline", "htod_pinned", "dtoh_pinned")


class CancelMode(enum.Enum):
    NONE = "none"
    INTERRUPT = "interrupt"  # SIGINT after duration, like an operator's Ctrl+C
    TERMINATE = "terminate"  # SIGTERM after duration


@dataclass(frozen=True)
class ProbeSpec:
    name: str
    category: str
    executable: Path
    args: Tuple[str, ...]
    log_path: Path
    duration_s: int = 0
    cancel: CancelMode = CancelMode.NONE
    required: bool = True
    # Key into build.BUILD_RECIPES for probes that may be built on demand.
    build: Optional[str] = None

    @property
    def cwd(self) -> Path:
        return self.executable.parent

    @property
    def command(self) -> List[str]:
        return [str(self.executable)] + list(self.args)

    @property
    def deadline_s(self) -> Optional[int]:
        if self.cancel is CancelMode.NONE or self.duration_s <= 0:
            return None
        return self.duration_s


@dataclass(frozen=True)
class ProbeOutcome:
    name: str
    category: str
    log_path: Path
    exit_code: int
    bytes_captured: int
    cancelled: bool = False

    @property
    def execution_error(self) -> Optional[ProbeExecutionError]:
        # A probe stopped by its own deadline exits through the signal; that is
        # the expected way for a time-boxed run to end.
        if self.exit_code == 0 or self.cancelled:
            return None
        return ProbeExecutionError(self.name, self.exit_code)


def is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def bandwidth_binary(ctx: RunContext) -> Path:
    return ctx.src_dir / "cuda-samples-11x" / "Samples" / "bandwidthTest" / "bandwidthTest"


def gpu_burn_binary(ctx: RunContext) -> Path:
    return ctx.src_dir / "gpu-burn" / "gpu_burn"


def cuda_memtest_binary(ctx: RunContext) -> Path:
    return ctx.src_dir / "cuda_memtest" / "build" / "cuda_memtest"


def vulkan_binary_candidates(ctx: RunContext) -> List[Path]:
    return [
        ctx.bin_dir / "memtest_vulkan",
        ctx.src_dir / "memtest_vulkan" / "target" / "release" / "memtest_vulkan",
    ]


def _bandwidth_args(variant: str, bw_cfg: Dict[str, Any]) -> Tuple[str, ...]:
    if variant == "baseline":
        return ()
    direction = {"htod_pinned": "--htod", "dtoh_pinned": "--dtoh"}[variant]
    return (
        "--memory=pinned",
        "--mode=range",
        f"--start={bw_cfg.get('start', 1048576)}",
        f"--end={bw_cfg.get('end', 134217728)}",
        f"--increment={bw_cfg.get('increment', 1048576)}",
        direction,
    )


def bandwidth_variants(bw_cfg: Dict[str, Any]) -> Tuple[str, ...]:
    """
    Return the configured bandwidthTest variants, defaulting to all of them.

    Raises:
        ConfigurationError: not a list, or a name outside BANDWIDTH_VARIANTS.
    """
    variants = bw_cfg.get("variants") or BANDWIDTH_VARIANTS
    if isinstance(variants, str) or not isinstance(variants, (list, tuple)):
        raise ConfigurationError(f"bandwidth.variants must be a list, got {variants!r}")
    unknown = [v for v in variants if v not in BANDWIDTH_VARIANTS]
    if unknown:
        raise ConfigurationError(
            f"Unknown bandwidthTest variant(s) {unknown}; choose from {list(BANDWIDTH_VARIANTS)}"
        )
    return tuple(variants)


def _bandwidth_phase(ctx: RunContext, phase: str, bw_cfg: Dict[str, Any]) -> List[ProbeSpec]:
    variants = bandwidth_variants(bw_cfg)
    return [
        ProbeSpec(
            name=f"bandwidthTest_{variant}_{phase}",
            category=BANDWIDTH,
            executable=bandwidth_binary(ctx),
            args=_bandwidth_args(variant, bw_cfg),
            log_path=ctx.artifact(f"bandwidthTest_{variant}_{phase}_{ctx.timestamp}.log"),
            required=False,
            build="bandwidthTest",
        )
        for variant in variants
    ]


def build_probe_plan(ctx: RunContext, cfg: Optional[Dict[str, Any]] = None) -> List[ProbeSpec]:
    """
    Return the ordered probe sequence for one run.

    Raises:
        ConfigurationError: invalid bandwidth variants.
    """
    cfg = cfg or {}
    bw_cfg = cfg.get("bandwidth") or {}
    burn_cfg = cfg.get("gpu_burn") or {}
    d = ctx.durations

    burn_args: List[str] = ["-m", str(burn_cfg.get("memory", "90%"))]
    if burn_cfg.get("tensor_cores", True):
        burn_args.append("-tc")
    burn_args.append(str(d.gpu_burn_seconds))

    candidates = vulkan_binary_candidates(ctx)
    vulkan_bin = next((p for p in candidates if is_executable(p)), candidates[0])

    plan: List[ProbeSpec] = []
    plan += _bandwidth_phase(ctx, "COLD", bw_cfg)
    plan.append(
        ProbeSpec(
            name="gpu_burn",
            category=BURN,
            executable=gpu_burn_binary(ctx),
            args=tuple(burn_args),
            log_path=ctx.artifact(f"gpu_burn_{d.gpu_burn_seconds}s_{ctx.timestamp}.log"),
            duration_s=d.gpu_burn_seconds,
            required=False,
            build="gpu_burn",
        )
    )
    plan += _bandwidth_phase(ctx, "HOT", bw_cfg)
    plan.append(
        ProbeSpec(
            name="cuda_memtest",
            category=MEMTEST,
            executable=cuda_memtest_binary(ctx),
            args=(),
            log_path=ctx.artifact(f"cuda_memtest_{ctx.timestamp}.log"),
            duration_s=d.cuda_memtest_timeout,
            cancel=CancelMode.TERMINATE if d.cuda_memtest_timeout > 0 else CancelMode.NONE,
        )
    )
    plan.append(
        ProbeSpec(
            name="memtest_vulkan",
            category=VULKAN,
            executable=vulkan_bin,
            args=(),
            log_path=ctx.artifact(f"memtest_vulkan_{d.vulkan_seconds}s_{ctx.timestamp}.log"),
            duration_s=d.vulkan_seconds,
            cancel=CancelMode.INTERRUPT,
        )
    )
    return plan


def kernel_log_path(ctx: RunContext) -> Path:
    return ctx.artifact(f"DMESG_{ctx.timestamp}.log")
