###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

"""
ENSURE_BINARIES: make sure every probe executable exists before any probe runs.

bandwidthTest and gpu_burn are built from source on demand; cuda_memtest and
memtest_vulkan must already be installed. gpu_burn is compiled for the
target GPU's compute capability.
"""

from __future__ import annotations

import os
import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, Dict, List, Optional, Sequence

from gpuval.core.utils import logger

from .capture import run_and_capture
from .context import RunContext
from .errors import MissingDependencyError
from .host import require_commands, run_cmd, which
from .probes import ProbeSpec, is_executable

_CC_PATTERN = re.compile(r"^[0-9]+(\.[0-9]+)?$")

_CC_PROGRAM = r"""
#include <cstdio>
#include <cstdlib>
#include <cuda_runtime_api.h>

int main(int argc, char** argv) {
    int dev = 0;
    if (argc > 1) dev = atoi(argv[1]);

    int maj=0, min=0;
    cudaDeviceGetAttribute(&maj, cudaDevAttrComputeCapabilityMajor, dev);
    cudaDeviceGetAttribute(&min, cudaDevAttrComputeCapabilityMinor, dev);
    printf("%d.%d\n", maj, min);
    return 0;
}
"""


# ----------------------------------------------------------------------------
# Compute capability
# ----------------------------------------------------------------------------
def _valid_cc(value: str) -> Optional[str]:
    value = "".join(value.split())
    return value if _CC_PATTERN.match(value) else None


def parse_compute_cap_csv(out: str) -> Optional[str]:
    """
    Parse `nvidia-smi --query-gpu=[name,]compute_cap --format=csv,noheader`.

    >>> parse_compute_cap_csv("8.6")
    '8.6'
    >>> parse_compute_cap_csv("NVIDIA GeForce RTX 3090, 8.6")
    '8.6'
    """
    first = (out or "").strip().splitlines()[:1]
    if not first:
        return None
    return _valid_cc(first[0].split(",")[-1])


def compute_cap_smi(gpu_index: int) -> Optional[str]:
    for fields in ("compute_cap", "name,compute_cap"):
        rc, out, _err = run_cmd(
            ["nvidia-smi", "-i", str(gpu_index), f"--query-gpu={fields}", "--format=csv,noheader"],
            timeout_s=15,
        )
        if rc == 0:
            cc = parse_compute_cap_csv(out)
            if cc:
                return cc
    return None


def compute_cap_nvcc(gpu_index: int) -> Optional[str]:
    """Fallback: compile and run a tiny CUDA program that prints "M.m"."""
    if which("nvcc") is None:
        return None
    tmpdir = tempfile.mkdtemp(prefix="gpuval_cc_")
    try:
        src = os.path.join(tmpdir, "cc.cu")
        exe = os.path.join(tmpdir, "cc")
        with open(src, "w", encoding="utf-8") as f:
            f.write(_CC_PROGRAM)
        rc, _out, _err = run_cmd(["nvcc", "-O2", src, "-o", exe], timeout_s=300)
        if rc != 0:
            return None
        rc, out, _err = run_cmd([exe, str(gpu_index)], timeout_s=30)
        if rc != 0 or not out:
            return None
        return _valid_cc(out.splitlines()[0])
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


def to_gpu_burn_compute(cc: str) -> str:
    """
    Convert "M.m" to gpu-burn's COMPUTE format "Mm".

    >>> to_gpu_burn_compute("7.5")
    '75'
    >>> to_gpu_burn_compute("8")
    '80'
    """
    major, _, minor = cc.partition(".")
    return f"{int(major)}{int(minor or 0)}"


def query_compute_capability(
    gpu_index: int,
    probes: Sequence[Callable[[int], Optional[str]]] = (compute_cap_smi, compute_cap_nvcc),
) -> str:
    for probe in probes:
        cc = probe(gpu_index)
        if cc:
            return cc
    raise MissingDependencyError(
        f"Could not determine compute capability of GPU {gpu_index} via nvidia-smi or nvcc fallback."
    )


# ----------------------------------------------------------------------------
# Build recipes
# ----------------------------------------------------------------------------
@dataclass(frozen=True)
class BuildRecipe:
    name: str
    tools: Sequence[str]
    # Argument templates; {jobs} and {compute} are filled in at build time.
    steps: Sequence[Sequence[str]]
    needs_compute_cap: bool = False

    def commands(self, compute: Optional[str] = None) -> List[List[str]]:
        fill = {"jobs": str(os.cpu_count() or 1), "compute": compute or ""}
        return [[arg.format(**fill) for arg in step] for step in self.steps]


BUILD_RECIPES: Dict[str, BuildRecipe] = {
    "bandwidthTest": BuildRecipe(
        "bandwidthTest",
        tools=("make",),
        steps=(("make", "clean"), ("make", "-j{jobs}")),
    ),
    "gpu_burn": BuildRecipe(
        "gpu_burn",
        tools=("make", "nvcc"),
        steps=(("make", "clean"), ("make", "CUDAPATH=/usr", "COMPUTE={compute}")),
        needs_compute_cap=True,
    ),
}


def build_probe(
    spec: ProbeSpec,
    ctx: RunContext,
    console: Optional[BinaryIO] = None,
    compute_cap: Callable[[int], str] = query_compute_capability,
) -> Path:
    """Build one on-demand probe; return the build log path."""
    recipe = BUILD_RECIPES.get(spec.build or "")
    if recipe is None:
        raise MissingDependencyError(f"{spec.name}: no build recipe for {spec.executable}")
    src_dir = spec.cwd
    if not src_dir.is_dir():
        raise MissingDependencyError(f"{recipe.name} source directory not found: {src_dir}")
    for tool in recipe.tools:
        if which(tool) is None:
            raise MissingDependencyError(f"missing required command: {tool} (needed to build {recipe.name})")

    compute = None
    if recipe.needs_compute_cap:
        compute = to_gpu_burn_compute(compute_cap(ctx.gpu_index))
        logger.info(f"Detected compute target for {recipe.name}: COMPUTE={compute} (from GPU index {ctx.gpu_index})")

    build_log = ctx.artifact(f"build_{recipe.name}_{ctx.timestamp}.log")
    for cmd in recipe.commands(compute):
        result = run_and_capture(cmd, build_log, cwd=src_dir, console=console)
        if result.exit_code != 0:
            raise MissingDependencyError(
                f"{recipe.name} build step '{' '.join(cmd)}' failed with status {result.exit_code} (see {build_log.name})"
            )
    return build_log


def ensure_binaries(
    plan: Sequence[ProbeSpec],
    ctx: RunContext,
    required_commands: Sequence[str] = (),
    console: Optional[BinaryIO] = None,
    compute_cap: Callable[[int], str] = query_compute_capability,
) -> List[Path]:
    """
    Check every probe executable, building the buildable ones if absent.

    Returns the build logs written (empty when nothing had to be built).

    Raises:
        MissingDependencyError: a required binary or host tool is missing, or a build failed.
    """
    require_commands(required_commands)

    built: List[Path] = []
    seen = set()
    for spec in plan:
        if spec.executable in seen:
            continue
        seen.add(spec.executable)
        if is_executable(spec.executable):
            continue
        if spec.required or not spec.build:
            raise MissingDependencyError(f"{spec.name} binary not found at {spec.executable}")
        logger.info(f"{spec.executable.name} binary not found. Attempting build in {spec.cwd} ...")
        built.append(build_probe(spec, ctx, console=console, compute_cap=compute_cap))
        if not is_executable(spec.executable):
            raise MissingDependencyError(f"{spec.name}: build finished but {spec.executable} is still missing")
    return built
