###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

"""
Host-side helpers: command lookup, best-effort command execution, the
system snapshot artifact and stopping leftover probe processes.
"""

from __future__ import annotations

import os
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from gpuval.core.utils import logger

from .context import RunContext
from .errors import MissingDependencyError


def which(name: str) -> Optional[str]:
    for p in os.environ.get("PATH", "").split(os.pathsep):
        cand = os.path.join(p, name)
        if os.path.isfile(cand) and os.access(cand, os.X_OK):
            return cand
    return None


def run_cmd(cmd: Sequence[str], timeout_s: int = 30, cwd: Optional[str] = None) -> Tuple[int, str, str]:
    """Run a short command and return (rc, stdout, stderr); never raises."""
    try:
        p = subprocess.run(
            list(cmd),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=timeout_s,
            cwd=cwd,
            check=False,
        )
    except FileNotFoundError as e:
        return 127, "", str(e)
    except subprocess.TimeoutExpired:
        return 124, "", f"timed out after {timeout_s}s"
    except OSError as e:
        return 126, "", str(e)
    return p.returncode, (p.stdout or "").strip(), (p.stderr or "").strip()


def require_commands(names: Iterable[str]) -> None:
    missing = [n for n in names if which(n) is None]
    if missing:
        raise MissingDependencyError(f"missing required command(s): {', '.join(missing)}")


def stop_competing_probes(names: Iterable[str]) -> None:
    """Best-effort `pkill -f` of leftover probe processes from earlier runs."""
    if which("pkill") is None:
        logger.warning("pkill not found; not stopping existing GPU tests")
        return
    for name in names:
        rc, _out, _err = run_cmd(["pkill", "-f", name], timeout_s=10)
        if rc == 0:
            logger.info(f"Stopped running {name} process(es)")


def pcie_excerpt(smi_query: str) -> List[str]:
    """
    Lines of `nvidia-smi -q` from the first heading mentioning PCI through the
    `FB Memory Usage` heading.
    """
    out: List[str] = []
    active = False
    for ln in smi_query.splitlines():
        if "PCI" in ln:
            active = True
        if "FB Memory Usage" in ln:
            out.append(ln)
            active = False
            continue
        if active:
            out.append(ln)
    return out


def _section(title: str, cmd: Sequence[str]) -> List[str]:
    rc, out, err = run_cmd(cmd)
    lines = [f"--- {title} ---"]
    if out:
        lines.append(out)
    if rc != 0:
        lines.append(f"({' '.join(cmd)} failed: rc={rc} {err})".rstrip())
    return lines


def write_system_snapshot(ctx: RunContext, path: Optional[Path] = None) -> Path:
    path = path or ctx.artifact("SYSTEM_INFO.txt")
    gpu = str(ctx.gpu_index)
    lines: List[str] = [f"=== RUN START: {ctx.timestamp} ==="]

    lines.append("--- OS ---")
    try:
        lines.append(Path("/etc/os-release").read_text(encoding="utf-8", errors="replace").rstrip())
    except OSError as e:
        lines.append(f"(os-release unavailable: {e})")

    lines += _section("NVIDIA-SMI", ["nvidia-smi", "-i", gpu])

    lines.append("--- NVIDIA-SMI (PCIe excerpt) ---")
    rc, out, _err = run_cmd(["nvidia-smi", "-i", gpu, "-q"])
    if rc == 0:
        lines += pcie_excerpt(out)

    lines.append("--- NVCC ---")
    nvcc = which("nvcc")
    if nvcc:
        lines.append(nvcc)
        lines += _section("NVCC VERSION", ["nvcc", "-V"])[1:]
    else:
        lines.append("nvcc not found")

    lines.append("--- DATE ---")
    lines.append(datetime.now().strftime("%a %b %d %H:%M:%S %Y"))

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")
    return path
