###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################


import stat
import sys
import textwrap
from pathlib import Path

import pytest


def pytest_configure(config):
    project_root = Path(__file__).resolve().parent.parent.parent
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))


def write_script(path: Path, body: str) -> Path:
    """Create an executable /bin/sh script standing in for a probe binary."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n" + textwrap.dedent(body).lstrip())
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


BANDWIDTH_OK = 'echo "[CUDA Bandwidth Test] - Starting..."\necho "Result = PASS"\n'
BURN_OK = 'echo "100.0%  proc\'d: 5 (1200 Gflop/s)   errors: 0   temps: 61 C"\necho "Tested 1 GPUs:"\necho "\tGPU 0: OK"\n'
MEMTEST_OK = 'echo "Test0 [Walking 1 bit] passed"\necho "ERROR SUMMARY: 0 errors"\n'
VULKAN_OK = 'echo "Standard 5-minute test of 1: Bus=0x01:00 DevId=0x2204"\necho "memtest_vulkan: no any errors, testing PASSed."\n'


@pytest.fixture
def make_script():
    return write_script


@pytest.fixture
def fake_kit(tmp_path):
    """
    A kit root whose probe binaries are small shell scripts with healthy output.
    Tests overwrite individual scripts to inject faults.
    """
    kit = tmp_path / "kit"
    src = kit / "src"
    write_script(src / "cuda-samples-11x" / "Samples" / "bandwidthTest" / "bandwidthTest", BANDWIDTH_OK)
    write_script(src / "gpu-burn" / "gpu_burn", BURN_OK)
    write_script(src / "cuda_memtest" / "build" / "cuda_memtest", MEMTEST_OK)
    write_script(kit / "bin" / "memtest_vulkan", VULKAN_OK)
    return kit


@pytest.fixture
def quiet_monitor_command():
    """A stand-in kernel message source: prints one benign line then blocks."""
    return [
        sys.executable,
        "-c",
        "import sys, time\n"
        "sys.stdout.write('[Mon Jun  2 10:00:00 2025] nvidia: module loaded\\n')\n"
        "sys.stdout.flush()\n"
        "time.sleep(600)\n",
    ]


@pytest.fixture
def base_config(fake_kit, quiet_monitor_command):
    return {
        "kit_root": str(fake_kit),
        "gpu_index": 0,
        "durations": {"gpu_burn_seconds": 5, "vulkan_seconds": 30, "cuda_memtest_timeout": 0},
        "bandwidth": {"start": 1048576, "end": 2097152, "increment": 1048576},
        "gpu_burn": {"memory": "90%", "tensor_cores": True},
        "monitor": {"command": quiet_monitor_command, "prime_sudo": False, "stop_timeout_s": 5},
        "required_commands": [],
        "stop_competing": [],
        "report": {"evidence_lines": 20},
    }
