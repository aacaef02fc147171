###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

import os
from datetime import datetime

import pytest

from gpuval.validation import host
from gpuval.validation.context import RunContext
from gpuval.validation.errors import MissingDependencyError

SMI_QUERY = """\
==============NVSMI LOG==============
Attached GPUs                             : 1
GPU 00000000:01:00.0
    Product Name                          : NVIDIA GeForce RTX 3090
    PCI
        Bus                               : 0x01
        GPU Link Info
            PCIe Generation
                Max                       : 4
                Current                   : 4
    FB Memory Usage
        Total                             : 24576 MiB
    Temperature
        GPU Current Temp                  : 41 C
"""

FAKE_SMI = """
if [ "$3" = "-q" ]; then
cat <<'OUT'
""" + SMI_QUERY + """OUT
else
echo "| NVIDIA-SMI 550.54 Driver Version: 550.54 CUDA Version: 12.4 |"
fi
"""


def test_pcie_excerpt_spans_pci_to_fb_memory():
    lines = host.pcie_excerpt(SMI_QUERY)
    assert lines[0].strip() == "PCI"
    assert lines[-1].strip() == "FB Memory Usage"
    assert any("Current                   : 4" in ln for ln in lines)
    assert not any("Temperature" in ln for ln in lines)


def test_pcie_excerpt_without_pci_section():
    assert host.pcie_excerpt("Product Name : X\nFB Memory Usage\n") == ["FB Memory Usage"]


def test_run_cmd_never_raises(tmp_path):
    rc, out, err = host.run_cmd([str(tmp_path / "missing-tool")])
    assert rc == 127
    assert out == ""
    assert err


def test_run_cmd_timeout(make_script, tmp_path):
    slow = make_script(tmp_path / "slow", "exec sleep 5\n")
    rc, _out, err = host.run_cmd([str(slow)], timeout_s=1)
    assert rc == 124
    assert "timed out" in err


def test_require_commands(monkeypatch, make_script, tmp_path):
    make_script(tmp_path / "bin" / "nvidia-smi", "exit 0\n")
    monkeypatch.setenv("PATH", str(tmp_path / "bin"))
    host.require_commands(["nvidia-smi"])
    with pytest.raises(MissingDependencyError, match="nvcc, make"):
        host.require_commands(["nvidia-smi", "nvcc", "make"])


def test_system_snapshot(fake_kit, make_script, monkeypatch, tmp_path):
    make_script(tmp_path / "bin" / "nvidia-smi", FAKE_SMI)
    monkeypatch.setenv("PATH", f"{tmp_path / 'bin'}{os.pathsep}/usr/bin{os.pathsep}/bin")
    ctx = RunContext.create("r1", fake_kit, now=datetime(2025, 6, 2, 10, 15))

    path = host.write_system_snapshot(ctx)

    assert path == ctx.artifact("SYSTEM_INFO.txt")
    text = path.read_text()
    assert text.startswith("=== RUN START: 2025-06-02_101500 ===")
    for heading in ("--- OS ---", "--- NVIDIA-SMI ---", "--- NVIDIA-SMI (PCIe excerpt) ---", "--- NVCC ---", "--- DATE ---"):
        assert heading in text
    assert "Driver Version: 550.54" in text
    assert "PCIe Generation" in text
    assert "Temperature" not in text


def test_system_snapshot_without_gpu_tools(fake_kit, monkeypatch, tmp_path):
    monkeypatch.setenv("PATH", str(tmp_path / "empty"))
    ctx = RunContext.create("r1", fake_kit, now=datetime(2025, 6, 2, 10, 15))
    text = host.write_system_snapshot(ctx).read_text()
    assert "nvidia-smi -i 0 failed: rc=127" in text
    assert "nvcc not found" in text
