###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

"""
Fault signature table.

Each probe category maps to one FaultRule. The kernel log rule carries a
scope pattern: only lines that mention the NVIDIA driver namespace are
checked against its fault signatures, so unrelated kernel chatter cannot
produce a FAIL.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .probes import BANDWIDTH, BURN, KERNEL, MEMTEST, VULKAN


@dataclass(frozen=True)
class MatchRule:
    pattern: str
    ignore_case: bool = True
    _regex: "re.Pattern[str]" = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        flags = re.IGNORECASE if self.ignore_case else 0
        object.__setattr__(self, "_regex", re.compile(self.pattern, flags))

    def search(self, line: str) -> bool:
        return self._regex.search(line) is not None


@dataclass(frozen=True)
class FaultRule:
    category: str
    label: str
    faults: Tuple[MatchRule, ...]
    ok_message: str
    fail_message: str
    # Stage one for two-stage classification; None means every line is in scope.
    scope: Optional[MatchRule] = None
    # Success marker that must appear at least once.
    required_marker: Optional[MatchRule] = None
    missing_marker_message: str = ""
    # Benign-looking text that still needs a human to look.
    review: Tuple[MatchRule, ...] = ()
    review_message: str = ""

    def in_scope(self, line: str) -> bool:
        return self.scope is None or self.scope.search(line)

    def is_fault(self, line: str) -> bool:
        return any(r.search(line) for r in self.faults)

    def is_review(self, line: str) -> bool:
        return any(r.search(line) for r in self.review)


NVIDIA_SCOPE = MatchRule(r"(NVRM:|nvidia|NVIDIA)")

KERNEL_FAULTS = MatchRule(
    r"(NVRM: Xid (\(PCI:[^)]*\): )?[0-9]+"
    r"|NVRM: GPU .* has fallen off the bus"
    r"|GPU has fallen off the bus"
    r"|nvidia.*Xid (\(PCI:[^)]*\): )?[0-9]+"
    r"|AER:.*(Uncorrected|Fatal).*nvidia"
    r"|nvidia.*PCIe.*(error|fault|fatal))"
)

FAULT_RULES: Dict[str, FaultRule] = {
    KERNEL: FaultRule(
        category=KERNEL,
        label="dmesg",
        scope=NVIDIA_SCOPE,
        faults=(KERNEL_FAULTS,),
        ok_message="no confirmed NVIDIA GPU/PCIe fault events detected.",
        fail_message="contains confirmed NVIDIA GPU/PCIe fault signatures.",
    ),
    BANDWIDTH: FaultRule(
        category=BANDWIDTH,
        label="bandwidthTest",
        faults=(MatchRule(r"(Result = FAIL|CUDA error)"),),
        required_marker=MatchRule(r"Result = PASS"),
        ok_message="reported Result = PASS.",
        fail_message="reported a failed transfer or CUDA error.",
        missing_marker_message="never reported Result = PASS.",
    ),
    BURN: FaultRule(
        category=BURN,
        label="gpu_burn",
        # "errors: 0" appears on every progress line; never match a bare "error".
        faults=(MatchRule(r"(FAILURE|mismatch|CUDA error|FAULT)"),),
        required_marker=MatchRule(r"GPU [0-9]+: OK"),
        ok_message="no mismatch or CUDA fault signatures detected; per-GPU OK reported.",
        fail_message="reported computation mismatches or CUDA faults.",
        missing_marker_message="no per-GPU 'OK' result line found.",
    ),
    MEMTEST: FaultRule(
        category=MEMTEST,
        label="cuda_memtest",
        faults=(MatchRule(r"(FAIL\b|Mismatch|Data mismatch|CUDA error|ERROR SUMMARY: [1-9])"),),
        review=(MatchRule(r"\berror\b", ignore_case=False),),
        ok_message="no explicit mismatch or CUDA failure signatures detected.",
        fail_message="reported explicit mismatches or CUDA failures.",
        review_message="output mentions 'error' without a confirmed failure signature; review the log.",
    ),
    VULKAN: FaultRule(
        category=VULKAN,
        label="memtest_vulkan",
        faults=(MatchRule(r"(ERROR_DEVICE_LOST|VkResult: -[1-9][0-9]*|Error found|early exit|FAILED)"),),
        ok_message="no device loss or Vulkan failure signatures detected.",
        fail_message="reported device loss or Vulkan errors.",
    ),
}
