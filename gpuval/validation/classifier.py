###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

"""
Failure classifier: turns captured probe logs into per-check verdicts.

Precedence for one log:
    missing or empty        -> WARN
    fault signature         -> FAIL
    success marker missing  -> FAIL
    review-only text        -> REVIEW
    otherwise               -> OK
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .probes import BANDWIDTH, BANDWIDTH_VARIANTS, BURN, KERNEL, MEMTEST, VULKAN, ProbeOutcome
from .rules import FAULT_RULES, FaultRule

DEFAULT_EVIDENCE_LINES = 20


class Verdict(str, enum.Enum):
    OK = "OK"
    FAIL = "FAIL"
    WARN = "WARN"
    REVIEW = "REVIEW"


@dataclass(frozen=True)
class CheckResult:
    name: str
    category: str
    verdict: Verdict
    message: str
    evidence: Tuple[str, ...] = ()
    log_path: Optional[Path] = None
    exit_code: Optional[int] = None
    # Stopped by its own time limit; the exit status then reflects the signal.
    cancelled: bool = False


def _read_lines(path: Path) -> List[str]:
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return f.read().splitlines()


def classify_log(
    name: str,
    path: Optional[Path],
    rule: FaultRule,
    evidence_lines: int = DEFAULT_EVIDENCE_LINES,
    exit_code: Optional[int] = None,
    cancelled: bool = False,
) -> CheckResult:
    """Apply one FaultRule to one log file."""

    def result(verdict: Verdict, message: str, evidence: Sequence[str] = ()) -> CheckResult:
        tail = tuple(evidence[-evidence_lines:]) if evidence_lines > 0 else ()
        return CheckResult(name, rule.category, verdict, message, tail, path, exit_code, cancelled)

    if path is None or not path.is_file() or path.stat().st_size == 0:
        return result(Verdict.WARN, "log missing or empty.")

    lines = [ln for ln in _read_lines(path) if rule.in_scope(ln)]

    faults = [ln for ln in lines if rule.is_fault(ln)]
    if faults:
        return result(Verdict.FAIL, rule.fail_message, faults)

    if rule.required_marker is not None and not any(rule.required_marker.search(ln) for ln in lines):
        return result(Verdict.FAIL, rule.missing_marker_message)

    review = [ln for ln in lines if rule.is_review(ln)]
    if review:
        return result(Verdict.REVIEW, rule.review_message, review)

    return result(Verdict.OK, rule.ok_message)


def classify_outcomes(
    outcomes: Sequence[ProbeOutcome],
    kernel_log: Optional[Path],
    rules: Dict[str, FaultRule] = FAULT_RULES,
    evidence_lines: int = DEFAULT_EVIDENCE_LINES,
) -> List[CheckResult]:
    """Kernel check first, then one check per probe outcome in run order."""
    checks = [classify_log("dmesg", kernel_log, rules[KERNEL], evidence_lines)]
    for o in outcomes:
        checks.append(
            classify_log(
                o.name, o.log_path, rules[o.category], evidence_lines, exit_code=o.exit_code, cancelled=o.cancelled
            )
        )
    return checks


# ----------------------------------------------------------------------------
# Re-classifying an existing run folder
# ----------------------------------------------------------------------------
_TS = r"\d{4}-\d{2}-\d{2}_\d{6}"


def _find(run_dir: Path, regex: str) -> Optional[Path]:
    pattern = re.compile(regex)
    matches = sorted(p for p in run_dir.iterdir() if p.is_file() and pattern.fullmatch(p.name))
    return matches[-1] if matches else None


_BANDWIDTH_LOG = re.compile(rf"bandwidthTest_(?P<variant>[A-Za-z0-9_]+?)_(?:COLD|HOT)_{_TS}\.log")


def _bandwidth_variants_present(run_dir: Path) -> List[str]:
    """
    Variants with a log in either phase, in plan order. A folder with no
    bandwidth logs at all falls back to the full default list so their
    absence is still reported.
    """
    found = set()
    for p in run_dir.iterdir():
        m = _BANDWIDTH_LOG.fullmatch(p.name)
        if m and p.is_file():
            found.add(m.group("variant"))
    if not found:
        return list(BANDWIDTH_VARIANTS)
    known = [v for v in BANDWIDTH_VARIANTS if v in found]
    return known + sorted(found.difference(BANDWIDTH_VARIANTS))


def discover_run_logs(run_dir: Path) -> Tuple[Optional[Path], List[Tuple[str, str, Optional[Path]]]]:
    """
    Locate the kernel log and the probe logs of a finished run by file name.

    Returns (kernel_log, [(check_name, category, path_or_None), ...]) in run
    order; a probe whose log is absent is listed with path None.
    """
    run_dir = Path(run_dir)
    kernel_log = _find(run_dir, rf"DMESG_{_TS}\.log")
    entries: List[Tuple[str, str, Optional[Path]]] = []

    variants = _bandwidth_variants_present(run_dir)

    def bandwidth(phase: str) -> None:
        for variant in variants:
            name = f"bandwidthTest_{variant}_{phase}"
            entries.append((name, BANDWIDTH, _find(run_dir, rf"{name}_{_TS}\.log")))

    bandwidth("COLD")
    entries.append(("gpu_burn", BURN, _find(run_dir, rf"gpu_burn_\d+s_{_TS}\.log")))
    bandwidth("HOT")
    entries.append(("cuda_memtest", MEMTEST, _find(run_dir, rf"cuda_memtest_{_TS}\.log")))
    entries.append(("memtest_vulkan", VULKAN, _find(run_dir, rf"memtest_vulkan_\d+s_{_TS}\.log")))
    return kernel_log, entries


def classify_run_dir(
    run_dir: Path,
    rules: Dict[str, FaultRule] = FAULT_RULES,
    evidence_lines: int = DEFAULT_EVIDENCE_LINES,
) -> List[CheckResult]:
    kernel_log, entries = discover_run_logs(run_dir)
    checks = [classify_log("dmesg", kernel_log, rules[KERNEL], evidence_lines)]
    for name, category, path in entries:
        checks.append(classify_log(name, path, rules[category], evidence_lines))
    return checks


def count_verdicts(checks: Iterable[CheckResult]) -> Dict[Verdict, int]:
    counts = {v: 0 for v in Verdict}
    for c in checks:
        counts[c.verdict] += 1
    return counts
