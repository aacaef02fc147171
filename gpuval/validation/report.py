###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

"""
Summary reporter.

The report body (checks and result) depends only on the CheckResults, so
classifying identical logs twice yields an identical body. Only the run
header carries run-specific values such as the start time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .classifier import CheckResult, Verdict, count_verdicts
from .errors import EXIT_FAIL, EXIT_PASS

CHECKS_BANNER = "==================== SUMMARY CHECKS ===================="
RESULT_BANNER = "==================== RESULT ===================="


@dataclass(frozen=True)
class Summary:
    checks: Tuple[CheckResult, ...]
    fail_count: int
    run_dir: Optional[Path] = None
    header: Tuple[str, ...] = field(default=(), compare=False)

    @classmethod
    def build(
        cls,
        checks: Sequence[CheckResult],
        run_dir: Optional[Path] = None,
        header: Sequence[str] = (),
    ) -> "Summary":
        checks = tuple(checks)
        fail_count = sum(1 for c in checks if c.verdict is Verdict.FAIL)
        return cls(checks=checks, fail_count=fail_count, run_dir=run_dir, header=tuple(header))

    @property
    def passed(self) -> bool:
        return self.fail_count == 0

    @property
    def verdict(self) -> str:
        return "PASS" if self.passed else "FAIL"

    @property
    def exit_code(self) -> int:
        return EXIT_PASS if self.passed else EXIT_FAIL

    def count(self, verdict: Verdict) -> int:
        return count_verdicts(self.checks)[verdict]


def render_check(check: CheckResult) -> List[str]:
    lines = [f"[{check.verdict.value}] {check.name}: {check.message}"]
    if check.exit_code not in (None, 0) and not check.cancelled:
        lines.append(f"    (probe exit status {check.exit_code})")
    if check.verdict in (Verdict.FAIL, Verdict.REVIEW):
        lines += [f"    {ln}" for ln in check.evidence]
    return lines


def render_body(summary: Summary) -> List[str]:
    lines: List[str] = ["", CHECKS_BANNER]
    for check in summary.checks:
        lines += render_check(check)

    lines += ["", RESULT_BANNER]
    if summary.passed:
        lines.append("RESULT: PASS (no confirmed NVIDIA GPU, PCIe, or memory fault signatures detected).")
    else:
        lines.append("RESULT: FAIL (confirmed NVIDIA GPU, PCIe, or memory fault signatures detected).")
    lines.append(f"Failed checks: {summary.fail_count}")
    warn = summary.count(Verdict.WARN)
    review = summary.count(Verdict.REVIEW)
    if warn or review:
        lines.append(f"Needs human review: {warn} WARN, {review} REVIEW (not counted as failures)")
    if summary.run_dir is not None:
        lines.append(f"Run folder: {summary.run_dir}")
    return lines


def render_summary(summary: Summary) -> str:
    return "\n".join(list(summary.header) + render_body(summary)) + "\n"


def write_summary(summary: Summary, path: Path) -> Path:
    """Write the report artifact. Refuses to overwrite an existing report."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "x", encoding="utf-8") as f:
        f.write(render_summary(summary))
    return path
