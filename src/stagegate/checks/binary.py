"""Enumerate staged files whose content is binary."""

from __future__ import annotations

from stagegate.checks.base import CheckStage, StageContext
from stagegate.types import CheckResult, FailurePolicy


class BinaryContentCheck(CheckStage):
    name = "binary-content"
    policy = FailurePolicy.ACCUMULATE
    description = "binary files in the commit"

    def run(self, ctx: StageContext) -> CheckResult:
        binaries = sorted(f.path for f in ctx.staged.general() if f.is_binary)
        if not binaries:
            return CheckResult.passed(self.name)
        return CheckResult.violation(
            self.name,
            [f"{path}: binary content" for path in binaries],
            binaries,
            remediation=["Unstage the binary files: git restore --staged " + " ".join(binaries)],
        )
