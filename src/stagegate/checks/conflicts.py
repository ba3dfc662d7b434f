"""Reject staged additions that contain merge-conflict markers."""

from __future__ import annotations

import re
from fnmatch import fnmatch

from stagegate.checks.base import CheckStage, StageContext
from stagegate.types import CheckResult, FailurePolicy

# Built from repetition so this module never contains a literal marker line.
CONFLICT_MARKER_RE = re.compile(
    r"^(?:{lt}|{eq}|{gt}|{base})(?: .*)?$".format(
        lt="<" * 7,
        eq="=" * 7,
        gt=">" * 7,
        base=re.escape("|" * 7),
    )
)


def is_conflict_marker(line: str) -> bool:
    return CONFLICT_MARKER_RE.match(line.rstrip("\r")) is not None


class ConflictMarkerCheck(CheckStage):
    """Scan the added lines of the staged diff for conflict markers."""

    name = "conflict-markers"
    policy = FailurePolicy.ABORT
    description = "merge-conflict markers in staged additions"

    def run(self, ctx: StageContext) -> CheckResult:
        excludes = ctx.config.hook_excludes
        messages: list[str] = []
        files: set[str] = set()
        for path in sorted(ctx.staged.added_lines):
            if any(fnmatch(path, pattern) for pattern in excludes):
                continue
            for added in ctx.staged.added_lines[path]:
                if is_conflict_marker(added.text):
                    messages.append(f"{path}:{added.line_no}: conflict marker {added.text.strip()[:7]!r}")
                    files.add(path)

        if not messages:
            return CheckResult.passed(self.name)
        return CheckResult.violation(
            self.name,
            messages,
            files,
            remediation=[
                "Resolve the merge conflicts, then re-stage: git add " + " ".join(sorted(files)),
            ],
        )
