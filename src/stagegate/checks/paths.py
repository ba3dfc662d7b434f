"""ASCII-only paths: the workspace itself and every newly added file."""

from __future__ import annotations

from pathlib import Path

from stagegate.checks.base import CheckStage, StageContext
from stagegate.errors import REASON_WORKSPACE_PATH, GateEnvironmentError
from stagegate.types import CheckResult, FailurePolicy

PORTABILITY_RATIONALE = (
    "Non-ASCII file names are stored differently across file systems and "
    "break checkouts on other platforms."
)


def check_workspace_path(repo_root: Path) -> None:
    """Fail fast when the working directory path is not ASCII.

    Raises:
        GateEnvironmentError: If ``repo_root`` contains non-ASCII characters.
    """
    text = str(repo_root)
    if text.isascii():
        return
    offending = "".join(sorted({ch for ch in text if not ch.isascii()}))
    raise GateEnvironmentError(
        f"workspace path contains non-ASCII characters ({offending!r}): {text}",
        REASON_WORKSPACE_PATH,
        "Move or clone the repository to a path made of ASCII characters only.",
    )


class NonAsciiPathCheck(CheckStage):
    """Newly added files must have ASCII-only paths."""

    name = "non-ascii-paths"
    policy = FailurePolicy.ACCUMULATE
    description = "non-ASCII paths of added files"

    def run(self, ctx: StageContext) -> CheckResult:
        offenders = sorted(f.path for f in ctx.staged.added() if not f.is_ascii_path)
        if not offenders:
            return CheckResult.passed(self.name)
        messages = [f"{path!r}: path contains non-ASCII characters" for path in offenders]
        messages.append(PORTABILITY_RATIONALE)
        return CheckResult.violation(
            self.name,
            messages,
            offenders,
            remediation=["Rename the files with git mv before committing."],
        )
