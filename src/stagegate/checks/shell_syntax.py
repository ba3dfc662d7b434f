"""Parse-only syntax check of the maintained automation scripts."""

from __future__ import annotations

import logging

from stagegate.checks.base import CheckStage, StageContext
from stagegate.config import GateConfig
from stagegate.probe import ToolRequirement
from stagegate.types import CheckResult, FailurePolicy

logger = logging.getLogger(__name__)

BASH = ToolRequirement(
    name="bash",
    candidates=("bash",),
    remediation="Install bash.",
)


class ShellSyntaxCheck(CheckStage):
    """Run ``bash -n`` over the fixed allow-list of scripts."""

    name = "shell-syntax"
    policy = FailurePolicy.ABORT
    description = "syntax of maintained shell scripts"

    def tool_requirements(self, config: GateConfig):
        return (BASH,) if config.shell_scripts else ()

    def run(self, ctx: StageContext) -> CheckResult:
        scripts = [s for s in ctx.config.shell_scripts if (ctx.repo_root / s).is_file()]
        for missing in sorted(set(ctx.config.shell_scripts) - set(scripts)):
            logger.debug("shell-syntax: %s not present; skipping", missing)
        if not scripts:
            return CheckResult.passed(self.name, "no maintained scripts present")

        bash = ctx.toolchain.tool(BASH.name)
        messages: list[str] = []
        broken: list[str] = []
        for script in scripts:
            result = ctx.invoke(self.name, bash, ["-n", script])
            if result.returncode != 0:
                broken.append(script)
                messages.append(f"{script}: syntax error\n{result.output}")
                # One broken script is enough to stop the pipeline.
                break

        if not broken:
            return CheckResult.passed(self.name, f"{len(scripts)} script(s) parsed")
        return CheckResult.violation(
            self.name,
            messages,
            broken,
            remediation=[f"bash -n {broken[0]}"],
        )
