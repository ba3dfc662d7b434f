"""Formatting conformance of the staged content of source files.

Works on the blob about to be committed, not the working-tree copy. Each file
is materialized in its own temporary directory together with a copy of the
style configuration, formatted there, and diffed against the staged bytes.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path, PurePosixPath

from stagegate.checks.base import CheckStage, StageContext
from stagegate.config import GateConfig
from stagegate.errors import StageExecutionError
from stagegate.probe import ResourceRequirement, ToolHandle, ToolRequirement
from stagegate.staging import StagedFile
from stagegate.types import CheckResult, FailurePolicy

logger = logging.getLogger(__name__)

FORMATTER = ToolRequirement(
    name="clang-format",
    candidates=("clang-format",),
    remediation="Install clang-format (e.g. apt install clang-format / brew install clang-format).",
)
DIFF = ToolRequirement(
    name="diff",
    candidates=("colordiff", "diff"),
    remediation="Install diffutils.",
)


class StyleConformanceCheck(CheckStage):
    """Every staged source file must already be formatted."""

    name = "style"
    policy = FailurePolicy.ACCUMULATE
    description = "formatting of staged source files"

    def tool_requirements(self, config: GateConfig):
        return (FORMATTER, DIFF)

    def resource_requirements(self, config: GateConfig):
        return (
            ResourceRequirement(
                name="style-config",
                path=config.style_config,
                remediation=f"Restore {config.style_config} from the main branch.",
            ),
        )

    def run(self, ctx: StageContext) -> CheckResult:
        files = sorted(
            (f for f in ctx.staged.sources(ctx.config.source_extensions) if not f.is_binary),
            key=lambda f: f.path,
        )
        if not files:
            return CheckResult.passed(self.name, "no staged source files")

        formatter = ctx.toolchain.tool(FORMATTER.name)
        differ = ctx.toolchain.tool(DIFF.name)
        style_path = ctx.toolchain.resource("style-config")

        def check(staged_file: StagedFile) -> str | None:
            return self.diff_one(ctx, staged_file, formatter, differ, style_path)

        if ctx.config.jobs > 1 and len(files) > 1:
            with ThreadPoolExecutor(max_workers=ctx.config.jobs) as pool:
                diffs = list(pool.map(check, files))
        else:
            diffs = [check(f) for f in files]

        messages: list[str] = []
        offenders: list[str] = []
        for staged_file, diff in zip(files, diffs):
            if diff:
                offenders.append(staged_file.path)
                messages.append(f"{staged_file.path}: does not match {ctx.config.style_config}\n{diff.rstrip()}")

        if not offenders:
            return CheckResult.passed(self.name, f"{len(files)} file(s) formatted")
        quoted = " ".join(offenders)
        return CheckResult.violation(
            self.name,
            messages,
            offenders,
            remediation=[f"{FORMATTER.name} -i {quoted} && git add {quoted}"],
        )

    def diff_one(
        self,
        ctx: StageContext,
        staged_file: StagedFile,
        formatter: ToolHandle,
        differ: ToolHandle,
        style_path: Path,
    ) -> str | None:
        """Return the diff between staged and formatted content, or None if clean."""
        basename = PurePosixPath(staged_file.path).name
        with tempfile.TemporaryDirectory(prefix="stagegate-style-") as tmp:
            workdir = Path(tmp)
            shutil.copyfile(style_path, workdir / ".clang-format")
            staged_copy = workdir / "staged" / basename
            formatted_copy = workdir / "formatted" / basename
            staged_copy.parent.mkdir()
            formatted_copy.parent.mkdir()
            staged_copy.write_bytes(ctx.staged.blob(staged_file.path))

            formatted = ctx.invoke(
                self.name,
                formatter,
                ["--style=file", str(staged_copy)],
                cwd=workdir,
                stdout_path=formatted_copy,
            )
            if formatted.returncode != 0:
                raise StageExecutionError(
                    self.name,
                    f"{formatter.name} failed on {staged_file.path}: {formatted.output}",
                    formatted,
                )
            diff = ctx.invoke(
                self.name,
                differ,
                [
                    "-u",
                    "--label",
                    f"a/{staged_file.path}",
                    "--label",
                    f"b/{staged_file.path}",
                    str(staged_copy),
                    str(formatted_copy),
                ],
                cwd=workdir,
                ok_codes=(0, 1),
            )
        if diff.returncode == 0:
            logger.debug("style: %s conforms", staged_file.path)
            return None
        if diff.returncode == 1:
            return diff.stdout
        raise StageExecutionError(
            self.name,
            f"{differ.name} exited {diff.returncode} on {staged_file.path}: {diff.output}",
            diff,
        )
