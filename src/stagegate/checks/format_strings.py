"""Format-string and diagnostic-message scanner over staged sources."""

from __future__ import annotations

import logging
import os
import platform
from collections.abc import Callable
from pathlib import Path

from stagegate.checks.base import CheckStage, StageContext
from stagegate.config import GateConfig
from stagegate.errors import REASON_SCANNER_BUILD, GateEnvironmentError, StageExecutionError
from stagegate.exec import ExecTimeout, run_command
from stagegate.probe import ToolRequirement
from stagegate.types import CheckResult, FailurePolicy

logger = logging.getLogger(__name__)

MAKE = ToolRequirement(
    name="make",
    candidates=("make", "gmake"),
    remediation="Install make to build the format-string scanner.",
    mandatory=False,
)


class FormatStringCheck(CheckStage):
    """Delegate to the repository's purpose-built scanner; build it when missing."""

    name = "format-strings"
    policy = FailurePolicy.ABORT
    description = "format strings in diagnostic messages"

    def __init__(self, system: Callable[[], str] = platform.system) -> None:
        self._system = system

    def tool_requirements(self, config: GateConfig):
        return (MAKE,) if config.format_scanner.build else ()

    def run(self, ctx: StageContext) -> CheckResult:
        family = self._system().lower()
        if family in ctx.config.format_scanner.skip_platforms:
            return CheckResult.passed(self.name, f"not supported on {family}; skipped", skipped=True)

        files = sorted(f.path for f in ctx.staged.sources(ctx.config.source_extensions) if not f.is_binary)
        if not files:
            return CheckResult.passed(self.name, "no staged source files")

        scanner = self.ensure_scanner(ctx)
        try:
            result = run_command(
                [str(scanner), *files],
                cwd=ctx.repo_root,
                check=False,
                timeout=ctx.config.tool_timeout,
            )
        except ExecTimeout as exc:
            raise StageExecutionError(self.name, str(exc)) from exc
        except OSError as exc:
            raise StageExecutionError(self.name, f"could not run {scanner}: {exc}") from exc

        if result.returncode < 0:
            raise StageExecutionError(self.name, f"scanner terminated by signal {-result.returncode}", result)
        if result.returncode == 0:
            return CheckResult.passed(self.name, f"{len(files)} file(s) scanned")
        return CheckResult.violation(
            self.name,
            [result.output or f"scanner exited {result.returncode}"],
            files,
            remediation=[f"{ctx.config.format_scanner.path} {' '.join(files)}"],
        )

    def ensure_scanner(self, ctx: StageContext) -> Path:
        """Return the scanner path, building it first if needed.

        Raises:
            GateEnvironmentError: If the scanner cannot be built.
        """
        scanner_cfg = ctx.config.format_scanner
        scanner = ctx.repo_root / scanner_cfg.path
        if _is_executable(scanner):
            return scanner

        remediation = f"Build it manually: {' '.join(scanner_cfg.build)}" if scanner_cfg.build else ""
        if not scanner_cfg.build:
            raise GateEnvironmentError(
                f"format-string scanner not found at {scanner_cfg.path} and no build command configured",
                REASON_SCANNER_BUILD,
            )
        argv = list(scanner_cfg.build)
        if argv[0] in MAKE.candidates:
            if not ctx.toolchain.has_tool(MAKE.name):
                raise GateEnvironmentError(
                    f"format-string scanner missing at {scanner_cfg.path} and make is not installed",
                    REASON_SCANNER_BUILD,
                    MAKE.remediation,
                )
            argv[0] = str(ctx.toolchain.tool(MAKE.name).path)

        logger.debug("building format-string scanner: %s", " ".join(argv))
        try:
            build = run_command(
                argv,
                cwd=ctx.repo_root,
                check=False,
                timeout=ctx.config.tool_timeout,
            )
        except (ExecTimeout, OSError) as exc:
            raise GateEnvironmentError(
                f"failed to build format-string scanner: {exc}",
                REASON_SCANNER_BUILD,
                remediation,
            ) from exc
        if build.returncode != 0 or not _is_executable(scanner):
            raise GateEnvironmentError(
                f"failed to build format-string scanner ({build.returncode}): {build.output}",
                REASON_SCANNER_BUILD,
                remediation,
            )
        return scanner


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)
