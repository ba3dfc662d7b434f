"""Common contract shared by every check stage."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar

from stagegate.config import GateConfig
from stagegate.errors import GateEnvironmentError, StageExecutionError, ToolTimeoutError
from stagegate.exec import ExecResult, ExecTimeout, run_command
from stagegate.probe import ResourceRequirement, ToolHandle, Toolchain, ToolRequirement
from stagegate.staging import StagedFileSet
from stagegate.types import CheckResult, FailurePolicy

logger = logging.getLogger(__name__)


def read_resource_text(path: Path, rel: str, reason_code: str, remediation: str = "") -> str:
    """Read a repository resource as UTF-8.

    Raises:
        GateEnvironmentError: If the file cannot be read or is not UTF-8;
            the message names the first offending line.
    """
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise GateEnvironmentError(f"cannot read {rel}: {exc}", reason_code, remediation) from exc
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        line = data[: exc.start].count(b"\n") + 1
        raise GateEnvironmentError(
            f"{rel}:{line}: not valid UTF-8 (byte 0x{data[exc.start]:02x})",
            reason_code,
            remediation,
        ) from exc


@dataclass(frozen=True)
class StageContext:
    """Read-only inputs handed to every stage."""

    staged: StagedFileSet
    toolchain: Toolchain
    config: GateConfig

    @property
    def repo_root(self) -> Path:
        return self.staged.repo_root

    def invoke(
        self,
        stage: str,
        handle: ToolHandle,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        ok_codes: Sequence[int] = (0,),
        stdout_path: Path | None = None,
    ) -> ExecResult:
        """Run a resolved tool with the configured timeout.

        Exit codes outside ``ok_codes`` are returned, not raised; callers
        decide whether they mean a violation or a crash. With
        ``stdout_path`` the tool output is written there undecoded.

        Raises:
            ToolTimeoutError: If the tool exceeds ``config.tool_timeout``.
            StageExecutionError: If the tool cannot be started.
        """
        argv = handle.argv(*args)
        try:
            result = run_command(
                argv,
                cwd=cwd or self.repo_root,
                check=False,
                timeout=self.config.tool_timeout,
                stdout_path=stdout_path,
            )
        except ExecTimeout as exc:
            raise ToolTimeoutError(stage, str(exc)) from exc
        except OSError as exc:
            raise StageExecutionError(stage, f"could not run {handle.name}: {exc}") from exc
        if result.returncode not in ok_codes:
            logger.debug("%s: %s exited %d", stage, handle.name, result.returncode)
        return result


class CheckStage:
    """One independent gate over the staged snapshot.

    Subclasses set ``name`` and ``policy`` and implement :meth:`run`. Stages
    return a CheckResult; they never touch the runner's accumulator.
    """

    name: ClassVar[str] = ""
    policy: ClassVar[FailurePolicy] = FailurePolicy.ACCUMULATE
    description: ClassVar[str] = ""

    def tool_requirements(self, config: GateConfig) -> Sequence[ToolRequirement]:
        return ()

    def resource_requirements(self, config: GateConfig) -> Sequence[ResourceRequirement]:
        return ()

    def run(self, ctx: StageContext) -> CheckResult:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} policy={self.policy.value}>"


GIT = ToolRequirement(
    name="git",
    candidates=("git",),
    remediation="Install git and make sure it is on PATH.",
)
