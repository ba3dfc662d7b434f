"""Pipeline runner: capture, probe, run stages in order, produce one verdict."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from stagegate.checks import GIT, CheckStage, StageContext, check_workspace_path, default_stages
from stagegate.config import GateConfig
from stagegate.errors import GateEnvironmentError, StageExecutionError
from stagegate.probe import ResourceRequirement, ToolProbe, ToolRequirement
from stagegate.reporting import Reporter
from stagegate.staging import ChangeSummary, StagedFileSet, capture_staged_files
from stagegate.types import CheckResult, FailurePolicy, Verdict, VerdictAccumulator

logger = logging.getLogger(__name__)

STAGE_WORKSPACE = "workspace"
STAGE_PROBE = "tool-probe"
STAGE_STAGING = "staging"

# Called as capture(repo_root, source_extensions, timeout=seconds).
CaptureFn = Callable[..., StagedFileSet]


@dataclass(frozen=True)
class PipelineOutcome:
    """Verdict plus the change summary of the snapshot it judged."""

    verdict: Verdict
    summary: ChangeSummary | None


class PipelineRunner:
    """Run the verification pipeline once over the staging area.

    The runner owns the only mutable state of a run, the verdict
    accumulator. Stages communicate exclusively through return values.
    """

    def __init__(
        self,
        repo_root: Path,
        config: GateConfig,
        *,
        stages: Sequence[CheckStage] | None = None,
        reporter: Reporter | None = None,
        probe: ToolProbe | None = None,
        capture: CaptureFn = capture_staged_files,
    ) -> None:
        self.repo_root = repo_root
        self.config = config
        self.stages = list(stages) if stages is not None else default_stages(config)
        self.reporter = reporter or Reporter()
        self.probe = probe or ToolProbe(repo_root, timeout=config.tool_timeout)
        self._capture = capture

    def requirements(self) -> tuple[list[ToolRequirement], list[ResourceRequirement]]:
        """Tools and resources of every enabled stage, git first, in stage order."""
        tools: list[ToolRequirement] = [GIT]
        resources: list[ResourceRequirement] = []
        for stage in self.stages:
            tools.extend(stage.tool_requirements(self.config))
            resources.extend(stage.resource_requirements(self.config))
        return tools, resources

    def run(self) -> PipelineOutcome:
        accumulator = VerdictAccumulator()

        summary: ChangeSummary | None = None
        phase = STAGE_WORKSPACE
        try:
            check_workspace_path(self.repo_root)
            phase = STAGE_PROBE
            self.probe.resolve([GIT])
            phase = STAGE_STAGING
            staged = self._capture(
                self.repo_root,
                self.config.source_extensions,
                timeout=self.config.tool_timeout,
            )
            summary = ChangeSummary.from_files(staged.files)
            phase = STAGE_PROBE
            tools, resources = self.requirements()
            toolchain = self.probe.resolve(tools, resources)
        except GateEnvironmentError as exc:
            return self._abort_environment(accumulator, phase, exc, summary=summary)

        ctx = StageContext(staged=staged, toolchain=toolchain, config=self.config)
        logger.debug("running %d stage(s) over %d staged file(s)", len(self.stages), len(staged))

        for stage in self.stages:
            self.reporter.stage_started(stage)
            try:
                result = stage.run(ctx)
            except GateEnvironmentError as exc:
                return self._abort_environment(accumulator, stage.name, exc, summary=summary)
            except StageExecutionError as exc:
                result = CheckResult.error(stage.name, str(exc))

            accumulator.record(result)
            self.reporter.stage_finished(result, stage.policy)

            if not result.ok and stage.policy is FailurePolicy.ABORT:
                logger.debug("stage %s is fatal on failure; stopping", stage.name)
                accumulator.abort(stage.name)
                break

        verdict = accumulator.finalize()
        self.reporter.final(verdict, summary)
        return PipelineOutcome(verdict=verdict, summary=summary)

    def _abort_environment(
        self,
        accumulator: VerdictAccumulator,
        phase: str,
        exc: GateEnvironmentError,
        *,
        summary: ChangeSummary | None,
    ) -> PipelineOutcome:
        accumulator.abort(phase, environment_error=str(exc), remediation=exc.remediation)
        self.reporter.environment_failure(phase, exc)
        verdict = accumulator.finalize()
        self.reporter.final(verdict, summary)
        return PipelineOutcome(verdict=verdict, summary=summary)
