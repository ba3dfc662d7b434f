"""Result and verdict types for the verification pipeline."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

EXIT_ACCEPTED = 0
EXIT_ERROR = 1
EXIT_VIOLATION = 2


class CheckStatus(str, Enum):
    """Outcome of a single stage."""

    PASS = "pass"
    VIOLATION = "violation"
    ERROR = "error"


class FailurePolicy(str, Enum):
    """What the runner does when a stage does not pass."""

    ABORT = "abort"
    ACCUMULATE = "accumulate"


class VerdictStatus(str, Enum):
    """Overall pipeline outcome."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one stage for one run. Created once, never mutated."""

    stage: str
    status: CheckStatus
    messages: tuple[str, ...] = ()
    affected_files: frozenset[str] = frozenset()
    remediation: tuple[str, ...] = ()
    skipped: bool = False

    @classmethod
    def passed(cls, stage: str, *messages: str, skipped: bool = False) -> CheckResult:
        return cls(stage=stage, status=CheckStatus.PASS, messages=tuple(messages), skipped=skipped)

    @classmethod
    def violation(
        cls,
        stage: str,
        messages: Iterable[str],
        files: Iterable[str] = (),
        remediation: Iterable[str] = (),
    ) -> CheckResult:
        return cls(
            stage=stage,
            status=CheckStatus.VIOLATION,
            messages=tuple(messages),
            affected_files=frozenset(files),
            remediation=tuple(remediation),
        )

    @classmethod
    def error(cls, stage: str, message: str, remediation: Iterable[str] = ()) -> CheckResult:
        return cls(
            stage=stage,
            status=CheckStatus.ERROR,
            messages=(message,),
            remediation=tuple(remediation),
        )

    @property
    def ok(self) -> bool:
        return self.status is CheckStatus.PASS

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "status": self.status.value,
            "messages": list(self.messages),
            "affected_files": sorted(self.affected_files),
            "remediation": list(self.remediation),
            "skipped": self.skipped,
        }


@dataclass(frozen=True)
class Verdict:
    """Final pass/fail decision for one pipeline run."""

    status: VerdictStatus
    results: tuple[CheckResult, ...]
    aborted_by: str | None = None
    environment_error: str | None = None
    remediation: tuple[str, ...] = ()

    @property
    def accepted(self) -> bool:
        return self.status is VerdictStatus.ACCEPTED

    @property
    def exit_code(self) -> int:
        if self.accepted:
            return EXIT_ACCEPTED
        if self.environment_error is not None:
            return EXIT_ERROR
        if any(r.status is CheckStatus.ERROR for r in self.results):
            return EXIT_ERROR
        return EXIT_VIOLATION

    def result_for(self, stage: str) -> CheckResult | None:
        for result in self.results:
            if result.stage == stage:
                return result
        return None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "exit_code": self.exit_code,
            "aborted_by": self.aborted_by,
            "environment_error": self.environment_error,
            "remediation": list(self.remediation),
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class VerdictAccumulator:
    """The single mutable accumulator of a run, owned by the runner.

    Stages never touch it; they return CheckResults which the runner records.
    """

    results: list[CheckResult] = field(default_factory=list)
    aborted_by: str | None = None
    environment_error: str | None = None
    remediation: list[str] = field(default_factory=list)
    _finalized: bool = False

    def record(self, result: CheckResult) -> None:
        if self._finalized:
            raise RuntimeError("verdict already finalized")
        if any(r.stage == result.stage for r in self.results):
            raise ValueError(f"stage {result.stage!r} already recorded")
        self.results.append(result)

    def abort(self, stage: str, environment_error: str | None = None, remediation: str = "") -> None:
        self.aborted_by = stage
        if environment_error is not None:
            self.environment_error = environment_error
        if remediation:
            self.remediation.append(remediation)

    @property
    def failed(self) -> bool:
        return self.environment_error is not None or any(not r.ok for r in self.results)

    def finalize(self) -> Verdict:
        self._finalized = True
        status = VerdictStatus.REJECTED if self.failed else VerdictStatus.ACCEPTED
        return Verdict(
            status=status,
            results=tuple(self.results),
            aborted_by=self.aborted_by,
            environment_error=self.environment_error,
            remediation=tuple(self.remediation),
        )
