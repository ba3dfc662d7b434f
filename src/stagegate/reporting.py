"""Terminal rendering of stage results and the final verdict, plus report files."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

from rich.console import Console
from rich.text import Text

from stagegate.errors import GateEnvironmentError
from stagegate.staging import ChangeSummary
from stagegate.types import CheckResult, CheckStatus, FailurePolicy, Verdict

if TYPE_CHECKING:
    from stagegate.checks.base import CheckStage

REPORT_JSON_FILENAME = "PRECOMMIT_REPORT.json"
REPORT_MD_FILENAME = "PRECOMMIT_REPORT.md"


@dataclass(frozen=True)
class ReporterConfig:
    """Explicit output configuration; nothing is read from the environment here."""

    color: bool = True
    stdout: TextIO | None = None
    stderr: TextIO | None = None
    show_progress: bool = True


class Reporter:
    """Diagnostics to stderr, change summary to stdout."""

    def __init__(self, config: ReporterConfig | None = None) -> None:
        self.config = config or ReporterConfig()
        self.out = Console(
            file=self.config.stdout,
            no_color=not self.config.color,
            highlight=False,
            soft_wrap=True,
        )
        self.err = Console(
            file=self.config.stderr,
            stderr=self.config.stderr is None,
            no_color=not self.config.color,
            highlight=False,
            soft_wrap=True,
        )

    def stage_started(self, stage: CheckStage) -> None:
        if not self.config.show_progress:
            return
        line = Text("▶ ", style="cyan")
        line.append(stage.name, style="bold cyan")
        if stage.description:
            line.append(f"  {stage.description}", style="dim")
        self.err.print(line)

    def stage_finished(self, result: CheckResult, policy: FailurePolicy) -> None:
        if result.status is CheckStatus.PASS:
            if not self.config.show_progress:
                return
            label = "- skipped" if result.skipped else "✓ passed"
            line = Text(f"  {label}", style="yellow" if result.skipped else "green")
            if result.messages:
                line.append(f"  {'; '.join(result.messages)}", style="dim")
            self.err.print(line)
            return

        fatal = policy is FailurePolicy.ABORT
        headline = "✗ violation" if result.status is CheckStatus.VIOLATION else "✗ error"
        header = Text(f"  {headline} in {result.stage}", style="bold red")
        if fatal:
            header.append("  (fatal, stopping)", style="red")
        self.err.print(header)
        for message in result.messages:
            self.err.print(Text.from_ansi(_indent(message, "    ")))
        for step in result.remediation:
            fix = Text("    fix: ", style="bold yellow")
            fix.append(step)
            self.err.print(fix)

    def environment_failure(self, phase: str, error: GateEnvironmentError) -> None:
        header = Text("Environment error", style="bold bright_white on red")
        header.append(f" [{phase}] {error.reason_code}", style="bold red")
        self.err.print(header)
        self.err.print(Text(_indent(str(error), "  "), style="red"))
        if error.remediation:
            fix = Text("  fix: ", style="bold yellow")
            fix.append(error.remediation)
            self.err.print(fix)

    def change_summary(self, summary: ChangeSummary) -> None:
        width = max((len(path) for path, _, _ in summary.entries), default=0)
        for path, insertions, deletions in summary.entries:
            if insertions is None:
                self.out.print(f" {path.ljust(width)} | Bin", markup=False)
            else:
                self.out.print(f" {path.ljust(width)} | +{insertions} -{deletions}", markup=False)
        self.out.print(f" {summary.totals_line()}", markup=False)

    def final(self, verdict: Verdict, summary: ChangeSummary | None) -> None:
        if summary is not None:
            self.change_summary(summary)

        if verdict.accepted:
            self.err.print(Text("✓ Commit accepted", style="bold green"))
            return

        failed = [r.stage for r in verdict.results if not r.ok]
        line = Text("✗ Commit rejected", style="bold red")
        if verdict.environment_error is not None:
            line.append(f": environment check failed at {verdict.aborted_by}", style="red")
        elif failed:
            line.append(f": {len(failed)} stage(s) failed ({', '.join(failed)})", style="red")
        if verdict.aborted_by and verdict.environment_error is None:
            line.append(f"; stopped after {verdict.aborted_by}", style="red")
        self.err.print(line)


def _indent(text: str, prefix: str) -> str:
    return "\n".join(prefix + line if line else line for line in text.splitlines())


def _get_timestamp(mode: str = "deterministic") -> str:
    if mode == "deterministic":
        return "1970-01-01T00:00:00Z"
    return datetime.now(UTC).isoformat()


def build_report(
    verdict: Verdict,
    summary: ChangeSummary | None,
    timestamp_mode: str = "deterministic",
) -> dict:
    passed = sum(1 for r in verdict.results if r.status is CheckStatus.PASS)
    violations = sum(1 for r in verdict.results if r.status is CheckStatus.VIOLATION)
    errors = sum(1 for r in verdict.results if r.status is CheckStatus.ERROR)
    return {
        "schema_version": "1.0",
        "generated_at": _get_timestamp(timestamp_mode),
        "timestamp_mode": timestamp_mode,
        "verdict": verdict.to_dict(),
        "checks": {"passed": passed, "violations": violations, "errors": errors},
        "changes": None
        if summary is None
        else {
            "files_changed": summary.files_changed,
            "insertions": summary.insertions,
            "deletions": summary.deletions,
            "files": [
                {"path": path, "insertions": ins, "deletions": dels}
                for path, ins, dels in summary.entries
            ],
        },
    }


def write_report(
    out_dir: Path,
    verdict: Verdict,
    summary: ChangeSummary | None,
    timestamp_mode: str = "deterministic",
) -> tuple[Path, Path]:
    """Write PRECOMMIT_REPORT.json and PRECOMMIT_REPORT.md into ``out_dir``."""
    report = build_report(verdict, summary, timestamp_mode)
    out_dir.mkdir(parents=True, exist_ok=True)

    json_path = out_dir / REPORT_JSON_FILENAME
    with open(json_path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2, sort_keys=True)
        f.write("\n")

    md_path = out_dir / REPORT_MD_FILENAME
    with open(md_path, "w", encoding="utf-8") as f:
        _write_markdown_report(f, report, verdict)

    return json_path, md_path


def _write_markdown_report(f: TextIO, report: dict, verdict: Verdict) -> None:
    """Write human-readable markdown report."""
    f.write("# Pre-commit Verification Report\n\n")

    status_emoji = "✅" if verdict.accepted else "❌"
    f.write(f"**Status**: {status_emoji} {verdict.status.value.upper()}\n\n")
    f.write(f"**Generated**: {report['generated_at']} ({report['timestamp_mode']})\n\n")

    f.write("## Summary\n\n")
    f.write(f"- Passed: {report['checks']['passed']}\n")
    f.write(f"- Violations: {report['checks']['violations']}\n")
    f.write(f"- Errors: {report['checks']['errors']}\n")
    if verdict.aborted_by:
        f.write(f"- Stopped at: `{verdict.aborted_by}`\n")
    f.write("\n")

    if verdict.environment_error:
        f.write("## Environment Error\n\n")
        f.write(f"{verdict.environment_error}\n\n")
        for step in verdict.remediation:
            f.write(f"- {step}\n")
        f.write("\n")

    changes = report["changes"]
    if changes is not None:
        f.write("## Changes\n\n")
        for entry in changes["files"]:
            if entry["insertions"] is None:
                f.write(f"- `{entry['path']}`: binary\n")
            else:
                f.write(f"- `{entry['path']}`: +{entry['insertions']} -{entry['deletions']}\n")
        f.write(
            f"\n{changes['files_changed']} files changed, "
            f"{changes['insertions']} insertions(+), {changes['deletions']} deletions(-)\n\n"
        )

    f.write("## Stages\n\n")
    for result in verdict.results:
        symbol = {CheckStatus.PASS: "✅", CheckStatus.VIOLATION: "❌", CheckStatus.ERROR: "⚠️"}[result.status]
        f.write(f"### {symbol} {result.stage}\n\n")
        if result.messages:
            f.write("```\n")
            for message in result.messages:
                f.write(f"{message}\n")
            f.write("```\n\n")
        if result.remediation:
            f.write("**Remediation:**\n\n")
            for step in result.remediation:
                f.write(f"- `{step}`\n")
            f.write("\n")

    f.write("## Exit Code\n\n")
    f.write(f"{verdict.exit_code}\n")
