"""Personal spelling dictionary must stay sorted and duplicate-free."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from stagegate.checks.base import CheckStage, StageContext, read_resource_text
from stagegate.config import GateConfig
from stagegate.errors import REASON_RESOURCE_INVALID
from stagegate.probe import ResourceRequirement, ToolRequirement
from stagegate.types import CheckResult, FailurePolicy

SPELLER = ToolRequirement(
    name="aspell",
    candidates=("aspell",),
    remediation="Install aspell (apt install aspell aspell-en / brew install aspell).",
)


@dataclass(frozen=True)
class DictionaryProblem:
    line_no: int
    word: str
    kind: str  # "order" or "duplicate"
    previous: str


def collation_key(word: str) -> str:
    """Case-insensitive dictionary-order key; same order as ``LC_ALL=C sort -f -d``.

    Only ASCII letters, digits and blanks take part in the comparison, so
    words differing in punctuation alone (``don't`` and ``dont``) collide.
    """
    return "".join(ch.upper() for ch in word if ch.isascii() and (ch.isalnum() or ch in " \t"))


def find_dictionary_problems(lines: list[str]) -> list[DictionaryProblem]:
    """Check word lines (header already removed). Line numbers are file line numbers."""
    problems: list[DictionaryProblem] = []
    seen: dict[str, str] = {}
    previous: str | None = None
    for offset, raw in enumerate(lines):
        word = raw.strip()
        if not word:
            continue
        line_no = offset + 2
        key = collation_key(word)
        if key in seen:
            problems.append(DictionaryProblem(line_no, word, "duplicate", seen[key]))
        elif previous is not None and key < collation_key(previous):
            problems.append(DictionaryProblem(line_no, word, "order", previous))
        seen.setdefault(key, word)
        previous = word
    return problems


def sort_command(path: str) -> str:
    return f"(head -n 1 {path} && tail -n +2 {path} | LC_ALL=C sort -f -d -u) > {path}.tmp && mv {path}.tmp {path}"


class DictionarySanityCheck(CheckStage):
    """The word list below the header is sorted case-insensitively, no duplicates."""

    name = "dictionary"
    policy = FailurePolicy.ABORT
    description = "personal dictionary ordering"

    def tool_requirements(self, config: GateConfig):
        return (SPELLER,)

    def resource_requirements(self, config: GateConfig):
        return (
            ResourceRequirement(
                name="dictionary",
                path=config.dictionary,
                remediation=f"Restore {config.dictionary}; its first line must be the aspell header.",
                header_prefix=config.dictionary_header or None,
            ),
        )

    def run(self, ctx: StageContext) -> CheckResult:
        path: Path = ctx.toolchain.resource("dictionary")
        rel = ctx.config.dictionary
        text = read_resource_text(path, rel, REASON_RESOURCE_INVALID, f"Re-save {rel} as UTF-8.")
        lines = text.splitlines()[1:]
        problems = find_dictionary_problems(lines)
        if not problems:
            return CheckResult.passed(self.name, f"{len([w for w in lines if w.strip()])} word(s) sorted")

        messages = []
        for problem in problems:
            if problem.kind == "duplicate":
                messages.append(f"{rel}:{problem.line_no}: duplicate word {problem.word!r} (already listed as {problem.previous!r})")
            else:
                messages.append(f"{rel}:{problem.line_no}: {problem.word!r} is out of order (sorts before {problem.previous!r})")
        return CheckResult.violation(self.name, messages, [rel], remediation=[sort_command(rel)])
