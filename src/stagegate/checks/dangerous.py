"""Flag calls to unsafe C string functions in staged source files."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from stagegate.checks.base import CheckStage, StageContext
from stagegate.types import CheckResult, FailurePolicy

SAFER_ALTERNATIVES: dict[str, str] = {
    "strcpy": "strncpy/strlcpy",
    "strcat": "strncat/strlcat",
    "sprintf": "snprintf",
    "vsprintf": "vsnprintf",
    "gets": "fgets",
}


@dataclass(frozen=True)
class UnsafeCall:
    path: str
    line_no: int
    function: str
    line: str


def build_pattern(functions: Iterable[str]) -> re.Pattern[str]:
    """Match ``name(`` only where ``name`` starts an identifier.

    The lookbehind rejects a word character right before the name, so
    ``snprintf`` never matches ``sprintf`` and ``fgets`` never matches ``gets``.
    """
    names = sorted({re.escape(f) for f in functions}, key=lambda n: (-len(n), n))
    return re.compile(r"(?<![A-Za-z0-9_])(" + "|".join(names) + r")\s*\(")


def find_unsafe_calls(path: str, text: str, pattern: re.Pattern[str]) -> list[UnsafeCall]:
    calls: list[UnsafeCall] = []
    for line_no, line in enumerate(text.splitlines(), 1):
        for match in pattern.finditer(line):
            calls.append(UnsafeCall(path=path, line_no=line_no, function=match.group(1), line=line.strip()))
    return calls


class DangerousFunctionCheck(CheckStage):
    name = "dangerous-functions"
    policy = FailurePolicy.ACCUMULATE
    description = "calls to unsafe standard functions"

    def run(self, ctx: StageContext) -> CheckResult:
        if not ctx.config.dangerous_functions:
            return CheckResult.passed(self.name, "deny-list empty")
        pattern = build_pattern(ctx.config.dangerous_functions)
        calls: list[UnsafeCall] = []
        for staged_file in sorted(ctx.staged.sources(ctx.config.source_extensions), key=lambda f: f.path):
            if staged_file.is_binary:
                continue
            calls.extend(find_unsafe_calls(staged_file.path, ctx.staged.text(staged_file.path), pattern))

        if not calls:
            return CheckResult.passed(self.name)

        messages = []
        for call in calls:
            hint = SAFER_ALTERNATIVES.get(call.function)
            suffix = f" (use {hint})" if hint else ""
            messages.append(f"{call.path}:{call.line_no}: call to unsafe function '{call.function}'{suffix}: {call.line}")
        return CheckResult.violation(
            self.name,
            messages,
            {call.path for call in calls},
            remediation=[f"See {ctx.config.secure_coding_url}"],
        )
