"""Static analysis of staged sources with a generated suppression catalog.

The analyzer configuration is assembled as structured data (suppressions and
compiler defines) and only serialized to command-line flags at the boundary.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from stagegate.checks.base import CheckStage, StageContext
from stagegate.config import GateConfig
from stagegate.errors import StageExecutionError
from stagegate.probe import ToolHandle, ToolRequirement, parse_version
from stagegate.types import CheckResult, FailurePolicy

logger = logging.getLogger(__name__)

ANALYZER = ToolRequirement(
    name="cppcheck",
    candidates=("cppcheck",),
    remediation="Install cppcheck 2.x (or 1.90+): apt install cppcheck / brew install cppcheck.",
    version_check="cppcheck",
)
COMPILER = ToolRequirement(
    name="cc",
    candidates=("cc", "gcc", "clang"),
    remediation="Install a C compiler (gcc or clang).",
)

UNMATCHED_SUPPRESSION = "unmatchedSuppression"

_DEFINE_RE = re.compile(r"^#define[ \t]+(\w+)[ \t]+(\S+)[ \t]*$", re.MULTILINE)

C_STANDARDS: tuple[tuple[int, str], ...] = (
    (201112, "c11"),
    (199901, "c99"),
)
CXX_STANDARDS: tuple[tuple[int, str], ...] = (
    (202002, "c++20"),
    (201703, "c++17"),
    (201402, "c++14"),
    (201103, "c++11"),
)


@dataclass(frozen=True)
class Suppression:
    """One analyzer suppression key, optionally scoped to a file."""

    key: str
    path: str | None = None

    def to_arg(self) -> str:
        if self.path is None:
            return f"--suppress={self.key}"
        return f"--suppress={self.key}:{self.path}"


class SuppressionConfig:
    """Ordered, duplicate-free set of suppressions."""

    def __init__(self, entries: Iterable[Suppression] = ()) -> None:
        self._entries: dict[Suppression, None] = {}
        for entry in entries:
            self.add(entry)

    def add(self, entry: Suppression) -> None:
        self._entries.setdefault(entry, None)

    def __iter__(self) -> Iterator[Suppression]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, entry: object) -> bool:
        return entry in self._entries

    def to_args(self) -> list[str]:
        return [entry.to_arg() for entry in self._entries]

    @classmethod
    def build(cls, config: GateConfig, tracked_sources: Iterable[str]) -> SuppressionConfig:
        """Fixed catalog plus one unmatched-suppression entry per tracked source.

        The per-file entries keep catalog keys that do not apply to a given
        file from raising a meta-warning about an unused suppression.
        """
        suppressions = cls(Suppression(key) for key in config.static_analysis.suppressions)
        for key, path in config.static_analysis.file_suppressions:
            suppressions.add(Suppression(key, path))
        for path in tracked_sources:
            suppressions.add(Suppression(UNMATCHED_SUPPRESSION, path))
        return suppressions


@dataclass(frozen=True)
class CompilerProfile:
    """Compiler family and language-standard macros of the active toolchain."""

    family: str  # "gcc" or "clang"
    major: int | None
    stdc_version: str | None = None
    cplusplus: str | None = None

    def defines(self) -> list[str]:
        flags: list[str] = []
        if self.family == "clang":
            flags.append("-D__clang__")
            if self.major is not None:
                flags.append(f"-D__clang_major__={self.major}")
        elif self.major is not None:
            flags.append(f"-D__GNUC__={self.major}")
        else:
            flags.append("-D__GNUC__")
        if self.stdc_version is not None:
            flags.append(f"-D__STDC_VERSION__={self.stdc_version}")
        return flags

    def standards(self) -> list[str]:
        flags: list[str] = []
        c_std = _standard_for(self.stdc_version, C_STANDARDS)
        if c_std:
            flags.append(f"--std={c_std}")
        cxx_std = _standard_for(self.cplusplus, CXX_STANDARDS)
        if cxx_std:
            flags.append(f"--std={cxx_std}")
        return flags


def _standard_for(macro: str | None, table: tuple[tuple[int, str], ...]) -> str | None:
    if macro is None:
        return None
    try:
        value = int(macro.rstrip("Ll"))
    except ValueError:
        return None
    for minimum, name in table:
        if value >= minimum:
            return name
    return None


def parse_macros(text: str) -> dict[str, str]:
    return {name: value for name, value in _DEFINE_RE.findall(text)}


def probe_compiler(ctx: StageContext, stage: str, compiler: ToolHandle) -> CompilerProfile:
    """Ask the compiler which family and standard versions it defaults to."""
    version = ctx.invoke(stage, compiler, ["--version"])
    if version.returncode != 0:
        raise StageExecutionError(stage, f"{compiler.name} --version failed: {version.output}", version)
    family = "clang" if "clang" in version.stdout.lower() else "gcc"

    c_macros = ctx.invoke(stage, compiler, ["-dM", "-E", "-x", "c", os.devnull])
    macros = parse_macros(c_macros.stdout) if c_macros.returncode == 0 else {}
    cxx_macros = ctx.invoke(stage, compiler, ["-dM", "-E", "-x", "c++", os.devnull])
    cxx = parse_macros(cxx_macros.stdout) if cxx_macros.returncode == 0 else {}

    major: int | None = None
    key = "__clang_major__" if family == "clang" else "__GNUC__"
    if key in macros:
        major = int(macros[key])
    else:
        parsed = parse_version(version.stdout)
        major = parsed[0] if parsed else None

    profile = CompilerProfile(
        family=family,
        major=major,
        stdc_version=macros.get("__STDC_VERSION__"),
        cplusplus=cxx.get("__cplusplus"),
    )
    logger.debug("compiler profile: %s", profile)
    return profile


class StaticAnalysisCheck(CheckStage):
    name = "static-analysis"
    policy = FailurePolicy.ACCUMULATE
    description = "static analysis of staged sources"

    def tool_requirements(self, config: GateConfig):
        return (ANALYZER, COMPILER)

    def build_argv(
        self,
        ctx: StageContext,
        profile: CompilerProfile,
        files: list[str],
    ) -> list[str]:
        analysis = ctx.config.static_analysis
        suppressions = SuppressionConfig.build(ctx.config, ctx.staged.tracked_sources)
        args = ["--error-exitcode=1", "--inline-suppr", "--quiet"]
        if analysis.enable:
            args.append(f"--enable={','.join(analysis.enable)}")
        args.extend(profile.defines())
        args.extend(profile.standards())
        args.extend(suppressions.to_args())
        args.extend(analysis.extra_args)
        args.extend(files)
        return args

    def run(self, ctx: StageContext) -> CheckResult:
        files = sorted(f.path for f in ctx.staged.sources(ctx.config.source_extensions) if not f.is_binary)
        if not files:
            return CheckResult.passed(self.name, "no staged source files")

        profile = probe_compiler(ctx, self.name, ctx.toolchain.tool(COMPILER.name))
        analyzer = ctx.toolchain.tool(ANALYZER.name)
        result = ctx.invoke(self.name, analyzer, self.build_argv(ctx, profile, files))
        if result.returncode < 0:
            raise StageExecutionError(self.name, f"{analyzer.name} terminated by signal {-result.returncode}", result)
        if result.returncode == 0:
            return CheckResult.passed(self.name, f"{len(files)} file(s) analyzed")
        messages = [f"{analyzer.name} reported problems (exit {result.returncode})"]
        if result.output:
            messages.append(result.output)
        return CheckResult.violation(
            self.name,
            messages,
            files,
            remediation=[f"{analyzer.name} --enable={','.join(ctx.config.static_analysis.enable)} {' '.join(files)}"],
        )
