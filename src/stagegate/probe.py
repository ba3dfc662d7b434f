"""Resolve required external tools and resources before any check runs.

Stages declare what they need; the probe turns those declarations into typed
handles once, up front. Stages then depend only on the resolved handles and
never look tools up themselves.
"""

from __future__ import annotations

import logging
import re
import shutil
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

from stagegate.errors import (
    REASON_RESOURCE_INVALID,
    REASON_RESOURCE_MISSING,
    REASON_TOOL_MISSING,
    REASON_TOOL_VERSION,
    GateEnvironmentError,
)
from stagegate.exec import ExecTimeout, run_command

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"(\d+)\.(\d+)")

VersionPredicate = Callable[[int, int], bool]


@dataclass(frozen=True)
class ToolRequirement:
    """An executable a stage needs.

    ``candidates`` are tried in order; the first is the preferred tool and
    any later one is a silent fallback.
    """

    name: str
    candidates: tuple[str, ...]
    remediation: str = ""
    version_check: str | None = None
    mandatory: bool = True

    @property
    def presence_only(self) -> bool:
        return self.version_check is None


@dataclass(frozen=True)
class ResourceRequirement:
    """A repository file a stage needs, with an optional first-line constraint."""

    name: str
    path: str
    remediation: str = ""
    header_prefix: str | None = None


@dataclass(frozen=True)
class ToolHandle:
    """Absolute invocation path for a resolved tool."""

    name: str
    path: Path
    executable: str
    version: str | None = None
    degraded: bool = False

    def argv(self, *args: str) -> list[str]:
        return [str(self.path), *args]


@dataclass(frozen=True)
class Toolchain:
    """Everything the probe resolved for one run."""

    tools: Mapping[str, ToolHandle] = field(default_factory=lambda: MappingProxyType({}))
    resources: Mapping[str, Path] = field(default_factory=lambda: MappingProxyType({}))

    def tool(self, name: str) -> ToolHandle:
        try:
            return self.tools[name]
        except KeyError:
            raise KeyError(f"tool {name!r} was not resolved by the probe") from None

    def has_tool(self, name: str) -> bool:
        return name in self.tools

    def resource(self, name: str) -> Path:
        try:
            return self.resources[name]
        except KeyError:
            raise KeyError(f"resource {name!r} was not resolved by the probe") from None


def cppcheck_version_ok(major: int, minor: int) -> bool:
    """Any 2.x or later; 1.x needs minor >= 90."""
    if major >= 2:
        return True
    return major == 1 and minor >= 90


VERSION_PREDICATES: dict[str, VersionPredicate] = {
    "cppcheck": cppcheck_version_ok,
}

VERSION_REQUIREMENT_TEXT: dict[str, str] = {
    "cppcheck": "2.x, or 1.x with minor version >= 90",
}


def register_version_predicate(key: str, predicate: VersionPredicate, description: str = "") -> None:
    """Register a per-tool version rule."""
    VERSION_PREDICATES[key] = predicate
    if description:
        VERSION_REQUIREMENT_TEXT[key] = description


def parse_version(text: str) -> tuple[int, int] | None:
    match = _VERSION_RE.search(text)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


class ToolProbe:
    """Resolve tool and resource requirements, failing fast on the first gap."""

    def __init__(
        self,
        repo_root: Path,
        *,
        which: Callable[[str], str | None] = shutil.which,
        timeout: float | None = None,
    ) -> None:
        self.repo_root = repo_root
        self._which = which
        self._timeout = timeout

    def resolve(
        self,
        tools: Iterable[ToolRequirement],
        resources: Iterable[ResourceRequirement] = (),
    ) -> Toolchain:
        """Resolve requirements in order.

        Raises:
            GateEnvironmentError: On the first unresolved mandatory requirement.
        """
        handles: dict[str, ToolHandle] = {}
        for requirement in _unique(tools):
            handle = self.resolve_tool(requirement)
            if handle is not None:
                handles[requirement.name] = handle

        paths: dict[str, Path] = {}
        for requirement in _unique(resources):
            paths[requirement.name] = self.resolve_resource(requirement)

        return Toolchain(tools=MappingProxyType(handles), resources=MappingProxyType(paths))

    def resolve_tool(self, requirement: ToolRequirement) -> ToolHandle | None:
        for index, candidate in enumerate(requirement.candidates):
            found = self._which(candidate)
            if not found:
                continue
            degraded = index > 0
            if degraded:
                logger.debug(
                    "%s: preferred %s not found, falling back to %s",
                    requirement.name,
                    requirement.candidates[0],
                    candidate,
                )
            version = None
            if requirement.version_check is not None:
                version = self._check_version(requirement, Path(found))
            return ToolHandle(
                name=requirement.name,
                path=Path(found).resolve(),
                executable=candidate,
                version=version,
                degraded=degraded,
            )

        if not requirement.mandatory:
            logger.debug("optional tool %s not found; skipping", requirement.name)
            return None
        tried = ", ".join(requirement.candidates)
        raise GateEnvironmentError(
            f"required tool '{requirement.name}' not found on PATH (tried: {tried})",
            REASON_TOOL_MISSING,
            requirement.remediation,
        )

    def _check_version(self, requirement: ToolRequirement, path: Path) -> str:
        key = requirement.version_check or requirement.name
        predicate = VERSION_PREDICATES.get(key)
        if predicate is None:
            raise KeyError(f"no version predicate registered for {key!r}")
        try:
            result = run_command([str(path), "--version"], cwd=self.repo_root, check=False, timeout=self._timeout)
        except (OSError, ExecTimeout) as exc:
            raise GateEnvironmentError(
                f"unable to query version of '{requirement.name}': {exc}",
                REASON_TOOL_VERSION,
                requirement.remediation,
            ) from exc
        text = result.stdout or result.stderr
        parsed = parse_version(text)
        wanted = VERSION_REQUIREMENT_TEXT.get(key, "a supported version")
        if parsed is None:
            raise GateEnvironmentError(
                f"could not determine version of '{requirement.name}' from: {text.strip()!r}",
                REASON_TOOL_VERSION,
                requirement.remediation,
            )
        major, minor = parsed
        if not predicate(major, minor):
            raise GateEnvironmentError(
                f"'{requirement.name}' version {major}.{minor} is not supported (need {wanted})",
                REASON_TOOL_VERSION,
                requirement.remediation,
            )
        return f"{major}.{minor}"

    def resolve_resource(self, requirement: ResourceRequirement) -> Path:
        path = self.repo_root / requirement.path
        if not path.is_file():
            raise GateEnvironmentError(
                f"required {requirement.name} not found: {requirement.path}",
                REASON_RESOURCE_MISSING,
                requirement.remediation,
            )
        if requirement.header_prefix is not None:
            with open(path, encoding="utf-8", errors="replace") as f:
                first = f.readline().rstrip("\n")
            if not first.startswith(requirement.header_prefix):
                raise GateEnvironmentError(
                    f"{requirement.name} {requirement.path} must start with a "
                    f"'{requirement.header_prefix}' header line, found {first!r}",
                    REASON_RESOURCE_INVALID,
                    requirement.remediation,
                )
        return path


def _unique(requirements):
    """Deduplicate by name, first declaration wins."""
    seen: set[str] = set()
    for requirement in requirements:
        if requirement.name in seen:
            continue
        seen.add(requirement.name)
        yield requirement
