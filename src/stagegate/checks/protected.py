"""Integrity of protected files against a sha256sum-style manifest."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from pathlib import Path

from stagegate.checks.base import CheckStage, StageContext, read_resource_text
from stagegate.config import GateConfig
from stagegate.errors import REASON_MANIFEST_INVALID, GateEnvironmentError
from stagegate.probe import ResourceRequirement
from stagegate.types import CheckResult, FailurePolicy

_MANIFEST_LINE_RE = re.compile(r"^(?P<digest>[0-9a-fA-F]{64}) [ *](?P<path>.+)$")

PROTECTION_POLICY = (
    "Protected files define interfaces the grading test harness depends on "
    "and must not be modified."
)


@dataclass(frozen=True)
class ManifestEntry:
    digest: str
    path: str


def parse_manifest(text: str, source: str = "manifest") -> list[ManifestEntry]:
    """Parse ``sha256sum`` output format.

    Raises:
        GateEnvironmentError: On a malformed line.
    """
    entries: list[ManifestEntry] = []
    for line_no, line in enumerate(text.splitlines(), 1):
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        match = _MANIFEST_LINE_RE.match(line)
        if not match:
            raise GateEnvironmentError(
                f"{source}:{line_no}: malformed manifest line: {line!r}",
                REASON_MANIFEST_INVALID,
                "Restore the manifest from the main branch.",
            )
        entries.append(ManifestEntry(digest=match.group("digest").lower(), path=match.group("path")))
    return entries


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def verify_manifest(repo_root: Path, entries: list[ManifestEntry]) -> list[tuple[str, str]]:
    """Return (path, reason) for every entry that does not verify."""
    failures: list[tuple[str, str]] = []
    for entry in entries:
        target = repo_root / entry.path
        if not target.is_file():
            failures.append((entry.path, "missing"))
            continue
        if sha256_file(target) != entry.digest:
            failures.append((entry.path, "checksum mismatch"))
    return failures


class ProtectedFileCheck(CheckStage):
    name = "protected-files"
    policy = FailurePolicy.ABORT
    description = "protected file checksums"

    def resource_requirements(self, config: GateConfig):
        return (
            ResourceRequirement(
                name="protected-manifest",
                path=config.protected_manifest,
                remediation=f"Restore {config.protected_manifest} from the main branch.",
            ),
        )

    def run(self, ctx: StageContext) -> CheckResult:
        manifest_path = ctx.toolchain.resource("protected-manifest")
        rel = ctx.config.protected_manifest
        text = read_resource_text(
            manifest_path, rel, REASON_MANIFEST_INVALID, f"Restore {rel} from the main branch."
        )
        entries = parse_manifest(text, rel)
        failures = verify_manifest(ctx.repo_root, entries)
        if not failures:
            return CheckResult.passed(self.name, f"{len(entries)} protected file(s) intact")

        paths = [path for path, _ in failures]
        messages = [f"{path}: {reason}" for path, reason in failures]
        messages.append(PROTECTION_POLICY)
        return CheckResult.violation(
            self.name,
            messages,
            paths,
            remediation=[f"git checkout HEAD -- {' '.join(paths)} && git add {' '.join(paths)}"],
        )
