"""Snapshot of the git staging area for one pipeline run.

The snapshot is captured exactly once. Every stage reads the same
``StagedFileSet``; subsets are derived by filtering, never by asking git
again, so uncommitted working-tree edits and concurrent ``git add`` calls
cannot change what the checks see mid-run.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from fnmatch import fnmatch
from pathlib import Path, PurePosixPath
from types import MappingProxyType

from stagegate.errors import REASON_STAGING_UNREADABLE, GateEnvironmentError
from stagegate.exec import ExecError, ExecTimeout, run_git, run_git_bytes

logger = logging.getLogger(__name__)

# Same window git itself inspects when deciding whether a blob is binary.
SNIFF_BYTES = 8000
CONTROL_RATIO_LIMIT = 0.30

_HUNK_RE = re.compile(r"^@@ -\d+(?:,\d+)? \+(\d+)(?:,\d+)? @@")
_TEXT_CONTROL = {0x08, 0x09, 0x0A, 0x0C, 0x0D, 0x1B}


class ChangeKind(str, Enum):
    """Staged change kinds the pipeline looks at."""

    ADDED = "A"
    COPIED = "C"
    MODIFIED = "M"
    RENAMED = "R"


GENERAL_KINDS = frozenset({ChangeKind.ADDED, ChangeKind.COPIED, ChangeKind.MODIFIED})
SOURCE_KINDS = GENERAL_KINDS | {ChangeKind.RENAMED}


@dataclass(frozen=True)
class AddedLine:
    """One line added by the staged diff."""

    line_no: int
    text: str


@dataclass(frozen=True)
class StagedFile:
    """A file proposed for commit. Identity is the path."""

    path: str
    change_kind: ChangeKind
    is_binary: bool
    extension: str
    insertions: int | None = None
    deletions: int | None = None

    @property
    def is_ascii_path(self) -> bool:
        return self.path.isascii()


@dataclass(frozen=True)
class StagedFileSet:
    """Ordered, path-deduplicated snapshot of the staging area."""

    repo_root: Path
    files: tuple[StagedFile, ...]
    tracked_sources: tuple[str, ...] = ()
    blobs: Mapping[str, bytes] = field(default_factory=lambda: MappingProxyType({}))
    added_lines: Mapping[str, tuple[AddedLine, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __iter__(self):
        return iter(self.files)

    def __len__(self) -> int:
        return len(self.files)

    def general(self) -> list[StagedFile]:
        """Files staged as added, copied, or modified."""
        return [f for f in self.files if f.change_kind in GENERAL_KINDS]

    def sources(self, extensions: Iterable[str]) -> list[StagedFile]:
        """Source files (renames included) filtered by extension."""
        wanted = {ext.lower() for ext in extensions}
        return [f for f in self.files if f.change_kind in SOURCE_KINDS and f.extension in wanted]

    def added(self) -> list[StagedFile]:
        return [f for f in self.files if f.change_kind is ChangeKind.ADDED]

    def matching(self, patterns: Iterable[str]) -> list[StagedFile]:
        globs = list(patterns)
        return [f for f in self.files if any(fnmatch(f.path, g) for g in globs)]

    def blob(self, path: str) -> bytes:
        return self.blobs.get(path, b"")

    def text(self, path: str) -> str:
        return self.blob(path).decode("utf-8", errors="replace")


@dataclass(frozen=True)
class ChangeSummary:
    """Insertions and deletions per staged file."""

    entries: tuple[tuple[str, int | None, int | None], ...]

    @classmethod
    def from_files(cls, files: Iterable[StagedFile]) -> ChangeSummary:
        return cls(entries=tuple((f.path, f.insertions, f.deletions) for f in files))

    @property
    def files_changed(self) -> int:
        return len(self.entries)

    @property
    def insertions(self) -> int:
        return sum(ins or 0 for _, ins, _ in self.entries)

    @property
    def deletions(self) -> int:
        return sum(dels or 0 for _, _, dels in self.entries)

    def totals_line(self) -> str:
        return (
            f"{self.files_changed} files changed, "
            f"{self.insertions} insertions(+), {self.deletions} deletions(-)"
        )


def is_binary_content(data: bytes) -> bool:
    """Classify content as binary by sniffing it, never by file name."""
    head = data[:SNIFF_BYTES]
    if not head:
        return False
    if b"\x00" in head:
        return True
    try:
        head.decode("utf-8")
        return False
    except UnicodeDecodeError as exc:
        # A multi-byte sequence cut at the sniff boundary is still text.
        if exc.start >= len(head) - 3 and len(data) > SNIFF_BYTES:
            return False
    control = sum(1 for b in head if b < 0x20 and b not in _TEXT_CONTROL)
    return control / len(head) > CONTROL_RATIO_LIMIT


def file_extension(path: str) -> str:
    return PurePosixPath(path).suffix.lower()


def resolve_repo_root(start: Path | None = None) -> Path:
    """Resolve git repo root from cwd or explicit path."""
    probe = (start or Path.cwd()).resolve()
    try:
        out = run_git(["rev-parse", "--show-toplevel"], repo_root=probe)
    except (ExecError, OSError) as exc:
        raise GateEnvironmentError(
            f"unable to resolve git repo root from {probe}: {exc}",
            REASON_STAGING_UNREADABLE,
            "Run stagegate from inside a git working tree.",
        ) from exc
    root = out.stdout.strip()
    if not root:
        raise GateEnvironmentError(
            f"unable to resolve git repo root from {probe}: empty output",
            REASON_STAGING_UNREADABLE,
        )
    return Path(root).resolve()


def parse_name_status(raw: bytes) -> list[tuple[ChangeKind, str]]:
    """Parse ``git diff --name-status -z`` output into (kind, path) pairs.

    Renames and copies carry two paths; the destination is kept.
    """
    tokens = [t.decode("utf-8", errors="surrogateescape") for t in raw.split(b"\x00")]
    entries: list[tuple[ChangeKind, str]] = []
    i = 0
    while i < len(tokens):
        status = tokens[i]
        if not status:
            i += 1
            continue
        letter = status[0]
        if letter in ("R", "C"):
            path = tokens[i + 2]
            i += 3
        else:
            path = tokens[i + 1]
            i += 2
        try:
            kind = ChangeKind(letter)
        except ValueError:
            logger.debug("ignoring staged entry with status %s: %s", status, path)
            continue
        entries.append((kind, path))
    return entries


def parse_numstat(raw: bytes) -> dict[str, tuple[int | None, int | None]]:
    """Parse ``git diff --numstat -z`` output. Binary files map to (None, None)."""
    tokens = [t.decode("utf-8", errors="surrogateescape") for t in raw.split(b"\x00")]
    stats: dict[str, tuple[int | None, int | None]] = {}
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if not token:
            i += 1
            continue
        ins_raw, dels_raw, path = token.split("\t", 2)
        if path:
            i += 1
        else:
            # rename: "<ins>\t<del>\t\0<old>\0<new>\0"
            path = tokens[i + 2]
            i += 3
        ins = None if ins_raw == "-" else int(ins_raw)
        dels = None if dels_raw == "-" else int(dels_raw)
        stats[path] = (ins, dels)
    return stats


def parse_added_lines(diff_text: str) -> dict[str, tuple[AddedLine, ...]]:
    """Extract added lines per destination path from a ``-U0`` unified diff."""
    added: dict[str, list[AddedLine]] = {}
    current: str | None = None
    in_header = False
    line_no = 0
    for line in diff_text.splitlines():
        if line.startswith("diff --git "):
            current = None
            in_header = True
            continue
        if in_header:
            if line.startswith("+++ "):
                target = line[4:]
                current = None if target == "/dev/null" else target.removeprefix("b/")
                if current is not None:
                    added.setdefault(current, [])
            match = _HUNK_RE.match(line)
            if match:
                in_header = False
                line_no = int(match.group(1))
            continue
        match = _HUNK_RE.match(line)
        if match:
            line_no = int(match.group(1))
            continue
        if current is None:
            continue
        if line.startswith("+"):
            added[current].append(AddedLine(line_no=line_no, text=line[1:]))
            line_no += 1
    return {path: tuple(lines) for path, lines in added.items()}


def capture_staged_files(
    repo_root: Path,
    source_extensions: Iterable[str] = (),
    *,
    timeout: float | None = None,
) -> StagedFileSet:
    """Capture the staging area once.

    Each git call is bounded by ``timeout`` seconds.

    Raises:
        GateEnvironmentError: If the staging area cannot be read.
    """
    extensions = {ext.lower() for ext in source_extensions}
    try:
        name_status = run_git_bytes(
            ["diff", "--cached", "--name-status", "-z", "--diff-filter=ACMR"],
            repo_root=repo_root,
            timeout=timeout,
        )
        numstat = run_git_bytes(
            ["diff", "--cached", "--numstat", "-z", "--diff-filter=ACMR"],
            repo_root=repo_root,
            timeout=timeout,
        )
        diff_raw = run_git_bytes(
            [
                "-c",
                "core.quotepath=off",
                "diff",
                "--cached",
                "-U0",
                "--no-color",
                "--no-ext-diff",
                "--diff-filter=ACMR",
            ],
            repo_root=repo_root,
            timeout=timeout,
        )
        tracked_raw = run_git_bytes(["ls-files", "-z"], repo_root=repo_root, timeout=timeout)

        seen: set[str] = set()
        entries: list[tuple[ChangeKind, str]] = []
        for kind, path in parse_name_status(name_status):
            if path in seen:
                continue
            seen.add(path)
            entries.append((kind, path))

        blobs: dict[str, bytes] = {}
        for _, path in entries:
            blobs[path] = run_git_bytes(
                ["cat-file", "blob", f":{path}"], repo_root=repo_root, timeout=timeout
            )
    except (ExecError, ExecTimeout, OSError) as exc:
        raise GateEnvironmentError(
            f"unable to read the staging area: {exc}",
            REASON_STAGING_UNREADABLE,
            "Check that git is installed and the index is not locked (.git/index.lock).",
        ) from exc

    stats = parse_numstat(numstat)
    files = tuple(
        StagedFile(
            path=path,
            change_kind=kind,
            is_binary=is_binary_content(blobs[path]),
            extension=file_extension(path),
            insertions=stats.get(path, (None, None))[0],
            deletions=stats.get(path, (None, None))[1],
        )
        for kind, path in entries
    )
    tracked = tuple(
        sorted(
            p
            for p in (t.decode("utf-8", errors="surrogateescape") for t in tracked_raw.split(b"\x00"))
            if p and file_extension(p) in extensions
        )
    )
    added_lines = parse_added_lines(diff_raw.decode("utf-8", errors="replace"))
    logger.debug("captured %d staged file(s), %d tracked source(s)", len(files), len(tracked))
    return StagedFileSet(
        repo_root=repo_root,
        files=files,
        tracked_sources=tracked,
        blobs=MappingProxyType(blobs),
        added_lines=MappingProxyType(added_lines),
    )
