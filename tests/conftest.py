"""Pytest configuration and fixtures for stagegate tests."""
import stat
import subprocess
from pathlib import Path
from types import MappingProxyType

import pytest

from stagegate.checks.base import StageContext
from stagegate.config import GateConfig
from stagegate.probe import ToolHandle, Toolchain
from stagegate.staging import (
    AddedLine,
    ChangeKind,
    StagedFile,
    StagedFileSet,
    file_extension,
    is_binary_content,
)


def pytest_sessionfinish(session, exitstatus):
    """Check that coverage data was collected if --cov was requested.

    This prevents silent "no data collected" scenarios that produce 0% coverage
    without failing the test run.
    """
    cov_enabled = any("--cov" in str(arg) for arg in session.config.args)
    if not cov_enabled:
        return

    coverage_files = list(Path.cwd().glob(".coverage*"))
    if not coverage_files:
        pytest.exit(
            "Coverage was enabled but no data was collected. "
            "Check that tests import from 'stagegate' (the package) not 'src/stagegate' (filesystem path).",
            returncode=1,
        )


def _git(repo: Path, *args: str) -> None:
    subprocess.run(["git", *args], cwd=repo, check=True, capture_output=True)


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Create a temporary git repository with one commit."""
    repo = tmp_path / "repo"
    repo.mkdir()

    _git(repo, "init")
    _git(repo, "config", "user.email", "test@example.com")
    _git(repo, "config", "user.name", "Test User")
    _git(repo, "config", "core.autocrlf", "false")

    (repo / "README.md").write_text("# Test Repo\n")
    _git(repo, "add", "README.md")
    _git(repo, "commit", "-m", "Initial commit")

    return repo


@pytest.fixture
def stage_file():
    """Write a file into a repo and stage it."""

    def _stage(repo: Path, path: str, content: str | bytes) -> Path:
        target = repo / path
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            target.write_bytes(content)
        else:
            target.write_bytes(content.encode("utf-8"))
        _git(repo, "add", "--", path)
        return target

    return _stage


@pytest.fixture
def make_config():
    """Build a validated GateConfig from overrides."""

    def _make(**overrides) -> GateConfig:
        return GateConfig.from_dict(overrides)

    return _make


@pytest.fixture
def staged_set(tmp_path: Path):
    """Build an in-memory StagedFileSet; every line of a file counts as added."""

    def _build(
        files: dict[str, str | bytes],
        *,
        kinds: dict[str, ChangeKind] | None = None,
        tracked: tuple[str, ...] = (),
        repo_root: Path | None = None,
    ) -> StagedFileSet:
        kinds = kinds or {}
        blobs: dict[str, bytes] = {}
        added: dict[str, tuple[AddedLine, ...]] = {}
        entries: list[StagedFile] = []
        for path, content in files.items():
            data = content if isinstance(content, bytes) else content.encode("utf-8")
            blobs[path] = data
            binary = is_binary_content(data)
            lines = () if binary else tuple(
                AddedLine(line_no=n, text=text)
                for n, text in enumerate(data.decode("utf-8", errors="replace").splitlines(), 1)
            )
            added[path] = lines
            entries.append(
                StagedFile(
                    path=path,
                    change_kind=kinds.get(path, ChangeKind.ADDED),
                    is_binary=binary,
                    extension=file_extension(path),
                    insertions=None if binary else len(lines),
                    deletions=None if binary else 0,
                )
            )
        return StagedFileSet(
            repo_root=repo_root or tmp_path,
            files=tuple(entries),
            tracked_sources=tracked,
            blobs=MappingProxyType(blobs),
            added_lines=MappingProxyType(added),
        )

    return _build


@pytest.fixture
def fake_tool(tmp_path: Path):
    """Create an executable shell script and return a handle to it."""
    bin_dir = tmp_path / "fakebin"

    def _make(name: str, body: str, *, executable: str | None = None, degraded: bool = False) -> ToolHandle:
        bin_dir.mkdir(exist_ok=True)
        script = bin_dir / name
        script.write_text(f"#!/bin/sh\n{body}\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return ToolHandle(name=name, path=script, executable=executable or name, degraded=degraded)

    _make.bin_dir = bin_dir
    return _make


@pytest.fixture
def make_context():
    """Bundle a staged snapshot, handles and config into a StageContext."""

    def _make(
        staged: StagedFileSet,
        config: GateConfig,
        *,
        tools: dict[str, ToolHandle] | None = None,
        resources: dict[str, Path] | None = None,
    ) -> StageContext:
        toolchain = Toolchain(
            tools=MappingProxyType(dict(tools or {})),
            resources=MappingProxyType(dict(resources or {})),
        )
        return StageContext(staged=staged, toolchain=toolchain, config=config)

    return _make

