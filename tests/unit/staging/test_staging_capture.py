"""Tests for capturing the staging area from a real git repository."""

import os
import subprocess
from pathlib import Path

import pytest

from stagegate.errors import REASON_STAGING_UNREADABLE, GateEnvironmentError
from stagegate.staging import ChangeKind, capture_staged_files, resolve_repo_root


def test_capture_reads_staged_content_not_working_tree(git_repo: Path, stage_file):
    stage_file(git_repo, "src/a.c", "int a;\n")
    (git_repo / "src" / "a.c").write_text("int a; /* unstaged edit */\n")

    staged = capture_staged_files(git_repo, [".c"])

    assert [f.path for f in staged] == ["src/a.c"]
    assert staged.blob("src/a.c") == b"int a;\n"
    assert staged.files[0].change_kind is ChangeKind.ADDED
    assert staged.files[0].insertions == 1


def test_capture_classifies_kinds_and_subsets(git_repo: Path, stage_file):
    stage_file(git_repo, "keep.c", "int k;\n")
    stage_file(git_repo, "old.c", "int o;\nint p;\nint q;\n")
    subprocess.run(["git", "commit", "-m", "base"], cwd=git_repo, check=True, capture_output=True)

    stage_file(git_repo, "keep.c", "int k;\nint k2;\n")
    subprocess.run(["git", "mv", "old.c", "new.c"], cwd=git_repo, check=True, capture_output=True)
    stage_file(git_repo, "notes.txt", "hello\n")
    stage_file(git_repo, "logo.png", b"\x89PNG\r\n\x1a\n\x00\x00")

    staged = capture_staged_files(git_repo, [".c"])
    kinds = {f.path: f.change_kind for f in staged}

    assert kinds["keep.c"] is ChangeKind.MODIFIED
    assert kinds["new.c"] is ChangeKind.RENAMED
    assert kinds["notes.txt"] is ChangeKind.ADDED
    assert {f.path for f in staged.general()} == {"keep.c", "notes.txt", "logo.png"}
    assert {f.path for f in staged.sources([".c"])} == {"keep.c", "new.c"}
    assert {f.path for f in staged.added()} == {"notes.txt", "logo.png"}
    assert [f.path for f in staged if f.is_binary] == ["logo.png"]
    assert "new.c" in staged.tracked_sources
    assert "keep.c" in staged.tracked_sources


def test_capture_records_added_line_numbers(git_repo: Path, stage_file):
    stage_file(git_repo, "a.c", "one\ntwo\nthree\n")
    subprocess.run(["git", "commit", "-m", "base"], cwd=git_repo, check=True, capture_output=True)
    stage_file(git_repo, "a.c", "one\ntwo\ninserted\nthree\n")

    staged = capture_staged_files(git_repo, [".c"])

    assert [(a.line_no, a.text) for a in staged.added_lines["a.c"]] == [(3, "inserted")]


def test_capture_keeps_non_ascii_paths_unquoted(git_repo: Path, stage_file):
    stage_file(git_repo, "café.c", "int c;\n")

    staged = capture_staged_files(git_repo, [".c"])

    assert [f.path for f in staged] == ["café.c"]
    assert not staged.files[0].is_ascii_path
    assert "café.c" in staged.added_lines


def test_capture_outside_repo_is_environment_error(tmp_path: Path):
    with pytest.raises(GateEnvironmentError) as excinfo:
        capture_staged_files(tmp_path)
    assert excinfo.value.reason_code == REASON_STAGING_UNREADABLE


def test_resolve_repo_root_from_subdirectory(git_repo: Path):
    sub = git_repo / "a" / "b"
    sub.mkdir(parents=True)
    assert resolve_repo_root(sub) == git_repo.resolve()


def test_resolve_repo_root_outside_repo(tmp_path: Path):
    with pytest.raises(GateEnvironmentError):
        resolve_repo_root(tmp_path)


def test_capture_timeout_is_environment_error(tmp_path: Path, monkeypatch):
    bin_dir = tmp_path / "slowbin"
    bin_dir.mkdir()
    git = bin_dir / "git"
    git.write_text("#!/bin/sh\nexec sleep 5\n")
    git.chmod(0o755)
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")

    with pytest.raises(GateEnvironmentError, match="timed out") as excinfo:
        capture_staged_files(tmp_path, [".c"], timeout=0.2)
    assert excinfo.value.reason_code == REASON_STAGING_UNREADABLE
