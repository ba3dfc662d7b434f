"""Command runners for external tools invoked by the pipeline."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecResult:
    """Result envelope for subprocess execution."""

    argv: tuple[str, ...]
    cwd: Path
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        """Combined stdout/stderr, stripped, for diagnostics."""
        return "\n".join(part.strip() for part in (self.stdout, self.stderr) if part.strip())


class ExecError(RuntimeError):
    """Raised when a command returns non-zero in check mode."""

    def __init__(self, result: ExecResult):
        rendered = " ".join(result.argv)
        detail = (result.stderr or result.stdout).strip()
        super().__init__(f"command failed ({result.returncode}): {rendered}\n{detail}")
        self.result = result


class ExecTimeout(RuntimeError):
    """Raised when a command exceeds its timeout."""

    def __init__(self, argv: list[str], timeout: float):
        super().__init__(f"command timed out after {timeout:g}s: {' '.join(argv)}")
        self.argv = tuple(argv)
        self.timeout = timeout


def run_command(
    argv: list[str],
    *,
    cwd: Path,
    check: bool = True,
    timeout: float | None = None,
    input_text: str | None = None,
    stdout_path: Path | None = None,
) -> ExecResult:
    """Run command and return structured result.

    With ``stdout_path`` the command's stdout goes straight into that file,
    byte for byte, and ``ExecResult.stdout`` is empty.
    """
    logger.debug("exec: %s (cwd=%s)", " ".join(argv), cwd)
    try:
        if stdout_path is None:
            completed = subprocess.run(
                argv,
                cwd=cwd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
                timeout=timeout,
                input=input_text,
            )
        else:
            with open(stdout_path, "wb") as sink:
                completed = subprocess.run(
                    argv,
                    cwd=cwd,
                    stdout=sink,
                    stderr=subprocess.PIPE,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    check=False,
                    timeout=timeout,
                    input=input_text,
                )
    except subprocess.TimeoutExpired as exc:
        raise ExecTimeout(argv, timeout or 0.0) from exc
    result = ExecResult(
        argv=tuple(argv),
        cwd=cwd.resolve(),
        returncode=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
    )
    if check and result.returncode != 0:
        raise ExecError(result)
    return result


def run_git(
    args: list[str],
    *,
    repo_root: Path,
    check: bool = True,
    timeout: float | None = None,
) -> ExecResult:
    """Run git command rooted at repo."""
    return run_command(["git", *args], cwd=repo_root, check=check, timeout=timeout)


def run_git_bytes(args: list[str], *, repo_root: Path, timeout: float | None = None) -> bytes:
    """Run git command and return raw stdout bytes (for blobs and -z output).

    Raises:
        ExecError: On a non-zero exit.
        ExecTimeout: If git does not finish within ``timeout`` seconds.
    """
    argv = ["git", *args]
    logger.debug("exec: %s (cwd=%s)", " ".join(argv), repo_root)
    try:
        completed = subprocess.run(
            argv,
            cwd=repo_root,
            capture_output=True,
            check=False,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise ExecTimeout(argv, timeout or 0.0) from exc
    if completed.returncode != 0:
        raise ExecError(
            ExecResult(
                argv=tuple(argv),
                cwd=repo_root.resolve(),
                returncode=completed.returncode,
                stdout=completed.stdout.decode("utf-8", errors="replace"),
                stderr=completed.stderr.decode("utf-8", errors="replace"),
            )
        )
    return completed.stdout
