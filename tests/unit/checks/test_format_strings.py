"""Tests for the format-string scanner stage."""

import stat
from pathlib import Path

import pytest

from stagegate.checks.format_strings import MAKE, FormatStringCheck
from stagegate.errors import REASON_SCANNER_BUILD, GateEnvironmentError, StageExecutionError
from stagegate.types import CheckStatus, FailurePolicy

SCANNER = "tools/fmtscan/fmtscan"


def _install_scanner(repo: Path, body: str) -> Path:
    scanner = repo / SCANNER
    scanner.parent.mkdir(parents=True, exist_ok=True)
    scanner.write_text(f"#!/bin/sh\n{body}\n")
    scanner.chmod(scanner.stat().st_mode | stat.S_IXUSR)
    return scanner


def _linux() -> str:
    return "Linux"


def test_skipped_on_excluded_platform(staged_set, make_config, make_context):
    ctx = make_context(staged_set({"a.c": "int a;\n"}), make_config())

    result = FormatStringCheck(system=lambda: "Darwin").run(ctx)

    assert result.ok
    assert result.skipped
    assert FormatStringCheck.policy is FailurePolicy.ABORT


def test_clean_scan_passes(tmp_path, staged_set, make_config, make_context):
    _install_scanner(tmp_path, "exit 0")
    ctx = make_context(staged_set({"a.c": "int a;\n"}), make_config())

    result = FormatStringCheck(system=_linux).run(ctx)

    assert result.status is CheckStatus.PASS
    assert not result.skipped


def test_scanner_findings_are_violation(tmp_path, staged_set, make_config, make_context):
    _install_scanner(tmp_path, 'echo "$1:3: format string is not a literal"\nexit 1')
    ctx = make_context(staged_set({"a.c": 'printf(msg);\n'}), make_config())

    result = FormatStringCheck(system=_linux).run(ctx)

    assert result.status is CheckStatus.VIOLATION
    assert result.messages == ("a.c:3: format string is not a literal",)


def test_scanner_killed_by_signal_is_execution_error(tmp_path, staged_set, make_config, make_context):
    _install_scanner(tmp_path, "kill -KILL $$")
    ctx = make_context(staged_set({"a.c": "int a;\n"}), make_config())

    with pytest.raises(StageExecutionError, match="signal"):
        FormatStringCheck(system=_linux).run(ctx)


def test_missing_scanner_is_built_with_resolved_make(tmp_path, fake_tool, staged_set, make_config, make_context):
    make = fake_tool(
        "make",
        f"mkdir -p tools/fmtscan\nprintf '#!/bin/sh\\nexit 0\\n' > {SCANNER}\nchmod +x {SCANNER}",
    )
    ctx = make_context(staged_set({"a.c": "int a;\n"}), make_config(), tools={MAKE.name: make})

    result = FormatStringCheck(system=_linux).run(ctx)

    assert result.ok
    assert (tmp_path / SCANNER).is_file()


def test_missing_scanner_without_make_is_environment_error(staged_set, make_config, make_context):
    ctx = make_context(staged_set({"a.c": "int a;\n"}), make_config())

    with pytest.raises(GateEnvironmentError) as excinfo:
        FormatStringCheck(system=_linux).run(ctx)

    assert excinfo.value.reason_code == REASON_SCANNER_BUILD


def test_failed_build_is_environment_error(fake_tool, staged_set, make_config, make_context):
    make = fake_tool("make", "echo 'no rule to make target' >&2\nexit 2")
    ctx = make_context(staged_set({"a.c": "int a;\n"}), make_config(), tools={MAKE.name: make})

    with pytest.raises(GateEnvironmentError, match="no rule"):
        FormatStringCheck(system=_linux).run(ctx)


def test_make_is_only_required_with_a_build_command(make_config):
    check = FormatStringCheck(system=_linux)
    assert check.tool_requirements(make_config()) == (MAKE,)
    assert check.tool_requirements(make_config(format_scanner={"build": []})) == ()
