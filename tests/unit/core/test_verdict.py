"""Tests for check results, the verdict accumulator and exit codes."""

import pytest

from stagegate.types import (
    EXIT_ACCEPTED,
    EXIT_ERROR,
    EXIT_VIOLATION,
    CheckResult,
    CheckStatus,
    VerdictAccumulator,
    VerdictStatus,
)


def test_all_passing_results_are_accepted():
    acc = VerdictAccumulator()
    acc.record(CheckResult.passed("a"))
    acc.record(CheckResult.passed("b", "2 file(s) scanned"))

    verdict = acc.finalize()

    assert verdict.status is VerdictStatus.ACCEPTED
    assert verdict.accepted
    assert verdict.exit_code == EXIT_ACCEPTED
    assert [r.stage for r in verdict.results] == ["a", "b"]


def test_single_violation_rejects_with_violation_exit_code():
    acc = VerdictAccumulator()
    acc.record(CheckResult.passed("a"))
    acc.record(CheckResult.violation("b", ["bad"], ["x.c"]))

    verdict = acc.finalize()

    assert verdict.status is VerdictStatus.REJECTED
    assert verdict.exit_code == EXIT_VIOLATION
    assert verdict.result_for("b").affected_files == frozenset({"x.c"})


def test_any_error_rejects_with_error_exit_code():
    acc = VerdictAccumulator()
    acc.record(CheckResult.violation("a", ["bad"]))
    acc.record(CheckResult.error("b", "tool crashed"))

    verdict = acc.finalize()

    assert not verdict.accepted
    assert verdict.exit_code == EXIT_ERROR


def test_environment_abort_rejects_even_without_results():
    acc = VerdictAccumulator()
    acc.abort("tool-probe", environment_error="cppcheck missing", remediation="install cppcheck")

    verdict = acc.finalize()

    assert verdict.status is VerdictStatus.REJECTED
    assert verdict.results == ()
    assert verdict.aborted_by == "tool-probe"
    assert verdict.remediation == ("install cppcheck",)
    assert verdict.exit_code == EXIT_ERROR


def test_duplicate_stage_is_rejected():
    acc = VerdictAccumulator()
    acc.record(CheckResult.passed("a"))
    with pytest.raises(ValueError, match="already recorded"):
        acc.record(CheckResult.passed("a"))


def test_record_after_finalize_fails():
    acc = VerdictAccumulator()
    acc.finalize()
    with pytest.raises(RuntimeError):
        acc.record(CheckResult.passed("a"))


def test_check_result_is_immutable():
    result = CheckResult.passed("a")
    with pytest.raises(AttributeError):
        result.status = CheckStatus.ERROR  # type: ignore[misc]


def test_verdict_to_dict_is_serializable_shape():
    acc = VerdictAccumulator()
    acc.record(CheckResult.violation("b", ["m2"], ["z.c", "a.c"], ["fix it"]))
    data = acc.finalize().to_dict()

    assert data["status"] == "rejected"
    assert data["exit_code"] == EXIT_VIOLATION
    assert data["results"][0]["affected_files"] == ["a.c", "z.c"]
    assert data["results"][0]["remediation"] == ["fix it"]
