import json

from queryprobe.core.comparator import FieldDiff, LengthDiff
from queryprobe.core.errors import FailureKind
from queryprobe.core.report import CaseOutcome, CaseReport, RunReport, SequenceReport


def _sequence_report() -> SequenceReport:
    return SequenceReport(
        name="databases",
        isolated=False,
        total_cases=4,
        state="failed",
        cases=[
            CaseReport(index=0, name="use-main-branch", query="USE db/main", outcome=CaseOutcome.PASS),
            CaseReport(
                index=1,
                name="show-databases-initial",
                query="SHOW DATABASES",
                outcome=CaseOutcome.FAIL,
                kind=FailureKind.ASSERTION_FAILURE,
                diffs=(LengthDiff(4, 3),),
            ),
        ],
    )


def test_summary_lists_failing_case_query_and_diff() -> None:
    summary = RunReport(sequences=[_sequence_report()]).render_summary()

    assert "[FAIL] databases: 1/4 passed" in summary
    assert "#2 show-databases-initial: SHOW DATABASES" in summary
    assert "row count: expected 4, got 3" in summary
    assert "2 case(s) not run" in summary
    assert summary.splitlines()[-1] == "1 passed, 1 failed, 2 not run"


def test_exit_code_reflects_failures() -> None:
    assert RunReport(sequences=[_sequence_report()]).exit_code == 1
    passing = SequenceReport(
        name="ok",
        isolated=True,
        total_cases=1,
        state="done",
        cases=[CaseReport(index=0, name="case-1", query="SELECT 1", outcome=CaseOutcome.PASS)],
    )
    assert RunReport(sequences=[passing]).exit_code == 0


def test_done_state_is_required_for_a_pass() -> None:
    interrupted = SequenceReport(name="x", isolated=True, total_cases=2, state="failed", cases=[])
    assert not interrupted.passed


def test_json_report_is_structured() -> None:
    report = RunReport(sequences=[_sequence_report()])
    payload = json.loads(report.to_json())

    assert payload["exit_code"] == 1
    sequence = payload["sequences"][0]
    assert sequence["executed_cases"] == 2
    assert sequence["skipped_cases"] == 2
    assert sequence["cases"][1]["kind"] == "assertion_failure"
    assert sequence["cases"][1]["diffs"] == [{"type": "length", "expected": 4, "actual": 3}]


def test_case_describe_includes_error_code() -> None:
    case = CaseReport(
        index=2,
        name="create-database",
        query="CREATE DATABASE new_db",
        outcome=CaseOutcome.FAIL,
        kind=FailureKind.PROTOCOL_ERROR,
        error="(1007) database exists",
        error_code=1007,
    )
    assert case.describe() == ["protocol_error [1007]: (1007) database exists"]
    field_case = CaseReport(
        index=0,
        name="use",
        query="USE x",
        outcome=CaseOutcome.FAIL,
        kind=FailureKind.ASSERTION_FAILURE,
        diffs=(FieldDiff("server_status", 2, 0),),
    )
    assert field_case.describe() == ["server_status: expected 2, got 0"]
