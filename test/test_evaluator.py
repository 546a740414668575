import pytest

from github_pr_client.errors import UnsupportedCheckTypeError
from github_pr_client.evaluator import evaluate, validate_checks
from github_pr_client.models import Check, CheckKind, EvalResult, EvalStatus, StatusEntry, StatusState

A = Check(name="A")
B = Check(name="B")


def entry(context: str, state: str) -> StatusEntry:
    return StatusEntry(context=context, state=state)


def test_one_success_one_pending_is_still_pending():
    result = evaluate([A, B], [entry("A", "success"), entry("B", "pending")])

    assert result == EvalResult.still_pending()


@pytest.mark.parametrize(
    "reported",
    [
        [entry("A", "failure")],
        [entry("B", "success"), entry("A", "failure")],
        [entry("A", "failure"), entry("B", "success"), entry("C", "pending")],
    ],
)
def test_failed_check_is_reported_regardless_of_order(reported):
    result = evaluate([A], reported)

    assert result.status == EvalStatus.failed
    assert result.failed_check == "A"


def test_error_state_counts_as_failure():
    assert evaluate([A], [entry("A", "error")]) == EvalResult.failed("A")


def test_failure_wins_over_pending_checks():
    result = evaluate([A, B], [entry("B", "failure")])

    assert result == EvalResult.failed("B")


def test_action_check_is_unsupported():
    action = Check(name="build", kind=CheckKind.action)

    with pytest.raises(UnsupportedCheckTypeError) as excinfo:
        evaluate([A, action], [entry("A", "pending")])

    assert excinfo.value.check_name == "build"


def test_action_check_is_unsupported_even_when_status_failed():
    action = Check(name="build", kind=CheckKind.action)

    with pytest.raises(UnsupportedCheckTypeError):
        evaluate([A, action], [entry("A", "failure")])


def test_missing_check_is_pending_not_error():
    result = evaluate([A], [entry("other", "success")])

    assert result == EvalResult.still_pending()


def test_all_success():
    result = evaluate([A, B], [entry("B", "success"), entry("A", "success")])

    assert result == EvalResult.all_success()


def test_most_recent_status_is_authoritative():
    reported = [entry("A", "success"), entry("A", "failure"), entry("A", "pending")]

    assert evaluate([A], reported) == EvalResult.all_success()


def test_earlier_failure_is_superseded_by_newer_pending():
    reported = [entry("A", "pending"), entry("A", "failure")]

    assert evaluate([A], reported) == EvalResult.still_pending()


def test_no_required_checks_is_success():
    assert evaluate([], [entry("A", "failure")]) == EvalResult.all_success()


def test_unknown_state_is_pending():
    unknown = StatusEntry(context="A", state="queued")

    assert unknown.state == StatusState.pending
    assert evaluate([A], [unknown]) == EvalResult.still_pending()


def test_evaluate_is_pure():
    reported = [entry("A", "success"), entry("B", "pending")]

    results = {evaluate([A, B], reported) for _ in range(5)}

    assert len(results) == 1
    assert reported == [entry("A", "success"), entry("B", "pending")]


def test_validate_checks_accepts_status_checks():
    validate_checks([A, B])
