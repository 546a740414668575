from typing import Iterable, Optional, Sequence

from github_pr_client.errors import UnsupportedCheckTypeError
from github_pr_client.models import (
    Check,
    CheckKind,
    EvalResult,
    StatusEntry,
    StatusState,
)

FAILED_STATES = (StatusState.failure, StatusState.error)


def validate_checks(required_checks: Iterable[Check]) -> None:
    """Raises UnsupportedCheckTypeError for any check that cannot be polled"""
    for check in required_checks:
        if check.kind != CheckKind.status:
            raise UnsupportedCheckTypeError(check.name, check.kind.value)


def latest_status(context: str, reported: Sequence[StatusEntry]) -> Optional[StatusEntry]:
    # GitHub lists statuses most recent first
    for entry in reported:
        if entry.context == context:
            return entry
    return None


def evaluate(required_checks: Iterable[Check], reported: Sequence[StatusEntry]) -> EvalResult:
    """Reduces the reported statuses of a ref to a single verdict for the required checks.

    A required check with no reported status yet counts as pending. The first
    failed or errored check wins over any check that is still pending.
    """
    required_checks = list(required_checks)
    validate_checks(required_checks)

    pending = False
    for check in required_checks:
        entry = latest_status(check.name, reported)
        if entry is None:
            pending = True
            continue
        if entry.state in FAILED_STATES:
            return EvalResult.failed(check.name)
        if entry.state != StatusState.success:
            pending = True

    if pending:
        return EvalResult.still_pending()
    return EvalResult.all_success()
