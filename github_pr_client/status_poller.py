import asyncio
import random
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence

from loguru import logger

from github_pr_client.backoff import Backoff
from github_pr_client.evaluator import evaluate, validate_checks
from github_pr_client.models import (
    BackoffStrategy,
    Check,
    EvalResult,
    EvalStatus,
    StatusEntry,
    WaitOutcome,
    WaitStatus,
)

FetchStatuses = Callable[[str], Awaitable[Sequence[StatusEntry]]]
Probe = Callable[[], Awaitable[EvalResult]]


class StatusPoller:
    def __init__(
        self,
        fetch_statuses: FetchStatuses,
        on_status_change: Optional[Callable[[EvalResult], Any]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.fetch_statuses = fetch_statuses
        self.on_status_change = on_status_change
        self.rng = rng
        self.logger = logger

    async def wait(
        self,
        sha_ref: str,
        required_checks: Iterable[Check],
        strategy: BackoffStrategy,
        cancel: Optional[asyncio.Event] = None,
    ) -> WaitOutcome:
        """Poll the statuses of a ref until every required check succeeds, one fails,
        the strategy's timeout elapses or ``cancel`` is set.

        Unsupported check kinds raise before the first fetch. Errors raised while
        fetching statuses are not retried and propagate to the caller.
        """
        required_checks = list(required_checks)
        validate_checks(required_checks)
        names = ", ".join(check.name for check in required_checks) or "<none>"

        async def probe() -> EvalResult:
            reported = await self.fetch_statuses(sha_ref)
            return evaluate(required_checks, reported)

        return await self.wait_until(
            probe, strategy, cancel, description=f"checks [{names}] on {sha_ref}"
        )

    async def wait_until(
        self,
        probe: Probe,
        strategy: BackoffStrategy,
        cancel: Optional[asyncio.Event] = None,
        description: str = "condition",
    ) -> WaitOutcome:
        """Run ``probe`` with backoff between attempts until it reports a verdict"""
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        deadline = start_time + strategy.timeout
        backoff = Backoff(strategy, self.rng)
        attempts = 0
        last_result = None

        def outcome(status: WaitStatus, **kwargs) -> WaitOutcome:
            return WaitOutcome(
                status=status,
                attempts=attempts,
                elapsed_time=loop.time() - start_time,
                **kwargs,
            )

        while True:
            if cancel is not None and cancel.is_set():
                self.logger.info(f"Wait for {description} cancelled")
                return outcome(WaitStatus.cancelled, reason="cancelled by caller")

            result = await probe()
            attempts += 1
            await self._handle_status_change(result, last_result)
            last_result = result

            if result.status == EvalStatus.all_success:
                self.logger.info(f"{description} succeeded after {attempts} attempt(s)")
                return outcome(WaitStatus.success)

            if result.status == EvalStatus.failed:
                self.logger.error(f"Check '{result.failed_check}' failed for {description}")
                return outcome(
                    WaitStatus.failed,
                    failed_check=result.failed_check,
                    reason=f"check '{result.failed_check}' is in a failed state",
                )

            if strategy.max_attempts is not None and attempts >= strategy.max_attempts:
                self.logger.warning(f"Gave up on {description} after {attempts} attempts")
                return outcome(
                    WaitStatus.timed_out,
                    reason=f"still pending after {attempts} attempts",
                )

            delay = backoff.next()
            aborted = await self._wait_before_retry(delay, deadline, cancel)
            if aborted is not None:
                self.logger.warning(f"Wait for {description} {aborted.value}")
                reason = (
                    f"still pending after {strategy.timeout}s"
                    if aborted == WaitStatus.timed_out
                    else "cancelled by caller"
                )
                return outcome(aborted, reason=reason)

    async def _handle_status_change(
        self, result: EvalResult, last_result: Optional[EvalResult]
    ) -> None:
        """Invoke the status change callback if the verdict has changed"""
        if result == last_result or self.on_status_change is None:
            return
        self.logger.debug(f"Check status changed to {result.status.value}")
        callback_result = self.on_status_change(result)
        if asyncio.iscoroutine(callback_result):
            await callback_result

    async def _wait_before_retry(
        self, delay: float, deadline: float, cancel: Optional[asyncio.Event]
    ) -> Optional[WaitStatus]:
        """Sleep for ``delay`` unless the deadline or the cancel event comes first.

        Returns the terminal status that interrupted the sleep, if any.
        """
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            return WaitStatus.timed_out

        self.logger.debug(f"Checks still pending, waiting {delay:.2f}s before next attempt")
        sleep_for = min(delay, remaining)
        if cancel is None:
            await asyncio.sleep(sleep_for)
        else:
            try:
                await asyncio.wait_for(cancel.wait(), timeout=sleep_for)
                return WaitStatus.cancelled
            except asyncio.TimeoutError:
                pass

        if delay >= remaining:
            return WaitStatus.timed_out
        return None
