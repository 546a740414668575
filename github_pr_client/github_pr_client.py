import asyncio
from typing import Any, Awaitable, Callable, List, Optional, Union

import git
from loguru import logger

from github_pr_client.errors import (
    CheckFailedError,
    NotMergeableError,
    WaitCancelledError,
    WaitTimeoutError,
)
from github_pr_client.evaluator import validate_checks
from github_pr_client.github_api import GitHubClient
from github_pr_client.models import (
    Check,
    CommitSpec,
    EvalResult,
    MergeResult,
    PullRequest,
    WaitOutcome,
    WaitStatus,
    WorkflowConfig,
    WorkflowResult,
)
from github_pr_client.repo import GitBackend, Repo
from github_pr_client.status_poller import StatusPoller

UpdateFunc = Callable[[git.Repo], Union[CommitSpec, Awaitable[CommitSpec]]]


class GitHubPRWorkflow:
    """Raises a single change as a pull request and merges it once its checks pass.

    The GitHub client is supplied already constructed; ``git_backend`` replaces
    the clone implementation, which is mostly useful in tests.
    """

    def __init__(
        self,
        config: WorkflowConfig,
        github: GitHubClient,
        git_backend: Optional[GitBackend] = None,
        on_status_change: Optional[Callable[[EvalResult], Any]] = None,
    ):
        self.config = config
        self.github = github
        self.git_backend = git_backend
        self.logger = logger
        self.poller = StatusPoller(self._fetch_statuses, on_status_change=on_status_change)
        self.pull_request: Optional[PullRequest] = None
        self.merge_sha: Optional[str] = None

    async def run(self, update: UpdateFunc, cancel: Optional[asyncio.Event] = None) -> WorkflowResult:
        """Clone, change, push, raise, wait, merge and wait again, stopping at the first failure"""
        validate_checks(self.config.pr_checks)
        validate_checks(self.config.merge_checks)

        with self.make_repo() as repo:
            await self.clone(repo)
            await self.push_change(repo, update)

        pr = await self.create_pull_request()
        pr_outcome = await self.wait_for_pr_checks(cancel=cancel)
        if self.config.wait_for_mergeable:
            await self.wait_for_mergeable(cancel=cancel)
        await self.merge()
        merge_outcome = await self.wait_for_merge_checks(cancel=cancel)

        return WorkflowResult(
            pull_request=self.pull_request or pr,
            pr_url=self.pull_request_url(),
            merge_sha=self.merge_sha,
            pr_checks=pr_outcome,
            merge_checks=merge_outcome,
        )

    def make_repo(self) -> Repo:
        return Repo(
            self.config.owner,
            self.config.name,
            base_url=self.config.git_base_url,
            workdir=self.config.workdir,
            backend=self.git_backend,
        )

    async def clone(self, repo: Repo) -> None:
        await asyncio.to_thread(repo.clone, self.config.credentials, self.config.clone_depth)

    async def push_change(self, repo: Repo, update: UpdateFunc) -> str:
        """Apply ``update`` on a fresh branch, commit it and push the branch"""
        branch = self.config.branch
        await asyncio.to_thread(repo.create_branch, branch)

        change = update(repo.repo)
        if asyncio.iscoroutine(change):
            change = await change

        sha = await asyncio.to_thread(repo.commit, change)
        await asyncio.to_thread(repo.push, branch)
        return sha

    async def create_pull_request(self) -> PullRequest:
        config = self.config
        self.pull_request = await self.github.create_pull_request(
            config.owner,
            config.name,
            head=config.branch,
            base=config.target_branch,
            title=config.title,
            body=config.body,
        )
        self.logger.info(f"New pull request raised at {self.pull_request_url()}")
        return self.pull_request

    def pull_request_url(self) -> str:
        if self.pull_request is None or self.pull_request.number == 0:
            raise ValueError(
                "Pull request doesn't have a valid number. Was pull request creation successful?"
            )
        base_url = self.config.git_base_url.rstrip("/")
        return f"{base_url}/{self.config.full_name}/pull/{self.pull_request.number}"

    async def _fetch_statuses(self, sha_ref: str):
        return await self.github.list_statuses(self.config.owner, self.config.name, sha_ref)

    async def _wait_for_checks(
        self, sha_ref: str, checks: List[Check], cancel: Optional[asyncio.Event]
    ) -> WaitOutcome:
        self.logger.info(f"Waiting for checks on {sha_ref}")
        outcome = await self.poller.wait(sha_ref, checks, self.config.strategy, cancel)
        self._raise_for_outcome(outcome, sha_ref)
        return outcome

    async def wait_for_pr_checks(self, cancel: Optional[asyncio.Event] = None) -> WaitOutcome:
        pr = self._require_pull_request()
        return await self._wait_for_checks(pr.head_sha, self.config.pr_checks, cancel)

    async def wait_for_merge_checks(self, cancel: Optional[asyncio.Event] = None) -> WaitOutcome:
        if not self.merge_sha:
            raise ValueError("Pull request has not been merged yet")
        return await self._wait_for_checks(self.merge_sha, self.config.merge_checks, cancel)

    async def wait_for_mergeable(self, cancel: Optional[asyncio.Event] = None) -> WaitOutcome:
        """Wait until GitHub has computed the mergeable flag of the pull request"""
        pr = self._require_pull_request()

        async def probe() -> EvalResult:
            self.pull_request = await self.github.get_pull_request(
                self.config.owner, self.config.name, pr.number
            )
            if self.pull_request.mergeable is None:
                return EvalResult.still_pending()
            return EvalResult.all_success()

        outcome = await self.poller.wait_until(
            probe, self.config.strategy, cancel, description=f"mergeability of #{pr.number}"
        )
        self._raise_for_outcome(outcome, pr.head_sha)
        return outcome

    async def merge(self) -> MergeResult:
        """Merge the pull request, refusing unless GitHub reports it as mergeable"""
        pr = self._require_pull_request()
        current = await self.github.get_pull_request(self.config.owner, self.config.name, pr.number)
        self.pull_request = current

        if not current.mergeable:
            self.logger.error(f"Pull request #{current.number} is not mergeable")
            raise NotMergeableError(current.number, current.mergeable)

        self.logger.info(f"Pull request #{current.number} is mergeable, proceeding to merge")
        result = await self.github.merge_pull_request(
            self.config.owner, self.config.name, current.number, self.config.merge_method
        )
        self.merge_sha = result.sha
        return result

    def _require_pull_request(self) -> PullRequest:
        if self.pull_request is None:
            raise ValueError("Pull request has not been created yet")
        return self.pull_request

    @staticmethod
    def _raise_for_outcome(outcome: WaitOutcome, sha_ref: str) -> None:
        if outcome.status == WaitStatus.failed:
            raise CheckFailedError(outcome.failed_check, sha_ref)
        if outcome.status == WaitStatus.timed_out:
            raise WaitTimeoutError(f"Timed out waiting on {sha_ref}: {outcome.reason}")
        if outcome.status == WaitStatus.cancelled:
            raise WaitCancelledError(f"Stopped waiting on {sha_ref}: {outcome.reason}")
