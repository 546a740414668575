from typing import Optional


class GitHubPRError(Exception):
    """Base class for every error raised by the workflow"""


class GitOperationError(GitHubPRError):
    """A clone, commit, ref update or push failed"""


class GitHubAPIError(GitHubPRError):
    def __init__(self, status: int, message: str, url: Optional[str] = None):
        self.status = status
        self.message = message
        self.url = url
        super().__init__(f"GitHub API returned {status} for {url}: {message}")


class UnsupportedCheckTypeError(GitHubPRError):
    def __init__(self, check_name: str, kind: str):
        self.check_name = check_name
        self.kind = kind
        super().__init__(f"Check '{check_name}' has unsupported type '{kind}'")


class CheckFailedError(GitHubPRError):
    def __init__(self, check_name: str, sha_ref: Optional[str] = None):
        self.check_name = check_name
        self.sha_ref = sha_ref
        super().__init__(
            f"Required check '{check_name}' is in a failed state on {sha_ref}, aborting"
        )


class WaitAbortedError(GitHubPRError):
    """The wait gave up before any check reached a verdict"""


class WaitTimeoutError(WaitAbortedError, TimeoutError):
    pass


class WaitCancelledError(WaitAbortedError):
    pass


class NotMergeableError(GitHubPRError):
    def __init__(self, number: int, mergeable: Optional[bool] = None):
        self.number = number
        self.mergeable = mergeable
        super().__init__(f"Pull request #{number} is not mergeable (mergeable={mergeable})")
