import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import quote, urlsplit, urlunsplit

import git
from git.exc import GitCommandError
from loguru import logger

from github_pr_client.errors import GitOperationError
from github_pr_client.models import CommitSpec, Credentials


class GitBackend(Protocol):
    def clone(self, url: str, path: Path, depth: int) -> git.Repo:
        ...


class GitPythonBackend:
    """Clones through GitPython"""

    def clone(self, url: str, path: Path, depth: int) -> git.Repo:
        kwargs = {"depth": depth} if depth > 0 else {}
        return git.Repo.clone_from(url, str(path), **kwargs)


def authenticated_url(url: str, credentials: Optional[Credentials]) -> str:
    """Embeds basic auth in http(s) remote URLs; other schemes are left alone"""
    parts = urlsplit(url)
    if credentials is None or parts.scheme not in ("http", "https"):
        return url
    netloc = f"{quote(credentials.username, safe='')}:{quote(credentials.token, safe='')}@{parts.hostname}"
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def masked_url(url: str) -> str:
    parts = urlsplit(url)
    if parts.password is None:
        return url
    netloc = parts.netloc.replace(f":{parts.password}@", ":***@", 1)
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


class Repo:
    """A shallow clone of a remote repository inside a temporary directory.

    Use as a context manager so the clone directory is removed whatever happens
    to the change made in it.
    """

    def __init__(
        self,
        owner: str,
        name: str,
        base_url: str = "https://github.com",
        workdir: str = ".",
        backend: Optional[GitBackend] = None,
    ):
        self.owner = owner
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.workdir = workdir
        self.backend = backend or GitPythonBackend()
        self.path: Optional[Path] = None
        self.repo: Optional[git.Repo] = None
        self.logger = logger

    def __enter__(self) -> "Repo":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def url(self) -> str:
        return f"{self.base_url}/{self.owner}/{self.name}"

    def clone(self, credentials: Optional[Credentials] = None, depth: int = 1) -> git.Repo:
        Path(self.workdir).mkdir(parents=True, exist_ok=True)
        self.path = Path(tempfile.mkdtemp(prefix="repo_", dir=self.workdir))
        url = authenticated_url(self.url, credentials)
        self.logger.info(f"Cloning {masked_url(url)} into {self.path}")

        try:
            self.repo = self.backend.clone(url, self.path, depth)
        except GitCommandError as e:
            raise GitOperationError(
                f"failed to clone remote repository {self.url}: {masked_url(str(e))}"
            ) from e
        return self.repo

    def _require_repo(self) -> git.Repo:
        if self.repo is None:
            raise GitOperationError("repository has not been cloned")
        return self.repo

    def create_branch(self, branch: str) -> None:
        """Creates ``branch`` at the current HEAD and checks it out"""
        repo = self._require_repo()
        try:
            head = repo.create_head(branch, repo.head.commit)
            head.checkout()
        except (GitCommandError, ValueError) as e:
            raise GitOperationError(f"failed to set reference for new branch {branch}") from e
        self.logger.debug(f"Checked out new branch {branch} at {head.commit.hexsha}")

    def commit(self, change: CommitSpec) -> str:
        """Stages every change in the work tree and commits it, returning the new SHA"""
        repo = self._require_repo()
        when = change.author.when or datetime.now(timezone.utc)
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        actor = git.Actor(change.author.name, change.author.email)

        try:
            repo.git.add(A=True)
            commit = repo.index.commit(
                change.message,
                author=actor,
                committer=actor,
                author_date=when,
                commit_date=when,
            )
        except (GitCommandError, ValueError) as e:
            raise GitOperationError("failed to commit changes") from e

        summary = change.message.splitlines()[0] if change.message else ""
        self.logger.info(f"Committed {commit.hexsha[:12]}: {summary}")
        return commit.hexsha

    def push(self, branch: str, remote: str = "origin") -> None:
        """Pushes ``branch`` and points the remote-tracking ref at it"""
        repo = self._require_repo()
        try:
            origin = repo.remote(remote)
            push_infos = origin.push(refspec=f"refs/heads/{branch}:refs/heads/{branch}")
        except (GitCommandError, ValueError) as e:
            raise GitOperationError(
                f"failed to push branch {branch} to remote repository: {masked_url(str(e))}"
            ) from e

        for info in push_infos:
            if info.flags & git.PushInfo.ERROR:
                raise GitOperationError(
                    f"failed to push branch {branch} to remote repository: {info.summary.strip()}"
                )

        tracking_ref = git.RemoteReference(repo, f"refs/remotes/{remote}/{branch}")
        try:
            tracking_ref.set_commit(repo.heads[branch].commit)
            repo.heads[branch].set_tracking_branch(tracking_ref)
        except (GitCommandError, ValueError, IndexError) as e:
            raise GitOperationError(f"failed to set reference for remote branch {branch}") from e
        self.logger.info(f"Pushed {branch} to {remote}")

    def head_sha(self) -> str:
        return self._require_repo().head.commit.hexsha

    def close(self) -> None:
        if self.repo is not None:
            self.repo.close()
            self.repo = None
        if self.path is not None:
            try:
                shutil.rmtree(self.path)
            except OSError as e:
                raise GitOperationError(
                    f"failed to clean up temporary directory {self.path}"
                ) from e
            self.logger.debug(f"Removed clone directory {self.path}")
            self.path = None
