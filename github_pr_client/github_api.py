from typing import Any, List, Optional

import aiohttp
from loguru import logger

from github_pr_client.errors import GitHubAPIError
from github_pr_client.models import MergeMethod, MergeResult, PullRequest, StatusEntry

DEFAULT_API_URL = "https://api.github.com"


class GitHubClient:
    """Minimal GitHub REST client covering pull requests and commit statuses.

    The client must be entered as an async context manager, which opens the
    underlying ``aiohttp.ClientSession`` unless one was supplied.
    """

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_API_URL,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.logger = logger
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "GitHubClient":
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _headers(self) -> dict:
        return {
            "Authorization": f"token {self.token}",
            "Accept": "application/vnd.github+json",
        }

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("GitHubClient used outside of 'async with'")
        return self._session

    async def _request(self, method: str, path_or_url: str, **kwargs) -> aiohttp.ClientResponse:
        url = path_or_url if path_or_url.startswith("http") else f"{self.base_url}{path_or_url}"
        headers = kwargs.pop("headers", None) or self._headers()

        try:
            response = await self.session.request(method, url, headers=headers, **kwargs)
        except aiohttp.ClientError as e:
            self.logger.error(f"{method} {url} failed: {e}")
            raise

        if response.status >= 400:
            try:
                data = await response.json(content_type=None)
                message = data.get("message", "") if isinstance(data, dict) else str(data)
            except ValueError:
                message = await response.text()
            response.release()
            self.logger.error(f"HTTP error {response.status} at {url}: {message}")
            raise GitHubAPIError(response.status, message, url)

        return response

    async def _json(self, method: str, path_or_url: str, **kwargs) -> Any:
        response = await self._request(method, path_or_url, **kwargs)
        async with response:
            return await response.json()

    async def create_pull_request(
        self, owner: str, repo: str, head: str, base: str, title: str, body: str = ""
    ) -> PullRequest:
        data = await self._json(
            "POST",
            f"/repos/{owner}/{repo}/pulls",
            json={"title": title, "head": head, "base": base, "body": body},
        )
        pr = self._pull_request(data)
        self.logger.info(f"Created pull request #{pr.number} ({head} -> {base}) in {owner}/{repo}")
        return pr

    async def get_pull_request(self, owner: str, repo: str, number: int) -> PullRequest:
        data = await self._json("GET", f"/repos/{owner}/{repo}/pulls/{number}")
        return self._pull_request(data)

    async def merge_pull_request(
        self,
        owner: str,
        repo: str,
        number: int,
        method: MergeMethod = MergeMethod.merge,
        commit_message: str = "",
    ) -> MergeResult:
        payload = {"merge_method": MergeMethod(method).value}
        if commit_message:
            payload["commit_message"] = commit_message
        data = await self._json(
            "PUT", f"/repos/{owner}/{repo}/pulls/{number}/merge", json=payload
        )
        result = MergeResult(
            sha=data["sha"], merged=data.get("merged", True), message=data.get("message")
        )
        self.logger.info(f"Merged pull request #{number} in {owner}/{repo} as {result.sha}")
        return result

    async def list_statuses(
        self,
        owner: str,
        repo: str,
        ref: str,
        per_page: int = 100,
        max_pages: int = 1,
    ) -> List[StatusEntry]:
        """Lists the commit statuses of a ref, most recent first.

        Follows ``Link: rel="next"`` for up to ``max_pages`` pages.
        """
        url = f"/repos/{owner}/{repo}/commits/{ref}/statuses"
        params: Optional[dict] = {"per_page": per_page}
        statuses: List[StatusEntry] = []

        for _ in range(max_pages):
            response = await self._request("GET", url, params=params)
            async with response:
                data = await response.json()
                next_link = response.links.get("next")
            statuses.extend(StatusEntry.model_validate(item) for item in data)
            if not next_link:
                break
            # the next link already carries the query string
            url, params = str(next_link["url"]), None

        self.logger.debug(f"Fetched {len(statuses)} statuses for {owner}/{repo}@{ref}")
        return statuses

    @staticmethod
    def _pull_request(data: dict) -> PullRequest:
        head = data.get("head") or {}
        base = data.get("base") or {}
        return PullRequest(
            number=data["number"],
            head_sha=head.get("sha", ""),
            head_ref=head.get("ref"),
            base_ref=base.get("ref"),
            mergeable=data.get("mergeable"),
            html_url=data.get("html_url"),
            raw_response=data,
        )
