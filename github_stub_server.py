import hashlib
from collections import defaultdict
from typing import Dict, List, Optional

import git
from aiohttp import web
from loguru import logger


def fake_sha(*parts) -> str:
    return hashlib.sha1(":".join(str(p) for p in parts).encode()).hexdigest()


class GitHubStubServer:
    """In-process stand-in for the pull request and commit status endpoints of GitHub.

    Statuses for a ref can be scripted as a list of snapshots; each fetch of that
    ref returns the next snapshot, and the last one keeps being returned.
    """

    def __init__(
        self,
        mergeable: Optional[bool] = True,
        mergeable_after: int = 0,
        repo_path: Optional[str] = None,
        token: str = "test-token",
    ):
        self.mergeable = mergeable
        self.mergeable_after = mergeable_after
        self.repo_path = repo_path
        self.token = token
        self.fail_statuses = False
        self.pulls: Dict[int, dict] = {}
        self.scripts: Dict[str, List[List[dict]]] = {}
        self.status_fetches: Dict[str, int] = defaultdict(int)
        self.pull_fetches: Dict[int, int] = defaultdict(int)
        self.merge_calls: List[dict] = []
        self.runner: Optional[web.AppRunner] = None
        self.app = web.Application(middlewares=[self._auth])
        self.app.router.add_post("/repos/{owner}/{repo}/pulls", self.handle_create_pull)
        self.app.router.add_get("/repos/{owner}/{repo}/pulls/{number}", self.handle_get_pull)
        self.app.router.add_put("/repos/{owner}/{repo}/pulls/{number}/merge", self.handle_merge)
        self.app.router.add_get(
            "/repos/{owner}/{repo}/commits/{ref}/statuses", self.handle_statuses
        )
        self.logger = logger

    def script_statuses(self, ref: str, *snapshots: List[dict]) -> None:
        self.scripts[ref] = [list(snapshot) for snapshot in snapshots]

    @web.middleware
    async def _auth(self, request, handler):
        if request.headers.get("Authorization") != f"token {self.token}":
            return web.json_response({"message": "Bad credentials"}, status=401)
        return await handler(request)

    def _head_sha(self, head: str) -> str:
        if self.repo_path is not None:
            return git.Repo(self.repo_path).heads[head].commit.hexsha
        return fake_sha("head", head)

    def _pull_json(self, request, pull: dict) -> dict:
        number = pull["number"]
        fetches = self.pull_fetches[number]
        mergeable = self.mergeable if fetches > self.mergeable_after else None
        owner, repo = request.match_info["owner"], request.match_info["repo"]
        return {
            "number": number,
            "state": pull["state"],
            "title": pull["title"],
            "body": pull["body"],
            "mergeable": mergeable,
            "html_url": f"https://github.com/{owner}/{repo}/pull/{number}",
            "head": {"ref": pull["head"], "sha": pull["head_sha"]},
            "base": {"ref": pull["base"]},
        }

    async def handle_create_pull(self, request):
        data = await request.json()
        number = len(self.pulls) + 1
        pull = {
            "number": number,
            "state": "open",
            "title": data["title"],
            "body": data.get("body", ""),
            "head": data["head"],
            "base": data["base"],
            "head_sha": self._head_sha(data["head"]),
        }
        self.pulls[number] = pull
        self.logger.info(f"Created pull request #{number} from {pull['head']}")
        return web.json_response(self._pull_json(request, pull), status=201)

    def _get_pull(self, request) -> dict:
        number = int(request.match_info["number"])
        if number not in self.pulls:
            raise web.HTTPNotFound(
                text='{"message": "Not Found"}', content_type="application/json"
            )
        return self.pulls[number]

    async def handle_get_pull(self, request):
        pull = self._get_pull(request)
        self.pull_fetches[pull["number"]] += 1
        return web.json_response(self._pull_json(request, pull))

    async def handle_merge(self, request):
        pull = self._get_pull(request)
        data = await request.json()
        self.merge_calls.append(data)
        if not self.mergeable:
            self.logger.info(f"Refusing to merge #{pull['number']}")
            return web.json_response({"message": "Pull Request is not mergeable"}, status=405)

        pull["state"] = "closed"
        sha = fake_sha("merge", pull["number"], pull["head_sha"])
        self.logger.info(f"Merged #{pull['number']} as {sha}")
        return web.json_response(
            {"sha": sha, "merged": True, "message": "Pull Request successfully merged"}
        )

    async def handle_statuses(self, request):
        ref = request.match_info["ref"]
        per_page = int(request.query.get("per_page", 30))
        page = int(request.query.get("page", 1))
        if page == 1:
            self.status_fetches[ref] += 1

        if self.fail_statuses:
            self.logger.info("Returning error for statuses")
            return web.json_response({"message": "Server Error"}, status=500)

        snapshots = self.scripts.get(ref) or [[]]
        statuses = snapshots[max(min(self.status_fetches[ref], len(snapshots)), 1) - 1]

        chunk = statuses[(page - 1) * per_page : page * per_page]
        headers = {}
        if page * per_page < len(statuses):
            next_url = request.url.update_query({"per_page": per_page, "page": page + 1})
            headers["Link"] = f'<{next_url}>; rel="next"'

        self.logger.info(f"Returning {len(chunk)} statuses for {ref} (page {page})")
        return web.json_response(chunk, headers=headers)

    async def start(self, port: int = 8080):
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "localhost", port)
        await site.start()
        self.logger.info(f"Server started on port {port}")
        return site

    async def stop(self) -> None:
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
