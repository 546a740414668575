from pathlib import Path
from typing import AsyncGenerator, Tuple

import git
import pytest
import pytest_asyncio
from aiohttp.test_utils import unused_port
from github_stub_server import GitHubStubServer
from github_pr_client.github_api import GitHubClient
from github_pr_client.models import BackoffStrategy

TOKEN = "test-token"
OWNER = "shteou"
NAME = "go-ghpr"
BASE_URL_TEMPLATE = "http://localhost:{}"


@pytest_asyncio.fixture
async def server() -> AsyncGenerator[Tuple[GitHubStubServer, str], None]:
    """Start and yield a stub GitHub server on a free port, with its base URL."""
    port = unused_port()
    server_instance = GitHubStubServer(token=TOKEN)
    await server_instance.start(port=port)
    try:
        yield server_instance, BASE_URL_TEMPLATE.format(port)
    finally:
        await server_instance.stop()


@pytest_asyncio.fixture
async def github(server) -> AsyncGenerator[GitHubClient, None]:
    _, base_url = server
    async with GitHubClient(TOKEN, base_url=base_url) as client:
        yield client


@pytest.fixture
def strategy() -> BackoffStrategy:
    """Fast polling so waits resolve within a test run."""
    return BackoffStrategy(
        min_interval=0.01,
        max_interval=0.05,
        growth_factor=2.0,
        jitter=False,
        timeout=5.0,
    )


@pytest.fixture
def remote_repo(tmp_path) -> Path:
    """A bare repository with one commit on main, laid out as <remotes>/<owner>/<name>."""
    bare_path = tmp_path / "remotes" / OWNER / NAME
    bare = git.Repo.init(bare_path, bare=True, mkdir=True)

    seed = git.Repo.init(tmp_path / "seed")
    seed.git.symbolic_ref("HEAD", "refs/heads/main")
    (tmp_path / "seed" / "test-file").write_text("obsolete\n")
    (tmp_path / "seed" / "README.md").write_text("# go-ghpr\n")
    seed.index.add(["test-file", "README.md"])
    actor = git.Actor("test", "test@example.com")
    seed.index.commit("first commit!", author=actor, committer=actor)
    seed.create_remote("origin", str(bare_path))
    seed.git.push("origin", "main:main")
    bare.git.symbolic_ref("HEAD", "refs/heads/main")

    seed.close()
    bare.close()
    return bare_path


def status(context: str, state: str) -> dict:
    return {"context": context, "state": state, "description": f"{context} is {state}"}
