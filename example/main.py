import asyncio
import os
import sys
from pathlib import Path

from github_pr_client.errors import GitHubPRError
from github_pr_client.github_api import GitHubClient
from github_pr_client.github_pr_client import GitHubPRWorkflow
from github_pr_client.models import (
    Author,
    BackoffStrategy,
    Check,
    CommitSpec,
    Credentials,
    WorkflowConfig,
)


def remove_obsolete_file(repo):
    Path(repo.working_tree_dir, "test-file").unlink(missing_ok=True)
    return CommitSpec(
        message="chore: remove obsolete test-file",
        author=Author(name="Stew", email="shteou@gmail.com"),
    )


async def status_changed(result):
    print(f"Check status changed to: {result.status.value}")


async def main():
    credentials = Credentials(
        username=os.environ.get("GITHUB_USERNAME", "shteou"),
        token=os.environ["GITHUB_TOKEN"],
    )
    checks = [Check(name="Semantic Pull Request")]
    config = WorkflowConfig(
        owner="shteou",
        name="go-ghpr",
        credentials=credentials,
        branch="test-branch",
        target_branch="main",
        title="chore: remove obsolete files",
        pr_checks=checks,
        merge_checks=checks,
        strategy=BackoffStrategy(min_interval=10.0, max_interval=60.0, growth_factor=1.05),
    )

    async with GitHubClient(credentials.token) as github:
        workflow = GitHubPRWorkflow(config, github, on_status_change=status_changed)
        try:
            result = await workflow.run(remove_obsolete_file)
            print(f"Merged {result.pr_url} as {result.merge_sha}")
        except GitHubPRError as e:
            print(f"Workflow failed: {e}")
            sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
