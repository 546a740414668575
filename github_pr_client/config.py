import json
import os
from pathlib import Path
from typing import Mapping, Optional, Union

from loguru import logger

from github_pr_client.models import WorkflowConfig

USERNAME_ENV = "GITHUB_USERNAME"
TOKEN_ENV = "GITHUB_TOKEN"


def load_workflow_config(
    path: Union[str, Path], environ: Optional[Mapping[str, str]] = None
) -> WorkflowConfig:
    """Reads a workflow configuration from a JSON file.

    ``GITHUB_USERNAME`` and ``GITHUB_TOKEN`` override the credentials in the
    file, so tokens can stay out of it.
    """
    environ = os.environ if environ is None else environ
    data = json.loads(Path(path).read_text())

    credentials = data.setdefault("credentials", {})
    if environ.get(USERNAME_ENV):
        credentials["username"] = environ[USERNAME_ENV]
    if environ.get(TOKEN_ENV):
        credentials["token"] = environ[TOKEN_ENV]
        logger.debug(f"Using GitHub token from {TOKEN_ENV}")

    return WorkflowConfig.model_validate(data)
