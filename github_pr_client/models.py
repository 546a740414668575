from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class CheckKind(str, Enum):
    status = "status"
    action = "action"


class StatusState(str, Enum):
    success = "success"
    failure = "failure"
    error = "error"
    pending = "pending"


class MergeMethod(str, Enum):
    merge = "merge"
    squash = "squash"
    rebase = "rebase"


class Check(BaseModel):
    name: str
    kind: CheckKind = CheckKind.status


class StatusEntry(BaseModel):
    context: str
    state: StatusState
    description: Optional[str] = None
    target_url: Optional[str] = None

    @field_validator("state", mode="before")
    @classmethod
    def _unknown_state_is_pending(cls, value):
        # anything GitHub reports outside the known states is not terminal yet
        if isinstance(value, str) and value not in StatusState._value2member_map_:
            return StatusState.pending
        return value


class BackoffStrategy(BaseModel):
    min_interval: float = Field(default=10.0, gt=0)
    max_interval: float = 60.0
    growth_factor: float = 1.05
    jitter: bool = True
    timeout: float = 600.0  # 10 minutes
    max_attempts: Optional[int] = None

    @field_validator("growth_factor")
    @classmethod
    def _check_growth_factor(cls, value: float) -> float:
        if value < 1.0:
            raise ValueError("growth_factor must be >= 1.0")
        return value

    @model_validator(mode="after")
    def _check_interval_bounds(self) -> "BackoffStrategy":
        if self.min_interval > self.max_interval:
            raise ValueError("min_interval must not exceed max_interval")
        return self


class BackoffState(BaseModel, frozen=True):
    attempt: int = 0
    interval: Optional[float] = None


class EvalStatus(str, Enum):
    all_success = "all_success"
    still_pending = "still_pending"
    failed = "failed"


class EvalResult(BaseModel, frozen=True):
    status: EvalStatus
    failed_check: Optional[str] = None

    @classmethod
    def all_success(cls) -> "EvalResult":
        return cls(status=EvalStatus.all_success)

    @classmethod
    def still_pending(cls) -> "EvalResult":
        return cls(status=EvalStatus.still_pending)

    @classmethod
    def failed(cls, name: str) -> "EvalResult":
        return cls(status=EvalStatus.failed, failed_check=name)


class WaitStatus(str, Enum):
    success = "success"
    failed = "failed"
    timed_out = "timed_out"
    cancelled = "cancelled"


class WaitOutcome(BaseModel):
    status: WaitStatus
    reason: Optional[str] = None
    failed_check: Optional[str] = None
    attempts: int = 0
    elapsed_time: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == WaitStatus.success


class Credentials(BaseModel):
    username: str
    token: str = Field(repr=False)


class Author(BaseModel):
    name: str
    email: str
    when: Optional[datetime] = None


class CommitSpec(BaseModel):
    message: str
    author: Author


class PullRequest(BaseModel):
    number: int
    head_sha: str
    head_ref: Optional[str] = None
    base_ref: Optional[str] = None
    mergeable: Optional[bool] = None
    html_url: Optional[str] = None
    raw_response: dict = Field(default_factory=dict, repr=False)


class MergeResult(BaseModel):
    sha: str
    merged: bool = True
    message: Optional[str] = None


class WorkflowConfig(BaseModel):
    owner: str
    name: str
    credentials: Credentials
    branch: str
    target_branch: str = "main"
    title: str
    body: str = ""
    merge_method: MergeMethod = MergeMethod.merge
    pr_checks: List[Check] = Field(default_factory=list)
    merge_checks: List[Check] = Field(default_factory=list)
    strategy: BackoffStrategy = Field(default_factory=BackoffStrategy)
    wait_for_mergeable: bool = True
    clone_depth: int = 1
    git_base_url: str = "https://github.com"
    api_base_url: str = "https://api.github.com"
    workdir: str = "."

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


class WorkflowResult(BaseModel):
    pull_request: PullRequest
    pr_url: str
    merge_sha: str
    pr_checks: WaitOutcome
    merge_checks: WaitOutcome
