"""GitHub REST API response models."""

from __future__ import annotations

from datetime import datetime
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class _ApiModel(BaseModel):
    """Base for API payloads: unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")


class RateLimit(_ApiModel):
    """Rate-limit snapshot from X-RateLimit-* headers or /rate_limit."""

    limit: int = 0
    remaining: int = 0
    reset: int = Field(default=0, description="Reset time as epoch seconds")


class ApiResponse(BaseModel, Generic[T]):
    """Parsed response from a single gateway request."""

    data: T
    status: int
    headers: dict[str, str] = Field(default_factory=dict)
    rate_limit: RateLimit = Field(default_factory=RateLimit)


class Owner(_ApiModel):
    login: str
    avatar_url: str | None = None


class User(_ApiModel):
    login: str
    id: int | None = None
    avatar_url: str | None = None
    name: str | None = None
    email: str | None = None
    public_repos: int | None = None
    created_at: datetime | None = None


class Organization(_ApiModel):
    """An enumeration scope offered to the user; the user themself comes first."""

    login: str
    id: int | None = None
    avatar_url: str | None = None
    type: Literal["User", "Organization"] = "Organization"


class Repository(_ApiModel):
    id: int
    name: str
    full_name: str
    owner: Owner
    private: bool = False
    html_url: str | None = None
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    pushed_at: datetime | None = None
    default_branch: str | None = None
    archived: bool = False
    disabled: bool = False


class RepositoryPage(BaseModel):
    """One page of a repository listing.

    ``has_next`` comes from the Link header; None when the header is absent.
    """

    items: list[Repository]
    has_next: bool | None = None


class Workflow(_ApiModel):
    id: int
    name: str
    path: str | None = None
    state: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    html_url: str | None = None


class Actor(_ApiModel):
    login: str
    avatar_url: str | None = None


class CommitAuthor(_ApiModel):
    name: str | None = None
    email: str | None = None


class HeadCommit(_ApiModel):
    id: str | None = None
    message: str | None = None
    timestamp: datetime | None = None
    author: CommitAuthor | None = None


class WorkflowRun(_ApiModel):
    """A single workflow run.

    ``status`` and ``conclusion`` stay plain strings so values GitHub adds later
    (``requested``, ``stale``, ``action_required``...) still parse.
    """

    id: int
    name: str | None = None
    workflow_id: int
    head_branch: str | None = None
    head_sha: str | None = None
    display_title: str | None = None
    run_number: int | None = None
    event: str | None = None
    status: str | None = None
    conclusion: str | None = None
    html_url: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
    actor: Actor | None = None
    run_attempt: int | None = None
    head_commit: HeadCommit | None = None


class ActivityCheck(BaseModel):
    """Result of the single-call workflow activity probe.

    ``probe_failed`` is set when listing runs failed and the answer came from
    a fallback (or from giving up).
    """

    has_activity: bool
    latest_run: WorkflowRun | None = None
    total_runs: int = 0
    probe_failed: bool = False
