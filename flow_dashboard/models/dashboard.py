"""Display model for watched repositories and their latest runs."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from flow_dashboard.models.github import WorkflowRun
from flow_dashboard.models.repository import TrackedRepository


class RepositoryWorkflows(BaseModel):
    """Latest run per workflow for one watched repository."""

    repository: TrackedRepository
    workflows: dict[int, WorkflowRun] = Field(
        default_factory=dict,
        description="workflow_id -> most recent run",
    )
    is_loading: bool = False
    error: str | None = None
    last_updated: datetime | None = None

    @property
    def runs(self) -> list[WorkflowRun]:
        return list(self.workflows.values())


class WorkflowSummary(BaseModel):
    """Dashboard summary counts."""

    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    by_conclusion: dict[str, int] = Field(default_factory=dict)
