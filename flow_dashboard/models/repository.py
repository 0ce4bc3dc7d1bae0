"""Repositories annotated with a derived workflow-activity classification."""

from __future__ import annotations

from enum import Enum

from flow_dashboard.models.github import Repository


class WorkflowStatus(str, Enum):
    """Enrichment classification of a discovered repository."""

    UNKNOWN = "unknown"
    CHECKING = "checking"
    HAS_WORKFLOWS = "has-workflows"
    NO_WORKFLOWS = "no-workflows"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    @property
    def is_selectable(self) -> bool:
        return self in _SELECTABLE

    def can_advance_to(self, new: WorkflowStatus) -> bool:
        """Classification only moves forward: unknown -> checking -> terminal."""
        return _RANK[new] > _RANK[self] and not self.is_terminal


_TERMINAL = frozenset(
    {WorkflowStatus.HAS_WORKFLOWS, WorkflowStatus.NO_WORKFLOWS, WorkflowStatus.ERROR}
)
_SELECTABLE = frozenset({WorkflowStatus.HAS_WORKFLOWS, WorkflowStatus.NO_WORKFLOWS})
_RANK = {
    WorkflowStatus.UNKNOWN: 0,
    WorkflowStatus.CHECKING: 1,
    WorkflowStatus.HAS_WORKFLOWS: 2,
    WorkflowStatus.NO_WORKFLOWS: 2,
    WorkflowStatus.ERROR: 2,
}


class TrackedRepository(Repository):
    """Repository plus its enrichment state."""

    workflow_status: WorkflowStatus = WorkflowStatus.UNKNOWN
    workflow_count: int | None = None

    @property
    def is_selectable(self) -> bool:
        return self.workflow_status.is_selectable

    @classmethod
    def from_repository(cls, repository: Repository) -> TrackedRepository:
        """Fresh entry at UNKNOWN, as every new discovery pass starts."""
        data = repository.model_dump(exclude={"workflow_status", "workflow_count"})
        return cls(**data, workflow_status=WorkflowStatus.UNKNOWN)
