"""Models for Flow Dashboard."""

from flow_dashboard.models.credential import CredentialState, TokenValidationResult
from flow_dashboard.models.dashboard import RepositoryWorkflows, WorkflowSummary
from flow_dashboard.models.github import (
    ActivityCheck,
    ApiResponse,
    Organization,
    RateLimit,
    Repository,
    RepositoryPage,
    User,
    Workflow,
    WorkflowRun,
)
from flow_dashboard.models.preferences import REFRESH_INTERVALS, DisplayPreferences, Scope
from flow_dashboard.models.repository import TrackedRepository, WorkflowStatus

__all__ = [
    "REFRESH_INTERVALS",
    "ActivityCheck",
    "ApiResponse",
    "CredentialState",
    "DisplayPreferences",
    "Organization",
    "RateLimit",
    "Repository",
    "RepositoryPage",
    "RepositoryWorkflows",
    "Scope",
    "TokenValidationResult",
    "TrackedRepository",
    "User",
    "Workflow",
    "WorkflowRun",
    "WorkflowStatus",
    "WorkflowSummary",
]
