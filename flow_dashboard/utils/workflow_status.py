"""Reductions over workflow runs for the dashboard view."""

from __future__ import annotations

from collections.abc import Iterable

from flow_dashboard.models.dashboard import WorkflowSummary
from flow_dashboard.models.github import WorkflowRun
from flow_dashboard.models.repository import TrackedRepository

STATUS_LABELS = {
    "queued": "Queued",
    "waiting": "Waiting",
    "in_progress": "In Progress",
    "completed_success": "Success",
    "completed_failure": "Failure",
    "completed_cancelled": "Cancelled",
    "completed_skipped": "Skipped",
    "completed_neutral": "Neutral",
    "completed_timed_out": "Timed Out",
    "completed_stale": "Stale",
    "other": "Other",
}

_ACTIVE_STATUSES = ("queued", "waiting", "in_progress")
_KNOWN_CONCLUSIONS = ("success", "failure", "cancelled", "skipped", "neutral", "timed_out", "stale")

# Summary filter that shows everything
TOTAL_FILTER = "Total"


def status_key(status: str | None, conclusion: str | None = None) -> str:
    """
    Collapse status and conclusion into one display key.

    >>> status_key("completed", "failure")
    'completed_failure'
    >>> status_key("requested")
    'other'
    """
    if not status:
        return "other"
    if status in _ACTIVE_STATUSES:
        return status
    if status == "completed":
        normalized = (conclusion or "").lower()
        if normalized in _KNOWN_CONCLUSIONS:
            return f"completed_{normalized}"
    return "other"


def status_label(status: str | None, conclusion: str | None = None) -> str:
    return STATUS_LABELS[status_key(status, conclusion)]


def matches_only_mine(run: WorkflowRun, user_id: str | None) -> bool:
    """True when the run was triggered or authored by ``user_id``."""
    if not user_id:
        return True
    actor = run.actor.login if run.actor else ""
    author = ""
    if run.head_commit and run.head_commit.author:
        author = run.head_commit.author.name or run.head_commit.author.email or ""
    return user_id in (actor, author)


def filter_runs(
    runs: Iterable[WorkflowRun],
    *,
    only_mine: bool = False,
    user_id: str | None = None,
    active_filter: str | None = None,
) -> list[WorkflowRun]:
    """
    Apply the "only mine" filter, then the status filter.

    ``active_filter`` matches a run's status, or the conclusion of a
    completed run. None or "Total" keeps everything.
    """
    result = [run for run in runs if not only_mine or matches_only_mine(run, user_id)]
    if not active_filter or active_filter == TOTAL_FILTER:
        return result
    return [
        run
        for run in result
        if run.status == active_filter
        or (run.status == "completed" and run.conclusion == active_filter)
    ]


def summarize(
    runs: Iterable[WorkflowRun],
    *,
    only_mine: bool = False,
    user_id: str | None = None,
) -> WorkflowSummary:
    """Total, counts by status, and counts by conclusion for completed runs."""
    summary = WorkflowSummary()
    for run in filter_runs(runs, only_mine=only_mine, user_id=user_id):
        summary.total += 1
        status = run.status or "unknown"
        summary.by_status[status] = summary.by_status.get(status, 0) + 1
        if run.status == "completed" and run.conclusion:
            summary.by_conclusion[run.conclusion] = summary.by_conclusion.get(run.conclusion, 0) + 1
    return summary


def sort_selectable_first(repositories: Iterable[TrackedRepository]) -> list[TrackedRepository]:
    """Stable sort: selectable repositories before the rest."""
    return sorted(repositories, key=lambda repo: not repo.is_selectable)
