"""Tests for run filtering and summary reductions."""

from __future__ import annotations

import pytest

from flow_dashboard.models.github import Repository, WorkflowRun
from flow_dashboard.models.repository import TrackedRepository, WorkflowStatus
from flow_dashboard.utils.workflow_status import (
    TOTAL_FILTER,
    filter_runs,
    matches_only_mine,
    sort_selectable_first,
    status_key,
    status_label,
    summarize,
)
from github_fakes import repo_payload, run_payload


def run(run_id: int, **kwargs) -> WorkflowRun:
    return WorkflowRun.model_validate(run_payload(run_id, run_id, **kwargs))


@pytest.mark.parametrize(
    ("status", "conclusion", "key"),
    [
        ("queued", None, "queued"),
        ("waiting", None, "waiting"),
        ("in_progress", None, "in_progress"),
        ("completed", "success", "completed_success"),
        ("completed", "FAILURE", "completed_failure"),
        ("completed", "timed_out", "completed_timed_out"),
        ("completed", "action_required", "other"),
        ("completed", None, "other"),
        ("requested", None, "other"),
        (None, None, "other"),
    ],
)
def test_status_key(status: str | None, conclusion: str | None, key: str) -> None:
    assert status_key(status, conclusion) == key


def test_status_label() -> None:
    assert status_label("completed", "cancelled") == "Cancelled"
    assert status_label("in_progress") == "In Progress"


class TestOnlyMine:
    def test_actor_matches(self) -> None:
        assert matches_only_mine(run(1, actor="alice"), "alice")
        assert not matches_only_mine(run(1, actor="bob"), "alice")

    def test_commit_author_matches(self) -> None:
        by_name = run(1, actor="bot", head_commit={"author": {"name": "alice", "email": "a@example.com"}})
        by_email = run(2, actor="bot", head_commit={"author": {"email": "alice"}})

        assert matches_only_mine(by_name, "alice")
        assert matches_only_mine(by_email, "alice")

    def test_no_user_matches_everything(self) -> None:
        assert matches_only_mine(run(1, actor="bob"), None)


def test_filter_runs() -> None:
    runs = [
        run(1, conclusion="success", actor="alice"),
        run(2, conclusion="failure", actor="bob"),
        run(3, status="queued", conclusion=None, actor="alice"),
    ]

    assert [r.id for r in filter_runs(runs)] == [1, 2, 3]
    assert [r.id for r in filter_runs(runs, active_filter=TOTAL_FILTER)] == [1, 2, 3]
    assert [r.id for r in filter_runs(runs, active_filter="failure")] == [2]
    assert [r.id for r in filter_runs(runs, active_filter="queued")] == [3]
    assert [r.id for r in filter_runs(runs, only_mine=True, user_id="alice")] == [1, 3]
    assert [
        r.id for r in filter_runs(runs, only_mine=True, user_id="alice", active_filter="success")
    ] == [1]


def test_summarize() -> None:
    runs = [
        run(1, conclusion="success"),
        run(2, conclusion="success"),
        run(3, conclusion="failure", actor="bob"),
        run(4, status="in_progress", conclusion=None),
        run(5, status=None, conclusion=None),
    ]

    summary = summarize(runs)

    assert summary.total == 5
    assert summary.by_status == {"completed": 3, "in_progress": 1, "unknown": 1}
    assert summary.by_conclusion == {"success": 2, "failure": 1}

    mine = summarize(runs, only_mine=True, user_id="bob")
    assert mine.total == 1
    assert mine.by_conclusion == {"failure": 1}


def test_summarize_empty() -> None:
    summary = summarize([])

    assert summary.total == 0
    assert summary.by_status == {}


def test_sort_selectable_first_is_stable() -> None:
    def tracked(repo_id: int, status: WorkflowStatus) -> TrackedRepository:
        repo = TrackedRepository.from_repository(Repository.model_validate(repo_payload(repo_id)))
        return repo.model_copy(update={"workflow_status": status})

    repos = [
        tracked(1, WorkflowStatus.UNKNOWN),
        tracked(2, WorkflowStatus.HAS_WORKFLOWS),
        tracked(3, WorkflowStatus.ERROR),
        tracked(4, WorkflowStatus.NO_WORKFLOWS),
    ]

    assert [r.id for r in sort_selectable_first(repos)] == [2, 4, 1, 3]
