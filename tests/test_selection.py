"""Tests for the selection set."""

from __future__ import annotations

from typing import Any

import pytest

from flow_dashboard.models.github import Repository
from flow_dashboard.models.repository import TrackedRepository, WorkflowStatus
from flow_dashboard.services.events import SELECTION_CHANGED, EventBus
from flow_dashboard.services.kv_store import MemoryKeyValueStore
from flow_dashboard.services.secure_storage import SecureStorage, StorageKeys
from flow_dashboard.services.selection import SelectionService
from github_fakes import repo_payload


def tracked(repo_id: int, status: WorkflowStatus = WorkflowStatus.HAS_WORKFLOWS) -> TrackedRepository:
    repo = TrackedRepository.from_repository(Repository.model_validate(repo_payload(repo_id)))
    return repo.model_copy(update={"workflow_status": status})


@pytest.fixture
def selection(storage: SecureStorage, bus: EventBus) -> SelectionService:
    return SelectionService(storage, bus)


@pytest.fixture
def changes(bus: EventBus) -> list[dict[str, Any]]:
    events: list[dict[str, Any]] = []
    bus.subscribe(SELECTION_CHANGED, events.append)
    return events


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status",
    [WorkflowStatus.UNKNOWN, WorkflowStatus.CHECKING, WorkflowStatus.ERROR],
)
async def test_unclassified_repository_cannot_be_selected(
    selection: SelectionService,
    changes: list[dict[str, Any]],
    status: WorkflowStatus,
) -> None:
    assert await selection.toggle(tracked(1, status)) is False

    assert selection.selected == []
    assert changes == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [WorkflowStatus.HAS_WORKFLOWS, WorkflowStatus.NO_WORKFLOWS])
async def test_toggle_selectable(
    selection: SelectionService,
    changes: list[dict[str, Any]],
    status: WorkflowStatus,
) -> None:
    repo = tracked(1, status)

    assert await selection.toggle(repo) is True
    assert selection.selected_ids == [1]

    assert await selection.toggle(repo) is True
    assert selection.selected_ids == []
    assert changes == [{"repository_ids": [1]}, {"repository_ids": []}]


@pytest.mark.asyncio
async def test_selection_preserves_order(selection: SelectionService) -> None:
    for repo_id in (3, 1, 2):
        await selection.toggle(tracked(repo_id))

    assert selection.selected_ids == [3, 1, 2]


@pytest.mark.asyncio
async def test_set_selected_drops_unselectable_and_duplicates(selection: SelectionService) -> None:
    await selection.set_selected(
        [tracked(1), tracked(2, WorkflowStatus.UNKNOWN), tracked(1), tracked(3, WorkflowStatus.NO_WORKFLOWS)]
    )

    assert selection.selected_ids == [1, 3]


@pytest.mark.asyncio
async def test_toggle_all_selects_then_deselects_visible(selection: SelectionService) -> None:
    other = tracked(9)
    await selection.toggle(other)
    visible = [tracked(1), tracked(2, WorkflowStatus.CHECKING), tracked(3)]

    await selection.toggle_all(visible)
    assert selection.selected_ids == [9, 1, 3]

    await selection.toggle_all(visible)
    assert selection.selected_ids == [9]


@pytest.mark.asyncio
async def test_toggle_all_with_nothing_selectable_is_noop(
    selection: SelectionService,
    changes: list[dict[str, Any]],
) -> None:
    await selection.toggle_all([tracked(1, WorkflowStatus.UNKNOWN)])

    assert changes == []


@pytest.mark.asyncio
async def test_clear(selection: SelectionService) -> None:
    await selection.toggle(tracked(1))
    await selection.clear()

    assert selection.selected == []


@pytest.mark.asyncio
async def test_persisted_verbatim_and_restored(
    storage: SecureStorage,
    bus: EventBus,
    selection: SelectionService,
) -> None:
    await selection.toggle(tracked(1, WorkflowStatus.NO_WORKFLOWS))
    await selection.toggle(tracked(2))

    restored = SelectionService(storage, bus)
    changes: list[dict[str, Any]] = []
    bus.subscribe(SELECTION_CHANGED, changes.append)
    result = await restored.load()

    assert [r.id for r in result] == [1, 2]
    assert result[0].workflow_status == WorkflowStatus.NO_WORKFLOWS
    assert result[1].full_name == "acme/repo-2"
    assert changes == [{"repository_ids": [1, 2]}]


@pytest.mark.asyncio
async def test_invalid_persisted_selection_starts_empty(
    storage: SecureStorage,
    selection: SelectionService,
) -> None:
    await storage.put(StorageKeys.SELECTED_REPOSITORIES, '[{"id": "not-a-repo"}]')

    assert await selection.load() == []


@pytest.mark.asyncio
async def test_selection_encrypted_at_rest(
    selection: SelectionService,
    substrate: MemoryKeyValueStore,
) -> None:
    await selection.toggle(tracked(1))

    raw = substrate.get_item(StorageKeys.SELECTED_REPOSITORIES)
    assert raw is not None
    assert "acme/repo-1" not in raw
