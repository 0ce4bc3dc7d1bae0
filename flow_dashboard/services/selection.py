"""The set of repositories the user chose to watch."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from flow_dashboard.exceptions import StorageError
from flow_dashboard.models.repository import TrackedRepository
from flow_dashboard.services.events import SELECTION_CHANGED, EventBus
from flow_dashboard.services.secure_storage import SecureStorage, StorageKeys

logger = logging.getLogger(__name__)

_SELECTION_ADAPTER = TypeAdapter(list[TrackedRepository])


class SelectionService:
    """
    Ordered selection of watched repositories.

    Only entries classified has-workflows or no-workflows can be selected;
    attempts to select anything still unknown, checking or failed are
    ignored. Every change is persisted and announced on selection.changed.
    """

    def __init__(self, storage: SecureStorage, bus: EventBus) -> None:
        self._storage = storage
        self._bus = bus
        self._selected: list[TrackedRepository] = []

    @property
    def selected(self) -> list[TrackedRepository]:
        return list(self._selected)

    @property
    def selected_ids(self) -> list[int]:
        return [repo.id for repo in self._selected]

    def is_selected(self, repository_id: int) -> bool:
        return any(repo.id == repository_id for repo in self._selected)

    async def load(self) -> list[TrackedRepository]:
        """Restore the persisted selection."""
        raw = await self._storage.get(StorageKeys.SELECTED_REPOSITORIES)
        if raw is None:
            return self.selected

        try:
            restored = _SELECTION_ADAPTER.validate_json(raw)
        except PydanticValidationError as e:
            logger.warning(
                "Stored selection invalid, starting empty",
                extra={"error_count": e.error_count()},
            )
            return self.selected

        self._selected = _unique_selectable(restored)
        if self._selected:
            await self._bus.emit(SELECTION_CHANGED, {"repository_ids": self.selected_ids})
        return self.selected

    async def _commit(self) -> None:
        try:
            await self._storage.put(
                StorageKeys.SELECTED_REPOSITORIES,
                _SELECTION_ADAPTER.dump_json(self._selected).decode("utf-8"),
            )
        except StorageError as e:
            logger.warning("Failed to persist selection", extra={"error": e.message})
        await self._bus.emit(SELECTION_CHANGED, {"repository_ids": self.selected_ids})

    async def toggle(self, repository: TrackedRepository) -> bool:
        """
        Add or remove one repository.

        Returns:
            False when the repository is not selectable and nothing changed
        """
        if not self.is_selected(repository.id) and not repository.is_selectable:
            logger.debug(
                "Ignoring selection of unclassified repository",
                extra={
                    "repository": repository.full_name,
                    "workflow_status": repository.workflow_status.value,
                },
            )
            return False

        if self.is_selected(repository.id):
            self._selected = [repo for repo in self._selected if repo.id != repository.id]
        else:
            self._selected.append(repository)
        await self._commit()
        return True

    async def set_selected(self, repositories: Iterable[TrackedRepository]) -> None:
        """Replace the selection; unselectable entries are dropped."""
        self._selected = _unique_selectable(repositories)
        await self._commit()

    async def toggle_all(self, visible: Iterable[TrackedRepository]) -> None:
        """
        Select every selectable visible repository, or deselect them all
        when they are already selected.
        """
        candidates = [repo for repo in visible if repo.is_selectable]
        if not candidates:
            return

        if all(self.is_selected(repo.id) for repo in candidates):
            ids = {repo.id for repo in candidates}
            self._selected = [repo for repo in self._selected if repo.id not in ids]
        else:
            for repo in candidates:
                if not self.is_selected(repo.id):
                    self._selected.append(repo)
        await self._commit()

    async def clear(self) -> None:
        self._selected = []
        await self._commit()


def _unique_selectable(repositories: Iterable[TrackedRepository]) -> list[TrackedRepository]:
    seen: set[int] = set()
    result: list[TrackedRepository] = []
    for repo in repositories:
        if repo.is_selectable and repo.id not in seen:
            seen.add(repo.id)
            result.append(repo)
    return result
