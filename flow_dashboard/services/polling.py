"""
Status polling for watched repositories.

Keeps the latest run per workflow for every selected repository, refreshing
on demand and on an interval timer. One repository's failure is recorded on
that repository only. Refreshes for the same repository never run twice at
once: a second request joins the one in flight.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from flow_dashboard.config import Settings
from flow_dashboard.exceptions import FlowDashboardError, PerResourceError, StorageError
from flow_dashboard.models.dashboard import RepositoryWorkflows, WorkflowSummary
from flow_dashboard.models.github import WorkflowRun
from flow_dashboard.models.repository import TrackedRepository
from flow_dashboard.services.background_tasks import BackgroundTaskTracker
from flow_dashboard.services.credentials import CredentialManager
from flow_dashboard.services.events import INTERVAL_CHANGED, SELECTION_CHANGED, EventBus
from flow_dashboard.services.preferences import PreferencesService
from flow_dashboard.services.secure_storage import SecureStorage, StorageKeys
from flow_dashboard.services.selection import SelectionService
from flow_dashboard.utils.workflow_status import filter_runs, summarize

logger = logging.getLogger(__name__)


class StatusPollingScheduler:
    """Refresh workflow statuses for the selection, on demand and on a timer."""

    def __init__(
        self,
        credentials: CredentialManager,
        selection: SelectionService,
        preferences: PreferencesService,
        storage: SecureStorage,
        bus: EventBus,
        settings: Settings | None = None,
        *,
        tracker: BackgroundTaskTracker | None = None,
    ) -> None:
        self._credentials = credentials
        self._selection = selection
        self._preferences = preferences
        self._storage = storage
        self._settings = settings or Settings()
        self._tracker = tracker or BackgroundTaskTracker()

        self._watched: dict[int, RepositoryWorkflows] = {}
        self._inflight: dict[int, asyncio.Task[None]] = {}
        self._timer_task: asyncio.Task[None] | None = None
        self._timer_interval: int | None = None
        self._last_global_update: datetime | None = None

        self._unsubscribe = [
            bus.subscribe(SELECTION_CHANGED, self._on_selection_changed),
            bus.subscribe(INTERVAL_CHANGED, self._on_interval_changed),
        ]

    @property
    def watched(self) -> dict[int, RepositoryWorkflows]:
        return dict(self._watched)

    @property
    def last_global_update(self) -> datetime | None:
        return self._last_global_update

    @property
    def is_running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    @property
    def timer_interval(self) -> int | None:
        """Interval the running timer was armed with."""
        return self._timer_interval if self.is_running else None

    async def load_last_sync(self) -> datetime | None:
        raw = await self._storage.get(StorageKeys.LAST_SYNC)
        if raw:
            try:
                self._last_global_update = datetime.fromisoformat(raw)
            except ValueError:
                logger.warning("Ignoring unreadable last sync time")
        return self._last_global_update

    async def sync_with_selection(self, repositories: Iterable[TrackedRepository]) -> None:
        """
        Make the watched set mirror the selection.

        Data for repositories that stay selected is kept. The timer is torn
        down when nothing is watched. The first time the set becomes
        non-empty with nothing loaded yet, one full refresh is scheduled.
        """
        was_empty = not self._watched
        watched: dict[int, RepositoryWorkflows] = {}
        for repo in repositories:
            entry = self._watched.get(repo.id)
            if entry is None:
                entry = RepositoryWorkflows(repository=repo)
            else:
                entry.repository = repo
            watched[repo.id] = entry
        self._watched = watched

        if not watched:
            await self.stop()
            return

        if was_empty and all(entry.last_updated is None for entry in watched.values()):
            self._tracker.spawn("initial_status_load", self.refresh_all)
        self.start()

    async def refresh_one(self, repository_id: int) -> None:
        """Fetch the latest run per workflow for one watched repository."""
        entry = self._watched.get(repository_id)
        if entry is None:
            return

        entry.is_loading = True
        repo = entry.repository
        try:
            client = self._credentials.client()
            workflows = await client.get_latest_workflow_statuses(
                repo.owner.login,
                repo.name,
                per_page=self._settings.status_page_size,
            )
        except Exception as e:
            self._record_failure(repository_id, repo, e)
            return
        else:
            current = self._watched.get(repository_id)
            if current is None:
                logger.debug("Dropping status for unwatched repository", extra={"repository_id": repository_id})
                return
            current.workflows = workflows
            current.error = None
            current.last_updated = datetime.now(UTC)
        finally:
            current = self._watched.get(repository_id)
            if current is not None:
                current.is_loading = False

    def _record_failure(self, repository_id: int, repo: TrackedRepository, error: Exception) -> None:
        if isinstance(error, FlowDashboardError):
            message = error.message
        else:
            message = str(error) or type(error).__name__
        failure = PerResourceError(repository_id, message, context={"repository": repo.full_name})
        logger.warning(
            "Workflow status refresh failed",
            exc_info=not isinstance(error, FlowDashboardError),
            extra={"repository_id": failure.repository_id, **failure.context, "error": failure.message},
        )
        current = self._watched.get(repository_id)
        if current is None:
            return
        current.error = failure.message
        current.workflows = {}

    def _refresh_deduplicated(self, repository_id: int) -> asyncio.Task[None]:
        task = self._inflight.get(repository_id)
        if task is None or task.done():
            task = asyncio.create_task(self.refresh_one(repository_id))
            self._inflight[repository_id] = task
            task.add_done_callback(lambda done, rid=repository_id: self._forget_inflight(rid, done))
        return task

    def _forget_inflight(self, repository_id: int, task: asyncio.Task[None]) -> None:
        if self._inflight.get(repository_id) is task:
            del self._inflight[repository_id]

    async def refresh_all(self) -> None:
        """Refresh every watched repository concurrently. Never raises."""
        ids = list(self._watched)
        if not ids:
            return

        results = await asyncio.gather(
            *(self._refresh_deduplicated(rid) for rid in ids),
            return_exceptions=True,
        )
        for rid, result in zip(ids, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Unexpected error refreshing repository",
                    exc_info=result,
                    extra={"repository_id": rid, "error_type": type(result).__name__},
                )

        self._last_global_update = datetime.now(UTC)
        try:
            await self._storage.put(StorageKeys.LAST_SYNC, self._last_global_update.isoformat())
        except StorageError as e:
            logger.warning("Failed to persist last sync time", extra={"error": e.message})

        logger.info(
            "Workflow statuses refreshed",
            extra={
                "repositories": len(ids),
                "failed": sum(1 for rid in ids if rid in self._watched and self._watched[rid].error),
            },
        )

    def start(self) -> None:
        """Arm the refresh timer if anything is watched and it is not already running."""
        if not self._watched or self.is_running:
            return
        self._timer_interval = self._preferences.refresh_interval
        self._timer_task = asyncio.create_task(self._run_timer(self._timer_interval))
        logger.info("Status polling started", extra={"refresh_interval": self._timer_interval})

    async def stop(self) -> None:
        """Tear down the refresh timer."""
        if self._timer_task and not self._timer_task.done():
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            logger.info("Status polling stopped")
        self._timer_task = None
        self._timer_interval = None

    async def _run_timer(self, interval: int) -> None:
        while True:
            try:
                await asyncio.sleep(interval)
                await self.refresh_all()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(
                    "Status polling loop error",
                    extra={"error": str(e), "error_type": type(e).__name__},
                )

    async def rearm(self) -> None:
        """Restart the timer with the current preference interval."""
        if not self.is_running:
            return
        await self.stop()
        self.start()

    def visible_runs(
        self,
        repository_id: int,
        *,
        only_mine: bool = False,
        active_filter: str | None = None,
    ) -> list[WorkflowRun]:
        entry = self._watched.get(repository_id)
        if entry is None:
            return []
        return filter_runs(
            entry.runs,
            only_mine=only_mine,
            user_id=self._credentials.user_id,
            active_filter=active_filter,
        )

    def summary(self, *, only_mine: bool = False) -> WorkflowSummary:
        runs = [run for entry in self._watched.values() for run in entry.runs]
        return summarize(runs, only_mine=only_mine, user_id=self._credentials.user_id)

    async def dispose(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []
        await self.stop()
        pending = [task for task in self._inflight.values() if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._inflight.clear()
        self._watched = {}

    async def _on_selection_changed(self, payload: dict[str, Any]) -> None:
        await self.sync_with_selection(self._selection.selected)

    async def _on_interval_changed(self, payload: dict[str, Any]) -> None:
        await self.rearm()
