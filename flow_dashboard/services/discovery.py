"""
Repository discovery and workflow-activity enrichment.

A discovery pass pages through a scope's repositories one page at a time,
publishes the list immediately with every entry at ``unknown``, then
classifies entries in the background in small concurrent batches. Each pass
bumps a generation counter; writes from an older pass are dropped, which is
how a scope switch or dispose cancels in-flight work without aborting
requests.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any

from flow_dashboard.config import Settings
from flow_dashboard.exceptions import FlowDashboardError, PerResourceError
from flow_dashboard.models.github import Organization, Repository
from flow_dashboard.models.preferences import Scope
from flow_dashboard.models.repository import TrackedRepository, WorkflowStatus
from flow_dashboard.services.background_tasks import BackgroundTaskTracker
from flow_dashboard.services.credentials import CredentialManager
from flow_dashboard.services.events import (
    CREDENTIAL_REMOVED,
    CREDENTIAL_VALIDATED,
    DISCOVERY_UPDATED,
    SCOPE_CHANGED,
    EventBus,
)
from flow_dashboard.services.github_client import GitHubClient
from flow_dashboard.services.preferences import PreferencesService
from flow_dashboard.utils.error_handling import log_errors

logger = logging.getLogger(__name__)

TOKEN_REQUIRED = "Valid GitHub token required"
NO_SCOPE = "No organization selected"
NO_REPOSITORIES = "No repositories found for this organization."


class DiscoveryEngine:
    """Enumerate repositories for the active scope and classify them."""

    def __init__(
        self,
        credentials: CredentialManager,
        bus: EventBus,
        settings: Settings | None = None,
        *,
        tracker: BackgroundTaskTracker | None = None,
        preferences: PreferencesService | None = None,
    ) -> None:
        """
        Initialize the engine and subscribe to credential and scope events.

        Args:
            credentials: Source of the validated token and the user's login
            bus: Event bus
            settings: Page size, batch size, batch delay, activity window
            tracker: Background task tracker for enrichment passes
            preferences: Source of the persisted scope used once a token validates
        """
        self._credentials = credentials
        self._bus = bus
        self._settings = settings or Settings()
        self._tracker = tracker or BackgroundTaskTracker()
        self._preferences = preferences

        self._repositories: list[TrackedRepository] = []
        self._organizations: list[Organization] = []
        self._scope: Scope | None = None
        self._generation = 0
        self._is_loading = False
        self._loading_status: str | None = None
        self._error: str | None = None
        self._enrichment_task: asyncio.Task[None] | None = None

        self._unsubscribe = [
            bus.subscribe(CREDENTIAL_VALIDATED, self._on_credential_validated),
            bus.subscribe(CREDENTIAL_REMOVED, self._on_credential_removed),
            bus.subscribe(SCOPE_CHANGED, self._on_scope_changed),
        ]

    @property
    def repositories(self) -> list[TrackedRepository]:
        return list(self._repositories)

    @property
    def organizations(self) -> list[Organization]:
        return list(self._organizations)

    @property
    def scope(self) -> Scope | None:
        return self._scope

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def loading_status(self) -> str | None:
        """Progress message such as "Fetching page 2..."."""
        return self._loading_status

    @property
    def error(self) -> str | None:
        return self._error

    def get(self, repository_id: int) -> TrackedRepository | None:
        for repo in self._repositories:
            if repo.id == repository_id:
                return repo
        return None

    def filtered_repositories(self, name_filter: str | None = None) -> list[TrackedRepository]:
        """Case-insensitive match on name or description."""
        if not name_filter:
            return self.repositories
        needle = name_filter.lower()
        return [
            repo
            for repo in self._repositories
            if needle in repo.name.lower() or needle in (repo.description or "").lower()
        ]

    @log_errors("fetch_organizations")
    async def fetch_organizations(self) -> list[Organization]:
        """The authenticated user first, then their organizations."""
        client = self._credentials.client()
        user = await client.get_authenticated_user()
        orgs = await client.list_user_organizations()
        self._organizations = [
            Organization(login=user.login, id=user.id, avatar_url=user.avatar_url, type="User"),
            *orgs,
        ]
        return self.organizations

    async def fetch_repositories(self, owner: str | None = None) -> list[TrackedRepository]:
        """Discover for ``owner`` (the user or one of their organizations), or the current scope."""
        if owner is None:
            return await self.discover(self._scope)
        if owner == self._credentials.user_id:
            return await self.discover(Scope.for_user(owner))
        return await self.discover(Scope.for_organization(owner))

    async def discover(self, scope: Scope | None = None) -> list[TrackedRepository]:
        """
        Run one discovery pass.

        Returns:
            The published list (every entry unknown), or [] when a
            precondition fails or the pass was superseded

        Raises:
            FlowDashboardError: If a page request fails; the message is also
                recorded in ``error``
        """
        if not self._credentials.is_valid:
            self._error = TOKEN_REQUIRED
            return []

        scope = scope or self._scope
        if scope is None or not scope.login:
            self._error = NO_SCOPE
            return []

        self._scope = scope
        self._generation += 1
        generation = self._generation
        self._repositories = []
        self._is_loading = True
        self._error = None

        client = self._credentials.client()
        try:
            fetched = await self._fetch_all_pages(client, scope, generation)
        except FlowDashboardError as e:
            if generation == self._generation:
                self._error = e.message
                self._is_loading = False
                self._loading_status = None
            logger.error(
                "Repository discovery failed",
                extra={"scope": scope.login, "error": e.message},
            )
            raise

        if generation != self._generation:
            logger.debug("Discarding superseded discovery pass", extra={"scope": scope.login})
            return []

        active = [repo for repo in fetched if not repo.archived and not repo.disabled]
        self._repositories = [TrackedRepository.from_repository(repo) for repo in active]
        self._is_loading = False
        self._loading_status = None
        if not self._repositories:
            self._error = NO_REPOSITORIES

        logger.info(
            "Repositories discovered",
            extra={
                "scope": scope.login,
                "fetched": len(fetched),
                "published": len(self._repositories),
            },
        )
        await self._bus.emit(
            DISCOVERY_UPDATED,
            {"scope": scope, "count": len(self._repositories), "generation": generation},
        )

        if self._repositories:
            self._enrichment_task = self._tracker.spawn(
                f"enrich_repositories:{scope.login}",
                functools.partial(self._enrich, client, generation),
            )
        return self.repositories

    async def _fetch_all_pages(
        self,
        client: GitHubClient,
        scope: Scope,
        generation: int,
    ) -> list[Repository]:
        limit = self._settings.repository_page_size
        repositories: list[Repository] = []
        page = 1

        while True:
            if generation == self._generation:
                self._loading_status = f"Fetching page {page}..."
            result = await client.list_repositories_page(
                scope.login,
                scope.is_user,
                sort="updated",
                direction="desc",
                per_page=limit,
                page=page,
            )
            if generation != self._generation:
                return repositories

            repositories.extend(result.items)
            if not result.items or len(result.items) < limit or result.has_next is False:
                return repositories
            page += 1

    async def _enrich(self, client: GitHubClient, generation: int) -> None:
        batch_size = self._settings.enrichment_batch_size
        delay = self._settings.enrichment_batch_delay_seconds
        snapshot = list(self._repositories)

        for start in range(0, len(snapshot), batch_size):
            if generation != self._generation:
                return
            batch = snapshot[start : start + batch_size]
            for repo in batch:
                self._advance(generation, repo.id, WorkflowStatus.CHECKING)

            await asyncio.gather(*(self._probe(client, generation, repo) for repo in batch))

            if start + batch_size < len(snapshot) and delay > 0:
                await asyncio.sleep(delay)

        if generation == self._generation:
            logger.info(
                "Repository enrichment complete",
                extra={"count": len(snapshot), "generation": generation},
            )
            await self._bus.emit(
                DISCOVERY_UPDATED,
                {"scope": self._scope, "count": len(self._repositories), "generation": generation},
            )

    async def _probe(self, client: GitHubClient, generation: int, repo: TrackedRepository) -> None:
        try:
            check = await client.has_recent_workflow_activity(
                repo.owner.login,
                repo.name,
                days_back=self._settings.activity_days_back,
            )
        except Exception as e:
            failure = PerResourceError(repo.id, str(e), context={"repository": repo.full_name})
            logger.warning(
                "Workflow activity check failed",
                extra={"repository_id": failure.repository_id, **failure.context, "error": failure.message},
            )
            self._advance(generation, repo.id, WorkflowStatus.ERROR)
            return

        if check.has_activity:
            self._advance(
                generation,
                repo.id,
                WorkflowStatus.HAS_WORKFLOWS,
                workflow_count=check.total_runs,
            )
        else:
            self._advance(generation, repo.id, WorkflowStatus.NO_WORKFLOWS)

    def _advance(
        self,
        generation: int,
        repository_id: int,
        status: WorkflowStatus,
        *,
        workflow_count: int | None = None,
    ) -> bool:
        """Apply a classification if the pass is current and the move is forward."""
        if generation != self._generation:
            return False

        for index, current in enumerate(self._repositories):
            if current.id != repository_id:
                continue
            if not current.workflow_status.can_advance_to(status):
                return False
            update: dict[str, Any] = {"workflow_status": status}
            if workflow_count is not None:
                update["workflow_count"] = workflow_count
            self._repositories[index] = current.model_copy(update=update)
            return True
        return False

    async def set_scope(self, scope: Scope) -> list[TrackedRepository]:
        """Switch scope: drop the current list and rediscover."""
        self._repositories = []
        self._scope = scope
        return await self.discover(scope)

    async def wait_for_enrichment(self) -> None:
        """Wait for the current enrichment pass to finish."""
        task = self._enrichment_task
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    def cancel(self) -> None:
        """Invalidate in-flight work; late results are discarded."""
        self._generation += 1
        self._is_loading = False
        self._loading_status = None

    def clear(self) -> None:
        self.cancel()
        self._repositories = []
        self._organizations = []
        self._scope = None
        self._error = None

    async def dispose(self) -> None:
        self.cancel()
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []
        task = self._enrichment_task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _on_credential_validated(self, payload: dict[str, Any]) -> None:
        try:
            await self.fetch_organizations()
        except FlowDashboardError as e:
            logger.warning("Failed to load organizations", extra={"error": e.message})

        scope = self._scope
        if scope is None and self._preferences is not None:
            scope = self._preferences.preferences.scope
        if scope is None and self._credentials.user_id:
            scope = Scope.for_user(self._credentials.user_id)

        try:
            await self.discover(scope)
        except FlowDashboardError:
            # Recorded in self.error
            pass

    async def _on_credential_removed(self, payload: dict[str, Any]) -> None:
        self.clear()

    async def _on_scope_changed(self, payload: dict[str, Any]) -> None:
        scope = payload.get("scope")
        if scope is None:
            return
        try:
            await self.set_scope(scope)
        except FlowDashboardError:
            # Recorded in self.error
            pass
