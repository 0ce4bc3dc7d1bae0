"""
GitHub REST API gateway.

Every outbound call goes through GitHubClient.request: it attaches the
bearer token and API version header, parses rate-limit headers, and turns
failures into ApiError (the API answered with an error) or NetworkError
(the transport failed). The client holds only a base URL and a token; each
call opens its own httpx.AsyncClient, and connection reuse is left to the
transport.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Any, Literal, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from flow_dashboard.exceptions import ApiError, FlowDashboardError, NetworkError
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
from flow_dashboard.version import user_agent

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.github.com"
DEFAULT_API_VERSION = "2022-11-28"
MAX_PER_PAGE = 100

M = TypeVar("M", bound=BaseModel)


def _parse_int_header(headers: httpx.Headers, name: str) -> int:
    value = headers.get(name)
    if value is None:
        return 0
    try:
        return int(value)
    except ValueError:
        return 0


def parse_rate_limit(headers: httpx.Headers) -> RateLimit:
    """Read X-RateLimit-* headers; absent or malformed values default to 0."""
    return RateLimit(
        limit=_parse_int_header(headers, "X-RateLimit-Limit"),
        remaining=_parse_int_header(headers, "X-RateLimit-Remaining"),
        reset=_parse_int_header(headers, "X-RateLimit-Reset"),
    )


def has_next_page(headers: dict[str, str]) -> bool | None:
    """Whether the Link header advertises a next page; None without a Link header."""
    link = headers.get("link")
    if link is None:
        return None
    return 'rel="next"' in link


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def latest_run_per_workflow(runs: Iterable[WorkflowRun]) -> dict[int, WorkflowRun]:
    """Keep, for each workflow id, the run with the latest created_at."""
    latest: dict[int, WorkflowRun] = {}
    for run in runs:
        current = latest.get(run.workflow_id)
        if current is None or _as_utc(run.created_at) > _as_utc(current.created_at):
            latest[run.workflow_id] = run
    return latest


def _clamp_per_page(per_page: int | None) -> int | None:
    if per_page is None:
        return None
    return max(1, min(per_page, MAX_PER_PAGE))


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _unexpected_shape(response: ApiResponse[Any], endpoint: str, model: type[BaseModel]) -> ApiError:
    return ApiError(
        response.status,
        "Unexpected response shape",
        context={"endpoint": endpoint, "model": model.__name__},
    )


def parse_object(response: ApiResponse[Any], model: type[M], endpoint: str) -> M:
    """Validate a single-object body; any shape mismatch becomes ApiError."""
    try:
        return model.model_validate(response.data)
    except PydanticValidationError as e:
        raise _unexpected_shape(response, endpoint, model) from e


def parse_items(
    response: ApiResponse[Any],
    model: type[M],
    endpoint: str,
    key: str | None = None,
) -> list[M]:
    """
    Validate a list body, or the list under ``key`` of an object body.

    An empty body reads as an empty list. Anything else that does not fit
    raises ApiError, so callers only ever see FlowDashboardError subclasses.
    """
    data = response.data
    if key is not None:
        if data is None:
            return []
        if not isinstance(data, dict):
            raise _unexpected_shape(response, endpoint, model)
        data = data.get(key)
    if data is None:
        return []
    if not isinstance(data, list):
        raise _unexpected_shape(response, endpoint, model)
    try:
        return [model.model_validate(item) for item in data]
    except PydanticValidationError as e:
        raise _unexpected_shape(response, endpoint, model) from e


class GitHubClient:
    """Stateless GitHub API client bound to one token."""

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_BASE_URL,
        *,
        api_version: str = DEFAULT_API_VERSION,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            token: Bearer token (personal access token)
            base_url: API root, without trailing slash
            api_version: Value of the X-GitHub-Api-Version header
            timeout_seconds: Transport timeout per request
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.timeout = timeout_seconds
        self._token = token
        self._transport = transport

    def __repr__(self) -> str:
        return f"GitHubClient(base_url={self.base_url!r})"

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self._token}",
            "X-GitHub-Api-Version": self.api_version,
            "User-Agent": user_agent(),
        }

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        query: dict[str, Any] | None = None,
        body: Any = None,
    ) -> ApiResponse[Any]:
        """
        Perform one API call.

        Args:
            endpoint: Path beginning with "/"
            method: HTTP method
            query: Query parameters; None values are dropped
            body: JSON body

        Returns:
            ApiResponse with parsed JSON data and the rate-limit snapshot

        Raises:
            ApiError: On any non-2xx status or an unparseable success body
            NetworkError: On transport failures (DNS, timeout, connection reset)
        """
        url = f"{self.base_url}{endpoint}"
        params = {k: _query_value(v) for k, v in (query or {}).items() if v is not None}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    json=body,
                    headers=self._headers(),
                )
        except httpx.RequestError as e:
            logger.warning(
                "GitHub API request failed",
                extra={"endpoint": endpoint, "method": method, "error_type": type(e).__name__},
            )
            msg = f"Network error calling GitHub API: {e}"
            raise NetworkError(
                msg,
                context={"endpoint": endpoint, "method": method, "error_type": type(e).__name__},
            ) from e

        logger.debug(
            "GitHub API response",
            extra={"endpoint": endpoint, "method": method, "status_code": response.status_code},
        )

        if not response.is_success:
            message = f"API Error: {response.status_code}"
            try:
                error_data = response.json()
                if isinstance(error_data, dict) and error_data.get("message"):
                    message = str(error_data["message"])
            except ValueError:
                pass
            raise ApiError(
                response.status_code,
                message,
                context={"endpoint": endpoint, "method": method},
            )

        data: Any = None
        if response.content:
            try:
                data = response.json()
            except ValueError as e:
                raise ApiError(
                    response.status_code,
                    "Invalid JSON response",
                    context={"endpoint": endpoint, "method": method},
                ) from e

        return ApiResponse[Any](
            data=data,
            status=response.status_code,
            headers=dict(response.headers),
            rate_limit=parse_rate_limit(response.headers),
        )

    async def get_authenticated_user(self) -> User:
        """Identity check: GET /user."""
        response = await self.request("/user")
        return parse_object(response, User, "/user")

    async def list_user_organizations(self) -> list[Organization]:
        response = await self.request("/user/orgs")
        return [
            org.model_copy(update={"type": "Organization"})
            for org in parse_items(response, Organization, "/user/orgs")
        ]

    async def list_repositories_page(
        self,
        owner: str,
        is_user: bool,
        *,
        type: Literal["all", "owner", "member"] | None = None,
        sort: Literal["created", "updated", "pushed", "full_name"] | None = None,
        direction: Literal["asc", "desc"] | None = None,
        per_page: int | None = None,
        page: int | None = None,
    ) -> RepositoryPage:
        """One page of a user's or organization's repositories."""
        prefix = "users" if is_user else "orgs"
        endpoint = f"/{prefix}/{quote(owner, safe='')}/repos"
        response = await self.request(
            endpoint,
            query={
                "type": type,
                "sort": sort,
                "direction": direction,
                "per_page": _clamp_per_page(per_page),
                "page": page,
            },
        )
        items = parse_items(response, Repository, endpoint)
        return RepositoryPage(items=items, has_next=has_next_page(response.headers))

    async def list_repositories(
        self,
        owner: str,
        is_user: bool,
        **options: Any,
    ) -> list[Repository]:
        """Repositories for a user or organization (single page; see list_repositories_page)."""
        page = await self.list_repositories_page(owner, is_user, **options)
        return page.items

    async def list_workflows(self, owner: str, repo: str) -> list[Workflow]:
        endpoint = f"/repos/{quote(owner, safe='')}/{quote(repo, safe='')}/actions/workflows"
        response = await self.request(endpoint)
        return parse_items(response, Workflow, endpoint, key="workflows")

    async def list_workflow_runs(
        self,
        owner: str,
        repo: str,
        *,
        actor: str | None = None,
        branch: str | None = None,
        event: str | None = None,
        status: str | None = None,
        per_page: int | None = None,
        page: int | None = None,
    ) -> list[WorkflowRun]:
        """Workflow runs for a repository, newest first."""
        endpoint = f"/repos/{quote(owner, safe='')}/{quote(repo, safe='')}/actions/runs"
        response = await self.request(
            endpoint,
            query={
                "actor": actor,
                "branch": branch,
                "event": event,
                "status": status,
                "per_page": _clamp_per_page(per_page),
                "page": page,
            },
        )
        return parse_items(response, WorkflowRun, endpoint, key="workflow_runs")

    async def list_runs_for_workflow(
        self,
        owner: str,
        repo: str,
        workflow_id: int,
        *,
        per_page: int | None = None,
    ) -> list[WorkflowRun]:
        endpoint = f"/repos/{quote(owner, safe='')}/{quote(repo, safe='')}/actions/workflows/{workflow_id}/runs"
        response = await self.request(
            endpoint,
            query={"per_page": _clamp_per_page(per_page)},
        )
        return parse_items(response, WorkflowRun, endpoint, key="workflow_runs")

    async def get_latest_workflow_runs_legacy(self, owner: str, repo: str) -> list[WorkflowRun]:
        """
        Latest run per workflow via one request per workflow.

        Legacy N+1 path, kept as a fallback only; polling uses
        get_latest_workflow_statuses. A failure for one workflow is logged
        and skipped.
        """
        workflows = await self.list_workflows(owner, repo)
        latest_runs: list[WorkflowRun] = []

        for workflow in workflows:
            try:
                runs = await self.list_runs_for_workflow(owner, repo, workflow.id, per_page=1)
            except FlowDashboardError as e:
                logger.warning(
                    "Failed to get runs for workflow",
                    extra={
                        "repository": f"{owner}/{repo}",
                        "workflow": workflow.name,
                        "error": str(e),
                    },
                )
                continue
            if runs:
                latest_runs.append(runs[0])

        return latest_runs

    async def get_latest_workflow_runs(
        self,
        owner: str,
        repo: str,
        *,
        per_page: int = 20,
        branch: str | None = None,
    ) -> list[WorkflowRun]:
        """Most recent runs across all workflows in one call."""
        return await self.list_workflow_runs(owner, repo, per_page=per_page, branch=branch)

    async def get_latest_workflow_statuses(
        self,
        owner: str,
        repo: str,
        *,
        per_page: int = 50,
        branch: str | None = None,
    ) -> dict[int, WorkflowRun]:
        """Current status per workflow: one call, reduced client-side to the newest run per workflow id."""
        runs = await self.list_workflow_runs(owner, repo, per_page=per_page, branch=branch)
        return latest_run_per_workflow(runs)

    async def has_recent_workflow_activity(
        self,
        owner: str,
        repo: str,
        *,
        days_back: int = 30,
    ) -> ActivityCheck:
        """
        Does the repository have a workflow run within the last ``days_back`` days?

        One bounded call. If runs cannot be listed, falls back to checking
        whether any workflow exists; if that fails too, reports no activity.
        Never raises.
        """
        try:
            return await self._check_activity(owner, repo, days_back)
        except Exception:
            logger.exception(
                "Activity probe raised; reporting no activity",
                extra={"repository": f"{owner}/{repo}"},
            )
            return ActivityCheck(has_activity=False, total_runs=0, probe_failed=True)

    async def _check_activity(self, owner: str, repo: str, days_back: int) -> ActivityCheck:
        try:
            runs = await self.list_workflow_runs(owner, repo, per_page=1)
        except FlowDashboardError as runs_error:
            try:
                workflows = await self.list_workflows(owner, repo)
            except FlowDashboardError as workflows_error:
                logger.info(
                    "Activity probe failed; reporting no activity",
                    extra={
                        "repository": f"{owner}/{repo}",
                        "runs_error": str(runs_error),
                        "workflows_error": str(workflows_error),
                    },
                )
                return ActivityCheck(has_activity=False, total_runs=0, probe_failed=True)
            return ActivityCheck(
                has_activity=len(workflows) > 0,
                total_runs=0,
                probe_failed=True,
            )

        if not runs:
            return ActivityCheck(has_activity=False, total_runs=0)

        latest_run = runs[0]
        cutoff = datetime.now(UTC) - timedelta(days=days_back)
        has_activity = _as_utc(latest_run.created_at) >= cutoff

        return ActivityCheck(
            has_activity=has_activity,
            latest_run=latest_run if has_activity else None,
            total_runs=len(runs),
        )

    async def get_rate_limit(self) -> RateLimit:
        response = await self.request("/rate_limit")
        data = response.data if isinstance(response.data, dict) else {}
        try:
            return RateLimit.model_validate(data.get("rate", {}))
        except PydanticValidationError as e:
            raise _unexpected_shape(response, "/rate_limit", RateLimit) from e
