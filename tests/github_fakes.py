"""Fake GitHub REST API and payload builders for tests."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

# Keeps PBKDF2 fast in tests; production uses >= 100_000
FAST_ITERATIONS = 1_000

VALID_TOKEN = "ghp_" + "a" * 36
API = "https://api.github.com"

RATE_LIMIT_HEADERS = {
    "X-RateLimit-Limit": "5000",
    "X-RateLimit-Remaining": "4999",
    "X-RateLimit-Reset": "1700000000",
}

Handler = Callable[[httpx.Request], Any]


class FakeGitHub:
    """
    Route table behind an httpx.MockTransport.

    Routes are keyed by (method, path). A route is either a static
    httpx.Response factory or a handler; handlers may be async. Unrouted
    requests get a 404 like the real API.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], Handler] = {}

    def route(self, path: str, handler: Handler, method: str = "GET") -> None:
        self._routes[(method, path)] = handler

    def json(
        self,
        path: str,
        payload: Any,
        status: int = 200,
        headers: dict[str, str] | None = None,
        method: str = "GET",
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                status,
                json=payload,
                headers={**RATE_LIMIT_HEADERS, **(headers or {})},
            )

        self.route(path, handler, method)

    def error(self, path: str, status: int, message: str = "Error") -> None:
        self.json(path, {"message": message}, status=status)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self._routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"message": "Not Found"})
        response = handler(request)
        if not isinstance(response, httpx.Response):
            response = await response
        return response

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


def user_payload(login: str = "alice", user_id: int = 1) -> dict[str, Any]:
    return {"login": login, "id": user_id, "avatar_url": f"https://avatars.example/{login}"}


def repo_payload(
    repo_id: int,
    name: str | None = None,
    owner: str = "acme",
    **overrides: Any,
) -> dict[str, Any]:
    name = name or f"repo-{repo_id}"
    payload = {
        "id": repo_id,
        "name": name,
        "full_name": f"{owner}/{name}",
        "owner": {"login": owner},
        "private": False,
        "html_url": f"https://github.com/{owner}/{name}",
        "description": None,
        "updated_at": "2025-01-01T00:00:00Z",
        "archived": False,
        "disabled": False,
    }
    payload.update(overrides)
    return payload


def run_payload(
    run_id: int,
    workflow_id: int,
    *,
    created_at: datetime | None = None,
    status: str = "completed",
    conclusion: str | None = "success",
    actor: str = "alice",
    **overrides: Any,
) -> dict[str, Any]:
    created = created_at or datetime.now(UTC) - timedelta(hours=1)
    payload = {
        "id": run_id,
        "name": f"workflow-{workflow_id}",
        "workflow_id": workflow_id,
        "head_branch": "main",
        "status": status,
        "conclusion": conclusion,
        "created_at": created.isoformat().replace("+00:00", "Z"),
        "actor": {"login": actor},
    }
    payload.update(overrides)
    return payload


