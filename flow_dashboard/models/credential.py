"""Credential state and token validation models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from flow_dashboard.models.github import RateLimit, User


class CredentialState(str, Enum):
    UNSET = "unset"
    VALIDATING = "validating"
    VALID = "valid"
    INVALID = "invalid"


class TokenValidationResult(BaseModel):
    """Outcome of a round-trip identity check."""

    is_valid: bool
    user: User | None = None
    error: str | None = None
    status: int | None = None
    rate_limit: RateLimit | None = None

    @property
    def is_auth_rejection(self) -> bool:
        """True when the API itself rejected the token (401/403)."""
        return self.status in (401, 403)
