"""Display preferences and enumeration scope."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

REFRESH_INTERVALS: dict[int, str] = {
    10: "10 seconds",
    30: "30 seconds",
    60: "1 minute",
    120: "2 minutes",
    300: "5 minutes",
    600: "10 minutes",
    1800: "30 minutes",
    3600: "1 hour",
}

DEFAULT_REFRESH_INTERVAL = 120
DEFAULT_DASHBOARD_NAME = "GitHub Flow Dashboard"


def refresh_interval_label(interval: int) -> str:
    return REFRESH_INTERVALS.get(interval, f"{interval} seconds")


class Scope(BaseModel):
    """Enumeration context: the user's own repositories or an organization's."""

    kind: Literal["user", "organization"] = Field(..., description="Scope kind")
    login: str = Field(..., min_length=1, description="User or organization login")

    @property
    def is_user(self) -> bool:
        return self.kind == "user"

    @classmethod
    def for_user(cls, login: str) -> Scope:
        return cls(kind="user", login=login)

    @classmethod
    def for_organization(cls, login: str) -> Scope:
        return cls(kind="organization", login=login)


class DisplayPreferences(BaseModel):
    """Local preferences persisted through the encrypted store."""

    refresh_interval: int = Field(
        default=DEFAULT_REFRESH_INTERVAL,
        description="Auto-refresh interval in seconds",
    )
    compact_mode: bool = False
    dashboard_name: str = Field(default=DEFAULT_DASHBOARD_NAME, max_length=100)
    theme: Literal["light", "dark"] = "light"
    only_mine: bool = False
    scope: Scope | None = None
    name_filter: str = ""

    @field_validator("refresh_interval")
    @classmethod
    def validate_refresh_interval(cls, value: int) -> int:
        if value not in REFRESH_INTERVALS:
            msg = f"refresh_interval must be one of {sorted(REFRESH_INTERVALS)}"
            raise ValueError(msg)
        return value

    @field_validator("dashboard_name")
    @classmethod
    def validate_dashboard_name(cls, value: str) -> str:
        name = value.strip()
        return name or DEFAULT_DASHBOARD_NAME
