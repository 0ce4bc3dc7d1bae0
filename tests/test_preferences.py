"""Tests for display preferences."""

from __future__ import annotations

from typing import Any

import pytest

from flow_dashboard.exceptions import ValidationError
from flow_dashboard.models.preferences import (
    DEFAULT_DASHBOARD_NAME,
    DEFAULT_REFRESH_INTERVAL,
    DisplayPreferences,
    Scope,
    refresh_interval_label,
)
from flow_dashboard.services.events import INTERVAL_CHANGED, SCOPE_CHANGED, EventBus
from flow_dashboard.services.preferences import PreferencesService
from flow_dashboard.services.secure_storage import SecureStorage, StorageKeys


@pytest.fixture
def preferences(storage: SecureStorage, bus: EventBus) -> PreferencesService:
    return PreferencesService(storage, bus)


def test_defaults() -> None:
    prefs = DisplayPreferences()

    assert prefs.refresh_interval == DEFAULT_REFRESH_INTERVAL == 120
    assert prefs.compact_mode is False
    assert prefs.dashboard_name == DEFAULT_DASHBOARD_NAME
    assert prefs.theme == "light"
    assert prefs.scope is None


def test_blank_dashboard_name_falls_back() -> None:
    assert DisplayPreferences(dashboard_name="   ").dashboard_name == DEFAULT_DASHBOARD_NAME


def test_interval_labels() -> None:
    assert refresh_interval_label(60) == "1 minute"
    assert refresh_interval_label(3600) == "1 hour"


@pytest.mark.asyncio
@pytest.mark.parametrize("seconds", [0, 45, 121, 7200])
async def test_refresh_interval_outside_set_rejected(
    preferences: PreferencesService,
    seconds: int,
) -> None:
    with pytest.raises(ValidationError) as exc_info:
        await preferences.set_refresh_interval(seconds)

    assert exc_info.value.context["value"] == seconds
    assert preferences.refresh_interval == DEFAULT_REFRESH_INTERVAL


@pytest.mark.asyncio
async def test_refresh_interval_change_emits(preferences: PreferencesService, bus: EventBus) -> None:
    events: list[dict[str, Any]] = []
    bus.subscribe(INTERVAL_CHANGED, events.append)

    await preferences.set_refresh_interval(30)
    await preferences.set_refresh_interval(30)

    assert preferences.refresh_interval == 30
    assert events == [{"refresh_interval": 30, "previous": 120}]


@pytest.mark.asyncio
async def test_scope_change_emits(preferences: PreferencesService, bus: EventBus) -> None:
    events: list[dict[str, Any]] = []
    bus.subscribe(SCOPE_CHANGED, events.append)
    scope = Scope.for_organization("acme")

    await preferences.set_scope(scope)
    await preferences.set_scope(scope)

    assert preferences.preferences.scope == scope
    assert events == [{"scope": scope}]


@pytest.mark.asyncio
async def test_persist_and_reload(storage: SecureStorage, bus: EventBus, preferences: PreferencesService) -> None:
    await preferences.set_refresh_interval(600)
    await preferences.set_compact_mode(True)
    await preferences.set_dashboard_name("Release Board")
    await preferences.set_theme("dark")
    await preferences.set_only_mine(True)
    await preferences.set_name_filter("api")
    await preferences.set_scope(Scope.for_user("alice"))

    reloaded = await PreferencesService(storage, bus).load()

    assert reloaded.refresh_interval == 600
    assert reloaded.compact_mode is True
    assert reloaded.dashboard_name == "Release Board"
    assert reloaded.theme == "dark"
    assert reloaded.only_mine is True
    assert reloaded.name_filter == "api"
    assert reloaded.scope == Scope.for_user("alice")


@pytest.mark.asyncio
async def test_invalid_theme_rejected(preferences: PreferencesService) -> None:
    with pytest.raises(ValidationError):
        await preferences.set_theme("neon")

    assert preferences.preferences.theme == "light"


@pytest.mark.asyncio
async def test_unreadable_stored_preferences_use_defaults(
    storage: SecureStorage,
    preferences: PreferencesService,
) -> None:
    await storage.put(StorageKeys.USER_PREFERENCES, '{"refresh_interval": 45}')

    loaded = await preferences.load()

    assert loaded.refresh_interval == DEFAULT_REFRESH_INTERVAL


@pytest.mark.asyncio
async def test_reset(storage: SecureStorage, preferences: PreferencesService) -> None:
    await preferences.set_compact_mode(True)

    await preferences.reset()

    assert preferences.preferences.compact_mode is False
    assert await storage.get(StorageKeys.USER_PREFERENCES) is None
