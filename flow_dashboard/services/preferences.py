"""Display preferences persisted through the encrypted store."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from flow_dashboard.exceptions import StorageError, ValidationError
from flow_dashboard.models.preferences import (
    REFRESH_INTERVALS,
    DisplayPreferences,
    Scope,
    refresh_interval_label,
)
from flow_dashboard.services.events import INTERVAL_CHANGED, SCOPE_CHANGED, EventBus
from flow_dashboard.services.secure_storage import SecureStorage, StorageKeys

logger = logging.getLogger(__name__)


class PreferencesService:
    """Read and update DisplayPreferences; announce interval and scope changes."""

    def __init__(self, storage: SecureStorage, bus: EventBus) -> None:
        self._storage = storage
        self._bus = bus
        self._preferences = DisplayPreferences()

    @property
    def preferences(self) -> DisplayPreferences:
        return self._preferences

    @property
    def refresh_interval(self) -> int:
        return self._preferences.refresh_interval

    async def load(self) -> DisplayPreferences:
        """Load persisted preferences; anything unreadable falls back to defaults."""
        raw = await self._storage.get(StorageKeys.USER_PREFERENCES)
        if raw is None:
            self._preferences = DisplayPreferences()
            return self._preferences

        try:
            self._preferences = DisplayPreferences.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.warning(
                "Stored preferences invalid, using defaults",
                extra={"error_count": e.error_count()},
            )
            self._preferences = DisplayPreferences()
        return self._preferences

    async def _save(self) -> None:
        try:
            await self._storage.put(
                StorageKeys.USER_PREFERENCES,
                self._preferences.model_dump_json(),
            )
        except StorageError as e:
            logger.warning("Failed to persist preferences", extra={"error": e.message})

    async def update(self, **changes: Any) -> DisplayPreferences:
        """
        Apply field changes, validate, persist.

        Raises:
            ValidationError: If the resulting preferences are invalid
        """
        try:
            updated = DisplayPreferences.model_validate(
                {**self._preferences.model_dump(), **changes}
            )
        except PydanticValidationError as e:
            msg = f"Invalid preferences: {e.errors()[0]['msg']}"
            raise ValidationError(msg, context={"fields": sorted(changes)}) from e

        self._preferences = updated
        await self._save()
        return updated

    async def set_refresh_interval(self, seconds: int) -> None:
        """
        Change the auto-refresh interval.

        Raises:
            ValidationError: If ``seconds`` is not one of the offered intervals
        """
        if seconds not in REFRESH_INTERVALS:
            msg = f"Invalid refresh interval: {seconds}"
            raise ValidationError(
                msg,
                context={
                    "field": "refresh_interval",
                    "value": seconds,
                    "allowed_values": sorted(REFRESH_INTERVALS),
                },
            )

        previous = self._preferences.refresh_interval
        if seconds == previous:
            return

        await self.update(refresh_interval=seconds)
        logger.info(
            "Refresh interval changed",
            extra={"refresh_interval": seconds, "label": refresh_interval_label(seconds)},
        )
        await self._bus.emit(
            INTERVAL_CHANGED,
            {"refresh_interval": seconds, "previous": previous},
        )

    async def set_scope(self, scope: Scope | None) -> None:
        if scope == self._preferences.scope:
            return
        await self.update(scope=scope.model_dump() if scope else None)
        await self._bus.emit(SCOPE_CHANGED, {"scope": scope})

    async def set_compact_mode(self, enabled: bool) -> None:
        await self.update(compact_mode=enabled)

    async def set_dashboard_name(self, name: str) -> None:
        await self.update(dashboard_name=name)

    async def set_theme(self, theme: str) -> None:
        await self.update(theme=theme)

    async def set_only_mine(self, enabled: bool) -> None:
        await self.update(only_mine=enabled)

    async def set_name_filter(self, name_filter: str) -> None:
        await self.update(name_filter=name_filter)

    async def reset(self) -> None:
        """Back to defaults and drop the persisted copy."""
        self._preferences = DisplayPreferences()
        self._storage.remove(StorageKeys.USER_PREFERENCES)
