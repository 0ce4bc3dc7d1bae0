"""
Service dependency container.

Wires the dashboard services together explicitly; there is no module-level
singleton. Tests build their own container with an in-memory substrate, a
fixed fingerprint and a mock transport.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from flow_dashboard.config import Settings, build_settings
from flow_dashboard.services.background_tasks import BackgroundTaskTracker
from flow_dashboard.services.credentials import CredentialManager
from flow_dashboard.services.discovery import DiscoveryEngine
from flow_dashboard.services.events import CREDENTIAL_REMOVED, EventBus
from flow_dashboard.services.kv_store import FileKeyValueStore, KeyValueStore
from flow_dashboard.services.polling import StatusPollingScheduler
from flow_dashboard.services.preferences import PreferencesService
from flow_dashboard.services.secure_storage import DeviceFingerprint, SecureStorage
from flow_dashboard.services.selection import SelectionService

logger = logging.getLogger(__name__)


class DashboardContainer:
    """Container for all dashboard services."""

    def __init__(
        self,
        settings: Settings,
        bus: EventBus,
        tracker: BackgroundTaskTracker,
        storage: SecureStorage,
        credentials: CredentialManager,
        preferences: PreferencesService,
        selection: SelectionService,
        discovery: DiscoveryEngine,
        polling: StatusPollingScheduler,
    ) -> None:
        self.settings = settings
        self.bus = bus
        self.tracker = tracker
        self.storage = storage
        self.credentials = credentials
        self.preferences = preferences
        self.selection = selection
        self.discovery = discovery
        self.polling = polling

        self._unsubscribe = bus.subscribe(CREDENTIAL_REMOVED, self._on_credential_removed)

    async def start(self) -> None:
        """
        Restore persisted state and re-validate the stored token.

        A valid token triggers organization loading and discovery through
        the credential.validated event. The selection is restored last so
        the initial status load runs with the token in place.
        """
        await self.preferences.load()
        await self.polling.load_last_sync()
        await self.credentials.initialize()
        await self.selection.load()
        logger.info(
            "Dashboard started",
            extra={
                "credential_state": self.credentials.state.value,
                "selected": len(self.selection.selected),
            },
        )

    async def dispose(self) -> None:
        """Stop timers, invalidate in-flight work and cancel background tasks."""
        self._unsubscribe()
        await self.polling.dispose()
        await self.discovery.dispose()
        await self.tracker.cancel_all()
        logger.info("Dashboard disposed")

    async def _on_credential_removed(self, payload: dict[str, Any]) -> None:
        await self.selection.clear()


def build_dashboard(
    settings: Settings | None = None,
    *,
    substrate: KeyValueStore | None = None,
    fingerprint: DeviceFingerprint | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    kdf_iterations: int | None = None,
) -> DashboardContainer:
    """
    Create every service and wire their event subscriptions.

    Args:
        settings: Settings; defaults to build_settings() (CONFIG_PATH YAML plus environment)
        substrate: Key-value store; defaults to the JSON file at settings.storage_path
        fingerprint: Device fingerprint; collected from the environment when omitted
        transport: httpx transport for every GitHub client
        kdf_iterations: Override of settings.kdf_iterations
    """
    settings = settings or build_settings()
    bus = EventBus()
    tracker = BackgroundTaskTracker()

    storage = SecureStorage(
        substrate if substrate is not None else FileKeyValueStore(settings.storage_path),
        fingerprint or DeviceFingerprint.from_environment(settings.app_salt),
        iterations=kdf_iterations or settings.kdf_iterations,
    )
    credentials = CredentialManager(storage, bus, settings, transport=transport)
    preferences = PreferencesService(storage, bus)
    selection = SelectionService(storage, bus)
    discovery = DiscoveryEngine(
        credentials,
        bus,
        settings,
        tracker=tracker,
        preferences=preferences,
    )
    polling = StatusPollingScheduler(
        credentials,
        selection,
        preferences,
        storage,
        bus,
        settings,
        tracker=tracker,
    )

    return DashboardContainer(
        settings=settings,
        bus=bus,
        tracker=tracker,
        storage=storage,
        credentials=credentials,
        preferences=preferences,
        selection=selection,
        discovery=discovery,
        polling=polling,
    )
